"""
Tests for the room-based EventBroadcaster and per-subscriber FIFO delivery.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from qrorder.domain import Order, OrderStatus
from qrorder.realtime import (
    ORDER_NEW,
    ORDER_STATUS,
    ORDER_UPDATED,
    EventBroadcaster,
    Subscriber,
    order_room,
    restaurant_room,
)


class Recorder:
    """Collects sent frames, optionally blocking until released."""

    def __init__(self, block=False):
        self.sent = []
        self.gate = asyncio.Event()
        if not block:
            self.gate.set()

    async def send(self, message):
        await self.gate.wait()
        self.sent.append(message)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


def make_order(status=OrderStatus.PENDING):
    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    return Order(
        id="order-1", restaurant_id="rest-main", table_id="table-1", order_number=7,
        status=status, total_cents=500, created_at=now, updated_at=now, table_number=1,
    )


@pytest.mark.asyncio
async def test_events_reach_only_room_members_in_order():
    broadcaster = EventBroadcaster()
    staff, other = Recorder(), Recorder()
    staff_sub, other_sub = Subscriber(staff.send), Subscriber(other.send)
    tasks = [asyncio.create_task(staff_sub.run()), asyncio.create_task(other_sub.run())]

    broadcaster.subscribe(staff_sub, restaurant_room("rest-main"))
    broadcaster.subscribe(other_sub, restaurant_room("rest-other"))
    for n in range(10):
        await broadcaster.publish(restaurant_room("rest-main"), "tick", {"n": n})
    await settle()

    assert [m["data"]["n"] for m in staff.sent] == list(range(10))
    assert other.sent == []

    for sub in (staff_sub, other_sub):
        sub.close()
    await asyncio.gather(*tasks)


@pytest.mark.asyncio
async def test_publish_to_empty_room_is_a_noop():
    broadcaster = EventBroadcaster()
    assert await broadcaster.publish("restaurant:nobody", "tick", {}) == 0


@pytest.mark.asyncio
async def test_unsubscribe_and_disconnect():
    broadcaster = EventBroadcaster()
    recorder = Recorder()
    sub = Subscriber(recorder.send)
    broadcaster.subscribe(sub, restaurant_room("r"))
    broadcaster.subscribe(sub, order_room("o"))

    broadcaster.unsubscribe(sub, order_room("o"))
    assert broadcaster.room_size(order_room("o")) == 0
    assert broadcaster.room_size(restaurant_room("r")) == 1

    broadcaster.disconnect(sub)
    assert broadcaster.room_size(restaurant_room("r")) == 0
    assert sub.rooms == set()


@pytest.mark.asyncio
async def test_slow_subscriber_is_dropped_without_affecting_others():
    broadcaster = EventBroadcaster()
    slow, fast = Recorder(block=True), Recorder()
    slow_sub = Subscriber(slow.send, max_queue=2)
    fast_sub = Subscriber(fast.send)
    tasks = [asyncio.create_task(slow_sub.run()), asyncio.create_task(fast_sub.run())]
    room = restaurant_room("rest-main")
    broadcaster.subscribe(slow_sub, room)
    broadcaster.subscribe(fast_sub, room)

    for n in range(6):
        await broadcaster.publish(room, "tick", {"n": n})
    await settle()

    assert slow_sub.closed
    assert broadcaster.room_size(room) == 1
    assert [m["data"]["n"] for m in fast.sent] == list(range(6))

    slow.gate.set()
    fast_sub.close()
    await asyncio.gather(*tasks)


@pytest.mark.asyncio
async def test_failed_send_drops_subscriber_and_publish_never_raises():
    broadcaster = EventBroadcaster()

    async def broken_send(_message):
        raise ConnectionError("socket gone")

    sub = Subscriber(broken_send)
    task = asyncio.create_task(sub.run())
    room = order_room("order-1")
    broadcaster.subscribe(sub, room)

    await broadcaster.publish(room, "tick", {})
    await task
    assert sub.closed

    # the closed subscriber is pruned on the next publish
    assert await broadcaster.publish(room, "tick", {}) == 0
    assert broadcaster.room_size(room) == 0


@pytest.mark.asyncio
async def test_order_events_payloads():
    broadcaster = EventBroadcaster()
    staff, customer = Recorder(), Recorder()
    staff_sub, customer_sub = Subscriber(staff.send), Subscriber(customer.send)
    tasks = [asyncio.create_task(staff_sub.run()), asyncio.create_task(customer_sub.run())]
    broadcaster.subscribe(staff_sub, restaurant_room("rest-main"))
    broadcaster.subscribe(customer_sub, order_room("order-1"))

    await broadcaster.order_created(make_order())
    await broadcaster.order_status_changed(make_order(OrderStatus.ACCEPTED))
    await settle()

    assert [m["event"] for m in staff.sent] == [ORDER_NEW, ORDER_UPDATED]
    assert staff.sent[0]["data"]["tableNumber"] == 1
    assert staff.sent[0]["data"]["order"]["orderNumber"] == 7
    assert staff.sent[1]["data"]["order"]["status"] == "ACCEPTED"
    assert customer.sent == [{
        "event": ORDER_STATUS,
        "data": {"orderId": "order-1", "status": "ACCEPTED", "updatedAt": "2026-03-10T12:00:00+00:00"},
    }]

    for sub in (staff_sub, customer_sub):
        sub.close()
    await asyncio.gather(*tasks)
