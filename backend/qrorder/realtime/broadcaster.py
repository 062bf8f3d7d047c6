"""
Room-based publish/subscribe fan-out for real-time order updates.

Rooms are ``restaurant:{id}`` (staff dashboards) and ``order:{id}`` (one
customer tracking one order). Subscriptions are explicit client actions.
Delivery is at-most-once with no replay: each subscriber has a bounded FIFO
queue drained by a single writer, and a subscriber that cannot keep up or
whose connection fails is dropped.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from uuid import uuid4

from qrorder.domain import Order, order_to_dict

logger = logging.getLogger(__name__)

# Server -> client event names
ORDER_NEW = "order:new"
ORDER_UPDATED = "order:updated"
ORDER_STATUS = "order:status"
MENU_UPDATED = "menu:updated"
QR_REFRESHED = "qr:refreshed"
TABLE_UPDATED = "table:updated"

DEFAULT_QUEUE_SIZE = 256

_CLOSE = object()


def restaurant_room(restaurant_id: str) -> str:
    return f"restaurant:{restaurant_id}"


def order_room(order_id: str) -> str:
    return f"order:{order_id}"


class Subscriber:
    """
    One connected observer.

    ``send`` is the transport coroutine (e.g. ``websocket.send_json``). Messages
    are queued by ``offer`` and written one at a time by ``run``.
    """

    def __init__(
        self,
        send: Callable[[Dict[str, Any]], Awaitable[None]],
        max_queue: int = DEFAULT_QUEUE_SIZE,
        name: Optional[str] = None,
    ):
        self.id = name or str(uuid4())
        self._send = send
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self.rooms: Set[str] = set()
        self.closed = False

    def offer(self, message: Dict[str, Any]) -> bool:
        """Queue a message. Returns False if the subscriber is closed or full."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        """Stop the writer after discarding undelivered messages."""
        if self.closed:
            return
        self.closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSE)

    async def run(self) -> None:
        """Writer loop: deliver queued messages in order until closed or the send fails."""
        while True:
            message = await self._queue.get()
            if message is _CLOSE:
                return
            try:
                await self._send(message)
            except Exception as e:
                logger.info("[realtime] Dropping subscriber %s after send failure: %s", self.id, e)
                self.closed = True
                return


class EventBroadcaster:
    """Topic fan-out keyed by room name."""

    def __init__(self):
        self._rooms: Dict[str, Set[Subscriber]] = {}

    def subscribe(self, subscriber: Subscriber, room: str) -> None:
        self._rooms.setdefault(room, set()).add(subscriber)
        subscriber.rooms.add(room)
        logger.debug("[realtime] %s joined %s", subscriber.id, room)

    def unsubscribe(self, subscriber: Subscriber, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(subscriber)
            if not members:
                del self._rooms[room]
        subscriber.rooms.discard(room)

    def disconnect(self, subscriber: Subscriber) -> None:
        """Remove a subscriber from every room it joined."""
        for room in list(subscriber.rooms):
            self.unsubscribe(subscriber, room)

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def publish(self, room: str, event: str, data: Dict[str, Any]) -> int:
        """
        Queue an event for every subscriber of a room.

        Never raises. Returns how many subscribers accepted the event.
        """
        message = {"event": event, "data": data}
        delivered = 0
        for subscriber in list(self._rooms.get(room, ())):
            if subscriber.offer(message):
                delivered += 1
            else:
                logger.warning("[realtime] Subscriber %s is closed or too slow, dropping it", subscriber.id)
                self.disconnect(subscriber)
                subscriber.close()
        return delivered

    # ---------- Domain events ----------

    async def order_created(self, order: Order, table_number: Optional[int] = None) -> None:
        await self.publish(
            restaurant_room(order.restaurant_id),
            ORDER_NEW,
            {"order": order_to_dict(order), "tableNumber": table_number or order.table_number},
        )

    async def order_status_changed(self, order: Order) -> None:
        await self.publish(restaurant_room(order.restaurant_id), ORDER_UPDATED, {"order": order_to_dict(order)})
        await self.publish(
            order_room(order.id),
            ORDER_STATUS,
            {"orderId": order.id, "status": order.status.value, "updatedAt": order.updated_at.isoformat()},
        )

    async def menu_item_toggled(self, restaurant_id: str, item_id: str, available: bool) -> None:
        await self.publish(restaurant_room(restaurant_id), MENU_UPDATED, {"itemId": item_id, "available": available})

    async def sessions_rotated(self, restaurant_id: str, count: int) -> None:
        await self.publish(
            restaurant_room(restaurant_id),
            QR_REFRESHED,
            {"message": "All QR codes have been refreshed", "count": count},
        )

    async def table_session_issued(self, restaurant_id: str, table_id: str) -> None:
        await self.publish(restaurant_room(restaurant_id), TABLE_UPDATED, {"tableId": table_id})
