"""
Tests for the order status graph and waiter ownership rules.
"""

import itertools

import pytest

from qrorder.domain import OrderLine, OrderStatus, StaffActor, StaffRole, UnattributedActor
from qrorder.errors import AlreadyAssigned, InvalidTransition, NotFound, NotOwner
from qrorder.services import OrderService, VALID_TRANSITIONS, can_transition

ADMIN = UnattributedActor()

ALLOWED = {
    (OrderStatus.PENDING, OrderStatus.ACCEPTED),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.ACCEPTED, OrderStatus.PREPARING),
    (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
    (OrderStatus.PREPARING, OrderStatus.READY),
    (OrderStatus.PREPARING, OrderStatus.CANCELLED),
    (OrderStatus.READY, OrderStatus.DELIVERED),
}

# status -> path from PENDING that reaches it
PATHS = {
    OrderStatus.PENDING: [],
    OrderStatus.ACCEPTED: [OrderStatus.ACCEPTED],
    OrderStatus.PREPARING: [OrderStatus.ACCEPTED, OrderStatus.PREPARING],
    OrderStatus.READY: [OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.READY],
    OrderStatus.DELIVERED: [
        OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DELIVERED,
    ],
    OrderStatus.CANCELLED: [OrderStatus.CANCELLED],
}


def actor_for(staff):
    return StaffActor(staff_id=staff.id, role=staff.role)


@pytest.fixture
def orders(storage, clock):
    return OrderService(storage, clock=clock)


async def place(orders, seeded, *lines):
    lines = lines or (OrderLine(seeded.tea.id, 2),)
    return await orders.create(seeded.restaurant.id, seeded.table1.id, list(lines))


async def walk(orders, seeded, order, statuses):
    for status in statuses:
        order = await orders.transition(order.id, seeded.restaurant.id, status, ADMIN)
    return order


def test_transition_table_matches_allowed_edges():
    edges = {(src, dst) for src, targets in VALID_TRANSITIONS.items() for dst in targets}
    assert edges == ALLOWED
    for src, dst in itertools.product(OrderStatus, OrderStatus):
        assert can_transition(src, dst) == ((src, dst) in ALLOWED)


@pytest.mark.asyncio
@pytest.mark.parametrize("src,dst", list(itertools.product(OrderStatus, OrderStatus)))
async def test_every_status_pair(orders, seeded, src, dst):
    order = await walk(orders, seeded, await place(orders, seeded), PATHS[src])
    assert order.status == src

    if (src, dst) in ALLOWED:
        updated = await orders.transition(order.id, seeded.restaurant.id, dst, ADMIN)
        assert updated.status == dst
    else:
        with pytest.raises(InvalidTransition) as exc_info:
            await orders.transition(order.id, seeded.restaurant.id, dst, ADMIN)
        assert exc_info.value.current_status == src.value
        assert exc_info.value.requested_status == dst.value
        stored = await orders.get(order.id)
        assert stored.status == src
    await orders.stock_dispatcher.drain()


@pytest.mark.asyncio
async def test_pending_to_ready_is_rejected_with_message(orders, seeded):
    order = await place(orders, seeded)
    with pytest.raises(InvalidTransition) as exc_info:
        await orders.transition(order.id, seeded.restaurant.id, OrderStatus.READY, ADMIN)
    assert str(exc_info.value) == "Cannot transition from PENDING to READY"


@pytest.mark.asyncio
async def test_waiter_accept_assigns_waiter(orders, seeded):
    order = await place(orders, seeded)
    accepted = await orders.transition(
        order.id, seeded.restaurant.id, OrderStatus.ACCEPTED, actor_for(seeded.waiter_a)
    )
    assert accepted.waiter_id == seeded.waiter_a.id
    assert accepted.waiter_name == "Amina"


@pytest.mark.asyncio
async def test_kitchen_accept_does_not_assign_waiter(orders, seeded):
    order = await place(orders, seeded)
    accepted = await orders.transition(
        order.id, seeded.restaurant.id, OrderStatus.ACCEPTED, actor_for(seeded.cook)
    )
    assert accepted.status == OrderStatus.ACCEPTED
    assert accepted.waiter_id is None


@pytest.mark.asyncio
async def test_second_waiter_accept_is_already_assigned(orders, seeded):
    order = await place(orders, seeded)
    rid = seeded.restaurant.id
    await orders.transition(order.id, rid, OrderStatus.ACCEPTED, actor_for(seeded.waiter_a))

    with pytest.raises(AlreadyAssigned) as exc_info:
        await orders.transition(order.id, rid, OrderStatus.ACCEPTED, actor_for(seeded.waiter_b))
    assert exc_info.value.waiter_id == seeded.waiter_a.id

    stored = await orders.get(order.id)
    assert stored.status == OrderStatus.ACCEPTED
    assert stored.waiter_id == seeded.waiter_a.id


@pytest.mark.asyncio
async def test_same_waiter_accepting_twice_is_invalid_transition(orders, seeded):
    order = await place(orders, seeded)
    rid = seeded.restaurant.id
    await orders.transition(order.id, rid, OrderStatus.ACCEPTED, actor_for(seeded.waiter_a))

    with pytest.raises(InvalidTransition):
        await orders.transition(order.id, rid, OrderStatus.ACCEPTED, actor_for(seeded.waiter_a))


@pytest.mark.asyncio
async def test_already_assigned_blocks_other_waiter(orders, storage, seeded, clock):
    order = await place(orders, seeded)
    # a waiter was attached out of band while the order is still PENDING
    await storage.update_order(order.id, OrderStatus.PENDING, seeded.waiter_a.id, clock())

    with pytest.raises(AlreadyAssigned):
        await orders.transition(order.id, seeded.restaurant.id, OrderStatus.ACCEPTED, actor_for(seeded.waiter_b))

    stored = await orders.get(order.id)
    assert stored.status == OrderStatus.PENDING
    assert stored.waiter_id == seeded.waiter_a.id


@pytest.mark.asyncio
async def test_only_assigned_waiter_can_deliver(orders, seeded):
    order = await place(orders, seeded)
    rid = seeded.restaurant.id
    await orders.transition(order.id, rid, OrderStatus.ACCEPTED, actor_for(seeded.waiter_a))
    await orders.transition(order.id, rid, OrderStatus.PREPARING, actor_for(seeded.cook))
    await orders.transition(order.id, rid, OrderStatus.READY, actor_for(seeded.cook))

    with pytest.raises(NotOwner):
        await orders.transition(order.id, rid, OrderStatus.DELIVERED, actor_for(seeded.waiter_b))

    delivered = await orders.transition(order.id, rid, OrderStatus.DELIVERED, actor_for(seeded.waiter_a))
    assert delivered.status == OrderStatus.DELIVERED
    await orders.stock_dispatcher.drain()


@pytest.mark.asyncio
async def test_unattributed_actor_bypasses_ownership(orders, seeded):
    order = await place(orders, seeded)
    rid = seeded.restaurant.id
    await orders.transition(order.id, rid, OrderStatus.ACCEPTED, actor_for(seeded.waiter_a))
    await orders.transition(order.id, rid, OrderStatus.PREPARING, ADMIN)
    await orders.transition(order.id, rid, OrderStatus.READY, ADMIN)

    delivered = await orders.transition(order.id, rid, OrderStatus.DELIVERED, ADMIN)
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.waiter_id == seeded.waiter_a.id
    await orders.stock_dispatcher.drain()


@pytest.mark.asyncio
async def test_deliver_unassigned_order_by_any_staff(orders, seeded):
    order = await walk(orders, seeded, await place(orders, seeded), PATHS[OrderStatus.READY])
    delivered = await orders.transition(
        order.id, seeded.restaurant.id, OrderStatus.DELIVERED, actor_for(seeded.waiter_b)
    )
    # delivery never assigns a waiter
    assert delivered.waiter_id is None
    await orders.stock_dispatcher.drain()


@pytest.mark.asyncio
async def test_transition_scoped_to_restaurant(orders, seeded):
    order = await place(orders, seeded)
    with pytest.raises(NotFound):
        await orders.transition(order.id, seeded.other.id, OrderStatus.ACCEPTED, ADMIN)
    with pytest.raises(NotFound):
        await orders.transition("missing", seeded.restaurant.id, OrderStatus.ACCEPTED, ADMIN)


@pytest.mark.asyncio
async def test_transition_bumps_updated_at(orders, seeded, clock):
    order = await place(orders, seeded)
    clock.advance(minutes=3)
    accepted = await orders.transition(order.id, seeded.restaurant.id, OrderStatus.ACCEPTED, ADMIN)
    assert accepted.updated_at == clock.now
    assert accepted.created_at == order.created_at


@pytest.mark.asyncio
async def test_full_service_scenario(orders, seeded):
    """Place, accept, cook, serve; then the order shows up in history only."""
    rid = seeded.restaurant.id
    order = await place(orders, seeded, OrderLine(seeded.tea.id, 2), OrderLine(seeded.tagine.id, 1))
    assert [o.id for o in await orders.list_by_status(rid)] == [order.id]

    await orders.transition(order.id, rid, OrderStatus.ACCEPTED, actor_for(seeded.waiter_a))
    await orders.transition(order.id, rid, OrderStatus.PREPARING, actor_for(seeded.cook))
    ready = await orders.transition(order.id, rid, OrderStatus.READY, actor_for(seeded.cook))
    assert [o.id for o in await orders.list_by_status(rid, [OrderStatus.READY])] == [ready.id]

    await orders.transition(order.id, rid, OrderStatus.DELIVERED, actor_for(seeded.waiter_a))
    await orders.stock_dispatcher.drain()

    assert await orders.list_by_status(rid) == []
    history = await orders.history(rid)
    assert [o.id for o in history] == [order.id]
    assert history[0].total_cents == 2 * 250 + 1450
