"""
Order state machine.

Owns the status graph of an order, the waiter ownership rules on ACCEPTED
and DELIVERED, order creation with price snapshots, and the staff/customer
read projections.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence
from uuid import uuid4

from qrorder.domain import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Actor,
    Order,
    OrderItem,
    OrderLine,
    OrderStatus,
    StaffActor,
    StaffRole,
)
from qrorder.errors import (
    AlreadyAssigned,
    InvalidOrder,
    InvalidTransition,
    ItemsUnavailable,
    NotFound,
    NotOwner,
)
from qrorder.services.inventory import StockDeductionDispatcher
from qrorder.storage.base import Storage
from qrorder.utils.time_utils import business_date, local_midnight_utc, utcnow

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

MIN_QUANTITY = 1
MAX_QUANTITY = 20
MAX_LINE_NOTES = 200
MAX_ORDER_NOTES = 500
DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 100


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in VALID_TRANSITIONS[current]


class OrderService:
    """Create orders and move them through the status graph."""

    def __init__(
        self,
        storage: Storage,
        stock_dispatcher: Optional[StockDeductionDispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
        default_timezone: str = "UTC",
    ):
        self.storage = storage
        self.stock_dispatcher = stock_dispatcher or StockDeductionDispatcher(storage)
        self.clock = clock
        self.default_timezone = default_timezone

    async def create(
        self,
        restaurant_id: str,
        table_id: str,
        lines: Sequence[OrderLine],
        notes: Optional[str] = None,
    ) -> Order:
        """
        Create a PENDING order for a table.

        Every referenced menu item must exist, belong to the restaurant and be
        available; otherwise the whole order is rejected with ItemsUnavailable
        and nothing is written. Unit prices are copied from the current menu.
        """
        _check_lines(lines, notes)

        menu_items = await self.storage.get_menu_items(restaurant_id, (line.menu_item_id for line in lines))
        usable = {m.id: m for m in menu_items if m.available}
        missing = [line.menu_item_id for line in lines if line.menu_item_id not in usable]
        if missing:
            logger.info("[orders] Rejected order for table %s, unavailable items: %s", table_id, missing)
            raise ItemsUnavailable(missing)

        items = []
        total_cents = 0
        for line in lines:
            unit_price = usable[line.menu_item_id].price_cents
            item = OrderItem(
                id=str(uuid4()),
                menu_item_id=line.menu_item_id,
                quantity=line.quantity,
                unit_price_cents=unit_price,
                notes=line.notes,
            )
            total_cents += item.line_total_cents
            items.append(item)

        restaurant = await self.storage.get_restaurant(restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant", restaurant_id)

        now = self.clock()
        order = Order(
            id=str(uuid4()),
            restaurant_id=restaurant_id,
            table_id=table_id,
            order_number=0,  # assigned by the repository
            status=OrderStatus.PENDING,
            total_cents=total_cents,
            notes=notes,
            created_at=now,
            updated_at=now,
            items=items,
        )
        day = business_date(now, restaurant.timezone, self.default_timezone)
        created = await self.storage.create_order(order, day)
        logger.info(
            "[orders] Created order #%d (%s) for table %s, total %d cents",
            created.order_number, created.id, table_id, created.total_cents,
        )
        return created

    async def transition(
        self,
        order_id: str,
        restaurant_id: str,
        new_status: OrderStatus,
        actor: Actor,
    ) -> Order:
        """
        Move an order to ``new_status``.

        Raises:
            NotFound: no order with this id in the restaurant
            InvalidTransition: (current, new_status) is not an edge of the graph
            AlreadyAssigned: a waiter accepts an order another waiter owns
            NotOwner: a staff member delivers an order owned by another waiter
        """
        order = await self.storage.get_order(order_id, restaurant_id)
        if order is None:
            raise NotFound("Order", order_id)

        waiter_id = order.waiter_id
        accepting_waiter = (
            isinstance(actor, StaffActor)
            and actor.role == StaffRole.WAITER
            and new_status == OrderStatus.ACCEPTED
        )
        # another waiter owns the order, whatever its current status
        if accepting_waiter and waiter_id and waiter_id != actor.staff_id:
            raise AlreadyAssigned(order.id, waiter_id)

        if not can_transition(order.status, new_status):
            raise InvalidTransition(order.status, new_status)

        if isinstance(actor, StaffActor):
            if accepting_waiter:
                waiter_id = actor.staff_id
            elif new_status == OrderStatus.DELIVERED:
                if waiter_id and waiter_id != actor.staff_id:
                    raise NotOwner(order.id)

        updated = await self.storage.update_order(order.id, new_status, waiter_id, self.clock())
        if updated is None:
            raise NotFound("Order", order_id)
        logger.info(
            "[orders] Order %s %s -> %s by %s",
            order.id, order.status.value, new_status.value, _describe(actor),
        )

        if new_status == OrderStatus.DELIVERED:
            self.stock_dispatcher.dispatch(order.id)

        return updated

    async def list_by_status(
        self, restaurant_id: str, statuses: Optional[Sequence[OrderStatus]] = None
    ) -> List[Order]:
        """Orders in the given statuses, oldest first. Defaults to all active statuses."""
        wanted = list(statuses) if statuses else list(ACTIVE_STATUSES)
        return await self.storage.list_orders(restaurant_id, wanted, newest_first=False)

    async def history(
        self, restaurant_id: str, limit: int = DEFAULT_HISTORY_LIMIT, offset: int = 0
    ) -> List[Order]:
        """Delivered and cancelled orders, newest first."""
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        offset = max(0, offset)
        return await self.storage.list_orders(
            restaurant_id, list(TERMINAL_STATUSES), newest_first=True, limit=limit, offset=offset
        )

    async def get(self, order_id: str) -> Order:
        order = await self.storage.get_order(order_id)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    async def list_for_table(self, table_id: str) -> List[Order]:
        """Today's orders of a table, newest first."""
        table = await self.storage.get_table(table_id)
        if table is None:
            raise NotFound("Table", table_id)
        restaurant = await self.storage.get_restaurant(table.restaurant_id)
        tz_name = restaurant.timezone if restaurant else None
        since = local_midnight_utc(self.clock(), tz_name, self.default_timezone)
        return await self.storage.list_orders_for_table(table_id, since)


def _check_lines(lines: Sequence[OrderLine], notes: Optional[str]) -> None:
    if not lines:
        raise InvalidOrder("At least one item required")
    if notes is not None and len(notes) > MAX_ORDER_NOTES:
        raise InvalidOrder(f"Order notes must be at most {MAX_ORDER_NOTES} characters")
    for line in lines:
        if not MIN_QUANTITY <= line.quantity <= MAX_QUANTITY:
            raise InvalidOrder(f"Quantity must be {MIN_QUANTITY}-{MAX_QUANTITY}")
        if line.notes is not None and len(line.notes) > MAX_LINE_NOTES:
            raise InvalidOrder(f"Item notes must be at most {MAX_LINE_NOTES} characters")


def _describe(actor: Actor) -> str:
    if isinstance(actor, StaffActor):
        return f"{actor.role.value.lower()} {actor.staff_id}"
    return actor.label
