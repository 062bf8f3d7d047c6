"""
SQLAlchemy storage implementation for the relational schema in qrorder.db.models.

Each logical operation runs in one short-lived session inside a worker
thread, so the event loop is never blocked and no session is held across an
await. SQLAlchemy failures are logged and surfaced as StorageError; nothing
is retried here.
"""

import asyncio
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar
from uuid import uuid4

from sqlalchemy import create_engine, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from qrorder.db import init_db
from qrorder.db.models import (
    InventoryItemModel,
    MenuItemModel,
    OrderCounterModel,
    OrderItemModel,
    OrderModel,
    QRTokenModel,
    RecipeItemModel,
    RestaurantModel,
    StaffModel,
    TableModel,
)
from qrorder.domain import (
    InventoryItem,
    MenuItem,
    Order,
    OrderItem,
    OrderStatus,
    QRToken,
    RecipeItem,
    Restaurant,
    Staff,
    StaffRole,
    Table,
)
from qrorder.errors import InsufficientStock, StorageError
from qrorder.storage.base import Storage
from qrorder.utils.time_utils import ensure_utc, to_naive_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SQLAlchemyStorage(Storage):
    """SQLAlchemy-backed storage using the canonical relational models."""

    def __init__(self, database_url: str = "sqlite:///qrorder.db", use_alembic: bool = False):
        """
        Initialize SQLAlchemy storage.

        Args:
            database_url: SQLAlchemy database URL
            use_alembic: run Alembic migrations instead of create_all
        """
        self.database_url = database_url

        engine_kwargs = {"echo": False, "future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise every thread sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(self.database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        init_db(self.engine, use_alembic=use_alembic)
        logger.info("[SQLAlchemyStorage] Database ready at %s", self.database_url)

    def _get_session(self) -> Session:
        """Get a new database session (caller must close)."""
        return self.SessionLocal()

    async def _run(self, operation: str, fn: Callable[..., T], *args) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.error("[SQLAlchemyStorage] %s failed: %s", operation, e)
            raise StorageError(f"Storage operation '{operation}' failed") from e

    # ---------- Reference data ----------

    async def add_restaurant(self, restaurant: Restaurant) -> Restaurant:
        def _add():
            with self._get_session() as session, session.begin():
                session.add(RestaurantModel(
                    id=restaurant.id,
                    name=restaurant.name,
                    name_fr=restaurant.name_fr,
                    name_ar=restaurant.name_ar,
                    timezone=restaurant.timezone,
                    allowed_networks=list(restaurant.allowed_networks),
                    is_active=restaurant.is_active,
                ))
            return restaurant

        return await self._run("add_restaurant", _add)

    async def get_restaurant(self, restaurant_id: str) -> Optional[Restaurant]:
        def _get():
            with self._get_session() as session:
                row = session.get(RestaurantModel, restaurant_id)
                return _restaurant_from_row(row) if row else None

        return await self._run("get_restaurant", _get)

    async def add_table(self, table: Table) -> Table:
        def _add():
            with self._get_session() as session, session.begin():
                session.add(TableModel(
                    id=table.id,
                    restaurant_id=table.restaurant_id,
                    table_number=table.table_number,
                    table_name=table.table_name,
                    capacity=table.capacity,
                    is_active=table.is_active,
                ))
            return table

        return await self._run("add_table", _add)

    async def get_table(self, table_id: str) -> Optional[Table]:
        def _get():
            with self._get_session() as session:
                row = session.get(TableModel, table_id)
                return _table_from_row(row) if row else None

        return await self._run("get_table", _get)

    async def list_tables(self, restaurant_id: str, active_only: bool = True) -> List[Table]:
        def _list():
            with self._get_session() as session:
                stmt = select(TableModel).where(TableModel.restaurant_id == restaurant_id)
                if active_only:
                    stmt = stmt.where(TableModel.is_active.is_(True))
                stmt = stmt.order_by(TableModel.table_number)
                return [_table_from_row(r) for r in session.execute(stmt).scalars()]

        return await self._run("list_tables", _list)

    async def add_menu_item(self, item: MenuItem) -> MenuItem:
        def _add():
            with self._get_session() as session, session.begin():
                session.add(MenuItemModel(
                    id=item.id,
                    restaurant_id=item.restaurant_id,
                    name=item.name,
                    name_fr=item.name_fr,
                    name_ar=item.name_ar,
                    price_cents=item.price_cents,
                    available=item.available,
                ))
            return item

        return await self._run("add_menu_item", _add)

    async def get_menu_items(self, restaurant_id: str, item_ids: Iterable[str]) -> List[MenuItem]:
        ids = list(dict.fromkeys(item_ids))

        def _get():
            if not ids:
                return []
            with self._get_session() as session:
                stmt = select(MenuItemModel).where(
                    MenuItemModel.id.in_(ids),
                    MenuItemModel.restaurant_id == restaurant_id,
                )
                return [_menu_item_from_row(r) for r in session.execute(stmt).scalars()]

        return await self._run("get_menu_items", _get)

    async def set_menu_item_available(
        self, item_id: str, restaurant_id: str, available: bool
    ) -> Optional[MenuItem]:
        def _set():
            with self._get_session() as session, session.begin():
                row = session.get(MenuItemModel, item_id)
                if row is None or row.restaurant_id != restaurant_id:
                    return None
                row.available = available
                return _menu_item_from_row(row)

        return await self._run("set_menu_item_available", _set)

    async def add_staff(self, staff: Staff) -> Staff:
        def _add():
            with self._get_session() as session, session.begin():
                session.add(StaffModel(
                    id=staff.id,
                    restaurant_id=staff.restaurant_id,
                    name=staff.name,
                    role=staff.role.value,
                    pin_hash=staff.pin_hash,
                    is_active=staff.is_active,
                ))
            return staff

        return await self._run("add_staff", _add)

    async def get_staff(self, staff_id: str) -> Optional[Staff]:
        def _get():
            with self._get_session() as session:
                row = session.get(StaffModel, staff_id)
                if row is None:
                    return None
                return Staff(
                    id=row.id,
                    restaurant_id=row.restaurant_id,
                    name=row.name,
                    role=StaffRole(row.role),
                    pin_hash=row.pin_hash,
                    is_active=row.is_active,
                )

        return await self._run("get_staff", _get)

    async def add_inventory_item(self, item: InventoryItem) -> InventoryItem:
        def _add():
            with self._get_session() as session, session.begin():
                session.add(InventoryItemModel(
                    id=item.id,
                    restaurant_id=item.restaurant_id,
                    name=item.name,
                    unit=item.unit,
                    current_stock=item.current_stock,
                ))
            return item

        return await self._run("add_inventory_item", _add)

    async def get_inventory_item(self, item_id: str) -> Optional[InventoryItem]:
        def _get():
            with self._get_session() as session:
                row = session.get(InventoryItemModel, item_id)
                return _inventory_from_row(row) if row else None

        return await self._run("get_inventory_item", _get)

    async def add_recipe_item(self, recipe: RecipeItem) -> RecipeItem:
        def _add():
            with self._get_session() as session, session.begin():
                session.add(RecipeItemModel(
                    menu_item_id=recipe.menu_item_id,
                    inventory_item_id=recipe.inventory_item_id,
                    quantity=recipe.quantity,
                ))
            return recipe

        return await self._run("add_recipe_item", _add)

    async def get_recipe_items(self, menu_item_ids: Iterable[str]) -> List[RecipeItem]:
        ids = list(dict.fromkeys(menu_item_ids))

        def _get():
            if not ids:
                return []
            with self._get_session() as session:
                stmt = select(RecipeItemModel).where(RecipeItemModel.menu_item_id.in_(ids))
                return [
                    RecipeItem(
                        menu_item_id=r.menu_item_id,
                        inventory_item_id=r.inventory_item_id,
                        quantity=Decimal(r.quantity),
                    )
                    for r in session.execute(stmt).scalars()
                ]

        return await self._run("get_recipe_items", _get)

    async def deduct_stock(self, deductions: Dict[str, Decimal]) -> List[InventoryItem]:
        def _deduct():
            with self._get_session() as session, session.begin():
                stmt = (
                    select(InventoryItemModel)
                    .where(InventoryItemModel.id.in_(list(deductions)))
                    .with_for_update()
                )
                rows = {r.id: r for r in session.execute(stmt).scalars()}
                shortages = []
                for inventory_id, quantity in deductions.items():
                    row = rows.get(inventory_id)
                    if row is not None and Decimal(row.current_stock) - quantity < 0:
                        shortages.append(
                            f"Insufficient {row.name}: needs {quantity}{row.unit}, "
                            f"have {row.current_stock}{row.unit}"
                        )
                if shortages:
                    raise InsufficientStock(shortages)
                for inventory_id, quantity in deductions.items():
                    row = rows.get(inventory_id)
                    if row is not None:
                        row.current_stock = Decimal(row.current_stock) - quantity
                return [_inventory_from_row(r) for r in rows.values()]

        if not deductions:
            return []
        return await self._run("deduct_stock", _deduct)

    # ---------- Token store ----------

    async def create_qr_token(self, qr_token: QRToken) -> QRToken:
        def _create():
            with self._get_session() as session, session.begin():
                row = QRTokenModel(
                    id=qr_token.id or str(uuid4()),
                    token=qr_token.token,
                    table_id=qr_token.table_id,
                    created_at=to_naive_utc(qr_token.created_at),
                    expires_at=to_naive_utc(qr_token.expires_at),
                )
                session.add(row)
            return _qr_token_from_row(row)

        return await self._run("create_qr_token", _create)

    async def find_qr_token(self, token: str) -> Optional[QRToken]:
        def _find():
            with self._get_session() as session:
                stmt = select(QRTokenModel).where(QRTokenModel.token == token)
                row = session.execute(stmt).scalar_one_or_none()
                return _qr_token_from_row(row) if row else None

        return await self._run("find_qr_token", _find)

    async def list_qr_tokens(self, table_id: str) -> List[QRToken]:
        def _list():
            with self._get_session() as session:
                stmt = (
                    select(QRTokenModel)
                    .where(QRTokenModel.table_id == table_id)
                    .order_by(QRTokenModel.created_at)
                )
                return [_qr_token_from_row(r) for r in session.execute(stmt).scalars()]

        return await self._run("list_qr_tokens", _list)

    async def delete_qr_tokens_for_tables(self, table_ids: Sequence[str]) -> int:
        ids = list(table_ids)

        def _delete():
            if not ids:
                return 0
            with self._get_session() as session, session.begin():
                result = session.execute(delete(QRTokenModel).where(QRTokenModel.table_id.in_(ids)))
                return result.rowcount or 0

        return await self._run("delete_qr_tokens_for_tables", _delete)

    async def delete_expired_qr_tokens(self, now: datetime) -> int:
        cutoff = to_naive_utc(now)

        def _delete():
            with self._get_session() as session, session.begin():
                result = session.execute(delete(QRTokenModel).where(QRTokenModel.expires_at < cutoff))
                return result.rowcount or 0

        return await self._run("delete_expired_qr_tokens", _delete)

    # ---------- Order repository ----------

    async def create_order(self, order: Order, business_day: date) -> Order:
        def _create():
            # A concurrent first order of the day may insert the counter row
            # between our UPDATE and INSERT; the second attempt then updates it.
            for attempt in range(2):
                try:
                    with self._get_session() as session, session.begin():
                        number = self._next_order_number(session, order.restaurant_id, business_day)
                        row = OrderModel(
                            id=order.id,
                            restaurant_id=order.restaurant_id,
                            table_id=order.table_id,
                            order_number=number,
                            status=order.status.value,
                            total_cents=order.total_cents,
                            notes=order.notes,
                            waiter_id=order.waiter_id,
                            created_at=to_naive_utc(order.created_at),
                            updated_at=to_naive_utc(order.updated_at),
                        )
                        for position, item in enumerate(order.items):
                            row.items.append(OrderItemModel(
                                id=item.id or str(uuid4()),
                                position=position,
                                menu_item_id=item.menu_item_id,
                                quantity=item.quantity,
                                unit_price_cents=item.unit_price_cents,
                                notes=item.notes,
                            ))
                        session.add(row)
                    return order.id
                except IntegrityError:
                    if attempt == 1:
                        raise
                    logger.warning(
                        "[SQLAlchemyStorage] Order counter conflict for restaurant %s, retrying",
                        order.restaurant_id,
                    )

        order_id = await self._run("create_order", _create)
        created = await self.get_order(order_id)
        if created is None:
            raise StorageError(f"Order {order_id} vanished after creation")
        return created

    @staticmethod
    def _next_order_number(session: Session, restaurant_id: str, business_day: date) -> int:
        """Atomically increment the restaurant's counter for the day."""
        result = session.execute(
            update(OrderCounterModel)
            .where(
                OrderCounterModel.restaurant_id == restaurant_id,
                OrderCounterModel.business_date == business_day,
            )
            .values(last_number=OrderCounterModel.last_number + 1)
        )
        if result.rowcount == 0:
            session.add(OrderCounterModel(
                restaurant_id=restaurant_id,
                business_date=business_day,
                last_number=1,
            ))
            session.flush()
            return 1
        return session.execute(
            select(OrderCounterModel.last_number).where(
                OrderCounterModel.restaurant_id == restaurant_id,
                OrderCounterModel.business_date == business_day,
            )
        ).scalar_one()

    async def get_order(self, order_id: str, restaurant_id: Optional[str] = None) -> Optional[Order]:
        def _get():
            with self._get_session() as session:
                stmt = _order_query().where(OrderModel.id == order_id)
                if restaurant_id is not None:
                    stmt = stmt.where(OrderModel.restaurant_id == restaurant_id)
                row = session.execute(stmt).unique().scalar_one_or_none()
                return _order_from_row(row) if row else None

        return await self._run("get_order", _get)

    async def update_order(
        self,
        order_id: str,
        status: OrderStatus,
        waiter_id: Optional[str],
        updated_at: datetime,
    ) -> Optional[Order]:
        def _update():
            with self._get_session() as session, session.begin():
                result = session.execute(
                    update(OrderModel)
                    .where(OrderModel.id == order_id)
                    .values(
                        status=status.value,
                        waiter_id=waiter_id,
                        updated_at=to_naive_utc(updated_at),
                    )
                )
                return result.rowcount

        updated = await self._run("update_order", _update)
        if not updated:
            return None
        return await self.get_order(order_id)

    async def list_orders(
        self,
        restaurant_id: str,
        statuses: Sequence[OrderStatus],
        newest_first: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Order]:
        status_values = [s.value for s in statuses]

        def _list():
            with self._get_session() as session:
                stmt = _order_query().where(
                    OrderModel.restaurant_id == restaurant_id,
                    OrderModel.status.in_(status_values),
                )
                ordering = OrderModel.created_at.desc() if newest_first else OrderModel.created_at.asc()
                stmt = stmt.order_by(ordering, OrderModel.id)
                if offset:
                    stmt = stmt.offset(offset)
                if limit is not None:
                    stmt = stmt.limit(limit)
                return [_order_from_row(r) for r in session.execute(stmt).unique().scalars()]

        return await self._run("list_orders", _list)

    async def list_orders_for_table(self, table_id: str, since: datetime) -> List[Order]:
        cutoff = to_naive_utc(since)

        def _list():
            with self._get_session() as session:
                stmt = (
                    _order_query()
                    .where(OrderModel.table_id == table_id, OrderModel.created_at >= cutoff)
                    .order_by(OrderModel.created_at.desc())
                )
                return [_order_from_row(r) for r in session.execute(stmt).unique().scalars()]

        return await self._run("list_orders_for_table", _list)

    async def count_orders(self, restaurant_id: str) -> int:
        def _count():
            with self._get_session() as session:
                stmt = select(func.count(OrderModel.id)).where(OrderModel.restaurant_id == restaurant_id)
                return session.execute(stmt).scalar_one()

        return await self._run("count_orders", _count)

    async def clear(self) -> None:
        def _clear():
            with self._get_session() as session, session.begin():
                for model in (
                    OrderItemModel,
                    OrderModel,
                    OrderCounterModel,
                    QRTokenModel,
                    RecipeItemModel,
                    InventoryItemModel,
                    StaffModel,
                    MenuItemModel,
                    TableModel,
                    RestaurantModel,
                ):
                    session.execute(delete(model))

        await self._run("clear", _clear)

    async def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        self.engine.dispose()


def _order_query():
    return select(OrderModel).options(
        selectinload(OrderModel.items).joinedload(OrderItemModel.menu_item),
        joinedload(OrderModel.table),
        joinedload(OrderModel.waiter),
    )


def _restaurant_from_row(row: RestaurantModel) -> Restaurant:
    return Restaurant(
        id=row.id,
        name=row.name,
        name_fr=row.name_fr,
        name_ar=row.name_ar,
        timezone=row.timezone,
        allowed_networks=list(row.allowed_networks or []),
        is_active=row.is_active,
    )


def _table_from_row(row: TableModel) -> Table:
    return Table(
        id=row.id,
        restaurant_id=row.restaurant_id,
        table_number=row.table_number,
        table_name=row.table_name,
        capacity=row.capacity,
        is_active=row.is_active,
    )


def _menu_item_from_row(row: MenuItemModel) -> MenuItem:
    return MenuItem(
        id=row.id,
        restaurant_id=row.restaurant_id,
        name=row.name,
        name_fr=row.name_fr,
        name_ar=row.name_ar,
        price_cents=row.price_cents,
        available=row.available,
    )


def _inventory_from_row(row: InventoryItemModel) -> InventoryItem:
    return InventoryItem(
        id=row.id,
        restaurant_id=row.restaurant_id,
        name=row.name,
        unit=row.unit,
        current_stock=Decimal(row.current_stock),
    )


def _qr_token_from_row(row: QRTokenModel) -> QRToken:
    return QRToken(
        id=row.id,
        token=row.token,
        table_id=row.table_id,
        created_at=ensure_utc(row.created_at),
        expires_at=ensure_utc(row.expires_at),
    )


def _order_from_row(row: OrderModel) -> Order:
    items = []
    for item_row in row.items:
        menu_item = item_row.menu_item
        items.append(OrderItem(
            id=item_row.id,
            order_id=row.id,
            menu_item_id=item_row.menu_item_id,
            quantity=item_row.quantity,
            unit_price_cents=item_row.unit_price_cents,
            notes=item_row.notes,
            name=menu_item.name if menu_item else None,
            name_fr=menu_item.name_fr if menu_item else None,
            name_ar=menu_item.name_ar if menu_item else None,
        ))
    return Order(
        id=row.id,
        restaurant_id=row.restaurant_id,
        table_id=row.table_id,
        order_number=row.order_number,
        status=OrderStatus(row.status),
        total_cents=row.total_cents,
        notes=row.notes,
        waiter_id=row.waiter_id,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        items=items,
        table_number=row.table.table_number if row.table else None,
        table_name=row.table.table_name if row.table else None,
        waiter_name=row.waiter.name if row.waiter else None,
    )
