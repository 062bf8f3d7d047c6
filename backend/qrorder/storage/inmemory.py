"""
In-memory storage implementation.

Dictionaries keyed by primary key, guarded by a single asyncio.Lock for
mutations. Records are copied on the way in and out so callers never share
state with the store.
"""

import asyncio
import copy
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from qrorder.domain import (
    InventoryItem,
    MenuItem,
    Order,
    OrderStatus,
    QRToken,
    RecipeItem,
    Restaurant,
    Staff,
    Table,
)
from qrorder.errors import InsufficientStock
from qrorder.storage.base import Storage


class InMemoryStorage(Storage):
    """In-memory storage using dictionaries."""

    def __init__(self):
        """Initialize with empty storage."""
        self._lock = asyncio.Lock()
        self._restaurants: Dict[str, Restaurant] = {}
        self._tables: Dict[str, Table] = {}
        self._menu_items: Dict[str, MenuItem] = {}
        self._staff: Dict[str, Staff] = {}
        self._inventory: Dict[str, InventoryItem] = {}
        self._recipes: Dict[str, List[RecipeItem]] = defaultdict(list)
        # token string -> QRToken
        self._qr_tokens: Dict[str, QRToken] = {}
        self._orders: Dict[str, Order] = {}
        # (restaurant_id, business_day) -> last issued order number
        self._order_counters: Dict[Tuple[str, date], int] = {}

    # ---------- Reference data ----------

    async def add_restaurant(self, restaurant: Restaurant) -> Restaurant:
        async with self._lock:
            self._restaurants[restaurant.id] = copy.deepcopy(restaurant)
        return restaurant

    async def get_restaurant(self, restaurant_id: str) -> Optional[Restaurant]:
        return copy.deepcopy(self._restaurants.get(restaurant_id))

    async def add_table(self, table: Table) -> Table:
        async with self._lock:
            self._tables[table.id] = copy.deepcopy(table)
        return table

    async def get_table(self, table_id: str) -> Optional[Table]:
        return copy.deepcopy(self._tables.get(table_id))

    async def list_tables(self, restaurant_id: str, active_only: bool = True) -> List[Table]:
        tables = [
            t for t in self._tables.values()
            if t.restaurant_id == restaurant_id and (t.is_active or not active_only)
        ]
        tables.sort(key=lambda t: t.table_number)
        return copy.deepcopy(tables)

    async def add_menu_item(self, item: MenuItem) -> MenuItem:
        async with self._lock:
            self._menu_items[item.id] = copy.deepcopy(item)
        return item

    async def get_menu_items(self, restaurant_id: str, item_ids: Iterable[str]) -> List[MenuItem]:
        found = []
        for item_id in dict.fromkeys(item_ids):
            item = self._menu_items.get(item_id)
            if item is not None and item.restaurant_id == restaurant_id:
                found.append(copy.deepcopy(item))
        return found

    async def set_menu_item_available(
        self, item_id: str, restaurant_id: str, available: bool
    ) -> Optional[MenuItem]:
        async with self._lock:
            item = self._menu_items.get(item_id)
            if item is None or item.restaurant_id != restaurant_id:
                return None
            item.available = available
            return copy.deepcopy(item)

    async def add_staff(self, staff: Staff) -> Staff:
        async with self._lock:
            self._staff[staff.id] = copy.deepcopy(staff)
        return staff

    async def get_staff(self, staff_id: str) -> Optional[Staff]:
        return copy.deepcopy(self._staff.get(staff_id))

    async def add_inventory_item(self, item: InventoryItem) -> InventoryItem:
        async with self._lock:
            self._inventory[item.id] = copy.deepcopy(item)
        return item

    async def get_inventory_item(self, item_id: str) -> Optional[InventoryItem]:
        return copy.deepcopy(self._inventory.get(item_id))

    async def add_recipe_item(self, recipe: RecipeItem) -> RecipeItem:
        async with self._lock:
            self._recipes[recipe.menu_item_id].append(copy.deepcopy(recipe))
        return recipe

    async def get_recipe_items(self, menu_item_ids: Iterable[str]) -> List[RecipeItem]:
        result = []
        for menu_item_id in dict.fromkeys(menu_item_ids):
            result.extend(self._recipes.get(menu_item_id, []))
        return copy.deepcopy(result)

    async def deduct_stock(self, deductions: Dict[str, Decimal]) -> List[InventoryItem]:
        async with self._lock:
            shortages = []
            for inventory_id, quantity in deductions.items():
                item = self._inventory.get(inventory_id)
                if item is None:
                    continue
                if item.current_stock - quantity < 0:
                    shortages.append(
                        f"Insufficient {item.name}: needs {quantity}{item.unit}, "
                        f"have {item.current_stock}{item.unit}"
                    )
            if shortages:
                raise InsufficientStock(shortages)

            updated = []
            for inventory_id, quantity in deductions.items():
                item = self._inventory.get(inventory_id)
                if item is None:
                    continue
                item.current_stock = item.current_stock - quantity
                updated.append(copy.deepcopy(item))
            return updated

    # ---------- Token store ----------

    async def create_qr_token(self, qr_token: QRToken) -> QRToken:
        stored = copy.deepcopy(qr_token)
        if stored.id is None:
            stored.id = str(uuid4())
        async with self._lock:
            self._qr_tokens[stored.token] = stored
        return copy.deepcopy(stored)

    async def find_qr_token(self, token: str) -> Optional[QRToken]:
        return copy.deepcopy(self._qr_tokens.get(token))

    async def list_qr_tokens(self, table_id: str) -> List[QRToken]:
        tokens = [t for t in self._qr_tokens.values() if t.table_id == table_id]
        tokens.sort(key=lambda t: t.created_at)
        return copy.deepcopy(tokens)

    async def delete_qr_tokens_for_tables(self, table_ids: Sequence[str]) -> int:
        wanted = set(table_ids)
        async with self._lock:
            doomed = [k for k, t in self._qr_tokens.items() if t.table_id in wanted]
            for key in doomed:
                del self._qr_tokens[key]
        return len(doomed)

    async def delete_expired_qr_tokens(self, now: datetime) -> int:
        async with self._lock:
            doomed = [k for k, t in self._qr_tokens.items() if t.expires_at < now]
            for key in doomed:
                del self._qr_tokens[key]
        return len(doomed)

    # ---------- Order repository ----------

    async def create_order(self, order: Order, business_day: date) -> Order:
        stored = copy.deepcopy(order)
        for item in stored.items:
            item.id = item.id or str(uuid4())
            item.order_id = stored.id
        async with self._lock:
            key = (stored.restaurant_id, business_day)
            number = self._order_counters.get(key, 0) + 1
            stored.order_number = number
            self._orders[stored.id] = stored
            self._order_counters[key] = number
        return self._decorate(stored)

    async def get_order(self, order_id: str, restaurant_id: Optional[str] = None) -> Optional[Order]:
        order = self._orders.get(order_id)
        if order is None:
            return None
        if restaurant_id is not None and order.restaurant_id != restaurant_id:
            return None
        return self._decorate(order)

    async def update_order(
        self,
        order_id: str,
        status: OrderStatus,
        waiter_id: Optional[str],
        updated_at: datetime,
    ) -> Optional[Order]:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            order.status = status
            order.waiter_id = waiter_id
            order.updated_at = updated_at
        return self._decorate(order)

    async def list_orders(
        self,
        restaurant_id: str,
        statuses: Sequence[OrderStatus],
        newest_first: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Order]:
        wanted = set(statuses)
        orders = [
            o for o in self._orders.values()
            if o.restaurant_id == restaurant_id and o.status in wanted
        ]
        orders.sort(key=lambda o: o.created_at, reverse=newest_first)
        end = None if limit is None else offset + limit
        return [self._decorate(o) for o in orders[offset:end]]

    async def list_orders_for_table(self, table_id: str, since: datetime) -> List[Order]:
        orders = [
            o for o in self._orders.values()
            if o.table_id == table_id and o.created_at >= since
        ]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [self._decorate(o) for o in orders]

    async def count_orders(self, restaurant_id: str) -> int:
        return sum(1 for o in self._orders.values() if o.restaurant_id == restaurant_id)

    async def clear(self) -> None:
        async with self._lock:
            self._restaurants.clear()
            self._tables.clear()
            self._menu_items.clear()
            self._staff.clear()
            self._inventory.clear()
            self._recipes.clear()
            self._qr_tokens.clear()
            self._orders.clear()
            self._order_counters.clear()

    def _decorate(self, order: Order) -> Order:
        """Copy an order and fill its display-only fields."""
        result = copy.deepcopy(order)
        table = self._tables.get(result.table_id)
        if table is not None:
            result.table_number = table.table_number
            result.table_name = table.table_name
        if result.waiter_id:
            waiter = self._staff.get(result.waiter_id)
            result.waiter_name = waiter.name if waiter else None
        for item in result.items:
            menu_item = self._menu_items.get(item.menu_item_id)
            if menu_item is not None:
                item.name = menu_item.name
                item.name_fr = menu_item.name_fr
                item.name_ar = menu_item.name_ar
        return result
