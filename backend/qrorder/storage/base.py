"""
Abstract Storage interface for the ordering core.

Defines the contract for the token store, the order repository and the
reference data (restaurants, tables, menu, staff, inventory) the core reads.
Implementations can be in-memory, database-backed, or other backends.

Every method is a coroutine: callers must assume other requests interleave
between issuing a storage call and receiving its result.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

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


class Storage(ABC):
    """Abstract base class for storage implementations."""

    # ---------- Reference data ----------

    @abstractmethod
    async def add_restaurant(self, restaurant: Restaurant) -> Restaurant:
        ...

    @abstractmethod
    async def get_restaurant(self, restaurant_id: str) -> Optional[Restaurant]:
        ...

    @abstractmethod
    async def add_table(self, table: Table) -> Table:
        ...

    @abstractmethod
    async def get_table(self, table_id: str) -> Optional[Table]:
        ...

    @abstractmethod
    async def list_tables(self, restaurant_id: str, active_only: bool = True) -> List[Table]:
        """Tables of a restaurant ordered by table number."""
        ...

    @abstractmethod
    async def add_menu_item(self, item: MenuItem) -> MenuItem:
        ...

    @abstractmethod
    async def get_menu_items(self, restaurant_id: str, item_ids: Iterable[str]) -> List[MenuItem]:
        """
        Menu items with the given ids that belong to the restaurant.

        Unknown ids and items of other restaurants are silently left out.
        Availability is not filtered here.
        """
        ...

    @abstractmethod
    async def set_menu_item_available(
        self, item_id: str, restaurant_id: str, available: bool
    ) -> Optional[MenuItem]:
        """Set availability. Returns None if the item is not in the restaurant."""
        ...

    @abstractmethod
    async def add_staff(self, staff: Staff) -> Staff:
        ...

    @abstractmethod
    async def get_staff(self, staff_id: str) -> Optional[Staff]:
        ...

    @abstractmethod
    async def add_inventory_item(self, item: InventoryItem) -> InventoryItem:
        ...

    @abstractmethod
    async def get_inventory_item(self, item_id: str) -> Optional[InventoryItem]:
        ...

    @abstractmethod
    async def add_recipe_item(self, recipe: RecipeItem) -> RecipeItem:
        ...

    @abstractmethod
    async def get_recipe_items(self, menu_item_ids: Iterable[str]) -> List[RecipeItem]:
        ...

    @abstractmethod
    async def deduct_stock(self, deductions: Dict[str, Decimal]) -> List[InventoryItem]:
        """
        Decrement stock for several inventory items in one atomic write.

        Raises InsufficientStock (and changes nothing) if any item would go
        below zero. Unknown inventory ids are skipped.
        """
        ...

    # ---------- Token store ----------

    @abstractmethod
    async def create_qr_token(self, qr_token: QRToken) -> QRToken:
        ...

    @abstractmethod
    async def find_qr_token(self, token: str) -> Optional[QRToken]:
        ...

    @abstractmethod
    async def list_qr_tokens(self, table_id: str) -> List[QRToken]:
        ...

    @abstractmethod
    async def delete_qr_tokens_for_tables(self, table_ids: Sequence[str]) -> int:
        """Delete every token of the given tables. Returns count deleted."""
        ...

    @abstractmethod
    async def delete_expired_qr_tokens(self, now: datetime) -> int:
        """Delete tokens with expires_at < now. Returns count deleted."""
        ...

    # ---------- Order repository ----------

    @abstractmethod
    async def create_order(self, order: Order, business_day: date) -> Order:
        """
        Persist an order with its items in one atomic write.

        Assigns ``order.order_number`` from the per-restaurant counter for
        ``business_day`` as part of the same write. On failure nothing is
        persisted and the counter is not advanced.
        """
        ...

    @abstractmethod
    async def get_order(self, order_id: str, restaurant_id: Optional[str] = None) -> Optional[Order]:
        """
        Get an order with items, table and waiter display data.

        When restaurant_id is given, orders of other restaurants are not found.
        """
        ...

    @abstractmethod
    async def update_order(
        self,
        order_id: str,
        status: OrderStatus,
        waiter_id: Optional[str],
        updated_at: datetime,
    ) -> Optional[Order]:
        """Single-row update of status and waiter. Last write wins."""
        ...

    @abstractmethod
    async def list_orders(
        self,
        restaurant_id: str,
        statuses: Sequence[OrderStatus],
        newest_first: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Order]:
        ...

    @abstractmethod
    async def list_orders_for_table(self, table_id: str, since: datetime) -> List[Order]:
        """Orders of a table created at or after ``since``, newest first."""
        ...

    @abstractmethod
    async def count_orders(self, restaurant_id: str) -> int:
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Clear all state."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None
