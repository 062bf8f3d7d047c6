"""
Domain types for the ordering core.

Plain dataclasses shared by the storage backends, services and HTTP layer.
Money is kept in integer cents, timestamps are timezone-aware UTC.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class OrderStatus(str, Enum):
    """Lifecycle states of an order."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    PREPARING = "PREPARING"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
)
TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class StaffRole(str, Enum):
    WAITER = "WAITER"
    KITCHEN = "KITCHEN"
    MANAGER = "MANAGER"


@dataclass
class Restaurant:
    id: str
    name: str
    name_fr: Optional[str] = None
    name_ar: Optional[str] = None
    timezone: Optional[str] = None
    allowed_networks: List[str] = field(default_factory=list)
    is_active: bool = True


@dataclass
class Table:
    id: str
    restaurant_id: str
    table_number: int
    table_name: Optional[str] = None
    capacity: int = 4
    is_active: bool = True


@dataclass
class MenuItem:
    id: str
    restaurant_id: str
    name: str
    price_cents: int
    name_fr: Optional[str] = None
    name_ar: Optional[str] = None
    available: bool = True


@dataclass
class InventoryItem:
    id: str
    restaurant_id: str
    name: str
    unit: str
    current_stock: Decimal


@dataclass
class RecipeItem:
    """Amount of one inventory item consumed by one unit of a menu item."""

    menu_item_id: str
    inventory_item_id: str
    quantity: Decimal


@dataclass
class Staff:
    id: str
    restaurant_id: str
    name: str
    role: StaffRole
    pin_hash: str = ""
    is_active: bool = True


@dataclass
class QRToken:
    token: str
    table_id: str
    created_at: datetime
    expires_at: datetime
    id: Optional[str] = None


@dataclass
class OrderItem:
    menu_item_id: str
    quantity: int
    unit_price_cents: int
    notes: Optional[str] = None
    id: Optional[str] = None
    order_id: Optional[str] = None
    # display only, filled on read
    name: Optional[str] = None
    name_fr: Optional[str] = None
    name_ar: Optional[str] = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass
class Order:
    id: str
    restaurant_id: str
    table_id: str
    order_number: int
    status: OrderStatus
    total_cents: int
    created_at: datetime
    updated_at: datetime
    notes: Optional[str] = None
    waiter_id: Optional[str] = None
    items: List[OrderItem] = field(default_factory=list)
    # display only, filled on read
    table_number: Optional[int] = None
    table_name: Optional[str] = None
    waiter_name: Optional[str] = None


@dataclass
class OrderLine:
    """A requested line of a new order, before prices are resolved."""

    menu_item_id: str
    quantity: int = 1
    notes: Optional[str] = None


@dataclass(frozen=True)
class StaffActor:
    """A transition performed by an identified staff member."""

    staff_id: str
    role: StaffRole


@dataclass(frozen=True)
class UnattributedActor:
    """
    A transition performed without staff attribution (restaurant admin token).

    Ownership rules on ACCEPTED and DELIVERED do not apply to this actor.
    """

    label: str = "admin"


Actor = Union[StaffActor, UnattributedActor]


@dataclass
class SessionInfo:
    """Table and restaurant data resolved from a valid QR session."""

    token: str
    expires_at: datetime
    table_id: str
    table_number: int
    restaurant_id: str
    restaurant_name: str
    table_name: Optional[str] = None
    restaurant_name_fr: Optional[str] = None
    restaurant_name_ar: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "expiresAt": self.expires_at.isoformat(),
            "tableId": self.table_id,
            "tableNumber": self.table_number,
            "tableName": self.table_name,
            "restaurantId": self.restaurant_id,
            "restaurant": {
                "id": self.restaurant_id,
                "name": self.restaurant_name,
                "nameFr": self.restaurant_name_fr,
                "nameAr": self.restaurant_name_ar,
            },
        }


def order_to_dict(order: Order) -> Dict[str, Any]:
    """Serialize an order the way dashboards and customer pages consume it."""
    return {
        "id": order.id,
        "restaurantId": order.restaurant_id,
        "tableId": order.table_id,
        "orderNumber": order.order_number,
        "status": order.status.value,
        "totalAmount": order.total_cents / 100,
        "totalCents": order.total_cents,
        "notes": order.notes,
        "waiterId": order.waiter_id,
        "createdAt": order.created_at.isoformat(),
        "updatedAt": order.updated_at.isoformat(),
        "table": {
            "tableNumber": order.table_number,
            "tableName": order.table_name,
        },
        "waiter": {"id": order.waiter_id, "name": order.waiter_name} if order.waiter_id else None,
        "items": [
            {
                "id": item.id,
                "menuItemId": item.menu_item_id,
                "quantity": item.quantity,
                "unitPrice": item.unit_price_cents / 100,
                "unitPriceCents": item.unit_price_cents,
                "notes": item.notes,
                "menuItem": {
                    "name": item.name,
                    "nameFr": item.name_fr,
                    "nameAr": item.name_ar,
                },
            }
            for item in order.items
        ],
    }
