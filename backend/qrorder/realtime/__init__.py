"""Real-time event fan-out."""

from .broadcaster import (
    MENU_UPDATED,
    ORDER_NEW,
    ORDER_STATUS,
    ORDER_UPDATED,
    QR_REFRESHED,
    TABLE_UPDATED,
    EventBroadcaster,
    Subscriber,
    order_room,
    restaurant_room,
)

__all__ = [
    "EventBroadcaster",
    "Subscriber",
    "order_room",
    "restaurant_room",
    "ORDER_NEW",
    "ORDER_UPDATED",
    "ORDER_STATUS",
    "MENU_UPDATED",
    "QR_REFRESHED",
    "TABLE_UPDATED",
]
