"""
Error taxonomy for the ordering core.

Every error carries a machine-readable ``kind`` so the HTTP layer can map it
to a status code without looking at the message text.
"""

from typing import Iterable, List, Optional


class OrderingError(Exception):
    """Base class for all core failures."""

    kind = "ordering_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.kind.upper(), "message": self.message}


class NotFound(OrderingError):
    """Entity missing, or owned by another restaurant."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(OrderingError):
    kind = "invalid_transition"

    def __init__(self, current_status, requested_status):
        current = getattr(current_status, "value", current_status)
        requested = getattr(requested_status, "value", requested_status)
        super().__init__(f"Cannot transition from {current} to {requested}")
        self.current_status = current
        self.requested_status = requested

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_status"] = self.current_status
        data["requested_status"] = self.requested_status
        return data


class AlreadyAssigned(OrderingError):
    kind = "already_assigned"

    def __init__(self, order_id: str, waiter_id: str):
        super().__init__(f"Order {order_id} is already assigned to another waiter")
        self.order_id = order_id
        self.waiter_id = waiter_id


class NotOwner(OrderingError):
    kind = "not_owner"

    def __init__(self, order_id: str):
        super().__init__(f"Only the assigned waiter can deliver order {order_id}")
        self.order_id = order_id


class ItemsUnavailable(OrderingError):
    kind = "items_unavailable"

    def __init__(self, item_ids: Iterable[str]):
        self.item_ids: List[str] = sorted(set(item_ids))
        super().__init__("Some items are no longer available")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["item_ids"] = self.item_ids
        return data


class InvalidOrder(OrderingError):
    """Order request violates line or note bounds."""

    kind = "invalid_order"


class InsufficientStock(OrderingError):
    kind = "insufficient_stock"

    def __init__(self, shortages: List[str]):
        super().__init__(f"Stock shortage: {'; '.join(shortages)}")
        self.shortages = shortages


class Unauthorized(OrderingError):
    kind = "unauthorized"


class StorageError(OrderingError):
    """Underlying storage call failed. Never retried inside the core."""

    kind = "storage_error"


class NetworkNotAllowed(OrderingError):
    """Client is outside the restaurant's allowed networks."""

    kind = "network_not_allowed"
