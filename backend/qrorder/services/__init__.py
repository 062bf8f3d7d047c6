"""Core services: QR sessions, order lifecycle, stock deduction."""

from .inventory import StockDeductionDispatcher, deduct_stock_for_order
from .orders import VALID_TRANSITIONS, OrderService, can_transition
from .qr_sessions import QRSessionManager, RotationResult

__all__ = [
    "OrderService",
    "QRSessionManager",
    "RotationResult",
    "StockDeductionDispatcher",
    "VALID_TRANSITIONS",
    "can_transition",
    "deduct_stock_for_order",
]
