"""Orders API router: customer ordering and staff order management."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from qrorder.api.dependencies import (
    Identity,
    get_broadcaster,
    get_identity,
    get_orders,
    get_sessions,
    get_settings,
    get_storage,
)
from qrorder.api.network import enforce_restaurant_network
from qrorder.api.qr_router import invalid_qr_response
from qrorder.config import Settings
from qrorder.domain import OrderLine, OrderStatus, order_to_dict
from qrorder.errors import NotFound
from qrorder.realtime import EventBroadcaster
from qrorder.services import OrderService, QRSessionManager
from qrorder.services.orders import (
    DEFAULT_HISTORY_LIMIT,
    MAX_HISTORY_LIMIT,
    MAX_LINE_NOTES,
    MAX_ORDER_NOTES,
    MAX_QUANTITY,
    MIN_QUANTITY,
)
from qrorder.storage.base import Storage

logger = logging.getLogger(__name__)


# Request models
class OrderLineRequest(BaseModel):
    """One line of a customer order."""
    menu_item_id: str = Field(..., alias="menuItemId", min_length=1)
    quantity: int = Field(1, ge=MIN_QUANTITY, le=MAX_QUANTITY)
    notes: Optional[str] = Field(None, max_length=MAX_LINE_NOTES)

    model_config = ConfigDict(populate_by_name=True)


class CreateOrderRequest(BaseModel):
    """Request body for placing an order from a table session."""
    token: str = Field(..., min_length=1)
    items: List[OrderLineRequest] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=MAX_ORDER_NOTES)


class StatusUpdateRequest(BaseModel):
    """Request body for moving an order to a new status."""
    status: OrderStatus


# Create router
router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", status_code=201)
async def create_order(
    body: CreateOrderRequest,
    request: Request,
    sessions: QRSessionManager = Depends(get_sessions),
    orders: OrderService = Depends(get_orders),
    storage: Storage = Depends(get_storage),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_settings),
):
    """
    Place an order for the table bound to ``token``.

    - **token**: QR session token from the scan redirect
    - **items**: list of ``{menuItemId, quantity, notes}``
    - **Returns**: the created order (201)
    """
    session = await sessions.validate(body.token)
    if session is None:
        return invalid_qr_response()

    restaurant = await storage.get_restaurant(session.restaurant_id)
    if restaurant is None:
        raise NotFound("Restaurant", session.restaurant_id)
    enforce_restaurant_network(request, restaurant, settings)

    lines = [OrderLine(menu_item_id=i.menu_item_id, quantity=i.quantity, notes=i.notes) for i in body.items]
    order = await orders.create(session.restaurant_id, session.table_id, lines, body.notes)

    await broadcaster.order_created(order, session.table_number)
    return {"success": True, "data": order_to_dict(order), "message": "Order placed successfully"}


@router.get("/active/list")
async def list_active_orders(
    status: Optional[List[OrderStatus]] = Query(None),
    identity: Identity = Depends(get_identity),
    orders: OrderService = Depends(get_orders),
) -> Dict[str, Any]:
    """
    Active orders of the caller's restaurant, oldest first.

    - **status**: optional repeated filter, defaults to every non-terminal status
    """
    result = await orders.list_by_status(identity.restaurant_id, status)
    return {"success": True, "data": [order_to_dict(o) for o in result]}


@router.get("/history/list")
async def list_order_history(
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_identity),
    orders: OrderService = Depends(get_orders),
) -> Dict[str, Any]:
    """Delivered and cancelled orders, newest first."""
    result = await orders.history(identity.restaurant_id, limit=limit, offset=offset)
    return {"success": True, "data": [order_to_dict(o) for o in result]}


@router.get("/table/{token}")
async def list_table_orders(
    token: str,
    sessions: QRSessionManager = Depends(get_sessions),
    orders: OrderService = Depends(get_orders),
):
    """Today's orders for the table bound to a live session."""
    session = await sessions.validate(token)
    if session is None:
        return invalid_qr_response()
    result = await orders.list_for_table(session.table_id)
    return {"success": True, "data": [order_to_dict(o) for o in result]}


@router.get("/{order_id}")
async def get_order(order_id: str, orders: OrderService = Depends(get_orders)) -> Dict[str, Any]:
    """Track one order by its opaque id."""
    order = await orders.get(order_id)
    return {"success": True, "data": order_to_dict(order)}


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    identity: Identity = Depends(get_identity),
    orders: OrderService = Depends(get_orders),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
) -> Dict[str, Any]:
    """Move an order through the status graph as the calling staff member or admin."""
    order = await orders.transition(order_id, identity.restaurant_id, body.status, identity.actor)
    await broadcaster.order_status_changed(order)
    return {"success": True, "data": order_to_dict(order), "message": f"Order status updated to {order.status.value}"}
