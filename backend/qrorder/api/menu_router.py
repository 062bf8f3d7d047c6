"""Menu availability API router."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from qrorder.api.dependencies import Identity, get_broadcaster, get_identity, get_storage
from qrorder.errors import NotFound
from qrorder.realtime import EventBroadcaster
from qrorder.storage.base import Storage


class ToggleAvailabilityRequest(BaseModel):
    """Explicit availability. When omitted the current value is flipped."""
    available: Optional[bool] = None


# Create router
router = APIRouter(prefix="/api/menu", tags=["menu"])


@router.patch("/{item_id}/toggle")
async def toggle_menu_item(
    item_id: str,
    body: Optional[ToggleAvailabilityRequest] = Body(None),
    identity: Identity = Depends(get_identity),
    storage: Storage = Depends(get_storage),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
) -> Dict[str, Any]:
    """Mark a menu item available or sold out and notify the restaurant's dashboards."""
    items = await storage.get_menu_items(identity.restaurant_id, [item_id])
    if not items:
        raise NotFound("Menu item", item_id)

    available = body.available if body is not None and body.available is not None else not items[0].available
    item = await storage.set_menu_item_available(item_id, identity.restaurant_id, available)
    if item is None:
        raise NotFound("Menu item", item_id)

    await broadcaster.menu_item_toggled(identity.restaurant_id, item.id, item.available)
    return {
        "success": True,
        "data": {"id": item.id, "name": item.name, "available": item.available},
    }
