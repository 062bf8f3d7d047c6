"""QR session API router: scan, validate, generate, refresh-all, cleanup."""

import base64
import io
import logging
from typing import Any, Dict, Optional

import qrcode
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse, RedirectResponse

from qrorder.api.dependencies import (
    Identity,
    get_broadcaster,
    get_identity,
    get_sessions,
    get_settings,
    get_storage,
)
from qrorder.api.network import enforce_restaurant_network
from qrorder.config import Settings
from qrorder.errors import NotFound, Unauthorized
from qrorder.realtime import EventBroadcaster
from qrorder.services import QRSessionManager
from qrorder.storage.base import Storage

logger = logging.getLogger(__name__)

INVALID_QR_MESSAGES = {
    "en": "Invalid or expired QR code. Please scan again.",
    "fr": "QR code invalide ou expiré. Veuillez scanner à nouveau.",
    "ar": "رمز QR غير صالح أو منتهي الصلاحية. يرجى المسح مرة أخرى.",
}


def invalid_qr_response() -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "code": "INVALID_QR",
            "message": INVALID_QR_MESSAGES["en"],
            "messages": INVALID_QR_MESSAGES,
        },
    )


def qr_png_data_url(url: str) -> str:
    """Render ``url`` as a PNG QR code and return it as a data URL."""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


# Create router
router = APIRouter(prefix="/api/qr", tags=["qr"])


@router.get("/scan/{table_id}")
async def scan_table(
    table_id: str,
    request: Request,
    sessions: QRSessionManager = Depends(get_sessions),
    storage: Storage = Depends(get_storage),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_settings),
):
    """
    Entry point encoded in the printed QR code.

    Issues a fresh session for the table and redirects the browser to the
    customer frontend with ``?token=``. Unknown tables redirect with
    ``?error=table_not_found``.
    """
    table = await storage.get_table(table_id)
    restaurant = await storage.get_restaurant(table.restaurant_id) if table else None
    if table is None or restaurant is None:
        return RedirectResponse(f"{settings.frontend_url}?error=table_not_found", status_code=302)

    enforce_restaurant_network(request, restaurant, settings)

    try:
        session = await sessions.issue(table_id)
    except NotFound:
        return RedirectResponse(f"{settings.frontend_url}?error=table_not_found", status_code=302)

    await broadcaster.table_session_issued(session.restaurant_id, session.table_id)
    return RedirectResponse(f"{settings.frontend_url}?token={session.token}", status_code=302)


@router.get("/validate/{token}")
async def validate_token(token: str, sessions: QRSessionManager = Depends(get_sessions)):
    """Return the table and restaurant bound to a live session."""
    session = await sessions.validate(token)
    if session is None:
        return invalid_qr_response()
    return {"success": True, "data": session.to_dict()}


@router.post("/generate/{table_id}")
async def generate_table_qr(
    table_id: str,
    identity: Identity = Depends(get_identity),
    sessions: QRSessionManager = Depends(get_sessions),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Issue a session for one of the caller's tables and render the printable QR.

    The QR image encodes the permanent scan URL, not the short-lived token.
    """
    table = await storage.get_table(table_id)
    if table is None or table.restaurant_id != identity.restaurant_id:
        raise NotFound("Table", table_id)

    session = await sessions.issue(table_id)
    scan_url = f"{settings.api_url}/api/qr/scan/{table_id}"
    return {
        "success": True,
        "data": {
            **session.to_dict(),
            "scanUrl": scan_url,
            "qrCode": qr_png_data_url(scan_url),
        },
    }


@router.post("/refresh-all")
async def refresh_all(
    identity: Identity = Depends(get_identity),
    sessions: QRSessionManager = Depends(get_sessions),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
) -> Dict[str, Any]:
    """Rotate every session of the caller's restaurant."""
    result = await sessions.rotate_all_for_restaurant(identity.restaurant_id)
    await broadcaster.sessions_rotated(identity.restaurant_id, result.count)
    return {
        "success": True,
        "data": {
            "count": result.count,
            "deleted": result.deleted,
            "failedTableIds": result.failed_table_ids,
        },
        "message": f"Refreshed {result.count} QR codes",
    }


@router.post("/cleanup")
async def cleanup_expired(
    x_api_key: Optional[str] = Header(None),
    sessions: QRSessionManager = Depends(get_sessions),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Delete expired sessions. In production the caller must send ``X-API-Key``."""
    if settings.is_production and (not settings.cron_api_key or x_api_key != settings.cron_api_key):
        raise Unauthorized("Invalid API key")

    deleted = await sessions.sweep_expired()
    return {"success": True, "data": {"deleted": deleted}}
