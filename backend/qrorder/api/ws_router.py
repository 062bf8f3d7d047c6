"""
WebSocket endpoint for real-time order updates.

Clients send JSON frames to join or leave rooms:

    {"action": "join:restaurant", "id": "<restaurant id>", "token": "<staff JWT>"}
    {"action": "join:order", "id": "<order id>"}
    {"action": "leave:restaurant", "id": "..."}
    {"action": "leave:order", "id": "..."}

Server frames are ``{"event": name, "data": payload}``. Nothing is replayed:
a reconnecting client has to join its rooms again.
"""

import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from qrorder.api.dependencies import resolve_identity
from qrorder.realtime import EventBroadcaster, Subscriber, order_room, restaurant_room

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _error(message: str) -> Dict[str, Any]:
    return {"event": "error", "data": {"message": message}}


async def _handle_frame(websocket: WebSocket, subscriber: Subscriber, frame: Any) -> None:
    broadcaster: EventBroadcaster = websocket.app.state.broadcaster

    if not isinstance(frame, dict):
        subscriber.offer(_error("invalid message"))
        return
    action = frame.get("action")
    target = frame.get("id")
    if not action or not target or not isinstance(target, str):
        subscriber.offer(_error("action and id are required"))
        return

    if action == "join:restaurant":
        identity = await resolve_identity(
            frame.get("token") or "", websocket.app.state.settings, websocket.app.state.storage
        )
        if identity is None or identity.restaurant_id != target:
            subscriber.offer(_error("not authorized for this restaurant"))
            return
        room = restaurant_room(target)
        broadcaster.subscribe(subscriber, room)
        subscriber.offer({"event": "subscribed", "data": {"room": room}})
    elif action == "join:order":
        room = order_room(target)
        broadcaster.subscribe(subscriber, room)
        subscriber.offer({"event": "subscribed", "data": {"room": room}})
    elif action in ("leave:restaurant", "leave:order"):
        room = restaurant_room(target) if action == "leave:restaurant" else order_room(target)
        broadcaster.unsubscribe(subscriber, room)
        subscriber.offer({"event": "unsubscribed", "data": {"room": room}})
    else:
        subscriber.offer(_error("unknown action"))


@router.websocket("/ws")
async def realtime_ws(websocket: WebSocket):
    """One subscriber per connection; a writer task drains its outbound queue."""
    await websocket.accept()
    broadcaster: EventBroadcaster = websocket.app.state.broadcaster
    subscriber = Subscriber(websocket.send_json)
    writer = asyncio.create_task(subscriber.run())
    logger.debug("[realtime] Connection %s opened", subscriber.id)

    try:
        while not subscriber.closed:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                subscriber.offer(_error("invalid message"))
                continue
            await _handle_frame(websocket, subscriber, frame)
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(subscriber)
        subscriber.close()
        try:
            await writer
        except Exception as e:
            logger.debug("[realtime] Writer for %s ended with %s", subscriber.id, e)
        logger.debug("[realtime] Connection %s closed", subscriber.id)
