"""FastAPI dependencies: core services from app state, and staff/admin identity."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from qrorder.config import Settings
from qrorder.domain import Actor, StaffActor, StaffRole, UnattributedActor
from qrorder.realtime import EventBroadcaster
from qrorder.services import OrderService, QRSessionManager
from qrorder.storage.base import Storage
from qrorder.utils.time_utils import utcnow

ALGORITHM = "HS256"

bearer_scheme = HTTPBearer(auto_error=False)


# ---------- Core services ----------

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_sessions(request: Request) -> QRSessionManager:
    return request.app.state.sessions


def get_orders(request: Request) -> OrderService:
    return request.app.state.orders


def get_broadcaster(request: Request) -> EventBroadcaster:
    return request.app.state.broadcaster


# ---------- Identity ----------

@dataclass(frozen=True)
class Identity:
    """Who is calling a staff endpoint: the restaurant and the acting party."""

    restaurant_id: str
    actor: Actor


def create_access_token(
    data: Dict[str, Any],
    secret_key: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Login flows live outside this service; this helper exists for seeding
    and tests. Claims: ``restaurant_id`` and optionally ``staff_id`` + ``role``.
    """
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=480))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=ALGORITHM)


def decode_identity(token: str, secret_key: str) -> Optional[Identity]:
    """Decode a bearer token into an Identity, or None if it is invalid."""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None

    restaurant_id = payload.get("restaurant_id")
    if not restaurant_id:
        return None

    staff_id = payload.get("staff_id")
    if staff_id:
        try:
            role = StaffRole(str(payload.get("role", "")).upper())
        except ValueError:
            return None
        return Identity(restaurant_id=str(restaurant_id), actor=StaffActor(staff_id=str(staff_id), role=role))

    return Identity(restaurant_id=str(restaurant_id), actor=UnattributedActor())


async def resolve_identity(token: str, settings: Settings, storage: Storage) -> Optional[Identity]:
    """Decode a token and check the restaurant (and staff member) are still active."""
    identity = decode_identity(token, settings.jwt_secret_key)
    if identity is None:
        return None

    restaurant = await storage.get_restaurant(identity.restaurant_id)
    if restaurant is None or not restaurant.is_active:
        return None

    if isinstance(identity.actor, StaffActor):
        staff = await storage.get_staff(identity.actor.staff_id)
        if staff is None or not staff.is_active or staff.restaurant_id != identity.restaurant_id:
            return None

    return identity


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
    storage: Storage = Depends(get_storage),
) -> Identity:
    """Require a valid staff or admin bearer token."""
    credentials_exception = HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        raise credentials_exception

    identity = await resolve_identity(credentials.credentials, settings, storage)
    if identity is None:
        raise credentials_exception
    return identity
