"""
QR session manager.

Issues, validates, rotates and sweeps the short-lived tokens that bind a
customer's browser to one physical table. ``validate`` is the only
authorization check on the customer-facing surface, so it never raises for
bad tokens: it returns None.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

from qrorder.config import SessionPolicy
from qrorder.domain import QRToken, Restaurant, SessionInfo, Table
from qrorder.errors import NotFound
from qrorder.storage.base import Storage
from qrorder.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=15)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_token(now: datetime) -> str:
    """Random UUID plus a millisecond timestamp component and a random suffix."""
    millis = int(now.timestamp() * 1000)
    return f"{uuid4().hex}-{_base36(millis)}-{secrets.token_urlsafe(8)}"


def _mask(token: str) -> str:
    return f"{token[:8]}..."


@dataclass
class RotationResult:
    """Outcome of a restaurant-wide rotation. Partial success is allowed."""

    sessions: List[SessionInfo] = field(default_factory=list)
    deleted: int = 0
    failed_table_ids: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.sessions)


class QRSessionManager:
    """Issue/validate/rotate/sweep per-table QR sessions."""

    def __init__(
        self,
        storage: Storage,
        ttl: timedelta = DEFAULT_TTL,
        policy: SessionPolicy = SessionPolicy.ALLOW_OVERLAP,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.ttl = ttl
        self.policy = policy
        self.clock = clock

    async def issue(self, table_id: str) -> SessionInfo:
        """
        Create a new session for a table.

        With ALLOW_OVERLAP, earlier sessions of the table stay valid until
        their own expiry. With INVALIDATE_ON_ISSUE they are deleted first.

        Raises:
            NotFound: table or its restaurant does not exist
        """
        table = await self.storage.get_table(table_id)
        if table is None:
            raise NotFound("Table", table_id)
        restaurant = await self.storage.get_restaurant(table.restaurant_id)
        if restaurant is None:
            raise NotFound("Table", table_id)

        if self.policy == SessionPolicy.INVALIDATE_ON_ISSUE:
            dropped = await self.storage.delete_qr_tokens_for_tables([table.id])
            if dropped:
                logger.info("[qr] Invalidated %d previous session(s) for table %s", dropped, table.id)

        now = self.clock()
        qr_token = await self.storage.create_qr_token(QRToken(
            token=generate_token(now),
            table_id=table.id,
            created_at=now,
            expires_at=now + self.ttl,
        ))
        logger.info(
            "[qr] Issued session %s for table %s (expires %s)",
            _mask(qr_token.token), table.id, qr_token.expires_at.isoformat(),
        )
        return _session_info(qr_token, table, restaurant)

    async def validate(self, token: str) -> Optional[SessionInfo]:
        """Return session data, or None if the token is unknown, expired or its table is inactive."""
        if not token:
            return None
        qr_token = await self.storage.find_qr_token(token)
        if qr_token is None:
            return None
        if qr_token.expires_at <= self.clock():
            logger.debug("[qr] Session %s expired", _mask(token))
            return None
        table = await self.storage.get_table(qr_token.table_id)
        if table is None or not table.is_active:
            return None
        restaurant = await self.storage.get_restaurant(table.restaurant_id)
        if restaurant is None:
            return None
        return _session_info(qr_token, table, restaurant)

    async def rotate_all_for_restaurant(self, restaurant_id: str) -> RotationResult:
        """
        Invalidate every session of the restaurant's active tables and issue fresh ones.

        Delete and re-issue are sequential, not one transaction. A table whose
        re-issue fails is logged and reported in ``failed_table_ids``.
        """
        tables = await self.storage.list_tables(restaurant_id, active_only=True)
        result = RotationResult()
        result.deleted = await self.storage.delete_qr_tokens_for_tables([t.id for t in tables])

        for table in tables:
            try:
                result.sessions.append(await self.issue(table.id))
            except Exception as e:
                logger.error("[qr] Failed to re-issue session for table %s: %s", table.id, e)
                result.failed_table_ids.append(table.id)

        logger.info(
            "[qr] Rotated sessions for restaurant %s: %d deleted, %d issued, %d failed",
            restaurant_id, result.deleted, result.count, len(result.failed_table_ids),
        )
        return result

    async def sweep_expired(self) -> int:
        """Delete sessions that expired before now. Returns count deleted."""
        count = await self.storage.delete_expired_qr_tokens(self.clock())
        if count:
            logger.info("[qr] Swept %d expired session(s)", count)
        return count


def _session_info(qr_token: QRToken, table: Table, restaurant: Restaurant) -> SessionInfo:
    return SessionInfo(
        token=qr_token.token,
        expires_at=qr_token.expires_at,
        table_id=table.id,
        table_number=table.table_number,
        table_name=table.table_name,
        restaurant_id=restaurant.id,
        restaurant_name=restaurant.name,
        restaurant_name_fr=restaurant.name_fr,
        restaurant_name_ar=restaurant.name_ar,
    )
