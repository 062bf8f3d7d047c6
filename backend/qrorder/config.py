"""Environment-driven settings and logging setup."""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import List, Optional


class SessionPolicy(str, Enum):
    """What happens to a table's live QR sessions when a new one is issued."""

    ALLOW_OVERLAP = "allow_overlap"
    INVALIDATE_ON_ISSUE = "invalidate_on_issue"


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Simple container for application level settings."""

    environment: str = "dev"
    storage_backend: str = "inmemory"
    database_url: str = "sqlite:///./qrorder.db"
    use_alembic: bool = False
    qr_token_expiry_minutes: int = 15
    qr_session_policy: SessionPolicy = SessionPolicy.ALLOW_OVERLAP
    jwt_secret_key: str = "dev-secret-key"
    access_token_expire_minutes: int = 480
    cron_api_key: Optional[str] = None
    frontend_url: str = "http://localhost:3000"
    api_url: str = "http://localhost:8000"
    default_timezone: str = "UTC"
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_dev(self) -> bool:
        return self.environment.lower() == "dev"

    @property
    def qr_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.qr_token_expiry_minutes)


def get_settings() -> Settings:
    """Read settings from the environment. Unknown values fall back to defaults."""
    policy_raw = os.getenv("QR_SESSION_POLICY", SessionPolicy.ALLOW_OVERLAP.value).strip().lower()
    try:
        policy = SessionPolicy(policy_raw)
    except ValueError:
        policy = SessionPolicy.ALLOW_OVERLAP

    expiry = _get_int("QR_TOKEN_EXPIRY_MINUTES", 15)
    if expiry <= 0:
        expiry = 15

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    return Settings(
        environment=os.getenv("ENVIRONMENT", "dev"),
        storage_backend=os.getenv("STORAGE_BACKEND", "inmemory").lower(),
        database_url=os.getenv("APP_DATABASE_URL", "sqlite:///./qrorder.db"),
        use_alembic=_get_bool("USE_ALEMBIC", False),
        qr_token_expiry_minutes=expiry,
        qr_session_policy=policy,
        jwt_secret_key=os.getenv("JWT_SECRET_KEY", "dev-secret-key"),
        access_token_expire_minutes=_get_int("ACCESS_TOKEN_EXPIRE_MINUTES", 480),
        cron_api_key=os.getenv("CRON_API_KEY") or None,
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
        api_url=os.getenv("API_URL", "http://localhost:8000").rstrip("/"),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "UTC"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=origins or ["*"],
    )


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the application process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
