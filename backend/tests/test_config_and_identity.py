"""
Tests for environment settings, bearer identities and business-day helpers.
"""

from datetime import datetime, timedelta, timezone

import pytest

from qrorder.api.dependencies import create_access_token, decode_identity
from qrorder.config import SessionPolicy, get_settings
from qrorder.domain import StaffActor, StaffRole, UnattributedActor
from qrorder.main import build_storage
from qrorder.storage import InMemoryStorage
from qrorder.utils.time_utils import business_date, ensure_utc, local_midnight_utc, to_naive_utc

from conftest import SECRET


def test_settings_defaults(monkeypatch):
    for name in ("ENVIRONMENT", "QR_TOKEN_EXPIRY_MINUTES", "QR_SESSION_POLICY", "STORAGE_BACKEND", "CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    settings = get_settings()

    assert settings.is_dev
    assert settings.qr_token_ttl == timedelta(minutes=15)
    assert settings.qr_session_policy == SessionPolicy.ALLOW_OVERLAP
    assert settings.storage_backend == "inmemory"
    assert settings.cors_origins == ["*"]


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("QR_TOKEN_EXPIRY_MINUTES", "30")
    monkeypatch.setenv("QR_SESSION_POLICY", "INVALIDATE_ON_ISSUE")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("FRONTEND_URL", "https://menu.example/")
    settings = get_settings()

    assert settings.is_production
    assert settings.qr_token_ttl == timedelta(minutes=30)
    assert settings.qr_session_policy == SessionPolicy.INVALIDATE_ON_ISSUE
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    assert settings.frontend_url == "https://menu.example"


@pytest.mark.parametrize("value", ["abc", "0", "-5"])
def test_bad_expiry_falls_back_to_default(monkeypatch, value):
    monkeypatch.setenv("QR_TOKEN_EXPIRY_MINUTES", value)
    assert get_settings().qr_token_expiry_minutes == 15


def test_unknown_storage_backend_uses_memory(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "cassandra")
    assert isinstance(build_storage(get_settings()), InMemoryStorage)


def test_decode_staff_identity():
    token = create_access_token({"restaurant_id": "r1", "staff_id": "s1", "role": "waiter"}, SECRET)
    identity = decode_identity(token, SECRET)
    assert identity.restaurant_id == "r1"
    assert identity.actor == StaffActor(staff_id="s1", role=StaffRole.WAITER)


def test_decode_admin_identity_is_unattributed():
    token = create_access_token({"restaurant_id": "r1"}, SECRET)
    identity = decode_identity(token, SECRET)
    assert isinstance(identity.actor, UnattributedActor)


@pytest.mark.parametrize("claims,secret", [
    ({"restaurant_id": "r1"}, "other-secret"),
    ({"staff_id": "s1", "role": "WAITER"}, SECRET),
    ({"restaurant_id": "r1", "staff_id": "s1", "role": "CHEF"}, SECRET),
])
def test_decode_rejects_bad_tokens(claims, secret):
    token = create_access_token(claims, secret)
    assert decode_identity(token, SECRET) is None


def test_decode_rejects_expired_token():
    token = create_access_token({"restaurant_id": "r1"}, SECRET, expires_delta=timedelta(seconds=-10))
    assert decode_identity(token, SECRET) is None


def test_business_day_helpers_in_utc():
    now = datetime(2026, 3, 10, 23, 59, tzinfo=timezone.utc)
    assert business_date(now, "UTC").isoformat() == "2026-03-10"
    assert local_midnight_utc(now, "UTC") == datetime(2026, 3, 10, tzinfo=timezone.utc)


def test_unknown_timezone_falls_back():
    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    assert business_date(now, "Not/AZone", "UTC") == business_date(now, "UTC")


def test_naive_round_trip():
    aware = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    naive = to_naive_utc(aware)
    assert naive.tzinfo is None
    assert ensure_utc(naive) == aware
