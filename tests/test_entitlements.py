from __future__ import annotations

from datetime import datetime, timedelta, timezone

from attempt_core.entitlements import is_entitled, is_subscription_active, parse_expiry
from attempt_core.types import Identity

NOW = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def test_subscription_window():
    assert is_subscription_active(NOW + timedelta(seconds=1), now=NOW)
    assert not is_subscription_active(NOW, now=NOW)
    assert not is_subscription_active(NOW - timedelta(days=1), now=NOW)
    assert not is_subscription_active(None, now=NOW)
    # naive timestamps are read as UTC
    assert is_subscription_active(datetime(2026, 3, 3), now=NOW)


def test_staff_bypass():
    assert is_entitled(Identity(user_id="t", role="teacher"))
    assert is_entitled(Identity(user_id="a", role="admin"))
    assert not is_entitled(Identity(user_id="p", role="parent"))
    assert not is_entitled(Identity(user_id="s", role="student"))
    assert is_entitled(Identity(user_id="s", role="student", subscription_expires_at=datetime(2099, 1, 1)))


def test_parse_expiry():
    assert parse_expiry("2099-01-01T00:00:00Z") == datetime(2099, 1, 1, tzinfo=timezone.utc)
    assert parse_expiry("2099-01-01T02:00:00+02:00") == datetime(2099, 1, 1, tzinfo=timezone.utc)
    assert parse_expiry("2099-01-01").tzinfo is not None
    assert parse_expiry("next tuesday") is None
    assert parse_expiry("") is None
    assert parse_expiry(None) is None
