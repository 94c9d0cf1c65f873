"""Entitlement gate consulted before starting or answering an attempt.

Teachers and admins always pass. Everyone else needs a subscription whose
expiry lies in the future; a missing or unparseable expiry means no access.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from .types import Identity

EntitlementCheck = Callable[[Identity], bool]


def _utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def is_subscription_active(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return False
    current = _utc(now) if now else datetime.now(timezone.utc)
    return _utc(expires_at) > current


def is_entitled(identity: Identity) -> bool:
    if identity.is_staff:
        return True
    return is_subscription_active(identity.subscription_expires_at)


def parse_expiry(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return _utc(datetime.fromisoformat(raw.strip().replace("Z", "+00:00")))
    except ValueError:
        return None
