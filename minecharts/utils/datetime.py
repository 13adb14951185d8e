"""Datetime helpers.

Timestamps are stored as naive UTC datetimes; the platform-facing helpers
produce RFC 3339 strings.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time as a naive datetime (storage format)."""
    return datetime.now(UTC).replace(tzinfo=None)


def rfc3339_now() -> str:
    """Current UTC time as RFC 3339 with second precision, e.g. ``2025-01-01T12:00:00Z``."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def is_expired(expires_at: datetime | None, *, now: datetime | None = None) -> bool:
    """True when ``expires_at`` is set and lies strictly before ``now``.

    Aware datetimes are normalised to naive UTC before comparison.
    """
    if expires_at is None:
        return False
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(UTC).replace(tzinfo=None)
    return expires_at < (now or utcnow())
