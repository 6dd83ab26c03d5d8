"""ISO-8601 timestamp helpers shared by the store, parser and services."""

from __future__ import annotations

from datetime import datetime, timezone


def to_iso(moment: datetime) -> str:
    """Format *moment* as UTC ISO-8601 with millisecond precision and ``Z`` suffix."""
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def now_iso() -> str:
    """Return the current UTC time, e.g. ``2026-01-01T10:00:00.000Z``."""
    return to_iso(datetime.now(timezone.utc))


def epoch_to_iso(seconds: float) -> str:
    """Convert epoch seconds (possibly fractional) to an ISO-8601 UTC string."""
    return to_iso(datetime.fromtimestamp(seconds, tz=timezone.utc))
