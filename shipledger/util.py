"""
Small utilities shared by the ledger and the services.

This module intentionally avoids third-party dependencies.
"""

from __future__ import annotations

import os
import time
from datetime import datetime, timedelta, timezone


_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

# Smallest step datetime can represent; used to keep event timestamps strictly increasing.
TIMESTAMP_RESOLUTION = timedelta(microseconds=1)


def _encode_crockford_base32(value: int, length: int) -> str:
    chars: list[str] = []
    for _ in range(length):
        chars.append(_CROCKFORD32[value & 31])
        value >>= 5
    return "".join(reversed(chars))


def new_ulid(*, timestamp_ms: int | None = None) -> str:
    """
    Generate a ULID (26 chars, Crockford base32).

    ULID = 48-bit millisecond timestamp + 80-bit randomness.
    Shipment, event and document ids are all ULIDs.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)

    if not (0 <= timestamp_ms < (1 << 48)):
        raise ValueError("timestamp_ms out of range for ULID")

    randomness = int.from_bytes(os.urandom(10), "big")
    value = (timestamp_ms << 80) | randomness
    return _encode_crockford_base32(value, 26)


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def next_timestamp(previous: datetime | None, now: datetime) -> datetime:
    """
    Return a timestamp strictly after `previous`.

    Uses `now` unless the clock has not advanced (or went backwards),
    in which case the previous timestamp is bumped by one microsecond.
    """
    if previous is None or now > previous:
        return now
    return previous + TIMESTAMP_RESOLUTION


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
