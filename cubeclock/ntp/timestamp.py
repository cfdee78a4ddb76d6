"""Conversion between 64-bit NTP timestamps and aware UTC datetimes.

NTP timestamp format (RFC 2030)::

     0                   1                   2                   3
     0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
    +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
    |                           Seconds                             |
    +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
    |                  Seconds Fraction (0-padded)                  |
    +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+

Following RFC 4330, a seconds field whose most significant bit is 0 is read
relative to 2036-02-07T06:28:16Z, so the codec covers 1968 through 2104.
Values outside that window wrap silently.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

BASE_ERA = datetime(1900, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
REVERSE_ERA = datetime(2036, 2, 7, 6, 28, 16, tzinfo=timezone.utc)

_FRACTION_SCALE = 1 << 32
_ERA_BIT = 0x8000_0000
_UINT32_MASK = 0xFFFF_FFFF
_UINT64_MASK = 0xFFFF_FFFF_FFFF_FFFF
_MICROS_PER_SECOND = 1_000_000


def utcnow() -> datetime:
    """Return the current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def to_datetime(raw: int) -> datetime:
    """Decode a raw 64-bit NTP timestamp into an aware UTC datetime.

    Negative integers are taken as two's-complement 64-bit values.
    """
    raw &= _UINT64_MASK
    seconds = raw >> 32
    fraction = raw & _UINT32_MASK
    origin = REVERSE_ERA if (seconds & _ERA_BIT) == 0 else BASE_ERA
    micros = (fraction * _MICROS_PER_SECOND + (_FRACTION_SCALE >> 1)) >> 32
    return origin + timedelta(seconds=seconds, microseconds=micros)


def from_datetime(instant: datetime) -> int:
    """Encode a datetime (naive values are treated as UTC) as a 64-bit NTP timestamp."""
    instant = _as_utc(instant)
    origin = REVERSE_ERA if instant >= REVERSE_ERA else BASE_ERA
    delta = instant - origin
    seconds = delta.days * 86_400 + delta.seconds
    fraction = ((delta.microseconds << 32) + _MICROS_PER_SECOND // 2) // _MICROS_PER_SECOND
    return ((seconds & _UINT32_MASK) << 32) | fraction


__all__ = [
    "BASE_ERA",
    "REVERSE_ERA",
    "from_datetime",
    "to_datetime",
    "utcnow",
]
