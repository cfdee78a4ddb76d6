"""Tests for the 64-bit NTP timestamp codec."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cubeclock.ntp.timestamp import BASE_ERA, REVERSE_ERA, from_datetime, to_datetime
from tests.conftest import get_test_logger

logger = get_test_logger(__name__)
logger.info("Starting tests for timestamp codec")

UNIX_EPOCH_SECONDS = 0x83AA_7E80  # 2208988800 seconds between 1900 and 1970


def test_zero_decodes_to_reverse_era() -> None:
    assert to_datetime(0) == REVERSE_ERA
    assert to_datetime(0).tzinfo is not None


def test_top_bit_selects_1900_era() -> None:
    assert to_datetime(0x8000_0000 << 32) == datetime(1968, 1, 20, 3, 14, 8, tzinfo=timezone.utc)
    assert to_datetime(0xFFFF_FFFF << 32) == datetime(2036, 2, 7, 6, 28, 15, tzinfo=timezone.utc)


def test_unix_epoch_with_half_second_fraction() -> None:
    raw = (UNIX_EPOCH_SECONDS << 32) | 0x8000_0000
    assert to_datetime(raw) == datetime(1970, 1, 1, 0, 0, 0, 500000, tzinfo=timezone.utc)


def test_negative_values_are_read_as_unsigned() -> None:
    assert to_datetime(-1) == to_datetime(0xFFFF_FFFF_FFFF_FFFF)
    assert to_datetime(-(1 << 63)) == to_datetime(0x8000_0000 << 32)


def test_encode_known_instants() -> None:
    assert from_datetime(datetime(1970, 1, 1, tzinfo=timezone.utc)) == UNIX_EPOCH_SECONDS << 32
    assert from_datetime(REVERSE_ERA) == 0
    assert from_datetime(REVERSE_ERA + timedelta(seconds=1)) == 1 << 32
    assert from_datetime(BASE_ERA + timedelta(seconds=0x8000_0000)) == 0x8000_0000 << 32


def test_naive_datetime_is_treated_as_utc() -> None:
    naive = datetime(2024, 5, 1, 8, 30, 0)
    assert from_datetime(naive) == from_datetime(naive.replace(tzinfo=timezone.utc))


def test_other_timezones_are_normalised() -> None:
    plus_two = timezone(timedelta(hours=2))
    local = datetime(2024, 5, 1, 10, 30, 0, tzinfo=plus_two)
    assert from_datetime(local) == from_datetime(datetime(2024, 5, 1, 8, 30, 0, tzinfo=timezone.utc))


@pytest.mark.parametrize(
    "instant",
    [
        datetime(1970, 1, 1, tzinfo=timezone.utc),
        datetime(1999, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc),
        datetime(2000, 1, 1, tzinfo=timezone.utc),
        datetime(2024, 2, 29, 23, 59, 59, 999999, tzinfo=timezone.utc),
        datetime(2036, 2, 7, 6, 28, 15, 999000, tzinfo=timezone.utc),
        datetime(2036, 2, 7, 6, 28, 16, tzinfo=timezone.utc),
        datetime(2104, 1, 1, tzinfo=timezone.utc),
    ],
)
def test_round_trip_across_eras(instant: datetime) -> None:
    logger.info("Round-tripping %s", instant.isoformat())
    assert to_datetime(from_datetime(instant)) == instant


def test_era_boundary_raw_values() -> None:
    last_base_second = datetime(2036, 2, 7, 6, 28, 15, tzinfo=timezone.utc)
    assert from_datetime(last_base_second) == 0xFFFF_FFFF << 32
    assert to_datetime(0xFFFF_FFFF << 32) == last_base_second
