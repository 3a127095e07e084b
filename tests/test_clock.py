from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from docstore.clock import (
    format_sortable_date,
    format_utc_timestamp,
    next_updated_at,
    parse_utc_timestamp,
)

NOW = datetime(2025, 9, 10, 12, 0, 0, 123456, tzinfo=timezone.utc)


def test_previous_behind_clock_uses_now() -> None:
    previous = NOW - timedelta(seconds=5)
    assert next_updated_at(previous, now=NOW) == NOW


def test_previous_ahead_of_clock_moves_forward_one_millisecond() -> None:
    previous = NOW + timedelta(hours=1)
    result = next_updated_at(previous, now=NOW)
    assert result == previous + timedelta(milliseconds=1)
    assert result > previous


def test_missing_previous_uses_now() -> None:
    assert next_updated_at(None, now=NOW) == NOW


def test_chained_calls_never_regress_with_a_slow_clock() -> None:
    value = NOW + timedelta(minutes=10)
    for _ in range(5):
        nxt = next_updated_at(value, now=NOW)
        assert nxt > value
        value = nxt


def test_real_clock_result_not_before_previous() -> None:
    previous = datetime.now(timezone.utc) - timedelta(seconds=1)
    assert next_updated_at(previous) >= previous


def test_naive_previous_treated_as_utc() -> None:
    previous = (NOW + timedelta(seconds=1)).replace(tzinfo=None)
    result = next_updated_at(previous, now=NOW)
    assert result == NOW + timedelta(seconds=1, milliseconds=1)
    assert result.tzinfo is not None


def test_format_utc_timestamp_has_seven_fraction_digits() -> None:
    assert format_utc_timestamp(NOW) == "2025-09-10T12:00:00.1234560Z"


def test_format_converts_to_utc() -> None:
    local = NOW.astimezone(timezone(timedelta(hours=8)))
    assert format_utc_timestamp(local) == "2025-09-10T12:00:00.1234560Z"


@pytest.mark.parametrize(
    "text",
    [
        "2025-09-10T12:00:00.1234560Z",
        "2025-09-10T12:00:00.123456+00:00",
        "2025-09-10T12:00:00.1234567Z",
    ],
)
def test_parse_utc_timestamp(text: str) -> None:
    assert parse_utc_timestamp(text) == NOW


def test_parse_without_fraction() -> None:
    assert parse_utc_timestamp("2025-09-10T12:00:00Z") == NOW.replace(microsecond=0)


def test_parse_blank_and_invalid() -> None:
    assert parse_utc_timestamp("") is None
    assert parse_utc_timestamp(None) is None
    with pytest.raises(ValueError):
        parse_utc_timestamp("10/09/2025")


def test_format_sortable_date() -> None:
    assert format_sortable_date(NOW) == "2025-09-10"
