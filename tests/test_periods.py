from datetime import datetime, timedelta, timezone

import pytest

from errors import MalformedDateInput
from periods import (
    end_of_month_utc,
    parse_date_only_utc,
    parse_instant,
    resolve_period,
    start_of_day_utc,
    start_of_month_utc,
)

UTC = timezone.utc


def test_month_boundaries_for_mid_february() -> None:
    now = datetime(2026, 2, 16, 15, 30, tzinfo=UTC)

    assert start_of_month_utc(now) == datetime(2026, 2, 1, tzinfo=UTC)
    assert end_of_month_utc(now) == datetime(
        2026, 2, 28, 23, 59, 59, 999000, tzinfo=UTC
    )
    assert start_of_month_utc(now, -1) == datetime(2026, 1, 1, tzinfo=UTC)
    assert end_of_month_utc(now, -1) == datetime(
        2026, 1, 31, 23, 59, 59, 999000, tzinfo=UTC
    )


def test_month_start_is_inclusive_at_midnight() -> None:
    midnight = datetime(2026, 3, 1, tzinfo=UTC)

    assert start_of_month_utc(midnight) == midnight
    assert midnight > end_of_month_utc(midnight, -1)


def test_month_offsets_roll_over_years() -> None:
    december = datetime(2025, 12, 20, tzinfo=UTC)
    january = datetime(2026, 1, 5, tzinfo=UTC)

    assert start_of_month_utc(december, 1) == datetime(2026, 1, 1, tzinfo=UTC)
    assert start_of_month_utc(january, -1) == datetime(2025, 12, 1, tzinfo=UTC)
    assert start_of_month_utc(january, -13) == datetime(2024, 12, 1, tzinfo=UTC)


def test_leap_year_february_ends_on_the_29th() -> None:
    end = end_of_month_utc(datetime(2024, 2, 10, tzinfo=UTC))
    assert (end.month, end.day) == (2, 29)


def test_naive_values_are_read_as_utc() -> None:
    naive = datetime(2026, 2, 1, 0, 0)
    assert start_of_month_utc(naive) == datetime(2026, 2, 1, tzinfo=UTC)


def test_offset_aware_values_are_converted_before_cutting() -> None:
    # 23:30 on Jan 31 in UTC-3 is already February in UTC.
    local = datetime(2026, 1, 31, 23, 30, tzinfo=timezone(timedelta(hours=-3)))
    assert start_of_month_utc(local) == datetime(2026, 2, 1, tzinfo=UTC)


def test_parse_date_only() -> None:
    assert parse_date_only_utc("2026-02-16") == datetime(2026, 2, 16, tzinfo=UTC)
    assert parse_date_only_utc(" 2024-02-29 ") == datetime(2024, 2, 29, tzinfo=UTC)


@pytest.mark.parametrize("text", ["2026-02-30", "2026-13-01", "16/02/2026", "2026-2-1", ""])
def test_parse_date_only_rejects_malformed_input(text: str) -> None:
    with pytest.raises(MalformedDateInput):
        parse_date_only_utc(text)


def test_parse_instant_accepts_zulu_suffix() -> None:
    assert parse_instant("2026-02-16T10:15:00Z") == datetime(
        2026, 2, 16, 10, 15, tzinfo=UTC
    )
    with pytest.raises(MalformedDateInput):
        parse_instant("yesterday")


def test_start_of_day() -> None:
    value = datetime(2026, 2, 16, 22, 45, 10, tzinfo=UTC)
    assert start_of_day_utc(value) == datetime(2026, 2, 16, tzinfo=UTC)


def test_resolve_period_defaults_to_current_month() -> None:
    period = resolve_period(None, None, now=datetime(2026, 2, 16, tzinfo=UTC))

    assert period.start == datetime(2026, 2, 1, tzinfo=UTC)
    assert period.end == end_of_month_utc(datetime(2026, 2, 1, tzinfo=UTC))


def test_resolve_period_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        resolve_period("2026-03-01", "2026-02-01")
