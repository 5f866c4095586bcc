import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from errors import MalformedDateInput

_DATE_ONLY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_LAST_MILLISECOND = timedelta(milliseconds=1)


@dataclass(frozen=True)
class Period:
    start: datetime
    end: datetime


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + offset
    shifted_year, shifted_month = divmod(total, 12)
    return shifted_year, shifted_month + 1


def start_of_month_utc(now: datetime, offset_months: int = 0) -> datetime:
    now = as_utc(now)
    year, month = _shift_month(now.year, now.month, offset_months)
    return datetime(year, month, 1, tzinfo=timezone.utc)


def end_of_month_utc(now: datetime, offset_months: int = 0) -> datetime:
    return start_of_month_utc(now, offset_months + 1) - _LAST_MILLISECOND


def month_start_utc(now: datetime) -> datetime:
    return start_of_month_utc(now, 0)


def month_end_utc(now: datetime) -> datetime:
    return end_of_month_utc(now, 0)


def start_of_day_utc(value: datetime) -> datetime:
    value = as_utc(value)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def parse_date_only_utc(text: str) -> datetime:
    match = _DATE_ONLY.match(str(text).strip())
    if not match:
        raise MalformedDateInput("Invalid reference date.")
    try:
        parsed = date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError as exc:
        raise MalformedDateInput("Invalid reference date.") from exc
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)


def parse_instant(value: object) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value).strip()
    if _DATE_ONLY.match(text):
        return parse_date_only_utc(text)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise MalformedDateInput("Invalid reference date.") from exc


def resolve_period(
    start: Optional[str],
    end: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> Period:
    now = as_utc(now or datetime.now(timezone.utc))
    start_at = parse_instant(start) if start else month_start_utc(now)
    # Without an explicit end the whole month counts, future-dated entries included.
    end_at = parse_instant(end) if end else month_end_utc(now)
    if start_at > end_at:
        raise ValueError("Start date must be before end date")
    return Period(start_at, end_at)
