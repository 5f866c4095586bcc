from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from errors import InvalidParameters, UnknownCalculationType
from money import as_cents, ceil_div, trunc_div
from periods import (
    end_of_month_utc,
    parse_date_only_utc,
    parse_instant,
    start_of_day_utc,
)

MAX_DAYS_BASE = 31


class CalculationType(str, Enum):
    daily_limit_month = "daily_limit_month"
    weekly_savings_goal = "weekly_savings_goal"
    simulate_cut = "simulate_cut"
    emergency_fund = "emergency_fund"


@dataclass(frozen=True)
class CalculationResult:
    type: str
    result: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "result": dict(self.result)}


class _Params(BaseModel):
    """Parameter bag for one calculator; field names map to camelCase keys."""

    # Only the camelCase keys are accepted.
    model_config = ConfigDict(alias_generator=to_camel, extra="ignore")


class _Output(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def as_result(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _optional_text(value: object) -> Optional[str]:
    if value is None or value == "" or value is False:
        return None
    return str(value)


Cents = Annotated[Optional[int], BeforeValidator(as_cents)]
OptionalText = Annotated[Optional[str], BeforeValidator(_optional_text)]


class DailyLimitParams(_Params):
    limit_cents: Cents = None
    spent_cents: Cents = None
    days_base: Cents = None
    as_of_date: OptionalText = None
    as_of: OptionalText = None


class DailyLimitResult(_Output):
    limit_cents: int
    spent_cents: int
    remaining_cents: int
    days_left: int
    per_day_cents: int
    days_mode: str


class WeeklySavingsParams(_Params):
    target_cents: Cents = None
    weeks: Cents = None


class WeeklySavingsResult(_Output):
    target_cents: int
    weeks: int
    per_week_cents: int


class SimulateCutParams(_Params):
    current_monthly_cents: Cents = None
    cut_cents: Cents = None


class SimulateCutResult(_Output):
    current_monthly_cents: int
    cut_cents: int
    next_monthly_cents: int
    pct: Union[int, float]


class EmergencyFundParams(_Params):
    monthly_expenses_cents: Cents = None
    months: Cents = None


class EmergencyFundResult(_Output):
    monthly_expenses_cents: int
    months: int
    needed_cents: int


def _require_positive(value: Optional[int], message: str) -> int:
    if value is None or value <= 0:
        raise InvalidParameters(message)
    return value


def _reference_day(params: DailyLimitParams, now: Optional[datetime]) -> datetime:
    if params.as_of_date:
        return parse_date_only_utc(params.as_of_date)
    if params.as_of:
        return start_of_day_utc(parse_instant(params.as_of))
    return start_of_day_utc(now or datetime.now(timezone.utc))


def daily_limit_month(
    params: DailyLimitParams, now: Optional[datetime] = None
) -> DailyLimitResult:
    limit_cents = _require_positive(
        params.limit_cents, "Enter a valid monthly limit."
    )
    if params.spent_cents is None or params.spent_cents < 0:
        raise InvalidParameters("Enter a valid amount spent this month.")
    spent_cents = params.spent_cents

    start_day = _reference_day(params, now)
    end = end_of_month_utc(start_day)
    auto_days_left = max(1, (end - start_day) // timedelta(days=1) + 1)

    manual = params.days_base is not None and 1 <= params.days_base <= MAX_DAYS_BASE
    days_left = params.days_base if manual else auto_days_left
    remaining_cents = limit_cents - spent_cents
    return DailyLimitResult(
        limit_cents=limit_cents,
        spent_cents=spent_cents,
        remaining_cents=remaining_cents,
        days_left=days_left,
        # Over budget splits toward zero, not toward negative infinity.
        per_day_cents=trunc_div(remaining_cents, days_left),
        days_mode="manual" if manual else "auto",
    )


def weekly_savings_goal(
    params: WeeklySavingsParams, now: Optional[datetime] = None
) -> WeeklySavingsResult:
    target_cents = _require_positive(params.target_cents, "Enter a valid goal.")
    weeks = _require_positive(params.weeks, "Enter a valid number of weeks.")
    return WeeklySavingsResult(
        target_cents=target_cents,
        weeks=weeks,
        per_week_cents=ceil_div(target_cents, weeks),
    )


def simulate_cut(
    params: SimulateCutParams, now: Optional[datetime] = None
) -> SimulateCutResult:
    current = _require_positive(
        params.current_monthly_cents, "Enter a valid current monthly amount."
    )
    cut = _require_positive(params.cut_cents, "Enter a valid cut amount.")
    pct: Union[int, float] = min(100.0, max(0.0, cut / current * 100))
    if pct.is_integer():
        pct = int(pct)
    return SimulateCutResult(
        current_monthly_cents=current,
        cut_cents=cut,
        next_monthly_cents=max(0, current - cut),
        pct=pct,
    )


def emergency_fund(
    params: EmergencyFundParams, now: Optional[datetime] = None
) -> EmergencyFundResult:
    monthly = _require_positive(
        params.monthly_expenses_cents, "Enter a valid monthly expense amount."
    )
    months = _require_positive(params.months, "Enter the number of months.")
    return EmergencyFundResult(
        monthly_expenses_cents=monthly,
        months=months,
        needed_cents=monthly * months,
    )


_CALCULATORS: dict[
    CalculationType, tuple[type[_Params], Callable[..., _Output]]
] = {
    CalculationType.daily_limit_month: (DailyLimitParams, daily_limit_month),
    CalculationType.weekly_savings_goal: (WeeklySavingsParams, weekly_savings_goal),
    CalculationType.simulate_cut: (SimulateCutParams, simulate_cut),
    CalculationType.emergency_fund: (EmergencyFundParams, emergency_fund),
}


def calculation_types() -> list[str]:
    return [kind.value for kind in CalculationType]


def run_calculator(
    kind: str,
    params: Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
) -> CalculationResult:
    try:
        calc_type = CalculationType(kind)
    except ValueError as exc:
        raise UnknownCalculationType("Unknown calculation type.") from exc

    params_model, compute = _CALCULATORS[calc_type]
    if not isinstance(params, Mapping):
        raise InvalidParameters("Calculation parameters must be an object.")
    try:
        parsed = params_model.model_validate(dict(params))
    except ValidationError as exc:
        raise InvalidParameters("Invalid calculation parameters.") from exc

    output = compute(parsed, now)
    return CalculationResult(type=calc_type.value, result=output.as_result())
