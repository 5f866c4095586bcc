from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Hashable, Iterable, Optional, Sequence

from periods import as_utc, end_of_month_utc, start_of_month_utc

GROWTH_ALERT_MIN_PCT = 10
GROWTH_WARNING_PCT = 20
UNCATEGORIZED_LABEL = "Uncategorized"
EXPENSE = "expense"


class InsightSeverity(str, Enum):
    info = "info"
    warning = "warning"


@dataclass(frozen=True)
class Insight:
    id: str
    title: str
    message: str
    severity: InsightSeverity
    type: str = "alert"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


def _id_order(category_id: Optional[Hashable]) -> tuple[bool, Any]:
    # Smallest id first, the uncategorized bucket (None) last.
    return (category_id is None, 0 if category_id is None else category_id)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _expense_totals(transactions: Iterable[Any]) -> dict[Optional[Hashable], int]:
    totals: dict[Optional[Hashable], int] = {}
    for txn in transactions:
        # Str enums and plain strings both compare equal here.
        if txn.type != EXPENSE:
            continue
        key = txn.category_id
        totals[key] = totals.get(key, 0) + txn.amount_cents
    return totals


def _growth_insight(
    this_month: dict[Optional[Hashable], int],
    last_month: dict[Optional[Hashable], int],
    names: dict[Hashable, str],
) -> Optional[Insight]:
    best_id: Optional[Hashable] = None
    best_pct: Optional[float] = None
    for category_id in sorted(this_month, key=_id_order):
        current = this_month[category_id]
        previous = last_month.get(category_id, 0)
        # New or vanished categories are not growth.
        if previous == 0 or current == 0:
            continue
        pct = (current - previous) / previous * 100
        if best_pct is None or pct > best_pct:
            best_id, best_pct = category_id, pct

    if best_pct is None or best_pct < GROWTH_ALERT_MIN_PCT:
        return None
    name = names.get(best_id, UNCATEGORIZED_LABEL)
    increase = _round_half_up(best_pct)
    return Insight(
        id="cat_growth",
        title="Spending change",
        message=f"Spending on {name} rose {increase}% compared to last month.",
        severity=(
            InsightSeverity.warning
            if increase >= GROWTH_WARNING_PCT
            else InsightSeverity.info
        ),
    )


def _budget_insight(
    categories: Sequence[Any], this_month: dict[Optional[Hashable], int]
) -> Optional[Insight]:
    worst_name: Optional[str] = None
    worst_pct: Optional[float] = None
    for category in sorted(categories, key=lambda c: _id_order(c.id)):
        budget = category.monthly_budget_cents
        if not budget or budget <= 0:
            continue
        spent = this_month.get(category.id, 0)
        if spent <= budget:
            continue
        over_pct = (spent - budget) / budget * 100
        if worst_pct is None or over_pct > worst_pct:
            worst_name, worst_pct = category.name, over_pct

    if worst_name is None:
        return None
    return Insight(
        id="budget_over",
        title="Monthly budget",
        message=f"You went over the {worst_name} budget this month.",
        severity=InsightSeverity.warning,
    )


def compute_insights(
    categories: Sequence[Any],
    transactions: Iterable[Any],
    now: datetime,
) -> list[Insight]:
    """
    Derive spending alerts for the month containing ``now``.

    Month cuts are taken in UTC so entries stored at 00:00Z on the first of the
    month are not lost. Categories and transactions are read through their
    attributes only; ORM rows and plain records both work.
    """
    start_this = start_of_month_utc(now, 0)
    start_last = start_of_month_utc(now, -1)
    end_last = end_of_month_utc(now, -1)

    this_month_txns = []
    last_month_txns = []
    for txn in transactions:
        when = as_utc(txn.date)
        if when >= start_this:
            this_month_txns.append(txn)
        elif start_last <= when <= end_last:
            last_month_txns.append(txn)

    this_by_category = _expense_totals(this_month_txns)
    last_by_category = _expense_totals(last_month_txns)
    names = {c.id: c.name for c in categories}

    insights: list[Insight] = []
    growth = _growth_insight(this_by_category, last_by_category, names)
    if growth:
        insights.append(growth)
    budget = _budget_insight(categories, this_by_category)
    if budget:
        insights.append(budget)
    return insights
