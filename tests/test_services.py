from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from errors import InvalidParameters
from models import (
    CategoryKind,
    CategoryPriority,
    PaymentMethod,
    SavedCalculation,
    Transaction,
    TransactionType,
    User,
)
from periods import Period
from schemas import (
    CalculatorRunIn,
    CategoryIn,
    CategoryUpdateIn,
    TransactionIn,
    TransactionUpdateIn,
)
from services import (
    DEFAULT_CATEGORIES,
    CalculatorService,
    CategoryService,
    ReportService,
    TransactionFilters,
    TransactionService,
)

UTC = timezone.utc


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _user(session: Session, email: str = "ana@example.com") -> User:
    user = User(name="Ana", email=email, password_hash="x")
    session.add(user)
    session.commit()
    return user


def _expense(
    amount: int, when: datetime, category_id=None, description=None, tag=None
) -> TransactionIn:
    return TransactionIn(
        type=TransactionType.expense,
        amount_cents=amount,
        date=when,
        category_id=category_id,
        description=description,
        method=PaymentMethod.card,
        tag=tag,
    )


def test_list_all_backfills_default_categories() -> None:
    with _session() as session:
        user = _user(session)
        service = CategoryService(session, user.id)

        assert service.list_all(backfill=False) == []
        categories = service.list_all()

        assert len(categories) == len(DEFAULT_CATEGORIES)
        assert {c.kind for c in categories} == {
            CategoryKind.domestic,
            CategoryKind.commercial,
        }
        # A second call does not seed again.
        assert len(service.list_all()) == len(DEFAULT_CATEGORIES)


def test_category_update_can_clear_budget() -> None:
    with _session() as session:
        user = _user(session)
        service = CategoryService(session, user.id)
        category = service.create(
            CategoryIn(
                name="Food",
                kind=CategoryKind.domestic,
                priority=CategoryPriority.essential,
                monthly_budget_cents=50000,
            )
        )

        updated = service.update(
            category.id, CategoryUpdateIn(name=" Groceries ", monthly_budget_cents=None)
        )

        assert updated.name == "Groceries"
        assert updated.monthly_budget_cents is None
        assert updated.priority == CategoryPriority.essential


def test_categories_are_scoped_to_their_owner() -> None:
    with _session() as session:
        ana = _user(session)
        bia = _user(session, "bia@example.com")
        category = CategoryService(session, ana.id).create(
            CategoryIn(
                name="Food",
                kind=CategoryKind.domestic,
                priority=CategoryPriority.essential,
            )
        )

        with pytest.raises(ValueError, match="not found"):
            CategoryService(session, bia.id).delete(category.id)
        with pytest.raises(ValueError, match="Invalid category"):
            TransactionService(session, bia.id).create(
                _expense(100, datetime(2026, 3, 1, tzinfo=UTC), category.id)
            )


def test_deleting_category_keeps_transactions_uncategorized() -> None:
    with _session() as session:
        user = _user(session)
        category = CategoryService(session, user.id).create(
            CategoryIn(
                name="Food",
                kind=CategoryKind.domestic,
                priority=CategoryPriority.essential,
            )
        )
        txn = TransactionService(session, user.id).create(
            _expense(2500, datetime(2026, 3, 3, 12, 0, tzinfo=UTC), category.id)
        )

        CategoryService(session, user.id).delete(category.id)

        session.expire_all()
        remaining = session.get(Transaction, txn.id)
        assert remaining is not None
        assert remaining.category_id is None


def test_transaction_dates_are_stored_as_naive_utc() -> None:
    with _session() as session:
        user = _user(session)
        local = datetime(2026, 2, 28, 22, 30, tzinfo=timezone(timedelta(hours=-3)))

        txn = TransactionService(session, user.id).create(_expense(100, local))

        assert txn.date == datetime(2026, 3, 1, 1, 30)


def test_transaction_query_matches_description_or_tag() -> None:
    with _session() as session:
        user = _user(session)
        service = TransactionService(session, user.id)
        when = datetime(2026, 3, 3, tzinfo=UTC)
        service.create(_expense(100, when, description="Weekly GROCERIES"))
        service.create(_expense(200, when, description="Cinema", tag="groceries-run"))
        service.create(_expense(300, when, description="Rent"))

        found = service.list(TransactionFilters(query="  groceries "))

        assert sorted(t.amount_cents for t in found) == [100, 200]
        assert len(service.list(TransactionFilters(query=""))) == 3


def test_transaction_filters_by_range_and_type() -> None:
    with _session() as session:
        user = _user(session)
        service = TransactionService(session, user.id)
        service.create(_expense(100, datetime(2026, 2, 28, 23, 59, tzinfo=UTC)))
        service.create(_expense(200, datetime(2026, 3, 1, 0, 0, tzinfo=UTC)))
        service.create(
            TransactionIn(
                type=TransactionType.income,
                amount_cents=900,
                date=datetime(2026, 3, 2, tzinfo=UTC),
                method=PaymentMethod.pix,
            )
        )

        march = service.between(
            datetime(2026, 3, 1, tzinfo=UTC), datetime(2026, 3, 31, 23, 59, tzinfo=UTC)
        )
        expenses = service.list(TransactionFilters(type=TransactionType.expense))

        assert [t.amount_cents for t in march] == [900, 200]
        assert sorted(t.amount_cents for t in expenses) == [100, 200]


def test_transaction_update_changes_only_given_fields() -> None:
    with _session() as session:
        user = _user(session)
        service = TransactionService(session, user.id)
        txn = service.create(
            _expense(100, datetime(2026, 3, 3, tzinfo=UTC), description="Lunch", tag="work")
        )

        updated = service.update(txn.id, TransactionUpdateIn(amount_cents=150, tag=None))

        assert updated.amount_cents == 150
        assert updated.description == "Lunch"
        assert updated.tag is None
        assert updated.method == PaymentMethod.card


def test_report_summary_totals_and_insights() -> None:
    with _session() as session:
        user = _user(session)
        food = CategoryService(session, user.id).create(
            CategoryIn(
                name="Food",
                kind=CategoryKind.domestic,
                priority=CategoryPriority.essential,
            )
        )
        txns = TransactionService(session, user.id)
        txns.create(_expense(10000, datetime(2026, 2, 10, tzinfo=UTC), food.id))
        txns.create(_expense(13000, datetime(2026, 3, 5, tzinfo=UTC), food.id))
        txns.create(
            TransactionIn(
                type=TransactionType.income,
                amount_cents=50000,
                date=datetime(2026, 3, 1, tzinfo=UTC),
                method=PaymentMethod.transfer,
            )
        )

        period = Period(
            datetime(2026, 3, 1, tzinfo=UTC),
            datetime(2026, 3, 31, 23, 59, 59, 999000, tzinfo=UTC),
        )
        summary = ReportService(session, user.id).summary(period, period.end)

        assert summary["totals"] == {
            "balance_cents": 37000,
            "income_cents": 50000,
            "expense_cents": 13000,
            "result_cents": 37000,
        }
        assert summary["period"]["from"] == "2026-03-01T00:00:00+00:00"
        assert [i["id"] for i in summary["insights"]] == ["cat_growth"]
        assert "Food rose 30%" in summary["insights"][0]["message"]


def test_report_export_lists_period_transactions() -> None:
    with _session() as session:
        user = _user(session)
        txns = TransactionService(session, user.id)
        txns.create(_expense(1999, datetime(2026, 3, 5, tzinfo=UTC), description="=SUM(A1)"))
        txns.create(_expense(500, datetime(2026, 4, 5, tzinfo=UTC)))

        period = Period(
            datetime(2026, 3, 1, tzinfo=UTC), datetime(2026, 3, 31, tzinfo=UTC)
        )
        lines = ReportService(session, user.id).export_csv(period).splitlines()

        assert lines[0] == "Date,Type,Amount,Category,Method,Description,Tag"
        assert lines[1] == "2026-03-05,expense,19.99,Uncategorized,card,\t=SUM(A1),"
        assert len(lines) == 2


def test_run_and_save_dedupes_on_canonical_params() -> None:
    with _session() as session:
        user = _user(session)
        service = CalculatorService(session, user.id)

        first = service.run_and_save(
            CalculatorRunIn(
                type="weekly_savings_goal",
                params={"targetCents": 100000, "weeks": 3},
                title="Trip",
            )
        )
        second = service.run_and_save(
            CalculatorRunIn(
                type="weekly_savings_goal",
                params={"weeks": 3, "targetCents": 100000},
                title="Summer trip",
            )
        )

        assert first["item"]["id"] == second["item"]["id"]
        assert second["item"]["title"] == "Summer trip"
        assert second["result"] == {"targetCents": 100000, "weeks": 3, "perWeekCents": 33334}
        assert len(second["items"]) == 1
        assert session.scalars(select(SavedCalculation)).all()[0].params_hash == (
            first["item"]["params_hash"]
        )


def test_run_and_save_keeps_distinct_params_apart() -> None:
    with _session() as session:
        user = _user(session)
        service = CalculatorService(session, user.id)
        for weeks in (2, 4, 8):
            service.run_and_save(
                CalculatorRunIn(
                    type="weekly_savings_goal",
                    params={"targetCents": 100000, "weeks": weeks},
                )
            )

        saved = service.list_saved()
        assert len(saved) == 3
        assert len(service.list_saved(limit=2)) == 2


def test_run_and_save_persists_nothing_on_error() -> None:
    with _session() as session:
        user = _user(session)
        service = CalculatorService(session, user.id)

        with pytest.raises(InvalidParameters):
            service.run_and_save(
                CalculatorRunIn(type="emergency_fund", params={"months": 6})
            )

        assert service.list_saved() == []


def test_delete_saved_calculation() -> None:
    with _session() as session:
        ana = _user(session)
        bia = _user(session, "bia@example.com")
        saved = CalculatorService(session, ana.id).run_and_save(
            CalculatorRunIn(
                type="emergency_fund", params={"monthlyExpensesCents": 100, "months": 3}
            )
        )

        with pytest.raises(ValueError, match="not found"):
            CalculatorService(session, bia.id).delete_saved(saved["item"]["id"])
        CalculatorService(session, ana.id).delete_saved(saved["item"]["id"])

        assert CalculatorService(session, ana.id).list_saved() == []


def test_run_and_save_treats_integral_floats_as_the_same_params() -> None:
    with _session() as session:
        user = _user(session)
        service = CalculatorService(session, user.id)

        first = service.run_and_save(
            CalculatorRunIn(type="weekly_savings_goal", params={"targetCents": 1000, "weeks": 4})
        )
        second = service.run_and_save(
            CalculatorRunIn(
                type="weekly_savings_goal", params={"targetCents": 1000.0, "weeks": 4.0}
            )
        )

        assert first["item"]["id"] == second["item"]["id"]
        assert len(service.list_saved()) == 1
