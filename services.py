from __future__ import annotations

import json
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session, joinedload

from calculator import CalculationResult, run_calculator
from canonical import canonical_string, fingerprint
from config import Settings, get_settings
from csv_utils import export_transactions
from insights import compute_insights
from mailer import Mailer
from models import (
    Category,
    CategoryKind,
    CategoryPriority,
    ResetPasswordToken,
    SavedCalculation,
    Transaction,
    TransactionType,
    User,
    utcnow,
)
from periods import Period, as_utc, start_of_month_utc
from schemas import (
    CalculatorRunIn,
    CategoryIn,
    CategoryUpdateIn,
    LoginIn,
    RegisterIn,
    TransactionIn,
    TransactionUpdateIn,
)
from search import matches_query
from security import (
    FixedWindowRateLimiter,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_password,
)

logger = logging.getLogger(__name__)

SAVED_CALCULATIONS_LIMIT = 12

DEFAULT_CATEGORIES: list[tuple[str, CategoryKind, CategoryPriority]] = [
    ("Housing", CategoryKind.domestic, CategoryPriority.essential),
    ("Food", CategoryKind.domestic, CategoryPriority.essential),
    ("Transport", CategoryKind.domestic, CategoryPriority.essential),
    ("Health", CategoryKind.domestic, CategoryPriority.essential),
    ("Education", CategoryKind.domestic, CategoryPriority.important),
    ("Leisure", CategoryKind.domestic, CategoryPriority.cuttable),
    ("Bills", CategoryKind.domestic, CategoryPriority.essential),
    ("Subscriptions", CategoryKind.domestic, CategoryPriority.important),
    ("Unexpected", CategoryKind.domestic, CategoryPriority.essential),
    ("Suppliers", CategoryKind.commercial, CategoryPriority.essential),
    ("Marketing", CategoryKind.commercial, CategoryPriority.important),
    ("Operations", CategoryKind.commercial, CategoryPriority.essential),
    ("Taxes", CategoryKind.commercial, CategoryPriority.essential),
    ("Tools", CategoryKind.commercial, CategoryPriority.important),
    ("Transport (Business)", CategoryKind.commercial, CategoryPriority.important),
    ("Owner's Draw", CategoryKind.commercial, CategoryPriority.essential),
    ("Inventory", CategoryKind.commercial, CategoryPriority.essential),
    ("Services", CategoryKind.commercial, CategoryPriority.essential),
]


class EmailAlreadyRegistered(ValueError):
    pass


class InvalidCredentials(ValueError):
    pass


class InvalidResetToken(ValueError):
    pass


def to_naive_utc(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


@dataclass
class TransactionFilters:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    query: Optional[str] = None


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _query_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name.asc(), Category.id.asc())
        )
        return list(self.session.scalars(stmt).all())

    def list_all(self, *, backfill: bool = True) -> list[Category]:
        items = self._query_all()
        # Older accounts may have no categories at all.
        if items or not backfill:
            return items
        self.seed_defaults()
        self.session.commit()
        return self._query_all()

    def seed_defaults(self) -> None:
        self.session.add_all(
            Category(user_id=self.user_id, name=name, kind=kind, priority=priority)
            for name, kind, priority in DEFAULT_CATEGORIES
        )
        self.session.flush()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            kind=data.kind,
            priority=data.priority,
            monthly_budget_cents=data.monthly_budget_cents,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdateIn) -> Category:
        category = self.get(category_id)
        changes = data.model_dump(exclude_unset=True)
        for field in ("name", "kind", "priority"):
            value = changes.get(field)
            if value is not None:
                setattr(category, field, value.strip() if field == "name" else value)
        if "monthly_budget_cents" in changes:
            category.monthly_budget_cents = changes["monthly_budget_cents"]
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        # Transactions stay; their category_id is cleared.
        self.session.delete(category)
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Invalid category")

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.start:
            stmt = stmt.where(Transaction.date >= to_naive_utc(filters.start))
        if filters.end:
            stmt = stmt.where(Transaction.date <= to_naive_utc(filters.end))
        items = list(self.session.scalars(stmt).all())

        # Text search runs in memory so every backend gets the same
        # case-insensitive semantics.
        if filters.query and filters.query.strip():
            items = [
                txn
                for txn in items
                if matches_query(txn.description, filters.query)
                or matches_query(txn.tag, filters.query)
            ]
        return items

    def between(self, start: datetime, end: datetime) -> list[Transaction]:
        return self.list(TransactionFilters(start=start, end=end))

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise ValueError("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        self._check_category(data.category_id)
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount_cents=data.amount_cents,
            date=to_naive_utc(data.date),
            category_id=data.category_id,
            description=data.description,
            method=data.method,
            tag=data.tag,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionUpdateIn) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("category_id") is not None:
            self._check_category(changes["category_id"])

        for field in ("type", "amount_cents", "method"):
            if changes.get(field) is not None:
                setattr(txn, field, changes[field])
        if changes.get("date") is not None:
            txn.date = to_naive_utc(changes["date"])
        for field in ("category_id", "description", "tag"):
            if field in changes:
                setattr(txn, field, changes[field])

        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class ReportService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.transactions = TransactionService(session, user_id)
        self.categories = CategoryService(session, user_id)

    def summary(self, period: Period, reference: datetime) -> dict[str, Any]:
        """
        Totals for ``period`` plus spending insights around ``reference``.

        Insights compare the reference month with the one before it, so they
        are computed over a wider window than the totals.
        """
        period_txns = self.transactions.between(period.start, period.end)
        income = sum(
            t.amount_cents for t in period_txns if t.type == TransactionType.income
        )
        expense = sum(
            t.amount_cents for t in period_txns if t.type == TransactionType.expense
        )
        result = income - expense

        insight_txns = self.transactions.between(
            start_of_month_utc(reference, -1), period.end
        )
        insights = compute_insights(
            self.categories.list_all(backfill=False), insight_txns, reference
        )
        return {
            "period": {
                "from": period.start.isoformat(),
                "to": period.end.isoformat(),
            },
            "totals": {
                "balance_cents": result,
                "income_cents": income,
                "expense_cents": expense,
                "result_cents": result,
            },
            "insights": [insight.to_dict() for insight in insights],
        }

    def export_csv(self, period: Period) -> str:
        return export_transactions(self.transactions.between(period.start, period.end))


def saved_calculation_to_dict(item: SavedCalculation) -> dict[str, Any]:
    return {
        "id": item.id,
        "type": item.type,
        "title": item.title,
        "params_hash": item.params_hash,
        "params": json.loads(item.params_json or "{}"),
        "result": json.loads(item.result_json or "{}"),
        "created_at": item.created_at.isoformat(),
        "updated_at": item.updated_at.isoformat(),
    }


class CalculatorService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def run(
        calc_type: str, params: dict[str, Any], *, now: Optional[datetime] = None
    ) -> CalculationResult:
        return run_calculator(calc_type, params, now=now)

    def list_saved(self, limit: int = SAVED_CALCULATIONS_LIMIT) -> list[SavedCalculation]:
        stmt = (
            select(SavedCalculation)
            .where(SavedCalculation.user_id == self.user_id)
            .order_by(SavedCalculation.updated_at.desc(), SavedCalculation.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def run_and_save(
        self, data: CalculatorRunIn, *, now: Optional[datetime] = None
    ) -> dict[str, Any]:
        # Fails before anything is written.
        calculation = self.run(data.type, data.params, now=now)
        params_hash = fingerprint(data.params)
        params_json = canonical_string(data.params)
        result_json = canonical_string(calculation.result)

        existing = self.session.scalar(
            select(SavedCalculation).where(
                SavedCalculation.user_id == self.user_id,
                SavedCalculation.type == calculation.type,
                SavedCalculation.params_hash == params_hash,
            )
        )
        if existing:
            existing.title = data.title
            existing.params_json = params_json
            existing.result_json = result_json
            existing.updated_at = utcnow()
            item = existing
            logger.info(f"calculation_saved: type={calculation.type} mode=update")
        else:
            item = SavedCalculation(
                user_id=self.user_id,
                type=calculation.type,
                title=data.title,
                params_hash=params_hash,
                params_json=params_json,
                result_json=result_json,
            )
            self.session.add(item)
            logger.info(f"calculation_saved: type={calculation.type} mode=insert")
        self.session.commit()
        self.session.refresh(item)

        return {
            "item": saved_calculation_to_dict(item),
            "items": [saved_calculation_to_dict(i) for i in self.list_saved()],
            "result": calculation.result,
        }

    def delete_saved(self, calculation_id: int) -> None:
        item = self.session.get(SavedCalculation, calculation_id)
        if not item or item.user_id != self.user_id:
            raise ValueError("Calculation not found")
        self.session.delete(item)
        self.session.commit()


class AuthService:
    def __init__(
        self,
        session: Session,
        *,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        mailer: Optional[Mailer] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.rate_limiter = rate_limiter
        self.settings = settings or get_settings()
        self.mailer = mailer or Mailer(self.settings)

    @staticmethod
    def _normalize_email(email: str) -> str:
        return email.strip().lower()

    def _by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(
            select(User).where(User.email == self._normalize_email(email))
        )

    def get_user(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def register(self, data: RegisterIn) -> User:
        if self._by_email(data.email):
            raise EmailAlreadyRegistered("Email already registered.")
        user = User(
            name=data.name.strip(),
            email=self._normalize_email(data.email),
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        self.session.flush()
        CategoryService(self.session, user.id).seed_defaults()
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"register: user_id={user.id}")
        return user

    def authenticate(self, data: LoginIn) -> User:
        user = self._by_email(data.email)
        if not user or not verify_password(data.password, user.password_hash):
            raise InvalidCredentials("Invalid email or password.")
        return user

    def request_password_reset(
        self, email: str, client_ip: str, *, now: Optional[datetime] = None
    ) -> None:
        """
        Issue a reset link when the address is known.

        Callers always answer with the same generic message, so nothing here
        reveals whether the account exists.
        """
        email = self._normalize_email(email)
        if self.rate_limiter and not self.rate_limiter.allow(f"{client_ip}|{email}"):
            logger.info("forgot_password: rate_limited")
            return

        user = self._by_email(email)
        if not user:
            return

        now = to_naive_utc(now or datetime.now(timezone.utc))
        token, token_hash = generate_reset_token()
        self.session.add(
            ResetPasswordToken(
                user_id=user.id,
                token_hash=token_hash,
                expires_at=now
                + timedelta(minutes=self.settings.reset_token_ttl_minutes),
            )
        )
        self.session.commit()

        app_url = self.settings.app_url.rstrip("/")
        reset_link = f"{app_url}/reset-password?token={quote(token, safe='')}"
        try:
            self.mailer.send_reset_password_email(user.email, user.name, reset_link)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning(f"forgot_password: email_failed error={exc}")

    def reset_password(
        self, token: str, password: str, *, now: Optional[datetime] = None
    ) -> None:
        now = to_naive_utc(now or datetime.now(timezone.utc))
        record = self.session.scalar(
            select(ResetPasswordToken).where(
                ResetPasswordToken.token_hash == hash_reset_token(token.strip())
            )
        )
        if not record or record.used_at is not None or record.expires_at <= now:
            raise InvalidResetToken("Invalid or expired token. Request a new link.")

        user = self.session.get(User, record.user_id)
        if not user:
            raise InvalidResetToken("Invalid or expired token. Request a new link.")
        user.password_hash = hash_password(password)
        record.used_at = now
        self.session.commit()
        logger.info(f"reset_password: user_id={user.id}")

    def purge_expired_reset_tokens(self, *, now: Optional[datetime] = None) -> int:
        now = to_naive_utc(now or datetime.now(timezone.utc))
        result = self.session.execute(
            delete(ResetPasswordToken).where(
                or_(
                    ResetPasswordToken.expires_at <= now,
                    ResetPasswordToken.used_at.is_not(None),
                )
            )
        )
        self.session.commit()
        return int(result.rowcount or 0)
