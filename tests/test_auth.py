from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import Category, ResetPasswordToken
from schemas import LoginIn, RegisterIn
from security import FixedWindowRateLimiter
from services import (
    DEFAULT_CATEGORIES,
    AuthService,
    EmailAlreadyRegistered,
    InvalidCredentials,
    InvalidResetToken,
)


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send_reset_password_email(self, to_email, name, reset_link) -> bool:
        self.sent.append((to_email, name, reset_link))
        return True


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _token_from(link: str) -> str:
    return parse_qs(urlparse(link).query)["token"][0]


def _register(service: AuthService, email: str = "Ana@Example.com") -> None:
    service.register(RegisterIn(name="Ana Lima", email=email, password="secret123"))


def test_register_normalizes_email_and_seeds_categories() -> None:
    with _session() as session:
        service = AuthService(session, mailer=FakeMailer())
        user = service.register(
            RegisterIn(name="Ana Lima", email="Ana@Example.com", password="secret123")
        )

        assert user.email == "ana@example.com"
        assert user.password_hash != "secret123"
        categories = session.scalars(
            select(Category).where(Category.user_id == user.id)
        ).all()
        assert len(categories) == len(DEFAULT_CATEGORIES)


def test_register_rejects_duplicate_email() -> None:
    with _session() as session:
        service = AuthService(session, mailer=FakeMailer())
        _register(service)

        with pytest.raises(EmailAlreadyRegistered):
            _register(service, "ana@example.com")


def test_authenticate() -> None:
    with _session() as session:
        service = AuthService(session, mailer=FakeMailer())
        _register(service)

        user = service.authenticate(LoginIn(email="ANA@example.com", password="secret123"))
        assert user.name == "Ana Lima"

        with pytest.raises(InvalidCredentials):
            service.authenticate(LoginIn(email="ana@example.com", password="nope"))
        with pytest.raises(InvalidCredentials):
            service.authenticate(LoginIn(email="bia@example.com", password="secret123"))


def test_password_reset_flow() -> None:
    with _session() as session:
        mailer = FakeMailer()
        service = AuthService(session, mailer=mailer)
        _register(service)

        service.request_password_reset("ana@example.com", "127.0.0.1")

        assert len(mailer.sent) == 1
        to_email, name, link = mailer.sent[0]
        assert to_email == "ana@example.com"
        assert name == "Ana Lima"
        assert "/reset-password?token=" in link
        token = _token_from(link)

        stored = session.scalars(select(ResetPasswordToken)).one()
        assert stored.token_hash != token

        service.reset_password(token, "new-secret-1")
        assert service.authenticate(LoginIn(email="ana@example.com", password="new-secret-1"))

        # Single use.
        with pytest.raises(InvalidResetToken):
            service.reset_password(token, "another-secret")


def test_reset_token_expires() -> None:
    with _session() as session:
        mailer = FakeMailer()
        service = AuthService(session, mailer=mailer)
        _register(service)
        issued = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

        service.request_password_reset("ana@example.com", "127.0.0.1", now=issued)
        token = _token_from(mailer.sent[0][2])

        with pytest.raises(InvalidResetToken):
            service.reset_password(token, "new-secret-1", now=issued + timedelta(minutes=61))
        with pytest.raises(InvalidResetToken):
            service.reset_password("0" * 64, "new-secret-1", now=issued)


def test_unknown_email_is_silent() -> None:
    with _session() as session:
        mailer = FakeMailer()
        service = AuthService(session, mailer=mailer)

        service.request_password_reset("ghost@example.com", "127.0.0.1")

        assert mailer.sent == []
        assert session.scalars(select(ResetPasswordToken)).all() == []


def test_password_reset_requests_are_rate_limited_per_ip_and_email() -> None:
    with _session() as session:
        mailer = FakeMailer()
        limiter = FixedWindowRateLimiter(max_attempts=2, window_seconds=900)
        service = AuthService(session, rate_limiter=limiter, mailer=mailer)
        _register(service)

        for _ in range(4):
            service.request_password_reset("ana@example.com", "10.0.0.1")
        service.request_password_reset("ana@example.com", "10.0.0.2")

        assert len(mailer.sent) == 3


def test_purge_removes_used_and_expired_tokens() -> None:
    with _session() as session:
        mailer = FakeMailer()
        service = AuthService(session, mailer=mailer)
        _register(service)
        issued = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

        service.request_password_reset("ana@example.com", "ip", now=issued)
        service.request_password_reset("ana@example.com", "ip", now=issued)
        service.reset_password(_token_from(mailer.sent[0][2]), "new-secret-1", now=issued)

        assert service.purge_expired_reset_tokens(now=issued) == 1
        assert service.purge_expired_reset_tokens(now=issued + timedelta(hours=2)) == 1
        assert session.scalars(select(ResetPasswordToken)).all() == []
