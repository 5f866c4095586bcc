import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import bcrypt
from itsdangerous import BadSignature, URLSafeTimedSerializer

from canonical import sha256_hex
from config import get_settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="session")


def create_session_token(user_id: int, email: str, name: str) -> str:
    return _serializer().dumps({"sub": user_id, "email": email, "name": name})


def read_session_token(token: str) -> Optional[dict]:
    max_age = get_settings().session_max_age_days * 24 * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return None
    if not isinstance(data, dict) or not data.get("sub"):
        return None
    return data


def hash_reset_token(token: str) -> str:
    return sha256_hex(token)


def generate_reset_token() -> tuple[str, str]:
    token = secrets.token_hex(32)
    return token, hash_reset_token(token)


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """
    Counts attempts per key inside fixed windows that expire on their own.

    Lives on app.state so tests can swap or clear it.
    """

    def __init__(
        self,
        max_attempts: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._window_seconds = max(1.0, float(window_seconds))
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.reset_at <= now:
                self._windows[key] = _Window(1, now + self._window_seconds)
                return True
            if window.count >= self._max_attempts:
                return False
            window.count += 1
            return True

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, w in self._windows.items() if w.reset_at <= now]
            for key in expired:
                del self._windows[key]
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def build_reset_rate_limiter() -> FixedWindowRateLimiter:
    settings = get_settings()
    return FixedWindowRateLimiter(
        max_attempts=settings.forgot_password_max_attempts,
        window_seconds=settings.forgot_password_window_minutes * 60,
    )
