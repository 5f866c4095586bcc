import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        session_secret: str,
        session_max_age_days: int,
        app_url: str,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_pass: str,
        mail_from: str,
        reset_token_ttl_minutes: int,
        forgot_password_max_attempts: int,
        forgot_password_window_minutes: int,
    ) -> None:
        self.database_url = database_url
        self.session_secret = session_secret
        self.session_max_age_days = session_max_age_days
        self.app_url = app_url
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.mail_from = mail_from
        self.reset_token_ttl_minutes = reset_token_ttl_minutes
        self.forgot_password_max_attempts = forgot_password_max_attempts
        self.forgot_password_window_minutes = forgot_password_window_minutes


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    session_secret = os.getenv(
        "FINANCE_SESSION_SECRET",
        "5d1c0b7e2f9a48b3a6e4c8d17f03b2a9e6c5d4f3a2b1908e7d6c5b4a39281706",
    )
    return Settings(
        database_url=database_url,
        session_secret=session_secret,
        session_max_age_days=int(os.getenv("FINANCE_SESSION_MAX_AGE_DAYS", "7")),
        app_url=os.getenv("FINANCE_APP_URL", "http://localhost:5173"),
        smtp_host=os.getenv("FINANCE_SMTP_HOST", ""),
        smtp_port=int(os.getenv("FINANCE_SMTP_PORT", "587")),
        smtp_user=os.getenv("FINANCE_SMTP_USER", ""),
        smtp_pass=os.getenv("FINANCE_SMTP_PASS", ""),
        mail_from=os.getenv("FINANCE_MAIL_FROM", ""),
        reset_token_ttl_minutes=int(
            os.getenv("FINANCE_RESET_TOKEN_TTL_MINUTES", "60")
        ),
        forgot_password_max_attempts=int(
            os.getenv("FINANCE_FORGOT_PASSWORD_MAX_ATTEMPTS", "5")
        ),
        forgot_password_window_minutes=int(
            os.getenv("FINANCE_FORGOT_PASSWORD_WINDOW_MINUTES", "15")
        ),
    )
