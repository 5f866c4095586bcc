import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session, sessionmaker

from database import session_scope
from security import FixedWindowRateLimiter
from services import AuthService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(
        self,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        session_factory: Optional[sessionmaker[Session]] = None,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.session_factory = session_factory
        self.scheduler = BackgroundScheduler(timezone="UTC")

    def _run_job(self, source: str = "manual") -> None:
        with session_scope(self.session_factory) as session:
            tokens = AuthService(session).purge_expired_reset_tokens()
        windows = self.rate_limiter.purge_expired() if self.rate_limiter else 0
        logger.info(
            f"cleanup_run: source={source} reset_tokens={tokens} rate_windows={windows}"
        )

    def start(self) -> None:
        self._run_job("startup")

        self.scheduler.add_job(
            self._run_job,
            IntervalTrigger(hours=1),
            args=["hourly"],
            id="auth_cleanup_hourly",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with hourly auth cleanup")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
