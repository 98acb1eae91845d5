"""Retention sweeps for disposable guard records."""
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
import logging

from sqlalchemy import delete, func
from sqlalchemy.orm import Session, sessionmaker

from app.config.database import run_in_transaction
from app.config.settings import settings
from app.models.base import utcnow
from app.models.idempotency import IdempotencyKey
from app.models.rate_limit import RateLimitCounter

logger = logging.getLogger(__name__)


class RetentionService:
    def __init__(
        self,
        session_factory: sessionmaker,
        rate_limit_hours: Optional[int] = None,
        idempotency_days: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.rate_limit_hours = rate_limit_hours or settings.RATE_LIMIT_RETENTION_HOURS
        self.idempotency_days = idempotency_days or settings.RETENTION_DAYS
        self.clock = clock

    def purge_rate_limits(self) -> int:
        """Delete rate-limit buckets created before the retention window."""
        cutoff = self.clock() - timedelta(hours=self.rate_limit_hours)

        def _purge(session: Session) -> int:
            result = session.execute(
                delete(RateLimitCounter)
                .where(RateLimitCounter.created_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

        deleted = run_in_transaction(self.session_factory, _purge, operation="rate limit retention")
        logger.info(f"Deleted {deleted} rate limit buckets older than {self.rate_limit_hours}h")
        return deleted

    def purge_idempotency_keys(self) -> int:
        """Delete idempotency keys whose last activity is older than the retention window."""
        cutoff = self.clock() - timedelta(days=self.idempotency_days)
        last_activity = func.coalesce(
            IdempotencyKey.completed_at, IdempotencyKey.failed_at, IdempotencyKey.reserved_at
        )

        def _purge(session: Session) -> int:
            result = session.execute(
                delete(IdempotencyKey)
                .where(last_activity < cutoff)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

        deleted = run_in_transaction(self.session_factory, _purge, operation="idempotency retention")
        logger.info(f"Deleted {deleted} idempotency keys older than {self.idempotency_days}d")
        return deleted

    def run(self) -> Dict[str, int]:
        return {
            "rate_limits_deleted": self.purge_rate_limits(),
            "idempotency_keys_deleted": self.purge_idempotency_keys(),
        }
