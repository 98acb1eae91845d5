"""Calendar-minute rate limiter backed by the database."""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from app.config.database import run_in_transaction
from app.config.settings import settings
from app.core.exceptions import InternalError
from app.models.base import utcnow
from app.models.rate_limit import RateLimitCounter

logger = logging.getLogger(__name__)

IP_NAMESPACE = "ip"
TENANT_NAMESPACE = "tenant"


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int


def minute_key(now: datetime) -> str:
    """UTC calendar minute as ``YYYY-MM-DD-HH-MM``."""
    return now.strftime("%Y-%m-%d-%H-%M")


def sanitize_identity(identity: str) -> str:
    return (identity or "unknown").replace(":", "_").replace(".", "_")


def bucket_id(namespace: str, identity: str, now: datetime) -> str:
    return f"{namespace}_{sanitize_identity(identity)}_{minute_key(now)}"


class RateLimiter:
    """
    Counts calls per identity per calendar minute.

    Each call is one transaction: a conditional increment that only succeeds
    while the bucket is below the limit, falling back to creating the bucket.
    A store that keeps failing after the retry budget denies the call.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        retries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.retries = retries or settings.STORE_TRANSACTION_RETRIES
        self.clock = clock

    def check(
        self,
        identity: str,
        limit_per_minute: int,
        namespace: str = IP_NAMESPACE,
    ) -> RateLimitDecision:
        """
        Count one call against the identity's current bucket.

        Args:
            identity: Caller key (ip address, tenant id)
            limit_per_minute: Calls allowed in one calendar minute
            namespace: Keeps ip and tenant buckets apart

        Returns:
            The decision; denied calls do not increment the bucket
        """
        now = self.clock()
        key = bucket_id(namespace, identity, now)
        retry_after = 60 - now.second

        def _count(session: Session) -> RateLimitDecision:
            result = session.execute(
                update(RateLimitCounter)
                .where(RateLimitCounter.id == key, RateLimitCounter.count < limit_per_minute)
                .values(count=RateLimitCounter.count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                count = session.execute(
                    select(RateLimitCounter.count).where(RateLimitCounter.id == key)
                ).scalar_one()
                return RateLimitDecision(True, max(0, limit_per_minute - count), 0)

            if session.get(RateLimitCounter, key) is not None or limit_per_minute <= 0:
                return RateLimitDecision(False, 0, retry_after)

            session.add(RateLimitCounter(
                id=key,
                namespace=namespace,
                identity=sanitize_identity(identity),
                minute=minute_key(now),
                count=1,
                created_at=now,
            ))
            # A concurrent first call raises IntegrityError here and is retried
            session.flush()
            return RateLimitDecision(True, limit_per_minute - 1, 0)

        try:
            decision = run_in_transaction(
                self.session_factory,
                _count,
                retries=self.retries,
                operation=f"rate limit check {key}",
                retry_on_integrity_error=True,
            )
        except InternalError:
            logger.error(f"Rate limiter unavailable, denying {namespace} caller {identity}")
            return RateLimitDecision(False, 0, retry_after)

        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for {namespace} {identity} ({limit_per_minute}/min)")
        return decision
