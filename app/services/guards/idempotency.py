"""Idempotency guard for order creation.

Usage:
    guard = IdempotencyGuard(session_factory)
    reservation = guard.reserve(key, {"tenant_id": tenant_id})
    if reservation.is_duplicate:
        return reservation.response_payload
    try:
        # create the order
        guard.complete(key, order_id, response_payload=payload)
    except Exception as e:
        guard.fail(key, str(e))
        raise

A key that is still reserved by a live request raises RequestInProgressError.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from app.config.database import run_in_transaction
from app.config.settings import settings
from app.core.exceptions import InternalError, RequestInProgressError, ValidationError
from app.models.base import utcnow
from app.models.idempotency import IdempotencyKey, IdempotencyStatus

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 255
MAX_ERROR_LENGTH = 200


@dataclass
class Reservation:
    is_duplicate: bool
    order_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    response_payload: Optional[Dict[str, Any]] = None


def normalize_key(key: Optional[str]) -> str:
    normalized = (key or "").strip()
    if not normalized:
        raise ValidationError("Idempotency key is required")
    if len(normalized) > MAX_KEY_LENGTH:
        raise ValidationError(f"Idempotency key must be at most {MAX_KEY_LENGTH} characters")
    return normalized


class IdempotencyGuard:
    def __init__(
        self,
        session_factory: sessionmaker,
        stale_after_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.stale_after_seconds = stale_after_seconds or settings.IDEMPOTENCY_STALE_SECONDS
        self.clock = clock

    def reserve(self, key: str, metadata: Optional[Dict[str, Any]] = None) -> Reservation:
        """
        Claim the key for one request.

        Args:
            key: Client supplied idempotency key
            metadata: Request context stored with the reservation

        Returns:
            A fresh reservation, or the stored result of a completed request

        Raises:
            ValidationError: If the key is missing
            RequestInProgressError: If another request holds a live reservation
        """
        key = normalize_key(key)

        def _reserve(session: Session) -> Reservation:
            now = self.clock()
            record = session.get(IdempotencyKey, key)

            if record is None:
                session.add(IdempotencyKey(
                    key=key,
                    status=IdempotencyStatus.RESERVED,
                    request_metadata=metadata or {},
                    reserved_at=now,
                ))
                session.flush()
                return Reservation(is_duplicate=False)

            if record.status == IdempotencyStatus.COMPLETED:
                logger.info(f"Idempotency key {key} already completed with order {record.order_id}")
                return Reservation(
                    is_duplicate=True,
                    order_id=record.order_id,
                    gateway_order_id=record.gateway_order_id,
                    response_payload=record.response_payload,
                )

            age = (now - record.reserved_at).total_seconds()
            if record.status == IdempotencyStatus.RESERVED and age < self.stale_after_seconds:
                raise RequestInProgressError(retry_after=max(1, int(self.stale_after_seconds - age)))

            # Stale reservation or earlier failure: take it over only if nobody else did
            taken = session.execute(
                update(IdempotencyKey)
                .where(
                    IdempotencyKey.key == key,
                    IdempotencyKey.status == record.status,
                    IdempotencyKey.reserved_at == record.reserved_at,
                )
                .values({
                    IdempotencyKey.status: IdempotencyStatus.RESERVED,
                    IdempotencyKey.request_metadata: metadata or {},
                    IdempotencyKey.reserved_at: now,
                    IdempotencyKey.error: None,
                    IdempotencyKey.failed_at: None,
                })
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount != 1:
                raise RequestInProgressError()
            logger.info(f"Re-reserved idempotency key {key} (previous status {record.status.value})")
            return Reservation(is_duplicate=False)

        return run_in_transaction(
            self.session_factory,
            _reserve,
            retries=2,
            operation=f"idempotency reserve {key}",
            retry_on_integrity_error=True,
        )

    def complete(
        self,
        key: str,
        order_id: str,
        response_payload: Optional[Dict[str, Any]] = None,
        gateway_order_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> None:
        """Record the result. Pass ``session`` to commit it with the order itself."""
        key = normalize_key(key)

        def _complete(db: Session) -> None:
            record = db.get(IdempotencyKey, key)
            if record is None:
                record = IdempotencyKey(key=key, reserved_at=self.clock())
                db.add(record)
            record.status = IdempotencyStatus.COMPLETED
            record.order_id = order_id
            record.gateway_order_id = gateway_order_id
            record.response_payload = response_payload
            record.completed_at = self.clock()

        if session is not None:
            _complete(session)
            return
        run_in_transaction(self.session_factory, _complete, operation=f"idempotency complete {key}")

    def fail(self, key: str, error: str) -> None:
        """Mark the reservation failed so a retry can take it over immediately."""
        key = normalize_key(key)

        def _fail(db: Session) -> None:
            record = db.get(IdempotencyKey, key)
            if record is None or record.status == IdempotencyStatus.COMPLETED:
                return
            record.status = IdempotencyStatus.FAILED
            record.error = (error or "")[:MAX_ERROR_LENGTH]
            record.failed_at = self.clock()

        try:
            run_in_transaction(self.session_factory, _fail, operation=f"idempotency fail {key}")
        except InternalError:
            # The reservation goes stale on its own and can be retaken later
            logger.error(f"Could not mark idempotency key {key} as failed")
