"""Rider availability: the single place that changes it."""
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.config.database import run_in_transaction
from app.core.exceptions import InternalError
from app.models.order import Order, RIDER_ACTIVE_STATUSES
from app.models.rider import Rider, RiderAvailability, RiderRosterEntry

logger = logging.getLogger(__name__)


class RiderAvailabilityService:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def set_rider_availability(
        self,
        rider_id: str,
        tenant_ids: Iterable[str],
        availability: RiderAvailability,
    ) -> bool:
        """
        Write the rider profile, then each restaurant's roster entry.

        The two writes are separate units. A failed roster write leaves the
        copies disagreeing until the availability audit repairs them, so it
        is logged rather than raised.

        Returns:
            True if both writes succeeded
        """
        tenants = sorted({t for t in tenant_ids if t})

        def _profile(session: Session) -> None:
            rider = session.get(Rider, rider_id)
            if rider is None:
                session.add(Rider(id=rider_id, availability=availability))
            else:
                rider.availability = availability

        def _roster(session: Session) -> int:
            entries = session.execute(
                select(RiderRosterEntry).where(
                    RiderRosterEntry.rider_id == rider_id,
                    RiderRosterEntry.tenant_id.in_(tenants),
                )
            ).scalars()
            updated = 0
            for entry in entries:
                entry.availability = availability
                updated += 1
            return updated

        try:
            run_in_transaction(self.session_factory, _profile, operation=f"rider {rider_id} profile availability")
        except InternalError:
            logger.error(f"Failed to set rider {rider_id} availability to {availability.value}")
            return False

        if not tenants:
            return True
        try:
            updated = run_in_transaction(self.session_factory, _roster, operation=f"rider {rider_id} roster availability")
        except InternalError:
            logger.error(
                f"Rider {rider_id} profile is {availability.value} but roster update failed for {tenants}",
                extra={"rider_id": rider_id},
            )
            return False

        logger.info(f"Rider {rider_id} is now {availability.value} (roster entries updated: {updated})")
        return True

    def has_active_orders(self, rider_id: str, exclude_order_ids: Optional[Iterable[str]] = None) -> bool:
        """Whether the rider still holds an order that keeps them busy."""
        excluded: List[str] = list(exclude_order_ids or [])
        query = select(Order.id).where(
            Order.delivery_boy_id == rider_id,
            Order.status.in_(RIDER_ACTIVE_STATUSES),
        )
        if excluded:
            query = query.where(Order.id.not_in(excluded))
        with self.session_factory() as session:
            return session.execute(query.limit(1)).first() is not None

    def audit_rider_availability(self, repair: bool = False) -> Dict[str, Any]:
        """
        Compare every roster entry with its rider profile.

        Args:
            repair: Copy the profile value onto disagreeing roster entries

        Returns:
            ``{checked, mismatches, repaired}``
        """

        def _audit(session: Session) -> Dict[str, Any]:
            rows = session.execute(
                select(RiderRosterEntry, Rider).join(Rider, Rider.id == RiderRosterEntry.rider_id)
            ).all()
            mismatches = []
            for entry, rider in rows:
                if entry.availability == rider.availability:
                    continue
                mismatches.append({
                    "rider_id": rider.id,
                    "tenant_id": entry.tenant_id,
                    "roster": entry.availability.value,
                    "profile": rider.availability.value,
                })
                if repair:
                    entry.availability = rider.availability
            return {
                "checked": len(rows),
                "mismatches": mismatches,
                "repaired": len(mismatches) if repair else 0,
            }

        result = run_in_transaction(self.session_factory, _audit, operation="rider availability audit")
        if result["mismatches"]:
            logger.warning(
                f"Rider availability audit found {len(result['mismatches'])} mismatches "
                f"(repaired {result['repaired']})"
            )
        return result
