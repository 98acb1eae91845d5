"""Periodic maintenance jobs run by Celery beat."""
from typing import Any, Dict, Optional
import logging

from app.config.database import get_session_factory
from app.config.settings import settings
from app.services.delivery.rider_availability import RiderAvailabilityService
from app.services.dine_in.stale_tabs import StaleTabSweeper
from app.services.maintenance.retention import RetentionService
from app.tasks.app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task
def cleanup_stale_tabs_for_all_tenants(dry_run: Optional[bool] = None) -> Dict[str, Any]:
    """
    Sweep abandoned dine-in tabs for every tenant.
    Runs dry unless STALE_TAB_SWEEP_DRY_RUN is turned off or the caller says otherwise.
    """
    if dry_run is None:
        dry_run = settings.STALE_TAB_SWEEP_DRY_RUN
    try:
        summary = StaleTabSweeper(get_session_factory()).cleanup_all_tenants(dry_run=dry_run)
    except Exception as e:
        logger.error(f"Stale tab sweep failed: {e}", exc_info=True)
        raise
    logger.info(
        f"Stale tab sweep ({'dry run' if dry_run else 'applied'}): "
        f"{summary['tabs_found']} stale tabs across {summary['tenants']} tenants"
    )
    return summary


@celery_app.task
def cleanup_retention() -> Dict[str, int]:
    """Delete expired rate-limit buckets and idempotency keys."""
    try:
        return RetentionService(get_session_factory()).run()
    except Exception as e:
        logger.error(f"Retention cleanup failed: {e}", exc_info=True)
        raise


@celery_app.task
def audit_rider_availability(repair: bool = True) -> Dict[str, Any]:
    """Bring roster copies of rider availability back in line with rider profiles."""
    try:
        return RiderAvailabilityService(get_session_factory()).audit_rider_availability(repair=repair)
    except Exception as e:
        logger.error(f"Rider availability audit failed: {e}", exc_info=True)
        raise
