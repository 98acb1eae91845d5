"""Owner dine-in endpoints: settlement and stale-tab cleanup."""
from typing import Any

from fastapi import APIRouter, Depends

from app.core.auth import Actor, require_tenant_staff
from app.core.dependencies import get_current_actor, get_stale_tab_sweeper, get_tab_service
from app.schemas.table import (
    CleanupStaleTabsRequest,
    CleanupStaleTabsResponse,
    MarkPaidRequest,
    MarkPaidResponse,
)
from app.services.dine_in.stale_tabs import StaleTabSweeper
from app.services.dine_in.tab_service import TabService

router = APIRouter()


@router.post("/dine-in/mark-paid", response_model=MarkPaidResponse)
def mark_paid(
    request: MarkPaidRequest,
    actor: Actor = Depends(get_current_actor),
    tabs: TabService = Depends(get_tab_service),
) -> Any:
    """Settle a tab and send its table to cleaning."""
    return tabs.mark_tab_paid(request.tab_id, request.tenant_id, request.payment_details, actor)


@router.post("/dine-in/cleanup-stale-tabs", response_model=CleanupStaleTabsResponse)
def cleanup_stale_tabs(
    request: CleanupStaleTabsRequest,
    actor: Actor = Depends(get_current_actor),
    sweeper: StaleTabSweeper = Depends(get_stale_tab_sweeper),
) -> Any:
    """
    Find tabs with no orders in the last day.

    Dry run by default; with `dryRun: false` the stale tabs are removed and
    table occupancy is rebuilt from the tabs that remain.
    """
    require_tenant_staff(actor, request.tenant_id)
    return sweeper.cleanup_stale_tabs(request.tenant_id, dry_run=request.dry_run)
