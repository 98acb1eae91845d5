"""Customer-facing dine-in endpoints."""
from typing import Any

from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_tab_service
from app.schemas.table import (
    CreateTabRequest,
    JoinTableRequest,
    PaymentLockRequest,
    PaymentLockResponse,
    TabAllocationResponse,
    TableStatusResponse,
    TabStatusResponse,
)
from app.services.dine_in.tab_service import TabService

router = APIRouter()


@router.post("/create-tab", response_model=TabAllocationResponse)
def create_tab(
    request: CreateTabRequest,
    tabs: TabService = Depends(get_tab_service),
) -> Any:
    """Open a tab on a table, or return the tab already open there."""
    allocation = tabs.create_or_join_tab(
        request.tenant_id,
        request.table_id,
        request.capacity,
        request.group_size,
        actor_name=request.customer_name,
    )
    return allocation.to_dict()


@router.get("/table-status", response_model=TableStatusResponse)
def table_status(
    tenant_id: str = Query(..., alias="tenantId"),
    table_id: str = Query(..., alias="tableId"),
    tabs: TabService = Depends(get_tab_service),
) -> Any:
    return tabs.get_table_status(tenant_id, table_id)


@router.post("/join-table", response_model=TabAllocationResponse)
def join_table(
    request: JoinTableRequest,
    tabs: TabService = Depends(get_tab_service),
) -> Any:
    return tabs.join_tab(request.tab_id, request.token, request.customer_name).to_dict()


@router.get("/tab-status/{tab_id}", response_model=TabStatusResponse)
def tab_status(
    tab_id: str,
    tenant_id: str = Query(..., alias="tenantId"),
    tabs: TabService = Depends(get_tab_service),
) -> Any:
    """Aggregated bill for the tab."""
    return tabs.get_tab_status(tab_id, tenant_id)


@router.post("/initiate-payment", response_model=PaymentLockResponse)
def initiate_payment(
    request: PaymentLockRequest,
    tabs: TabService = Depends(get_tab_service),
) -> Any:
    return tabs.initiate_payment(request.tab_id, request.token, request.payment_method)


@router.post("/unlock-payment", response_model=PaymentLockResponse)
def unlock_payment(
    request: PaymentLockRequest,
    tabs: TabService = Depends(get_tab_service),
) -> Any:
    return tabs.unlock_payment(request.tab_id, request.token, request.reason)
