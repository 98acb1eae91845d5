"""Rider delivery endpoints."""
from typing import Any

from fastapi import APIRouter, Depends

from app.core.auth import Actor
from app.core.dependencies import get_current_rider, get_delivery_state_machine
from app.schemas.rider import (
    PaymentStatusResponse,
    RiderOrdersRequest,
    TransitionResponse,
    UpdateOrderStatusRequest,
    UpdatePaymentStatusRequest,
)
from app.services.delivery.state_machine import DeliveryStateMachine, RiderAction, TransitionResult

router = APIRouter()


def _response(result: TransitionResult, message: str) -> dict:
    return {
        "success": True,
        "message": message,
        "order_ids": result.order_ids,
        "status": result.status.value,
        "rider_availability": result.rider_availability.value if result.rider_availability else None,
    }


def _action_endpoint(action: RiderAction, message: str):
    def endpoint(
        request: RiderOrdersRequest,
        rider: Actor = Depends(get_current_rider),
        machine: DeliveryStateMachine = Depends(get_delivery_state_machine),
    ) -> Any:
        result = machine.apply_action(request.order_ids, rider.uid, action, request.reason)
        return _response(result, message)

    endpoint.__name__ = action.value
    endpoint.__doc__ = message
    return endpoint


RIDER_ROUTES = (
    ("/reached-restaurant", RiderAction.REACHED_RESTAURANT, "Marked as reached restaurant."),
    ("/accept-order", RiderAction.PICK_UP, "Order picked up."),
    ("/start-delivery", RiderAction.START_DELIVERY, "Delivery started."),
    ("/attempt-delivery", RiderAction.ATTEMPT_DELIVERY, "Delivery attempt recorded."),
    ("/mark-failed", RiderAction.MARK_FAILED, "Delivery marked as failed."),
    ("/return-order", RiderAction.RETURN_ORDER, "Order returned to restaurant."),
    ("/mark-delivered", RiderAction.MARK_DELIVERED, "Order delivered."),
)

for _path, _action, _message in RIDER_ROUTES:
    router.add_api_route(
        _path,
        _action_endpoint(_action, _message),
        methods=["POST"],
        response_model=TransitionResponse,
    )


@router.post("/update-order-status", response_model=TransitionResponse)
def update_order_status(
    request: UpdateOrderStatusRequest,
    rider: Actor = Depends(get_current_rider),
    machine: DeliveryStateMachine = Depends(get_delivery_state_machine),
) -> Any:
    result = machine.update_order_status(request.order_ids, rider.uid, request.new_status, request.reason)
    return _response(result, "Order status updated successfully.")


@router.post("/update-payment-status", response_model=PaymentStatusResponse)
def update_payment_status(
    request: UpdatePaymentStatusRequest,
    rider: Actor = Depends(get_current_rider),
    machine: DeliveryStateMachine = Depends(get_delivery_state_machine),
) -> Any:
    return machine.update_payment_status(
        request.order_id, rider.uid, request.payment_status, request.payment_method
    )
