"""Request dependencies: caller identity and per-app services."""
from typing import Optional
import logging

from fastapi import Depends, Header, Request
from sqlalchemy.orm import sessionmaker

from app.core.auth import Actor, Role, actor_from_token
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.services.business.order_service import OrderService
from app.services.delivery.state_machine import DeliveryStateMachine
from app.services.dine_in.stale_tabs import StaleTabSweeper
from app.services.dine_in.tab_service import TabService

logger = logging.getLogger(__name__)


def get_session_factory(request: Request) -> sessionmaker:
    return request.app.state.session_factory


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise UnauthorizedError("Invalid authorization header format")
    return authorization.split("Bearer ", 1)[1].strip()


async def get_current_actor(authorization: Optional[str] = Header(None)) -> Actor:
    """
    Get the verified caller from the bearer token.
    """
    token = _bearer_token(authorization)
    if not token:
        raise UnauthorizedError("Authorization header required")
    return actor_from_token(token)


async def get_current_actor_optional(authorization: Optional[str] = Header(None)) -> Optional[Actor]:
    """
    Gets the caller if a token is provided, but returns None for guests.
    A token that is present but invalid is still rejected.
    """
    token = _bearer_token(authorization)
    if not token:
        return None
    return actor_from_token(token)


async def get_current_rider(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != Role.RIDER:
        logger.warning(f"Non-rider {actor.uid} ({actor.role.value}) called a rider endpoint")
        raise ForbiddenError("Rider access required")
    return actor


def get_tab_service(session_factory: sessionmaker = Depends(get_session_factory)) -> TabService:
    return TabService(session_factory)


def get_stale_tab_sweeper(session_factory: sessionmaker = Depends(get_session_factory)) -> StaleTabSweeper:
    return StaleTabSweeper(session_factory)


def get_order_service(session_factory: sessionmaker = Depends(get_session_factory)) -> OrderService:
    return OrderService(session_factory)


def get_delivery_state_machine(session_factory: sessionmaker = Depends(get_session_factory)) -> DeliveryStateMachine:
    return DeliveryStateMachine(session_factory)
