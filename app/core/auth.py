"""Bearer token verification and caller identity."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional
import logging

from jose import JWTError, jwt

from app.config.settings import settings
from app.core.exceptions import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    CUSTOMER = "customer"
    OWNER = "owner"
    MANAGER = "manager"
    RIDER = "rider"
    ADMIN = "admin"


STAFF_ROLES = (Role.OWNER, Role.MANAGER, Role.ADMIN)


@dataclass(frozen=True)
class Actor:
    """The verified caller of a request."""
    uid: str
    role: Role
    tenant_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_manage(self, tenant_id: str) -> bool:
        """Owners and managers manage their own tenant; admins manage any."""
        if self.is_admin:
            return True
        return self.role in STAFF_ROLES and self.tenant_id == tenant_id


def require_tenant_staff(actor: Actor, tenant_id: str) -> None:
    if not actor.can_manage(tenant_id):
        logger.warning(f"Actor {actor.uid} ({actor.role.value}) denied access to tenant {tenant_id}")
        raise ForbiddenError("Access denied for this restaurant")


def verify_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify an HS256 bearer token.

    Raises:
        UnauthorizedError: If the token is malformed, expired or badly signed
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Token verification failed: {e}")
        raise UnauthorizedError("Could not validate token") from e


def actor_from_token(token: str) -> Actor:
    payload = verify_token(token)
    uid = payload.get("sub")
    if not uid:
        raise UnauthorizedError("Token has no subject")
    try:
        role = Role(payload.get("role", Role.CUSTOMER.value))
    except ValueError as e:
        raise UnauthorizedError("Token carries an unknown role") from e
    return Actor(uid=uid, role=role, tenant_id=payload.get("tenant_id"))


def create_access_token(
    uid: str,
    role: Role,
    tenant_id: Optional[str] = None,
    expires_minutes: int = 60,
) -> str:
    """Mint a token for local development and tests; production tokens come from the identity provider."""
    claims: Dict[str, Any] = {
        "sub": uid,
        "role": role.value,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    if tenant_id:
        claims["tenant_id"] = tenant_id
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
