"""
Capability checks for privileged operations.

Each privileged operation declares the permission it needs in
``OPERATION_PERMISSIONS``; roles map to permission sets in
``ROLE_PERMISSIONS``. Routes ask ``authorize(principal, operation)`` once,
before touching any state, instead of branching on roles inline.

Callers are identified by static API tokens from configuration
(``API_TOKENS="token:role[:email],..."``). Issuing and rotating those tokens
is handled outside this service.
"""

import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from salon.errors import NotAuthenticatedError, NotAuthorizedError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    CUSTOMER = "customer"
    STYLIST = "stylist"
    ADMIN = "admin"


class Permission(str, Enum):
    VIEW_BOOKINGS = "view_bookings"
    UPDATE_BOOKING_STATUS = "update_booking_status"
    VIEW_PAYMENTS = "view_payments"
    REFUND_PAYMENTS = "refund_payments"
    MANAGE_SERVICES = "manage_services"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.CUSTOMER: frozenset(),
    Role.STYLIST: frozenset({
        Permission.VIEW_BOOKINGS,
        Permission.UPDATE_BOOKING_STATUS,
        Permission.VIEW_PAYMENTS,
        Permission.REFUND_PAYMENTS,
    }),
    Role.ADMIN: frozenset(Permission),
}

OPERATION_PERMISSIONS: dict[str, Optional[Permission]] = {
    "list_bookings": Permission.VIEW_BOOKINGS,
    "booking_stats": Permission.VIEW_BOOKINGS,
    "update_booking_status": Permission.UPDATE_BOOKING_STATUS,
    "list_payments": Permission.VIEW_PAYMENTS,
    "refund_payment": Permission.REFUND_PAYMENTS,
    "create_service": Permission.MANAGE_SERVICES,
    "update_service": Permission.MANAGE_SERVICES,
    # Any authenticated caller; ownership is checked against the payment.
    "view_payment": None,
}


@dataclass(frozen=True)
class Principal:
    """An authenticated caller."""

    role: Role
    email: Optional[str] = None

    @property
    def actor(self) -> str:
        return f"{self.role.value}:{self.email}" if self.email else self.role.value

    def has(self, permission: Permission) -> bool:
        return permission in ROLE_PERMISSIONS[self.role]


def parse_api_tokens(raw: str) -> dict[str, Principal]:
    """Parse ``token:role[:email]`` entries. Raises ValueError on unknown roles."""
    tokens: dict[str, Principal] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":", 2)
        if len(parts) < 2 or not parts[0]:
            raise ValueError(f"API token entry must be token:role[:email], got {entry!r}")
        try:
            role = Role(parts[1].strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role {parts[1]!r} in API_TOKENS") from None
        email = parts[2].strip().lower() if len(parts) == 3 and parts[2].strip() else None
        tokens[parts[0]] = Principal(role=role, email=email)
    return tokens


class TokenAuthenticator:
    """Resolve ``Authorization: Bearer <token>`` headers to principals."""

    def __init__(self, tokens: dict[str, Principal]) -> None:
        self._tokens = tokens

    def authenticate(self, authorization: Optional[str]) -> Optional[Principal]:
        if not authorization:
            return None
        scheme, _, credential = authorization.partition(" ")
        if scheme.lower() != "bearer" or not credential:
            return None
        for token, principal in self._tokens.items():
            if hmac.compare_digest(token, credential.strip()):
                return principal
        logger.warning("Rejected unknown API token")
        return None


def authorize(principal: Optional[Principal], operation: str) -> Principal:
    """
    Check ``principal`` may perform ``operation``.

    Raises:
        NotAuthenticatedError: No valid credentials were presented.
        NotAuthorizedError: The caller's role lacks the required permission.
    """
    permission = OPERATION_PERMISSIONS[operation]
    if principal is None:
        raise NotAuthenticatedError("Authentication required")
    if permission is not None and not principal.has(permission):
        logger.info("Denied %s to %s", operation, principal.actor)
        raise NotAuthorizedError("Access denied")
    return principal
