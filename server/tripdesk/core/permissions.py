"""Roles, permissions, and the acting principal passed into services."""

from dataclasses import dataclass, field
from enum import Enum

from .exceptions import AuthorizationError


class Role(str, Enum):
    """Roles assigned by the external auth service."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    OPERATIONS_MANAGER = "operations_manager"
    FINANCE_MANAGER = "finance_manager"
    SUPPORT_STAFF = "support_staff"
    CONTENT_MANAGER = "content_manager"
    USER = "user"


class Permission(str, Enum):
    """Privileged actions guarded inside the engine."""
    VIEW_BOOKINGS = "view_bookings"
    CANCEL_BOOKING = "cancel_booking"
    PROCESS_REFUND = "process_refund"
    VERIFY_PAYMENTS = "verify_payments"
    MANAGE_TRIPS = "manage_trips"
    MANAGE_BATCHES = "manage_batches"
    MANAGE_SEATS = "manage_seats"
    VIEW_FINANCIAL_DATA = "view_financial_data"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    DELETE_BOOKING = "delete_booking"
    FORCE_DELETE_BOOKING = "force_delete_booking"


_STAFF_ADMIN = {
    Permission.VIEW_BOOKINGS,
    Permission.CANCEL_BOOKING,
    Permission.PROCESS_REFUND,
    Permission.VERIFY_PAYMENTS,
    Permission.MANAGE_TRIPS,
    Permission.MANAGE_BATCHES,
    Permission.MANAGE_SEATS,
    Permission.VIEW_FINANCIAL_DATA,
    Permission.VIEW_AUDIT_LOGS,
    Permission.DELETE_BOOKING,
}

ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.SUPER_ADMIN: frozenset(_STAFF_ADMIN | {Permission.FORCE_DELETE_BOOKING}),
    Role.ADMIN: frozenset(_STAFF_ADMIN),
    Role.OPERATIONS_MANAGER: frozenset({
        Permission.VIEW_BOOKINGS,
        Permission.MANAGE_TRIPS,
        Permission.MANAGE_BATCHES,
        Permission.MANAGE_SEATS,
    }),
    Role.FINANCE_MANAGER: frozenset({
        Permission.VIEW_BOOKINGS,
        Permission.PROCESS_REFUND,
        Permission.VERIFY_PAYMENTS,
        Permission.VIEW_FINANCIAL_DATA,
    }),
    Role.SUPPORT_STAFF: frozenset({Permission.VIEW_BOOKINGS}),
    Role.CONTENT_MANAGER: frozenset(),
    Role.USER: frozenset(),
}


@dataclass(frozen=True)
class Actor:
    """The authenticated principal performing an operation."""

    id: str
    roles: frozenset[Role] = field(default_factory=lambda: frozenset({Role.USER}))

    @classmethod
    def system(cls) -> "Actor":
        """Actor used by background workers."""
        return cls(id="system", roles=frozenset({Role.SUPER_ADMIN}))

    @property
    def permissions(self) -> frozenset[Permission]:
        granted: set[Permission] = set()
        for role in self.roles:
            granted |= ROLE_PERMISSIONS.get(role, frozenset())
        return frozenset(granted)

    def can(self, permission: Permission) -> bool:
        return permission in self.permissions


def require_permission(actor: Actor, permission: Permission) -> None:
    """Raise AuthorizationError unless the actor holds the permission."""
    if not actor.can(permission):
        raise AuthorizationError(
            detail=f"Actor {actor.id} is not allowed to {permission.value.replace('_', ' ')}",
            required_permissions=[permission.value],
        )
