"""Role-Based Access Control (RBAC) service.

Implements least-privilege access control for front-desk and clinical
staff. ``PermissionGate`` is the single check the booking engine calls
before it touches any record.
"""

from enum import Enum

from app.booking.errors import PermissionDeniedError
from app.models.user import User, UserRole


class Permission(str, Enum):
    """Available permissions in the system."""

    # Booking requests
    BOOKINGS_VIEW = "bookings:view"
    BOOKINGS_CREATE = "bookings:create"
    BOOKINGS_ACCEPT = "bookings:accept"
    BOOKINGS_REJECT = "bookings:reject"

    # Appointments
    APPOINTMENTS_VIEW = "appointments:view"
    APPOINTMENTS_CREATE = "appointments:create"
    APPOINTMENTS_EDIT = "appointments:edit"
    APPOINTMENTS_STATUS = "appointments:status"
    APPOINTMENTS_REASSIGN = "appointments:reassign"
    APPOINTMENTS_CANCEL = "appointments:cancel"

    # Patients and providers
    PATIENTS_READ = "patients:read"
    PATIENTS_WRITE = "patients:write"
    PROVIDERS_VIEW = "providers:view"

    # System administration
    ADMIN_ALL = "admin:all"


_FRONT_DESK = {
    Permission.BOOKINGS_VIEW,
    Permission.BOOKINGS_CREATE,
    Permission.BOOKINGS_ACCEPT,
    Permission.BOOKINGS_REJECT,
    Permission.APPOINTMENTS_VIEW,
    Permission.APPOINTMENTS_CREATE,
    Permission.APPOINTMENTS_EDIT,
    Permission.APPOINTMENTS_STATUS,
    Permission.APPOINTMENTS_REASSIGN,
    Permission.APPOINTMENTS_CANCEL,
    Permission.PATIENTS_READ,
    Permission.PATIENTS_WRITE,
    Permission.PROVIDERS_VIEW,
}

_CLINICAL = {
    Permission.BOOKINGS_VIEW,
    Permission.APPOINTMENTS_VIEW,
    Permission.APPOINTMENTS_STATUS,
    Permission.PATIENTS_READ,
    Permission.PROVIDERS_VIEW,
}

# Role to permissions mapping
ROLE_PERMISSIONS: dict[UserRole, set[Permission]] = {
    UserRole.SUPER_ADMIN: set(Permission),
    UserRole.HOSPITAL_ADMIN: set(Permission) - {Permission.ADMIN_ALL},
    UserRole.RECEPTIONIST: set(_FRONT_DESK),
    UserRole.DOCTOR: set(_CLINICAL),
    UserRole.OPTOMETRIST: set(_CLINICAL),
    UserRole.OPHTHALMOLOGIST: set(_CLINICAL),
    UserRole.NURSE: {
        Permission.BOOKINGS_VIEW,
        Permission.APPOINTMENTS_VIEW,
        Permission.APPOINTMENTS_STATUS,
        Permission.PATIENTS_READ,
    },
    UserRole.BILLING_STAFF: {
        # NOTE: Billing sees appointments but never books them
        Permission.APPOINTMENTS_VIEW,
        Permission.PATIENTS_READ,
    },
    UserRole.READ_ONLY: {
        Permission.BOOKINGS_VIEW,
        Permission.APPOINTMENTS_VIEW,
        Permission.PATIENTS_READ,
        Permission.PROVIDERS_VIEW,
    },
}


def _as_role(role: UserRole | str) -> UserRole | None:
    """Roles come back from the database as plain strings."""
    try:
        return UserRole(role)
    except ValueError:
        return None


class RBACService:
    """Service for checking role-based permissions."""

    @staticmethod
    def get_permissions(role: UserRole | str) -> set[Permission]:
        """Get all permissions for a role.

        Args:
            role: User role

        Returns:
            Set of permissions granted to the role
        """
        return ROLE_PERMISSIONS.get(_as_role(role), set())

    @staticmethod
    def has_permission(role: UserRole | str, permission: Permission) -> bool:
        """Check if a role has a specific permission.

        Args:
            role: User role to check
            permission: Permission to verify

        Returns:
            True if role has permission
        """
        return permission in RBACService.get_permissions(role)

    @staticmethod
    def has_any_permission(role: UserRole | str, permissions: list[Permission]) -> bool:
        """Check if a role has any of the specified permissions."""
        role_permissions = RBACService.get_permissions(role)
        return any(p in role_permissions for p in permissions)

    @staticmethod
    def has_all_permissions(role: UserRole | str, permissions: list[Permission]) -> bool:
        """Check if a role has all specified permissions."""
        role_permissions = RBACService.get_permissions(role)
        return all(p in role_permissions for p in permissions)


class PermissionGate:
    """Allow/deny check performed once, before any write.

    The matrix is injectable so callers (and tests) can supply their own
    role mapping.
    """

    def __init__(self, matrix: dict[UserRole, set[Permission]] | None = None):
        self.matrix = ROLE_PERMISSIONS if matrix is None else matrix

    def allows(self, actor: User | None, permission: Permission) -> bool:
        if actor is None or not actor.is_active:
            return False
        return permission in self.matrix.get(_as_role(actor.role), set())

    def require(self, actor: User | None, permission: Permission) -> str:
        """Return the actor's id, or raise if they lack ``permission``.

        Raises:
            PermissionDeniedError: If the actor is missing, inactive or
                not granted the permission
        """
        if not self.allows(actor, permission):
            raise PermissionDeniedError(f"Permission denied: {permission.value}")
        return actor.id
