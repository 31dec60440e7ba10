"""Business logic services."""

from app.services.audit import write_audit_event
from app.services.rbac import Permission, PermissionGate, RBACService

__all__ = [
    "write_audit_event",
    "Permission",
    "PermissionGate",
    "RBACService",
]
