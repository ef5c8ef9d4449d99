"""Permissions: role, ownership, lock and status rules per entity type."""

from entityspace.permissions.models import (
    Action,
    Capabilities,
    PermissionCheck,
    PermissionConfig,
    PermissionContext,
    UserContext,
)
from entityspace.permissions.service import PermissionService

__all__ = [
    "Action",
    "Capabilities",
    "PermissionCheck",
    "PermissionConfig",
    "PermissionContext",
    "UserContext",
    "PermissionService",
]
