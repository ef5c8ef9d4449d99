"""Permission models: actions, user/permission contexts and rule tables."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from entityspace.core.entity import Entity
from entityspace.core.types import EntityKey


class Action(Enum):
    """Capability being checked. Values match the permission-string action names."""

    VIEW = "canView"
    EDIT = "canEdit"
    DELETE = "canDelete"
    CREATE = "canCreate"
    MANAGE = "canManage"

    @classmethod
    def parse(cls, value: Action | str) -> Action:
        if isinstance(value, Action):
            return value
        for action in cls:
            if value in (action.value, action.name, action.name.lower()):
                return action
        raise ValueError(f"Unknown permission action: {value!r}")


@dataclass(frozen=True, slots=True)
class UserContext:
    """Session user, supplied once by the hosting application.

    Attributes:
        user_id: Id of the user.
        role: Role name from the role hierarchy ("user", "editor", ...).
        permissions: Permission strings, exact or with ``*`` wildcards.
        project_access: Project id to access level ("read", "write", "admin").
        unit_ids: Organizational units the user belongs to.
    """

    user_id: EntityKey | None = None
    role: str | None = None
    permissions: tuple[str, ...] = ()
    project_access: Mapping[EntityKey, str] = field(default_factory=dict)
    unit_ids: tuple[EntityKey, ...] = ()


@dataclass(frozen=True, slots=True)
class PermissionContext:
    """Per-check context; built for one check and discarded.

    Attributes:
        user: Overrides the service's session user when set.
        entity: Entity the action targets (None for type-level checks like create).
        project_id: Project the action is scoped to.
        scope: Free-form scope qualifier of the permission key.
        topic_id: Topic the action is scoped to.
        parent: Parent entity, consulted when check_parent is set.
        check_parent: Fall back to permissions on the parent entity.
        check_related: Fall back to permissions on related entities.
    """

    user: UserContext | None = None
    entity: Entity | None = None
    project_id: EntityKey | None = None
    scope: str | None = None
    topic_id: EntityKey | None = None
    parent: Entity | None = None
    check_parent: bool = False
    check_related: bool = False


def _frozen(table: Mapping[str, set[Action]]) -> Mapping[str, frozenset[Action]]:
    return MappingProxyType({key: frozenset(value) for key, value in table.items()})


@dataclass(frozen=True, slots=True)
class PermissionConfig:
    """Rule tables used by PermissionService.

    Role grants are cumulative along ``role_hierarchy``: a role has its own
    grants plus those of every lower role.
    """

    default_permissions: Mapping[Action, bool] = field(
        default_factory=lambda: MappingProxyType(
            {
                Action.VIEW: True,
                Action.EDIT: False,
                Action.DELETE: False,
                Action.CREATE: False,
                Action.MANAGE: False,
            }
        )
    )
    role_hierarchy: tuple[str, ...] = ("user", "editor", "admin", "superadmin")
    role_grants: Mapping[str, frozenset[Action]] = field(
        default_factory=lambda: _frozen(
            {
                "user": {Action.VIEW},
                "editor": {Action.EDIT, Action.CREATE},
                "admin": {Action.DELETE},
                "superadmin": {Action.MANAGE},
            }
        )
    )
    unconstrained_roles: frozenset[str] = frozenset({"admin", "superadmin"})
    project_access_levels: Mapping[str, frozenset[Action]] = field(
        default_factory=lambda: _frozen(
            {
                "read": {Action.VIEW},
                "write": {Action.VIEW, Action.EDIT, Action.CREATE},
                "admin": {Action.VIEW, Action.EDIT, Action.CREATE, Action.DELETE},
            }
        )
    )
    owner_permissions: frozenset[Action] = frozenset({Action.VIEW, Action.EDIT})
    locked_permissions: frozenset[Action] = frozenset({Action.VIEW})
    locked_statuses: frozenset[str] = frozenset({"ferdig", "completed", "archived", "locked"})
    status_permissions: Mapping[str, frozenset[Action]] = field(
        default_factory=lambda: _frozen(
            {
                "draft": {Action.VIEW, Action.EDIT, Action.DELETE},
                "in_progress": {Action.VIEW, Action.EDIT},
                "review": {Action.VIEW},
                "completed": {Action.VIEW},
                "archived": {Action.VIEW},
            }
        )
    )

    def role_rank(self, role: str | None) -> int:
        """Position of a role in the hierarchy; -1 for unknown roles."""
        if role is None or role not in self.role_hierarchy:
            return -1
        return self.role_hierarchy.index(role)

    def grants_for_role(self, role: str | None) -> frozenset[Action]:
        """Cumulative grants of a role."""
        rank = self.role_rank(role)
        grants: set[Action] = set()
        for lower in self.role_hierarchy[: rank + 1]:
            grants.update(self.role_grants.get(lower, frozenset()))
        return frozenset(grants)


@dataclass(frozen=True, slots=True)
class Capabilities:
    """Resolved capability set for one entity instance."""

    can_view: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_create: bool = False
    can_manage: bool = False
    is_owner: bool = False
    is_locked: bool = False

    def allows(self, action: Action) -> bool:
        return {
            Action.VIEW: self.can_view,
            Action.EDIT: self.can_edit,
            Action.DELETE: self.can_delete,
            Action.CREATE: self.can_create,
            Action.MANAGE: self.can_manage,
        }[action]

    def as_dict(self) -> dict[str, Any]:
        return {
            Action.VIEW.value: self.can_view,
            Action.EDIT.value: self.can_edit,
            Action.DELETE.value: self.can_delete,
            Action.CREATE.value: self.can_create,
            Action.MANAGE.value: self.can_manage,
            "isOwner": self.is_owner,
            "isLocked": self.is_locked,
        }


@dataclass(frozen=True, slots=True)
class PermissionCheck:
    """Result of a batch permission check for one entity."""

    entity: Entity
    allowed: bool
    capabilities: Capabilities
