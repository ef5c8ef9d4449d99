"""Permission evaluation for one entity type.

Resolution order for ``has_permission`` (first grant wins):

1. Direct permission strings on the user, exact or ``*`` wildcard.
2. Role hierarchy, constrained by project access and unit membership for
   roles below admin.
3. Entity rules: ownership, lock state, status table, then optional parent
   and related-entity fallbacks.
4. The configured default for the action.

Usage:
    service = PermissionService(adapter, UserContext(user_id=7, role="editor"))
    if service.has_permission(Action.EDIT, PermissionContext(entity=entity)):
        ...
    caps = service.capabilities(PermissionContext(entity=entity))
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from fnmatch import fnmatchcase
from typing import Any

import structlog

from entityspace.adapters.protocol import EntityAdapter
from entityspace.core.entity import Entity, RelatedEntity
from entityspace.permissions.models import (
    Action,
    Capabilities,
    PermissionCheck,
    PermissionConfig,
    PermissionContext,
    UserContext,
)

logger = structlog.get_logger(__name__)


class PermissionService:
    """Answers "may this user do X to this entity" for one entity type.

    Args:
        adapter: Adapter of the entity type; its display name forms the
            permission key namespace.
        user: Session user; None means only the default table applies.
        config: Rule tables.
    """

    def __init__(
        self,
        adapter: EntityAdapter,
        user: UserContext | None = None,
        config: PermissionConfig | None = None,
    ):
        self.adapter = adapter
        self.user = user
        self.config = config or PermissionConfig()

    def with_user(self, user: UserContext | None) -> PermissionService:
        """Return a service bound to a different user; self is unchanged."""
        return PermissionService(self.adapter, user, self.config)

    # Evaluation

    def has_permission(
        self, action: Action | str, context: PermissionContext | None = None
    ) -> bool:
        """Check whether the user may perform an action.

        Args:
            action: Action to check.
            context: Entity and scope of the check.

        Returns:
            True if any rule grants the action, else the configured default.
        """
        action = Action.parse(action)
        context = context or PermissionContext()
        user = context.user or self.user
        if user is None:
            return self._default(action)

        if self._matches_direct_permission(action, context, user):
            return True
        if self._matches_role(action, context, user):
            return True
        if context.entity is not None:
            decision = self._entity_rule(action, context, context.entity, user)
            if decision is not None:
                return decision
        return self._default(action)

    def capabilities(self, context: PermissionContext | None = None) -> Capabilities:
        """Resolve every action for one entity.

        Locked entities never report edit or delete, whatever the role.
        """
        context = context or PermissionContext()
        entity = context.entity
        user = context.user or self.user
        locked = entity is not None and self.is_locked(entity, user)
        granted = {action: self.has_permission(action, context) for action in Action}
        if locked:
            granted[Action.EDIT] = False
            granted[Action.DELETE] = False
        return Capabilities(
            can_view=granted[Action.VIEW],
            can_edit=granted[Action.EDIT],
            can_delete=granted[Action.DELETE],
            can_create=granted[Action.CREATE],
            can_manage=granted[Action.MANAGE],
            is_owner=entity is not None and self.is_owner(entity, user),
            is_locked=locked,
        )

    def check_batch(
        self,
        action: Action | str,
        entities: Iterable[Entity],
        context: PermissionContext | None = None,
    ) -> list[PermissionCheck]:
        """Evaluate one action against many entities sharing a base context."""
        action = Action.parse(action)
        base = context or PermissionContext()
        checks = []
        for entity in entities:
            caps = self.capabilities(replace(base, entity=entity))
            checks.append(PermissionCheck(entity=entity, allowed=caps.allows(action), capabilities=caps))
        return checks

    # Rules

    def build_permission_key(self, action: Action | str, context: PermissionContext | None = None) -> str:
        """Build the permission string a direct grant must match.

        Format: ``<display>.<action>[.project:<id>][.topic:<id>][.scope:<scope>]``.
        """
        action = Action.parse(action)
        context = context or PermissionContext()
        parts = [self.adapter.display_name.lower(), action.value]
        if context.project_id is not None:
            parts.append(f"project:{context.project_id}")
        if context.topic_id is not None:
            parts.append(f"topic:{context.topic_id}")
        if context.scope:
            parts.append(f"scope:{context.scope}")
        return ".".join(parts)

    def is_owner(self, entity: Entity, user: UserContext | None = None) -> bool:
        """True if the user created or is assigned to the entity."""
        user = user or self.user
        if user is None or user.user_id is None:
            return False
        return user.user_id in (entity.created_by, entity.assigned_to)

    def is_locked(self, entity: Entity, user: UserContext | None = None) -> bool:
        """True if the entity is locked for the user.

        An entity is locked when its status is terminal, its lock flag is set,
        or it is mandatory and the user is not an admin.
        """
        user = user or self.user
        if entity.locked:
            return True
        if entity.status_name.strip().lower() in self.config.locked_statuses:
            return True
        if entity.mandatory:
            is_admin = user is not None and user.role in self.config.unconstrained_roles
            return not is_admin
        return False

    def _matches_direct_permission(
        self, action: Action, context: PermissionContext, user: UserContext
    ) -> bool:
        if not user.permissions:
            return False
        key = self.build_permission_key(action, context)
        return any(key == granted or fnmatchcase(key, granted) for granted in user.permissions)

    def _matches_role(self, action: Action, context: PermissionContext, user: UserContext) -> bool:
        if action not in self.config.grants_for_role(user.role):
            return False
        if user.role in self.config.unconstrained_roles:
            return True
        return self._within_constraints(action, context, user)

    def _within_constraints(
        self, action: Action, context: PermissionContext, user: UserContext
    ) -> bool:
        project_id = context.project_id
        if project_id is None and context.entity is not None:
            project_id = context.entity.project_id
        if project_id is not None and user.project_access:
            level = user.project_access.get(project_id)
            if level is None:
                return False
            if action not in self.config.project_access_levels.get(level, frozenset()):
                return False

        unit_id = context.entity.unit_id if context.entity is not None else None
        if unit_id is not None and user.unit_ids and unit_id not in user.unit_ids:
            return False
        return True

    def _entity_rule(
        self, action: Action, context: PermissionContext, entity: Entity, user: UserContext
    ) -> bool | None:
        """Evaluate entity-level rules; None when no rule applies."""

        if self.is_owner(entity, user):
            return action in self.config.owner_permissions
        if self.is_locked(entity, user):
            return action in self.config.locked_permissions

        status = entity.status_name.strip().lower().replace(" ", "_")
        allowed = self.config.status_permissions.get(status)
        if allowed is not None and action in allowed:
            return True

        if context.check_parent and context.parent is not None:
            parent_context = replace(
                context, entity=context.parent, parent=None, check_parent=False, check_related=False
            )
            if self.has_permission(action, parent_context):
                return True

        if context.check_related:
            for related in self._related_entities(entity):
                related_context = replace(
                    context, entity=related, parent=None, check_parent=False, check_related=False
                )
                if self.has_permission(action, related_context):
                    return True
        return None

    def _related_entities(self, entity: Entity) -> list[Entity]:
        if not entity.raw:
            return []
        related: list[Entity] = []
        for relation in self.adapter.declared_relationships():
            for ref in self.adapter.normalize_relationships(entity.raw, relation):
                related.append(_as_entity(ref))
        return related

    def _default(self, action: Action) -> bool:
        return bool(self.config.default_permissions.get(action, False))

    def debug_info(self, entity: Entity | None = None) -> dict[str, Any]:
        """Snapshot of the evaluation inputs for troubleshooting."""
        context = PermissionContext(entity=entity)
        return {
            "entity_type": self.adapter.entity_type,
            "user_id": self.user.user_id if self.user else None,
            "role": self.user.role if self.user else None,
            "capabilities": self.capabilities(context).as_dict(),
            "permission_keys": {a.value: self.build_permission_key(a, context) for a in Action},
        }


def _as_entity(ref: RelatedEntity) -> Entity:
    return Entity(
        id=ref.id,
        entity_type=ref.entity_type,
        uid=ref.uid,
        title=ref.title,
        status=ref.status,
        priority=ref.priority,
        mandatory=ref.mandatory,
        raw=ref.raw,
    )
