"""Error taxonomy shared by every entityspace component.

Usage:
    try:
        result = await orchestrator.update(entity_id, {"title": "New"})
    except PermissionDenied:
        ...  # nothing was mutated

    if not result.success:
        show(result.error)  # remote failure, already rolled back
"""

from __future__ import annotations


class EntitySpaceError(Exception):
    """Base class for all errors raised by entityspace."""

    pass


class ConfigurationError(EntitySpaceError):
    """Raised when the workspace is wired incorrectly (e.g. no adapter for a type).

    Fatal: the core never catches this.
    """

    pass


class PermissionDenied(EntitySpaceError):
    """Raised when the current user may not perform an action.

    Attributes:
        action: The denied action value (e.g. "canEdit").
        entity_type: Entity type the action targeted.
    """

    def __init__(self, action: str, entity_type: str, message: str | None = None):
        self.action = action
        self.entity_type = entity_type
        super().__init__(message or f"Permission denied: {action} on {entity_type}")


class RemoteError(EntitySpaceError):
    """Raised when the remote data source fails.

    Wraps the original exception as ``__cause__``.
    """

    pass


class ValidationError(EntitySpaceError):
    """Raised when an adapter cannot turn an entity into an outbound payload."""

    pass


class MutationConflict(EntitySpaceError):
    """Raised when a mutation targets an entity whose previous mutation is unresolved."""

    pass


class PatchStateError(EntitySpaceError):
    """Raised when an optimistic patch is committed or rolled back twice."""

    pass
