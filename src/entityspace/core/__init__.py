"""Core primitives: entity models, type aliases and the error taxonomy."""

from entityspace.core.entity import (
    PROVISIONAL_PREFIX,
    Entity,
    Label,
    RelatedEntity,
    Topic,
)
from entityspace.core.errors import (
    ConfigurationError,
    EntitySpaceError,
    MutationConflict,
    PatchStateError,
    PermissionDenied,
    RemoteError,
    ValidationError,
)
from entityspace.core.types import EntityKey, EntityTypeTag, QueryKey, RawEntity

__all__ = [
    # Entity
    "Entity",
    "Label",
    "Topic",
    "RelatedEntity",
    "PROVISIONAL_PREFIX",
    # Types
    "EntityKey",
    "EntityTypeTag",
    "QueryKey",
    "RawEntity",
    # Errors
    "EntitySpaceError",
    "ConfigurationError",
    "PermissionDenied",
    "RemoteError",
    "ValidationError",
    "MutationConflict",
    "PatchStateError",
]
