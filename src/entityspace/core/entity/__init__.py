"""Transformed entity models."""

from entityspace.core.entity.models import (
    PROVISIONAL_PREFIX,
    Entity,
    Label,
    RelatedEntity,
    Topic,
)

__all__ = [
    "Entity",
    "Label",
    "Topic",
    "RelatedEntity",
    "PROVISIONAL_PREFIX",
]
