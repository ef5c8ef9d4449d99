"""Actions: permission-checked, optimistically patched mutations."""

from entityspace.actions.models import (
    ActionResult,
    BulkResult,
    BulkSummary,
    ConflictPolicy,
    ValidationReport,
)
from entityspace.actions.orchestrator import ActionOrchestrator
from entityspace.actions.remote import RemoteDataSource

__all__ = [
    "ActionOrchestrator",
    "ActionResult",
    "BulkResult",
    "BulkSummary",
    "ConflictPolicy",
    "ValidationReport",
    "RemoteDataSource",
]
