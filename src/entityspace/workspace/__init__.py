"""Workspace: state and actions for browsing one entity type."""

from entityspace.workspace.models import Pagination, ViewMode, WorkspaceState
from entityspace.workspace.registry import RemoteFactory, WorkspaceRegistry
from entityspace.workspace.store import WorkspaceStore

__all__ = [
    "Pagination",
    "ViewMode",
    "WorkspaceState",
    "WorkspaceStore",
    "WorkspaceRegistry",
    "RemoteFactory",
]
