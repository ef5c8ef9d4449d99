"""entityspace: state and cache engine for browsing and editing entity collections.

Usage:
    from entityspace import (
        InMemoryQueryCache,
        UserContext,
        WorkspaceStore,
        default_registry,
    )

    store = WorkspaceStore(
        "requirement",
        default_registry(),
        InMemoryQueryCache(),
        remote=RequirementApi(),
        user=UserContext(user_id=7, role="editor"),
    )
    await store.load_entities()
    await store.set_filters(filter_by="mandatory", sort_by="title", sort_order="asc")
    result = await store.optimistic_create({"title": "New requirement"})
"""

__version__ = "0.1.0"

# Actions
from entityspace.actions import (
    ActionOrchestrator,
    ActionResult,
    BulkResult,
    ConflictPolicy,
    RemoteDataSource,
)

# Adapters
from entityspace.adapters import (
    AdapterRegistry,
    BaseAdapter,
    EntityAdapter,
    ListPage,
    MeasureAdapter,
    RequirementAdapter,
    SimpleAdapter,
    default_registry,
)

# Cache
from entityspace.cache import (
    CacheManager,
    InMemoryQueryCache,
    MutationKind,
    OptimisticPatch,
    QueryCache,
    QueryDescriptor,
    cache_key,
    invalidation_keys,
)

# Configuration
from entityspace.config import LoggingSettings, WorkspaceSettings

# Core primitives
from entityspace.core import (
    ConfigurationError,
    Entity,
    EntitySpaceError,
    Label,
    MutationConflict,
    PatchStateError,
    PermissionDenied,
    RemoteError,
    Topic,
    ValidationError,
)

# Filtering
from entityspace.filtering import FilterService, WorkspaceFilters

# Permissions
from entityspace.permissions import (
    Action,
    PermissionContext,
    PermissionService,
    UserContext,
)

# Workspace
from entityspace.workspace import WorkspaceRegistry, WorkspaceState, WorkspaceStore

__all__ = [
    # Version
    "__version__",
    # Core
    "Entity",
    "Label",
    "Topic",
    "EntitySpaceError",
    "ConfigurationError",
    "PermissionDenied",
    "RemoteError",
    "ValidationError",
    "MutationConflict",
    "PatchStateError",
    # Adapters
    "EntityAdapter",
    "BaseAdapter",
    "SimpleAdapter",
    "RequirementAdapter",
    "MeasureAdapter",
    "AdapterRegistry",
    "ListPage",
    "default_registry",
    # Filtering
    "FilterService",
    "WorkspaceFilters",
    # Permissions
    "Action",
    "PermissionContext",
    "PermissionService",
    "UserContext",
    # Cache
    "QueryCache",
    "InMemoryQueryCache",
    "CacheManager",
    "MutationKind",
    "OptimisticPatch",
    "QueryDescriptor",
    "cache_key",
    "invalidation_keys",
    # Actions
    "ActionOrchestrator",
    "ActionResult",
    "BulkResult",
    "ConflictPolicy",
    "RemoteDataSource",
    # Workspace
    "WorkspaceStore",
    "WorkspaceState",
    "WorkspaceRegistry",
    # Configuration
    "WorkspaceSettings",
    "LoggingSettings",
]
