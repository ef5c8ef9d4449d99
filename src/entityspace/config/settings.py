"""Configuration settings using Pydantic Settings.

Provides typed configuration with environment variable support for workspaces
and logging.

Usage:
    from entityspace.config import WorkspaceSettings, LoggingSettings

    # Load from environment variables (ENTITYSPACE_*, ENTITYSPACE_LOG_*)
    settings = WorkspaceSettings()

    # Or override with explicit values
    settings = WorkspaceSettings(default_page_size=25, enable_optimistic=False)
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkspaceSettings(BaseSettings):  # type: ignore[misc]
    """Configuration for workspace stores and the services they compose.

    Attributes:
        default_page_size: Page size of a fresh workspace (also stripped from cache keys).
        default_sort_by: Sort field of a fresh workspace.
        default_sort_order: Sort order of a fresh workspace.
        enable_optimistic: Apply optimistic patches for single mutations.
        bulk_optimistic: Apply optimistic patches for bulk mutations.
        validate_permissions: Check permissions before mutations.
        conflict_policy: What a second mutation on a pending entity does.
        client_side_filtering: Re-apply search/filter/sort on fetched pages.
        max_consecutive_failures: Failed loads before the workspace pauses loading.
        failure_cooldown: Seconds loading stays paused once the limit is hit.
        stale_time: Seconds before a cached query is considered stale.

    Environment Variables:
        ENTITYSPACE_DEFAULT_PAGE_SIZE
        ENTITYSPACE_DEFAULT_SORT_BY
        ENTITYSPACE_DEFAULT_SORT_ORDER
        ENTITYSPACE_ENABLE_OPTIMISTIC
        ENTITYSPACE_BULK_OPTIMISTIC
        ENTITYSPACE_VALIDATE_PERMISSIONS
        ENTITYSPACE_CONFLICT_POLICY
        ENTITYSPACE_CLIENT_SIDE_FILTERING
        ENTITYSPACE_MAX_CONSECUTIVE_FAILURES
        ENTITYSPACE_FAILURE_COOLDOWN
        ENTITYSPACE_STALE_TIME
    """

    model_config = SettingsConfigDict(
        env_prefix="ENTITYSPACE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_page_size: int = Field(default=50, ge=1)
    default_sort_by: str = "updated_at"
    default_sort_order: Literal["asc", "desc"] = "desc"
    enable_optimistic: bool = True
    bulk_optimistic: bool = False
    validate_permissions: bool = True
    conflict_policy: Literal["serialize", "reject"] = "serialize"
    client_side_filtering: bool = True
    max_consecutive_failures: int = Field(default=3, ge=1)
    failure_cooldown: float = Field(default=30.0, ge=0)
    stale_time: float = Field(default=30.0, ge=0)


class LoggingSettings(BaseSettings):  # type: ignore[misc]
    """Configuration for structured logging.

    Attributes:
        level: Minimum log level name.
        format: "console" for human-readable output, "json" for machines.

    Environment Variables:
        ENTITYSPACE_LOG_LEVEL
        ENTITYSPACE_LOG_FORMAT
    """

    model_config = SettingsConfigDict(
        env_prefix="ENTITYSPACE_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: str = "INFO"
    format: Literal["console", "json"] = "console"


def config_hash(config: BaseModel | Mapping[str, Any] | None) -> str:
    """Stable short hash of a configuration, used as a registry key.

    Args:
        config: Settings model, plain mapping, or None.

    Returns:
        12-character hex digest; equal configs give equal hashes.
    """
    if config is None:
        data: Any = {}
    elif isinstance(config, BaseModel):
        data = config.model_dump(mode="json")
    else:
        data = dict(config)
    encoded = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:12]
