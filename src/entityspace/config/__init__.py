"""Configuration module using Pydantic Settings.

Provides typed configuration for workspaces with environment variable support.

Usage:
    from entityspace.config import WorkspaceSettings

    settings = WorkspaceSettings(default_page_size=25)
"""

from entityspace.config.settings import LoggingSettings, WorkspaceSettings, config_hash

__all__ = [
    "WorkspaceSettings",
    "LoggingSettings",
    "config_hash",
]
