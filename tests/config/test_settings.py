"""Tests for settings loading and config hashing."""

import pytest
from pydantic import ValidationError

from entityspace.config import LoggingSettings, WorkspaceSettings, config_hash


def test_defaults():
    settings = WorkspaceSettings(_env_file=None)
    assert settings.default_page_size == 50
    assert settings.default_sort_by == "updated_at"
    assert settings.default_sort_order == "desc"
    assert settings.enable_optimistic
    assert not settings.bulk_optimistic
    assert settings.conflict_policy == "serialize"
    assert settings.max_consecutive_failures == 3
    assert settings.failure_cooldown == 30.0


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ENTITYSPACE_DEFAULT_PAGE_SIZE", "25")
    monkeypatch.setenv("ENTITYSPACE_CONFLICT_POLICY", "reject")
    monkeypatch.setenv("ENTITYSPACE_ENABLE_OPTIMISTIC", "false")
    monkeypatch.setenv("ENTITYSPACE_LOG_FORMAT", "json")

    settings = WorkspaceSettings(_env_file=None)

    assert settings.default_page_size == 25
    assert settings.conflict_policy == "reject"
    assert not settings.enable_optimistic
    assert LoggingSettings(_env_file=None).format == "json"


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        WorkspaceSettings(_env_file=None, default_page_size=0)
    with pytest.raises(ValidationError):
        WorkspaceSettings(_env_file=None, conflict_policy="merge")


def test_config_hash_is_stable_and_order_independent():
    assert config_hash(None) == config_hash({})
    assert config_hash({"a": 1, "b": 2}) == config_hash({"b": 2, "a": 1})
    assert config_hash({"a": 1}) != config_hash({"a": 2})
    assert len(config_hash(WorkspaceSettings(_env_file=None))) == 12
