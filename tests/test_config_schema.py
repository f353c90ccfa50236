"""Tests for the unified config schema.

Covers UnifiedConfig, NotionConfig, SyncConfig (with FieldMapping),
LoggingConfig and the build_config() factory.
"""

import pytest
from pydantic import ValidationError

from task_mirror.config_schema import (
    FieldMapping,
    LoggingConfig,
    NotionConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
)

# ---------------------------------------------------------------------------
# UnifiedConfig tests
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    """Tests for the top-level UnifiedConfig model."""

    def test_zero_config_defaults(self):
        config = UnifiedConfig()
        assert config.notion.token is None
        assert config.notion.request_timeout == 30.0
        assert config.sync.max_retries == 5
        assert config.sync.conflict_strategy == "manual"
        assert config.sync.preserve_baseline is True
        assert config.sync.field_mapping is None
        assert config.logging.level == "INFO"
        assert config.logging.format == "text"

    def test_unknown_sections_ignored(self):
        config = UnifiedConfig(**{"notion": {"token": "t"}, "future": {"k": "v"}})
        assert config.notion.token == "t"
        assert not hasattr(config, "future")

    def test_frozen_model_prevents_mutation(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.logging = LoggingConfig(level="DEBUG")  # type: ignore[misc]


class TestBuildConfig:
    def test_empty_dict(self):
        assert build_config({}) == UnifiedConfig()

    def test_full_raw_dict(self):
        raw = {
            "notion": {"token": "secret_x", "request_timeout": 15},
            "sync": {
                "max_retries": 3,
                "backoff_base_seconds": 1,
                "backoff_cap_seconds": 60,
                "conflict_strategy": "remote-wins",
                "preserve_baseline": False,
                "database_id": "db-1",
                "field_mapping": {"task_name": "title", "status": "st"},
            },
            "logging": {"level": "DEBUG", "file": "/tmp/tm.log", "format": "json"},
        }

        config = build_config(raw)

        assert config.notion.request_timeout == 15.0
        assert config.sync.conflict_strategy == "remote-wins"
        assert config.sync.database_id == "db-1"
        assert config.sync.field_mapping.status == "st"
        assert config.sync.field_mapping.due_date is None
        assert config.logging.file == "/tmp/tm.log"
        assert config.logging.format == "json"

    def test_invalid_values_raise(self):
        with pytest.raises(ValidationError):
            build_config({"sync": {"conflict_strategy": "coin-flip"}})
        with pytest.raises(ValidationError):
            build_config({"logging": {"format": "xml"}})


# ---------------------------------------------------------------------------
# Section tests
# ---------------------------------------------------------------------------


class TestNotionConfig:
    @pytest.mark.parametrize("timeout", [0, -5, 301])
    def test_timeout_bounds(self, timeout):
        with pytest.raises(ValidationError):
            NotionConfig(request_timeout=timeout)


class TestSyncConfig:
    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValidationError):
            SyncConfig(max_retries=0)

    def test_cap_below_base_rejected(self):
        with pytest.raises(ValidationError, match="backoff_cap_seconds"):
            SyncConfig(backoff_base_seconds=10, backoff_cap_seconds=5)

    def test_equal_base_and_cap_allowed(self):
        config = SyncConfig(backoff_base_seconds=5, backoff_cap_seconds=5)
        assert config.backoff_cap_seconds == 5


class TestFieldMapping:
    def test_required_fields(self):
        with pytest.raises(ValidationError):
            FieldMapping(task_name="title")  # type: ignore[call-arg]

    def test_optional_fields_default_to_none(self):
        mapping = FieldMapping(task_name="title", status="st")
        assert mapping.status_is_checkbox is False
        assert mapping.project is None
        assert mapping.completed_date is None
