"""Unified configuration schema for task_mirror.

Defines Pydantic models for the unified config structure with dedicated
sections for the remote API connection, offline sync behaviour and
logging. Connection values from the ``notion`` section feed
``load_config`` as YAML fallbacks.

Usage:
    from task_mirror.config_schema import (
        UnifiedConfig, build_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    mapping = unified.sync.field_mapping
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class NotionConfig(BaseModel):
    """Remote API connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    token: str | None = Field(default=None, description="API token")
    url: str | None = Field(default=None, description="API base URL")
    version: str | None = Field(
        default=None, description="API version header"
    )
    storage_dir: str | None = Field(
        default=None, description="Directory for offline data"
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Read timeout for remote calls in seconds",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class FieldMapping(BaseModel):
    """Property ids of the task database, keyed by app field.

    ``task_name`` and ``status`` are required; every other field is
    optional and mutations targeting an unmapped field are rejected by
    the remote.  ``status_is_checkbox`` marks a database whose status
    column is a checkbox rather than a status property.
    """

    task_name: str
    status: str
    status_is_checkbox: bool = False
    task_type: str | None = None
    project: str | None = None
    do_date: str | None = None
    due_date: str | None = None
    url: str | None = None
    creation_date: str | None = None
    completed_date: str | None = None

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Offline queue and conflict handling settings.

    Attributes:
        max_retries: Failed attempts before a mutation is surfaced as a
            conflict for manual attention.
        backoff_base_seconds: Delay after the first failure.
        backoff_cap_seconds: Upper bound on the retry delay.
        conflict_strategy: ``manual``, ``local-wins`` or ``remote-wins``.
        preserve_baseline: Keep the earliest snapshot when edits coalesce.
        database_id: Id of the task database used for full refreshes.
        field_mapping: Property ids for the task database.
    """

    max_retries: int = Field(default=5, ge=1, le=100)
    backoff_base_seconds: float = Field(default=2.0, ge=0)
    backoff_cap_seconds: float = Field(default=300.0, ge=0)
    conflict_strategy: Literal["manual", "local-wins", "remote-wins"] = (
        "manual"
    )
    preserve_baseline: bool = True
    database_id: str | None = None
    field_mapping: FieldMapping | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_backoff(self) -> SyncConfig:
        if self.backoff_cap_seconds < self.backoff_base_seconds:
            raise ValueError(
                "backoff_cap_seconds must be >= backoff_base_seconds"
            )
        return self


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: "text" or "json".
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log record format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    notion: NotionConfig = Field(default_factory=NotionConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)

