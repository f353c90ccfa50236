"""Pydantic models for the offline mutation queue.

Defines the data contracts shared by every sync module:

- ``Task`` / ``TaskStatus``: local representation of one database row.
- ``MutationKind`` and the per-kind payload models, combined into the
  ``MutationPayload`` tagged union (discriminated on ``kind``).
- ``PendingMutation``: one queued field-level edit.
- ``SyncConflict``: a queued edit the server diverged from.
- ``SyncStatus``: the activity hint shown next to the queue counters.
- ``MutationResult`` / ``DrainReport`` / ``SyncNowResult``: outcomes of a
  drain.

All models are frozen (immutable); updates go through ``model_copy``.
Timestamps are UTC ISO 8601 strings.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, computed_field, field_validator


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def generate_id(prefix: str = "") -> str:
    """Opaque unique identifier, optionally prefixed."""
    return f"{prefix}{uuid.uuid4().hex}"


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class StatusGroup(str, Enum):
    """Coarse grouping of status options."""

    TODO = "todo"
    IN_PROGRESS = "inProgress"
    COMPLETE = "complete"


class TaskStatus(BaseModel):
    """One status option of the task database."""

    id: str
    name: str
    color: str = "default"
    group: StatusGroup = StatusGroup.TODO

    model_config = {"frozen": True}


CHECKED_STATUS = TaskStatus(
    id="checked", name="Complete", color="green", group=StatusGroup.COMPLETE
)
UNCHECKED_STATUS = TaskStatus(
    id="unchecked", name="To Do", color="default", group=StatusGroup.TODO
)


class Task(BaseModel):
    """A task as known locally.

    Attributes:
        id: Page id of the row.
        title: Task name.
        status: Current status option.
        task_type: Select option name, or comma-joined relation page ids.
        project: Select option name, or comma-joined relation page ids.
        do_date: ISO date the task is planned for.
        due_date: ISO due date.
        url: Related link.
        creation_date: ISO creation date.
        completed_date: ISO completion date.
        page_url: Link to the page in the remote app.
        last_edited_time: Server timestamp of the last edit.
    """

    id: str
    title: str
    status: TaskStatus
    task_type: str | None = None
    project: str | None = None
    do_date: str | None = None
    due_date: str | None = None
    url: str | None = None
    creation_date: str | None = None
    completed_date: str | None = None
    page_url: str = ""
    last_edited_time: str | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class MutationKind(str, Enum):
    """Closed set of field-level edits that can be queued."""

    UPDATE_STATUS = "update_status"
    UPDATE_CHECKBOX = "update_checkbox"
    UPDATE_TITLE = "update_title"
    UPDATE_DO_DATE = "update_do_date"
    UPDATE_DUE_DATE = "update_due_date"
    UPDATE_COMPLETED_DATE = "update_completed_date"
    UPDATE_TASK_TYPE = "update_task_type"
    UPDATE_PROJECT = "update_project"
    UPDATE_URL = "update_url"


class StatusPayload(BaseModel):
    kind: Literal["update_status"] = "update_status"
    new_status: TaskStatus

    model_config = {"frozen": True}


class CheckboxPayload(BaseModel):
    kind: Literal["update_checkbox"] = "update_checkbox"
    checked: bool

    model_config = {"frozen": True}


class TitlePayload(BaseModel):
    kind: Literal["update_title"] = "update_title"
    new_title: str

    model_config = {"frozen": True}

    @field_validator("new_title")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Title cannot be empty")
        return value


class _DatePayload(BaseModel):
    """``date`` of ``None`` clears the field."""

    date: str | None = None

    model_config = {"frozen": True}

    @field_validator("date")
    @classmethod
    def _iso_date(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"Invalid ISO date '{value}'") from None
        return value


class DoDatePayload(_DatePayload):
    kind: Literal["update_do_date"] = "update_do_date"


class DueDatePayload(_DatePayload):
    kind: Literal["update_due_date"] = "update_due_date"


class CompletedDatePayload(_DatePayload):
    kind: Literal["update_completed_date"] = "update_completed_date"


class _OptionPayload(BaseModel):
    """Target a select option by name, or a relation by page ids.

    ``is_relation`` selects the relation form; ``page_ids`` then replaces
    the relation wholesale (an empty list clears it).  ``option_name`` is
    kept in both forms as the display value.
    """

    option_name: str | None = None
    is_relation: bool = False
    page_ids: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class TaskTypePayload(_OptionPayload):
    kind: Literal["update_task_type"] = "update_task_type"


class ProjectPayload(_OptionPayload):
    kind: Literal["update_project"] = "update_project"


class UrlPayload(BaseModel):
    kind: Literal["update_url"] = "update_url"
    url: str | None = None

    model_config = {"frozen": True}


MutationPayload = Annotated[
    Union[
        StatusPayload,
        CheckboxPayload,
        TitlePayload,
        DoDatePayload,
        DueDatePayload,
        CompletedDatePayload,
        TaskTypePayload,
        ProjectPayload,
        UrlPayload,
    ],
    Field(discriminator="kind"),
]

PAYLOAD_TYPES: tuple[type[BaseModel], ...] = (
    StatusPayload,
    CheckboxPayload,
    TitlePayload,
    DoDatePayload,
    DueDatePayload,
    CompletedDatePayload,
    TaskTypePayload,
    ProjectPayload,
    UrlPayload,
)


class PendingMutation(BaseModel):
    """A field-level edit waiting to be applied remotely.

    Attributes:
        id: Unique id, regenerated whenever the entry is coalesced.
        task_id: The task being edited.
        payload: Kind-tagged edit data.
        created_at: When the edit was queued.
        retry_count: Failed apply attempts so far.
        last_attempt_at: When the last failed attempt happened.
        last_error: Message of the last failed attempt.
        original_task: Task snapshot used as the conflict baseline.
    """

    id: str
    task_id: str
    payload: MutationPayload
    created_at: str
    retry_count: int = 0
    last_attempt_at: str | None = None
    last_error: str | None = None
    original_task: Task

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def kind(self) -> MutationKind:
        return MutationKind(self.payload.kind)


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class ConflictResolution(str, Enum):
    """How a conflict was settled.

    ``AUTO_RESOLVED`` is only ever set by a configured policy, never by
    a direct user action.
    """

    KEEP_LOCAL = "keep_local"
    KEEP_SERVER = "keep_server"
    AUTO_RESOLVED = "auto_resolved"


class ConflictReason(str, Enum):
    """Why a mutation was turned into a conflict."""

    DIVERGED = "diverged"
    DELETED = "deleted"
    RETRIES_EXHAUSTED = "retries_exhausted"
    REJECTED = "rejected"


class SyncConflict(BaseModel):
    """A queued edit that needs a decision before it can reach the server.

    Attributes:
        id: Unique id.
        mutation: The mutation that triggered the conflict (full value).
        server_task: Server snapshot at detection time; ``None`` when the
            record is gone or could not be read.
        reason: Why the conflict was raised.
        detected_at: Detection timestamp.
        status: ``pending`` until resolved.
        resolution: Set once resolved.
        resolved_at: Set once resolved.
    """

    id: str
    mutation: PendingMutation
    server_task: Task | None = None
    reason: ConflictReason = ConflictReason.DIVERGED
    detected_at: str
    status: ConflictStatus = ConflictStatus.PENDING
    resolution: ConflictResolution | None = None
    resolved_at: str | None = None

    model_config = {"frozen": True}


class ConflictDescription(BaseModel):
    """Short human-readable rendering of both sides of a conflict."""

    local_change: str
    server_change: str

    model_config = {"frozen": True}


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    HAS_CONFLICTS = "has_conflicts"


# ---------------------------------------------------------------------------
# Drain results
# ---------------------------------------------------------------------------


class MutationOutcome(str, Enum):
    APPLIED = "applied"
    CONFLICT = "conflict"
    FAILED = "failed"
    DEFERRED = "deferred"


class MutationResult(BaseModel):
    """Outcome of processing one mutation during a drain.

    Attributes:
        mutation_id: Id of the processed mutation.
        task_id: Task it targeted.
        kind: Mutation kind.
        outcome: What happened.
        error: Error message for failed attempts.
        conflict_id: Id of the conflict raised, if any.
    """

    mutation_id: str
    task_id: str
    kind: MutationKind
    outcome: MutationOutcome
    error: str | None = None
    conflict_id: str | None = None

    model_config = {"frozen": True}


class DrainReport(BaseModel):
    """Aggregate report for one pass over the queue.

    Attributes:
        started_at: When the drain started.
        completed_at: When it finished.
        results: Per-mutation outcomes in processing order.
        aborted: True if the pass stopped early on lost connectivity or a
            failed write.
        error: Message of the error that aborted the drain.
    """

    started_at: str
    completed_at: str | None = None
    results: list[MutationResult] = []
    aborted: bool = False
    error: str | None = None

    model_config = {"frozen": True}

    def _with(self, outcome: MutationOutcome) -> list[MutationResult]:
        return [r for r in self.results if r.outcome == outcome]

    @property
    def applied(self) -> list[MutationResult]:
        return self._with(MutationOutcome.APPLIED)

    @property
    def conflicts(self) -> list[MutationResult]:
        return self._with(MutationOutcome.CONFLICT)

    @property
    def failed(self) -> list[MutationResult]:
        return self._with(MutationOutcome.FAILED)

    @property
    def deferred(self) -> list[MutationResult]:
        return self._with(MutationOutcome.DEFERRED)


class SyncNowResult(BaseModel):
    """Result of a manual "sync now" request.

    ``reason`` is ``"offline"``, ``"busy"`` or ``"error"`` when
    ``success`` is False.
    """

    success: bool
    reason: Literal["offline", "busy", "error"] | None = None
    report: DrainReport | None = None

    model_config = {"frozen": True}
