"""Field-level conflict detection and conflict descriptions.

A queued mutation conflicts with the server only when the field it
touches has moved on the server since the mutation's baseline snapshot
(``original_task``) was taken.  Changes to unrelated fields never block
the edit.

Each ``MutationKind`` has exactly one field reader, one local-change
renderer and one server-value renderer; the ``match`` statements below
are exhaustive over the enum.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from .models import (
    CHECKED_STATUS,
    UNCHECKED_STATUS,
    ConflictDescription,
    ConflictReason,
    MutationKind,
    PendingMutation,
    StatusGroup,
    SyncConflict,
    Task,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Field readers
# ---------------------------------------------------------------------------

FIELD_READERS: dict[MutationKind, Callable[[Task], Any]] = {
    # A checkbox edit writes the status column, so both compare status.
    MutationKind.UPDATE_STATUS: lambda t: t.status.id,
    MutationKind.UPDATE_CHECKBOX: lambda t: t.status.id,
    MutationKind.UPDATE_TITLE: lambda t: t.title,
    MutationKind.UPDATE_DO_DATE: lambda t: t.do_date,
    MutationKind.UPDATE_DUE_DATE: lambda t: t.due_date,
    MutationKind.UPDATE_COMPLETED_DATE: lambda t: t.completed_date,
    MutationKind.UPDATE_TASK_TYPE: lambda t: t.task_type,
    MutationKind.UPDATE_PROJECT: lambda t: t.project,
    MutationKind.UPDATE_URL: lambda t: t.url,
}


def detect_conflict(
    mutation: PendingMutation, server_task: Task | None
) -> ConflictReason | None:
    """Classify a mutation against the server's current record.

    Args:
        mutation: The queued edit with its baseline snapshot.
        server_task: Freshly fetched server record, ``None`` if deleted.

    Returns:
        ``ConflictReason.DELETED`` if the record is gone,
        ``ConflictReason.DIVERGED`` if the touched field differs from the
        baseline, or ``None`` if the edit can be applied.
    """
    if server_task is None:
        return ConflictReason.DELETED

    read = FIELD_READERS[mutation.kind]
    baseline = read(mutation.original_task)
    current = read(server_task)
    if baseline != current:
        logger.info(
            "Conflict on %s for task %s: baseline %r, server %r",
            mutation.kind.value,
            mutation.task_id,
            baseline,
            current,
        )
        return ConflictReason.DIVERGED
    return None


# ---------------------------------------------------------------------------
# Local view
# ---------------------------------------------------------------------------


def option_value(payload) -> str | None:
    """Field value a select or relation edit leaves on the task.

    Relations are stored as comma-joined page ids, matching how
    ``page_to_task`` reads them from the server.
    """
    if payload.is_relation:
        return ",".join(payload.page_ids) or None
    return payload.option_name


FIELD_NAMES: dict[MutationKind, str] = {
    MutationKind.UPDATE_STATUS: "status",
    MutationKind.UPDATE_CHECKBOX: "status",
    MutationKind.UPDATE_TITLE: "title",
    MutationKind.UPDATE_DO_DATE: "do_date",
    MutationKind.UPDATE_DUE_DATE: "due_date",
    MutationKind.UPDATE_COMPLETED_DATE: "completed_date",
    MutationKind.UPDATE_TASK_TYPE: "task_type",
    MutationKind.UPDATE_PROJECT: "project",
    MutationKind.UPDATE_URL: "url",
}


def restore_field(task: Task, source: Task, kind: MutationKind) -> Task:
    """Copy the field touched by *kind* from *source* onto *task*."""
    name = FIELD_NAMES[kind]
    return task.model_copy(update={name: getattr(source, name)})


def apply_to_task(task: Task, mutation: PendingMutation) -> Task:
    """Return *task* with the mutation's edit applied locally."""
    payload = mutation.payload
    match mutation.kind:
        case MutationKind.UPDATE_STATUS:
            update = {"status": payload.new_status}
        case MutationKind.UPDATE_CHECKBOX:
            update = {
                "status": CHECKED_STATUS if payload.checked else UNCHECKED_STATUS
            }
        case MutationKind.UPDATE_TITLE:
            update = {"title": payload.new_title}
        case MutationKind.UPDATE_DO_DATE:
            update = {"do_date": payload.date}
        case MutationKind.UPDATE_DUE_DATE:
            update = {"due_date": payload.date}
        case MutationKind.UPDATE_COMPLETED_DATE:
            update = {"completed_date": payload.date}
        case MutationKind.UPDATE_TASK_TYPE:
            update = {"task_type": option_value(payload)}
        case MutationKind.UPDATE_PROJECT:
            update = {"project": option_value(payload)}
        case MutationKind.UPDATE_URL:
            update = {"url": payload.url}
    return task.model_copy(update=update)


# ---------------------------------------------------------------------------
# Descriptions
# ---------------------------------------------------------------------------


def format_date(value: str | None) -> str:
    """Render an ISO date or datetime for display; ``"none"`` when empty."""
    if not value:
        return "none"
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    if "T" in value:
        return parsed.strftime("%b %d, %Y %H:%M")
    return parsed.strftime("%b %d, %Y")


def _text(value: str | None) -> str:
    return value or "none"


def _option(option_name: str | None, is_relation: bool, page_ids: list[str]) -> str:
    if option_name:
        return option_name
    if is_relation and page_ids:
        noun = "page" if len(page_ids) == 1 else "pages"
        return f"{len(page_ids)} linked {noun}"
    return "none"


def describe_local_change(mutation: PendingMutation) -> str:
    payload = mutation.payload
    match mutation.kind:
        case MutationKind.UPDATE_STATUS:
            return f'Changed status to "{payload.new_status.name}"'
        case MutationKind.UPDATE_CHECKBOX:
            return f"{'Completed' if payload.checked else 'Uncompleted'} task"
        case MutationKind.UPDATE_TITLE:
            return f'Changed title to "{payload.new_title}"'
        case MutationKind.UPDATE_DO_DATE:
            return f'Changed do date to "{format_date(payload.date)}"'
        case MutationKind.UPDATE_DUE_DATE:
            return f'Changed due date to "{format_date(payload.date)}"'
        case MutationKind.UPDATE_COMPLETED_DATE:
            return f'Changed completed date to "{format_date(payload.date)}"'
        case MutationKind.UPDATE_TASK_TYPE:
            shown = _option(payload.option_name, payload.is_relation, payload.page_ids)
            return f'Changed type to "{shown}"'
        case MutationKind.UPDATE_PROJECT:
            shown = _option(payload.option_name, payload.is_relation, payload.page_ids)
            return f'Changed project to "{shown}"'
        case MutationKind.UPDATE_URL:
            return f'Changed URL to "{_text(payload.url)}"'


def describe_server_value(kind: MutationKind, server_task: Task) -> str:
    match kind:
        case MutationKind.UPDATE_STATUS:
            return f'Server status is now "{server_task.status.name}"'
        case MutationKind.UPDATE_CHECKBOX:
            done = server_task.status.group == StatusGroup.COMPLETE
            return f"Server shows task as {'completed' if done else 'incomplete'}"
        case MutationKind.UPDATE_TITLE:
            return f'Server title is now "{server_task.title}"'
        case MutationKind.UPDATE_DO_DATE:
            return f'Server do date is now "{format_date(server_task.do_date)}"'
        case MutationKind.UPDATE_DUE_DATE:
            return f'Server due date is now "{format_date(server_task.due_date)}"'
        case MutationKind.UPDATE_COMPLETED_DATE:
            return (
                "Server completed date is now "
                f'"{format_date(server_task.completed_date)}"'
            )
        case MutationKind.UPDATE_TASK_TYPE:
            return f'Server type is now "{_text(server_task.task_type)}"'
        case MutationKind.UPDATE_PROJECT:
            return f'Server project is now "{_text(server_task.project)}"'
        case MutationKind.UPDATE_URL:
            return f'Server URL is now "{_text(server_task.url)}"'


def describe_conflict(conflict: SyncConflict) -> ConflictDescription:
    """Render "your change" vs "server's change" for a conflict."""
    mutation = conflict.mutation
    local_change = describe_local_change(mutation)

    if conflict.reason == ConflictReason.DELETED:
        server_change = "Task was deleted on the server"
    elif conflict.reason == ConflictReason.REJECTED:
        server_change = (
            f"Server rejected the change: {mutation.last_error or 'unknown error'}"
        )
    elif conflict.server_task is None:
        server_change = (
            f"Change failed {mutation.retry_count} times; "
            "server state is unavailable"
        )
    elif conflict.reason == ConflictReason.RETRIES_EXHAUSTED:
        server_change = (
            f"Change failed {mutation.retry_count} times. "
            + describe_server_value(mutation.kind, conflict.server_task)
        )
    else:
        server_change = describe_server_value(mutation.kind, conflict.server_task)

    return ConflictDescription(local_change=local_change, server_change=server_change)
