"""Drain report and conflict formatting functions.

Provides human-readable and machine-readable output for the CLI:

- ``format_drain_report`` -- post-drain summary.
- ``format_conflicts`` -- pending conflicts with both sides described.
- ``format_queue`` -- pending mutations in processing order.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import DrainReport, PendingMutation, SyncConflict

from .detector import describe_conflict, describe_local_change

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_drain_report(report: DrainReport) -> str:
    """Format a drain report as human-readable text.

    Sections are only included when they contain at least one result.
    Deferred mutations are summarised by count only.

    Args:
        report: The completed drain report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = "Sync report"
    if report.aborted:
        header += " (ABORTED)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    if not report.results:
        lines.append("Nothing to sync.")
        return "\n".join(lines).rstrip()

    lines.append(
        f"Processed {len(report.results)} changes: "
        f"{len(report.applied)} applied, "
        f"{len(report.conflicts)} conflicts, "
        f"{len(report.failed)} failed"
    )
    lines.append("")

    if report.applied:
        lines.append("Applied:")
        for r in report.applied:
            lines.append(f"  {r.task_id}: {r.kind.value}")
        lines.append("")

    if report.conflicts:
        lines.append("Conflicts:")
        for r in report.conflicts:
            suffix = f" ({r.error})" if r.error else ""
            lines.append(f"  {r.task_id}: {r.kind.value} -> {r.conflict_id}{suffix}")
        lines.append("")

    if report.failed:
        lines.append("Failed (will retry):")
        for r in report.failed:
            lines.append(f"  {r.task_id}: {r.kind.value}: {r.error}")
        lines.append("")

    if report.deferred:
        lines.append(f"Deferred: {len(report.deferred)} changes (backing off)")
        lines.append("")

    if report.error:
        lines.append(f"Error: {report.error}")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflicts and queue
# ------------------------------------------------------------------


def format_conflicts(conflicts: list[SyncConflict] | tuple[SyncConflict, ...]) -> str:
    """Format pending conflicts, one block per conflict.

    Args:
        conflicts: Pending conflicts.

    Returns:
        Multi-line formatted string.
    """
    if not conflicts:
        return "No pending conflicts."

    lines: list[str] = [f"{len(conflicts)} pending conflicts", ""]
    for conflict in conflicts:
        description = describe_conflict(conflict)
        lines.append(f"[{conflict.id}] task {conflict.mutation.task_id}")
        lines.append(f"  Reason:      {conflict.reason.value}")
        lines.append(f"  Your change: {description.local_change}")
        lines.append(f"  Server:      {description.server_change}")
        lines.append(f"  Detected:    {conflict.detected_at}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_queue(mutations: list[PendingMutation] | tuple[PendingMutation, ...]) -> str:
    """Format the pending queue in processing order."""
    if not mutations:
        return "Queue is empty."

    lines: list[str] = [f"{len(mutations)} pending changes", ""]
    for index, mutation in enumerate(mutations, start=1):
        line = (
            f"{index:>3}. {mutation.task_id}: "
            f"{describe_local_change(mutation)}"
        )
        if mutation.retry_count:
            line += f" (failed {mutation.retry_count}x: {mutation.last_error})"
        lines.append(line)
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: DrainReport) -> dict:
    """Convert a drain report to a structured dict for JSON serialisation.

    Args:
        report: The drain report.

    Returns:
        Dict with timing, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "mutation_id": r.mutation_id,
            "task_id": r.task_id,
            "kind": r.kind.value,
            "outcome": r.outcome.value,
        }
        if r.error:
            entry["error"] = r.error
        if r.conflict_id:
            entry["conflict_id"] = r.conflict_id
        results_list.append(entry)

    return {
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "aborted": report.aborted,
        "error": report.error,
        "counts": {
            "total": len(report.results),
            "applied": len(report.applied),
            "conflicts": len(report.conflicts),
            "failed": len(report.failed),
            "deferred": len(report.deferred),
        },
        "results": results_list,
    }
