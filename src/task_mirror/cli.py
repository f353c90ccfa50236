"""Command-line interface for the offline task queue.

All commands share one storage directory, so edits queued by one
invocation are drained by a later ``task-mirror sync``.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import (
    discover_config_files,
    ensure_config,
    load_hierarchical_config,
)
from .config_schema import UnifiedConfig, build_config
from .core.client import NotionClient
from .errors import TaskMirrorError
from .logger import setup_logging
from .sync import (
    CheckboxPayload,
    ClientApplier,
    DoDatePayload,
    DueDatePayload,
    FileBlobStore,
    RetryPolicy,
    SyncManager,
    TitlePayload,
    UrlPayload,
    create_policy,
    format_conflicts,
    format_drain_report,
    report_to_json,
)
from .sync.reporter import format_queue

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def load_settings(
    unified: UnifiedConfig,
    overrides: dict[str, Any] | None = None,
) -> Config:
    """Resolve the validated connection config.

    Precedence: CLI args > env vars (.env loaded first) > YAML > defaults.

    Raises:
        ValueError: If the configuration is invalid or incomplete.
    """
    yaml_fallbacks = {
        k: v for k, v in unified.notion.model_dump().items() if v is not None
    }

    overrides = overrides or {}
    return load_config(
        api_token=overrides.get("token"),
        api_url=overrides.get("url"),
        storage_dir=overrides.get("storage_dir"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
    )


def build_manager(unified: UnifiedConfig, config: Config) -> SyncManager:
    """Assemble a ``SyncManager`` from loaded configuration.

    Raises:
        ValueError: If no field mapping is configured.
    """
    sync_cfg = unified.sync
    if sync_cfg.field_mapping is None:
        raise ValueError(
            "sync.field_mapping is not configured. Run 'task-mirror init' "
            "and fill in the property ids of your task database."
        )

    applier = ClientApplier(
        NotionClient(config),
        sync_cfg.field_mapping,
        database_id=sync_cfg.database_id,
    )
    return SyncManager(
        store=FileBlobStore(Path(config.storage_dir)),
        applier=applier,
        policy=create_policy(sync_cfg.conflict_strategy),
        retry_policy=RetryPolicy(
            max_retries=sync_cfg.max_retries,
            base_seconds=sync_cfg.backoff_base_seconds,
            cap_seconds=sync_cfg.backoff_cap_seconds,
        ),
        preserve_baseline=sync_cfg.preserve_baseline,
    )


def check_connection(config: Config) -> int:
    """Call the API once and report who the token belongs to."""
    try:
        name = NotionClient(config).validate_connection()
    except TaskMirrorError as e:
        _stderr_print(f"ERROR: Connection failed: {e}")
        return 1
    print(f"Connected to {config.api_url} as {name}.")
    return 0


def _edit_payloads(args: argparse.Namespace) -> list[Any]:
    payloads: list[Any] = []
    if args.title is not None:
        payloads.append(TitlePayload(new_title=args.title))
    if args.done:
        payloads.append(CheckboxPayload(checked=True))
    if args.not_done:
        payloads.append(CheckboxPayload(checked=False))
    if args.do_date is not None:
        payloads.append(DoDatePayload(date=args.do_date or None))
    if args.due_date is not None:
        payloads.append(DueDatePayload(date=args.due_date or None))
    if args.url is not None:
        payloads.append(UrlPayload(url=args.url or None))
    return payloads


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def execute(manager: SyncManager, args: argparse.Namespace) -> int:
    """Run one subcommand against a loaded manager.

    Returns:
        Process exit code.
    """
    await manager.load()

    if args.command == "status":
        print(f"Status:    {manager.status.value}")
        print(f"Pending:   {manager.pending_count}")
        print(f"Conflicts: {len(manager.pending_conflicts)}")
        print(f"Last sync: {manager.cache.last_synced_at or 'never'}")
        return 0

    if args.command == "queue":
        print(format_queue(manager.queue.mutations))
        return 0

    if args.command == "conflicts":
        print(format_conflicts(manager.pending_conflicts))
        return 0

    if args.command == "refresh":
        count = await manager.refresh()
        print(f"Cached {count} tasks.")
        return 0

    if args.command == "edit":
        payloads = _edit_payloads(args)
        if not payloads:
            _stderr_print("Nothing to change: pass at least one field option.")
            return 1
        for payload in payloads:
            await manager.enqueue(args.task_id, payload)
        print(f"Queued {len(payloads)} change(s); {manager.pending_count} pending.")
        return 0

    if args.command == "sync":
        result = await manager.sync_now()
        if args.json:
            output: dict[str, Any] = {"success": result.success, "reason": result.reason}
            if result.report is not None:
                output["report"] = report_to_json(result.report)
            print(json.dumps(output, indent=2))
        elif result.report is not None:
            print(format_drain_report(result.report))
        elif result.success:
            print("Nothing to sync.")
        if not result.success:
            _stderr_print(f"Sync failed: {result.reason}")
            return 1
        return 0

    if args.command == "resolve":
        resolved = await manager.resolve_conflict(args.conflict_id, args.resolution)
        print(f"Resolved {resolved.id} ({resolved.resolution.value}).")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="task-mirror",
        description="task-mirror - offline edit queue for a task database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a starter config in ./.task_mirror/config.yml, then verify the token
  task-mirror init
  task-mirror check

  # Cache the task list, edit offline, then push the edits
  task-mirror refresh
  task-mirror edit <task-id> --title "Buy milk" --done
  task-mirror sync

  # Review and settle conflicts
  task-mirror conflicts
  task-mirror resolve <conflict-id> keep_local
        """,
    )
    parser.add_argument(
        "--token",
        help="Override API token (takes precedence over NOTION_TOKEN env var and config files)"
        " (visible in process list -- prefer NOTION_TOKEN env var)",
    )
    parser.add_argument("--url", help="Override API base URL")
    parser.add_argument(
        "--storage-dir", help="Directory holding the queue, conflicts and cache"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log record format (default: logging.format from config, else text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"task-mirror version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Write a starter config file if none exists")
    sub.add_parser("check", help="Verify the API token and connection")
    sub.add_parser("status", help="Show queue and conflict counters")
    sub.add_parser("queue", help="List pending changes")
    sub.add_parser("conflicts", help="List pending conflicts")
    sub.add_parser("refresh", help="Re-download the task list into the cache")

    sync_parser = sub.add_parser("sync", help="Push pending changes now")
    sync_parser.add_argument("--json", action="store_true", help="JSON output")

    edit_parser = sub.add_parser("edit", help="Queue edits for one task")
    edit_parser.add_argument("task_id")
    edit_parser.add_argument("--title")
    done_group = edit_parser.add_mutually_exclusive_group()
    done_group.add_argument("--done", action="store_true")
    done_group.add_argument("--not-done", action="store_true")
    edit_parser.add_argument("--do-date", help="ISO date; empty string clears")
    edit_parser.add_argument("--due-date", help="ISO date; empty string clears")
    edit_parser.add_argument("--url", help="Link; empty string clears")

    resolve_parser = sub.add_parser("resolve", help="Settle a conflict")
    resolve_parser.add_argument("conflict_id")
    resolve_parser.add_argument("resolution", choices=["keep_local", "keep_server"])
    return parser


def run(argv: list[str] | None = None) -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args(argv)

    # .env first, so ${VAR} interpolation in YAML can use its values
    load_dotenv()
    try:
        unified = build_config(load_hierarchical_config())
    except (ValueError, OSError, yaml.YAMLError) as e:
        _stderr_print(f"ERROR: Could not read config file: {e}")
        sys.exit(1)

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )

    if args.command == "init":
        path = ensure_config()
        print(f"Config file: {path}")
        sys.exit(0)

    overrides: dict[str, Any] = {}
    if args.token:
        overrides["token"] = args.token
    if args.url:
        overrides["url"] = args.url
    if args.storage_dir:
        overrides["storage_dir"] = args.storage_dir
    if args.debug:
        overrides["debug"] = True

    try:
        config = load_settings(unified, overrides)
        if args.command == "check":
            sys.exit(check_connection(config))
        manager = build_manager(unified, config)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        if not discover_config_files():
            _stderr_print("  No config file found; run 'task-mirror init'.")
        sys.exit(1)

    try:
        code = asyncio.run(execute(manager, args))
    except (TaskMirrorError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        _stderr_print(f"ERROR: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    run()
