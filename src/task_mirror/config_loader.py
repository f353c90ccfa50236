"""
Hierarchical configuration loader for task_mirror.

Finds config files by convention, resolves YAML ``!include`` directives,
interpolates ``${VAR}`` references and merges files with "project wins"
semantics.

Usage:
    from task_mirror.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".task_mirror"
CONFIG_ENV_VAR = "TASK_MIRROR_CONFIG"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Substitute ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    * ``${VAR}`` becomes the value of VAR, or ``""`` when unset.
    * ``${VAR:-default}`` falls back to *default* when VAR is unset or empty.
    * An unterminated ``${`` is left as-is.
    """

    def _lookup(match: re.Match) -> str:
        name, fallback = match.group(1), match.group(2)
        current = os.environ.get(name)
        if current:
            return current
        return fallback if fallback is not None else ""

    return _ENV_REF.sub(_lookup, value)


def _interpolate_tree(node: Any) -> Any:
    """Apply ``interpolate_env_vars`` to every string in a nested structure."""
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, dict):
        return {key: _interpolate_tree(val) for key, val in node.items()}
    if isinstance(node, list):
        return [_interpolate_tree(item) for item in node]
    return node


# ---------------------------------------------------------------------------
# 2. YAML !include support
# ---------------------------------------------------------------------------


class IncludeLoader(yaml.SafeLoader):
    """SafeLoader subclass that understands ``!include <path>``.

    A private subclass keeps the global ``yaml.SafeLoader`` untouched.
    Each load carries the chain of files being read so circular includes
    are reported instead of recursing forever.
    """


def _construct_include(loader: IncludeLoader, node: yaml.ScalarNode) -> Any:
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    chain: list[Path] = getattr(loader, "include_chain", [])
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")

    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return load_yaml_file(target, include_chain=[*chain, target])


IncludeLoader.add_constructor("!include", _construct_include)


def load_yaml_file(
    path: Path, *, include_chain: list[Path] | None = None
) -> Any:
    """Parse one YAML file with ``!include`` support."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = IncludeLoader(fh)
        loader.include_chain = include_chain or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``TASK_MIRROR_CONFIG`` env var (explicit single path)
        2. ``.task_mirror/config.yml`` in CWD (project-level)
        3. ``.task_mirror/config.yaml`` in CWD
        4. ``~/.config/task_mirror/config.yml`` (XDG global)
    """
    candidates: list[Path] = []

    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())

    project_dir = Path.cwd() / CONFIG_DIR_NAME
    candidates.append(project_dir / "config.yml")
    candidates.append(project_dir / "config.yaml")
    candidates.append(Path.home() / ".config" / "task_mirror" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# task-mirror configuration
#
# The API token can also come from the NOTION_TOKEN environment variable
# (or a .env file next to where you run task-mirror).
#
# notion:
#   token: ${NOTION_TOKEN}
#   storage_dir: ~/.task_mirror/data
#   request_timeout: 30
#
# sync:
#   max_retries: 5
#   backoff_base_seconds: 2
#   backoff_cap_seconds: 300
#   conflict_strategy: manual     # manual | local-wins | remote-wins
#   preserve_baseline: true
#   database_id: "0123456789abcdef0123456789abcdef"
#   field_mapping:
#     task_name: title
#     status: "%3DhQy"
#     due_date: "abc%7D"
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Where to create the starter file.  Defaults to
            ``CWD / .task_mirror / config.yml``.

    Returns:
        Path to the existing or newly created config file.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / CONFIG_DIR_NAME / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest to highest precedence; top-level keys of
    a later file replace (not deep-merge) earlier ones.  Env var
    interpolation runs after the merge.  Returns ``{}`` when no config
    file exists.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_tree(merged)
