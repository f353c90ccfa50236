"""Connection and storage configuration for task_mirror.

Reads remote API settings from CLI args, environment variables, .env
files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    NOTION_TOKEN: Integration token for the remote API (required)
    TASK_MIRROR_API_URL: API base URL (optional, default: https://api.notion.com)
    TASK_MIRROR_NOTION_VERSION: API version header (optional)
    TASK_MIRROR_STORAGE_DIR: Directory for the offline queue and cache (optional)
    TASK_MIRROR_REQUEST_TIMEOUT: Read timeout in seconds (optional, default: 30)
    TASK_MIRROR_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.notion.com"
DEFAULT_NOTION_VERSION = "2022-06-28"
DEFAULT_STORAGE_DIR = str(Path.home() / ".task_mirror" / "data")


@dataclass
class Config:
    api_token: str
    api_url: str = DEFAULT_API_URL
    notion_version: str = DEFAULT_NOTION_VERSION
    storage_dir: str = DEFAULT_STORAGE_DIR
    request_timeout: float = 30.0
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If URL format is invalid, the token is empty, or the
            timeout is out of range.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if not config.api_token.strip():
        raise ValueError(
            "API token cannot be empty. Set NOTION_TOKEN environment variable."
        )

    if not (0 < config.request_timeout <= 300):
        raise ValueError(
            f"Invalid request timeout {config.request_timeout}: must be between 0 and 300 seconds"
        )

    if config.api_url.startswith("http://"):
        logger.warning(
            "WARNING: API URL is not using TLS (%s). Use only for development.",
            config.api_url,
        )


def load_config(
    api_token: str | None = None,
    api_url: str | None = None,
    storage_dir: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        api_token: Override API token.
        api_url: Override API base URL.
        storage_dir: Override storage directory.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML config ``notion``
            section. Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the API token is missing after checking all
            sources, or a numeric env var is malformed.
    """
    fb = yaml_fallbacks or {}

    token = api_token or os.getenv("NOTION_TOKEN") or fb.get("token")
    if not token:
        raise ValueError(
            "API token not found. Set NOTION_TOKEN environment variable, "
            "pass --token CLI argument, or add 'token' to config.yml."
        )
    token = token.strip()

    final_url = (
        api_url
        or os.getenv("TASK_MIRROR_API_URL")
        or fb.get("url")
        or DEFAULT_API_URL
    )
    final_version = (
        os.getenv("TASK_MIRROR_NOTION_VERSION")
        or fb.get("version")
        or DEFAULT_NOTION_VERSION
    )
    final_storage = (
        storage_dir
        or os.getenv("TASK_MIRROR_STORAGE_DIR")
        or fb.get("storage_dir")
        or DEFAULT_STORAGE_DIR
    )
    final_storage = str(Path(final_storage).expanduser())

    if debug:
        final_debug = True
    else:
        env_debug = os.getenv("TASK_MIRROR_DEBUG")
        if env_debug is not None:
            final_debug = env_debug.lower() in ("true", "1", "yes", "on")
        else:
            final_debug = bool(fb.get("debug", False))

    timeout_raw = os.getenv("TASK_MIRROR_REQUEST_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid TASK_MIRROR_REQUEST_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "request_timeout" in fb:
        final_timeout = float(fb["request_timeout"])
    else:
        final_timeout = 30.0

    config = Config(
        api_token=token,
        api_url=final_url,
        notion_version=final_version,
        storage_dir=final_storage,
        request_timeout=final_timeout,
        debug=final_debug,
    )

    validate_config(config)

    return config
