"""Remote API access shared by the sync layer and the CLI."""

from .async_utils import call_maybe_async, run_sync
from .client import NotionClient

__all__ = ["NotionClient", "call_maybe_async", "run_sync"]
