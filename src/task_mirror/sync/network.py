"""Connectivity tracking for reconnect-triggered syncs."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class NetworkState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class ReachabilityTracker:
    """Turn a stream of network states into "came back online" edges.

    Only an explicit ``offline`` report arms the tracker and only an
    explicit ``online`` report fires it, exactly once.  ``unknown`` is not
    offline (manual syncs may still try) but leaves the tracker armed.
    """

    def __init__(self, initial: NetworkState = NetworkState.UNKNOWN) -> None:
        self._state = initial
        self._was_offline = initial == NetworkState.OFFLINE

    @property
    def state(self) -> NetworkState:
        return self._state

    @property
    def is_offline(self) -> bool:
        return self._state == NetworkState.OFFLINE

    def update(self, state: NetworkState) -> bool:
        """Record *state*; return True on an offline-to-online transition."""
        state = NetworkState(state)
        previous = self._state
        self._state = state
        if state == NetworkState.OFFLINE:
            if not self._was_offline:
                logger.info("Network went offline")
            self._was_offline = True
            return False
        if state == NetworkState.ONLINE and self._was_offline:
            self._was_offline = False
            logger.info("Network is back (%s -> %s)", previous.value, state.value)
            return True
        return False
