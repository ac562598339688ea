"""In-memory guard against duplicate in-flight submissions."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from threading import Lock
from typing import AsyncIterator

from src.api.middleware.error_handler import ConflictError

logger = logging.getLogger(__name__)


class InFlightRegistry:
    """Tracks keys with a request currently in progress.

    A second request for the same key is rejected rather than queued,
    mirroring a disabled submit button: order creation for one owner and
    payment verification for one order never run twice concurrently.
    Scope is a single process.
    """

    def __init__(self) -> None:
        self._started: dict[str, float] = {}
        self._lock = Lock()

    def acquire(self, key: str) -> bool:
        """Mark key as in flight.

        Returns:
            bool: False if the key was already in flight.
        """
        with self._lock:
            if key in self._started:
                return False
            self._started[key] = time.monotonic()
            return True

    def release(self, key: str) -> None:
        """Clear the in-flight mark for key."""
        with self._lock:
            started = self._started.pop(key, None)
        if started is not None:
            logger.debug("Released %s after %.2fms", key, (time.monotonic() - started) * 1000)

    def is_in_flight(self, key: str) -> bool:
        """Check whether key currently has a request in progress."""
        with self._lock:
            return key in self._started

    @asynccontextmanager
    async def claim(self, key: str, message: str = "A request is already in progress") -> AsyncIterator[None]:
        """Hold key for the duration of the block.

        Raises:
            ConflictError: If key is already in flight.
        """
        if not self.acquire(key):
            logger.warning("Rejected duplicate in-flight request for %s", key)
            raise ConflictError(message)
        try:
            yield
        finally:
            self.release(key)


_registry: InFlightRegistry | None = None


def get_inflight_registry() -> InFlightRegistry:
    """Get or create the global in-flight registry."""
    global _registry
    if _registry is None:
        _registry = InFlightRegistry()
    return _registry
