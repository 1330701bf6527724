"""
Background construction of the full-mode point sources.

The factory runs on a worker thread; the update thread only ever sees the
finished result, picked up through a non-blocking poll.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from .sources import PointSource

logger = logging.getLogger(__name__)

IDLE = "idle"
LOADING = "loading"
READY = "ready"
FAILED = "failed"
CONSUMED = "consumed"


class HandoffError(RuntimeError):
    """Raised when the full-mode sources could not be constructed."""


class FullModeInitializer:
    """One-shot builder for the heavyweight point sources."""

    def __init__(
        self,
        factory: Callable[[], List[PointSource]],
        executor: Optional[ThreadPoolExecutor] = None
    ):
        """
        Args:
            factory: Callable returning the constructed sources; may be slow
            executor: Executor to run it on (a private one-worker pool if None)
        """
        self.factory = factory
        self._executor = executor
        self._owns_executor = executor is None
        self._future: Optional[Future] = None
        self._state = IDLE

    @property
    def state(self) -> str:
        if self._state == LOADING and self._future.done():
            return FAILED if self._future.exception() is not None else READY
        return self._state

    @property
    def future(self) -> Optional[Future]:
        return self._future

    def start(self) -> Future:
        """Submit the factory to the worker and return its future."""
        if self._state == LOADING:
            raise RuntimeError("Full-mode construction is already running")
        if self._state == CONSUMED:
            raise RuntimeError("Full mode has already been handed off")

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="full-mode")
        logger.info("Starting full-mode construction in the background")
        self._future = self._executor.submit(self.factory)
        self._state = LOADING
        return self._future

    def poll(self) -> Optional[List[PointSource]]:
        """
        Collect the result if construction has finished.

        Returns:
            The sources exactly once when ready, otherwise None

        Raises:
            HandoffError: once, if the factory raised
        """
        if self._state != LOADING or not self._future.done():
            return None

        self._shutdown()
        error = self._future.exception()
        if error is not None:
            self._state = FAILED
            logger.error("Full-mode construction failed: %s", error)
            raise HandoffError(f"Full-mode construction failed: {error}") from error

        sources = list(self._future.result())
        if not sources:
            self._state = FAILED
            raise HandoffError("Full-mode construction produced no point sources")
        self._state = CONSUMED
        logger.info("Full-mode construction finished (%d sources)", len(sources))
        return sources

    def wait(self, timeout: Optional[float] = None):
        """Block until construction finishes; for scripts and tests."""
        if self._future is not None:
            self._future.exception(timeout=timeout)

    def _shutdown(self):
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
