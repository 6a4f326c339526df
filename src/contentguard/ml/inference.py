"""Bounded worker pool for classifier inference and feature extraction.

The engine may be driven from several threads, each running its own event
loop, so slots are counted with a ``threading.BoundedSemaphore`` rather than
an asyncio primitive. Waiting for a slot polls without blocking the loop;
a caller that cannot get one within ``slot_timeout`` gets
``AnalysisPoolSaturated``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

from contentguard.errors import AnalysisPoolSaturated

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

SLOT_TIMEOUT_SECONDS: float = 5.0
_POLL_INTERVAL_SECONDS: float = 0.01


class InferencePool:
    """Runs blocking analysis jobs on at most ``max_concurrent`` threads."""

    def __init__(self, max_concurrent: int, slot_timeout: float = SLOT_TIMEOUT_SECONDS) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._slot_timeout = slot_timeout
        self._executor = ThreadPoolExecutor(max_workers=max_concurrent, thread_name_prefix="contentguard-analysis")
        self._running = 0
        self._waiting = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run ``func(*args)`` on a worker thread once a slot is free.

        Safe to await from any event loop.

        Raises:
            AnalysisPoolSaturated: If no slot frees up within ``slot_timeout``.
        """
        await self._acquire_slot()
        with self._counter_lock:
            self._running += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            with self._counter_lock:
                self._running -= 1
            self._slots.release()

    async def _acquire_slot(self) -> None:
        if self._slots.acquire(blocking=False):
            return

        with self._counter_lock:
            self._waiting += 1
        try:
            deadline = time.monotonic() + self._slot_timeout
            while not self._slots.acquire(blocking=False):
                if time.monotonic() >= deadline:
                    logger.warning("Analysis pool saturated, gave up after %.1fs", self._slot_timeout)
                    raise AnalysisPoolSaturated(f"No analysis slot became free within {self._slot_timeout}s")
                await asyncio.sleep(_POLL_INTERVAL_SECONDS)
        finally:
            with self._counter_lock:
                self._waiting -= 1

    @property
    def active_count(self) -> int:
        """Jobs currently holding a slot."""
        with self._counter_lock:
            return self._running

    @property
    def queue_depth(self) -> int:
        """Callers waiting for a slot."""
        with self._counter_lock:
            return self._waiting

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
