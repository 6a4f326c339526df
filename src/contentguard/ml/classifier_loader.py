"""Lazy, single-flight loader for the external classifier.

The classifier is slow to initialize and may fail, so the loader makes sure
only one initialization is in flight at a time and that every concurrent
caller shares its outcome.

States::

    UNLOADED --get_classifier--> LOADING --success--> READY
        ^                            |
        +-------failure/timeout------+

``reset()`` forces UNLOADED from any state.

The in-flight load is a ``concurrent.futures.Future`` guarded by a
``threading.Lock``. That keeps the loader correct for callers on a single
event loop and for callers spread across threads or several loops.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from enum import StrEnum
from typing import TYPE_CHECKING

from contentguard.errors import ClassifierInitFailure

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from contentguard.ml.nsfw_classifier import NsfwClassifier

    ClassifierFactory = Callable[[], Awaitable[NsfwClassifier]]

logger = logging.getLogger(__name__)

DEFAULT_LOAD_TIMEOUT_SECONDS: float = 30.0


class LoaderState(StrEnum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


class ClassifierLoader:
    """Memoizing, concurrency-safe accessor for the classifier handle."""

    def __init__(
        self,
        factory: ClassifierFactory,
        *,
        timeout: float | None = DEFAULT_LOAD_TIMEOUT_SECONDS,
    ) -> None:
        self._factory = factory
        self._timeout = timeout

        self._lock = threading.Lock()
        self._handle: NsfwClassifier | None = None
        self._flight: Future[NsfwClassifier] | None = None
        self._generation = 0
        self._load_attempts = 0

    # -- Public API ---------------------------------------------------------

    async def get_classifier(self) -> NsfwClassifier:
        """Return the classifier, initializing it at most once concurrently.

        Raises:
            ClassifierInitFailure: If the factory fails, times out, or the
                caller that started the load is cancelled. Every caller waiting
                on that load receives the same error.
        """
        with self._lock:
            if self._handle is not None:
                return self._handle

            flight = self._flight
            is_leader = flight is None
            if flight is None:
                flight = Future()
                self._flight = flight
                self._load_attempts += 1
            generation = self._generation

        if is_leader:
            await self._run_factory(flight, generation)

        # Shielded so a cancelled waiter never cancels the shared load.
        return await asyncio.shield(asyncio.wrap_future(flight))

    def is_loaded(self) -> bool:
        with self._lock:
            return self._handle is not None

    @property
    def state(self) -> LoaderState:
        with self._lock:
            if self._handle is not None:
                return LoaderState.READY
            if self._flight is not None:
                return LoaderState.LOADING
            return LoaderState.UNLOADED

    @property
    def load_attempts(self) -> int:
        """Number of factory invocations started so far."""
        with self._lock:
            return self._load_attempts

    def reset(self) -> None:
        """Drop the cached handle; an in-flight load's result will not be cached."""
        with self._lock:
            self._generation += 1
            self._handle = None
            self._flight = None
        logger.info("Classifier cache cleared")

    # -- Internal -----------------------------------------------------------

    async def _run_factory(self, flight: Future[NsfwClassifier], generation: int) -> None:
        logger.info("Loading classifier (timeout=%s)", self._timeout)
        try:
            handle = await asyncio.wait_for(self._factory(), timeout=self._timeout)
        except TimeoutError as exc:
            error = ClassifierInitFailure(f"Classifier initialization timed out after {self._timeout}s")
            error.__cause__ = exc
            self._fail(flight, generation, error)
            return
        except asyncio.CancelledError:
            self._fail(flight, generation, ClassifierInitFailure("Classifier initialization was cancelled"))
            raise
        except ClassifierInitFailure as exc:
            self._fail(flight, generation, exc)
            return
        except Exception as exc:
            error = ClassifierInitFailure(f"Classifier initialization failed: {exc}")
            error.__cause__ = exc
            self._fail(flight, generation, error)
            return
        except BaseException as exc:
            # The leader re-raises; waiters get a typed failure.
            error = ClassifierInitFailure(f"Classifier initialization aborted: {exc!r}")
            error.__cause__ = exc
            self._fail(flight, generation, error)
            raise

        with self._lock:
            current = self._generation == generation
            if current:
                self._handle = handle
                self._flight = None
        if current:
            logger.info("Classifier loaded and cached (%s)", handle.model_name)
        else:
            logger.info("Discarding classifier loaded before reset (%s)", handle.model_name)
        flight.set_result(handle)

    def _fail(self, flight: Future[NsfwClassifier], generation: int, error: ClassifierInitFailure) -> None:
        with self._lock:
            if self._generation == generation:
                self._flight = None
        logger.error("Error loading classifier: %s", error)
        flight.set_exception(error)
