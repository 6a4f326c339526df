"""Local content analysis engine.

Control flow for a full analysis::

    result cache (hit short-circuits)
      -> classifier loader (ensures the classifier is ready)
      -> classifier inference
      -> feature extraction -> four evaluators -> aggregation
      -> result cache populate
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from contentguard.errors import ClassifierInferenceFailure, ContentGuardError
from contentguard.ml.aggregator import aggregate
from contentguard.ml.evaluators import DrugsEvaluator, NsfwEvaluator, ViolenceEvaluator, WeaponsEvaluator
from contentguard.ml.features import compute_statistics
from contentguard.ml.inference import InferencePool
from contentguard.ml.preprocessing import to_pixel_buffer
from contentguard.ml.result_cache import ResultCache

if TYPE_CHECKING:
    from collections.abc import Hashable, Sequence

    import numpy as np
    from numpy.typing import NDArray

    from contentguard.config import Settings
    from contentguard.ml.aggregator import Verdict
    from contentguard.ml.classifier_loader import ClassifierLoader
    from contentguard.ml.nsfw_classifier import ClassProbability, NsfwClassifier
    from contentguard.ml.result_cache import CacheEntry, CacheStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOutcome:
    """Verdict plus the raw classifier output it was computed from."""

    key: Hashable
    verdict: Verdict
    predictions: tuple[ClassProbability, ...]
    cached: bool


class ContentAnalysisEngine:
    """Combines the classifier, heuristics, and result cache behind one call."""

    def __init__(
        self,
        settings: Settings,
        loader: ClassifierLoader,
        cache: ResultCache | None = None,
        pool: InferencePool | None = None,
    ) -> None:
        self._settings = settings
        self._loader = loader
        if cache is None:
            cache = ResultCache(ttl_seconds=settings.cache_ttl_seconds, max_entries=settings.cache_max_entries)
        self._cache = cache
        if pool is None:
            pool = InferencePool(settings.max_concurrent, slot_timeout=settings.analysis_slot_timeout)
        self._pool = pool

        self._nsfw = NsfwEvaluator(settings.nsfw)
        self._violence = ViolenceEvaluator(settings.violence)
        self._drugs = DrugsEvaluator(settings.drugs)
        self._weapons = WeaponsEvaluator(settings.weapons)

    # -- Public API ---------------------------------------------------------

    def evaluate(self, image: NDArray[np.generic], predictions: Sequence[ClassProbability]) -> Verdict:
        """Run the heuristics on one image without touching the cache."""
        return self._evaluate_buffer(to_pixel_buffer(image, max_pixels=self._settings.max_image_pixels), predictions)

    def analyze(self, key: Hashable, image: NDArray[np.generic], predictions: Sequence[ClassProbability]) -> Verdict:
        """Return the cached verdict for ``key`` or compute and cache a new one.

        ``predictions`` are the external classifier's outputs for this image.
        """
        cached = self._lookup(key)
        if cached is not None:
            return cached.verdict

        verdict = self.evaluate(image, predictions)
        self._store(key, verdict, predictions)
        return verdict

    async def analyze_image(self, key: Hashable, image: NDArray[np.generic]) -> AnalysisOutcome:
        """Full pipeline: cache, classifier load, inference, heuristics.

        Raises:
            InvalidInput: If the buffer is malformed.
            ClassifierInitFailure: If the classifier could not be loaded.
            ClassifierInferenceFailure: If classification failed or timed out.
            AnalysisPoolSaturated: If every worker slot stayed busy.
        """
        cached = self._lookup(key)
        if cached is not None:
            return AnalysisOutcome(key=key, verdict=cached.verdict, predictions=cached.predictions, cached=True)

        buffer = to_pixel_buffer(image, max_pixels=self._settings.max_image_pixels)
        classifier = await self._loader.get_classifier()

        timeout = self._settings.analysis_timeout
        try:
            predictions, verdict = await asyncio.wait_for(
                self._pool.run(self._classify_and_evaluate, classifier, buffer),
                timeout=timeout,
            )
        except TimeoutError as exc:
            raise ClassifierInferenceFailure(f"Image analysis timed out after {timeout}s") from exc

        self._store(key, verdict, predictions)
        logger.info(
            "Analysis complete for %s: safe=%s warnings=%d",
            str(key)[:50],
            verdict.overall_safe,
            len(verdict.warnings),
        )
        return AnalysisOutcome(key=key, verdict=verdict, predictions=predictions, cached=False)

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def reset_classifier(self) -> None:
        self._loader.reset()

    @property
    def active_count(self) -> int:
        return self._pool.active_count

    @property
    def queue_depth(self) -> int:
        return self._pool.queue_depth

    def shutdown(self) -> None:
        """Stop the worker pool."""
        self._pool.shutdown()

    # -- Internal -----------------------------------------------------------

    def _lookup(self, key: Hashable) -> CacheEntry | None:
        if not self._settings.enable_cache:
            return None
        return self._cache.get(key)

    def _store(self, key: Hashable, verdict: Verdict, predictions: Sequence[ClassProbability]) -> None:
        if self._settings.enable_cache:
            self._cache.set(key, verdict, predictions)

    def _classify_and_evaluate(
        self, classifier: NsfwClassifier, buffer: NDArray[np.float64]
    ) -> tuple[tuple[ClassProbability, ...], Verdict]:
        try:
            predictions = tuple(classifier.classify(buffer))
        except ContentGuardError:
            raise
        except Exception as exc:
            raise ClassifierInferenceFailure(f"Failed to classify image: {exc}") from exc
        return predictions, self._evaluate_buffer(buffer, predictions)

    def _evaluate_buffer(self, buffer: NDArray[np.float64], predictions: Sequence[ClassProbability]) -> Verdict:
        stats = compute_statistics(buffer)

        verdict = aggregate(
            self._nsfw.evaluate(predictions),
            self._violence.evaluate(stats),
            self._drugs.evaluate(stats),
            self._weapons.evaluate(stats),
        )
        logger.debug(
            "Verdict: safe=%s categories=%s",
            verdict.overall_safe,
            [(c.label, round(c.confidence, 3)) for c in verdict.categories],
        )
        return verdict
