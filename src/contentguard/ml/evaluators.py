"""Per-category heuristic rule sets.

Each evaluator is stateless once built from its threshold record and maps
its input to zero or more flagged categories. Every gate is a strict ``>``
comparison, so a statistic exactly on a threshold never triggers it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from contentguard.config import DrugsThresholds, NsfwThresholds, ViolenceThresholds, WeaponsThresholds
    from contentguard.ml.features import ImageStatistics
    from contentguard.ml.nsfw_classifier import ClassProbability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentCategory:
    """A flagged category with its confidence."""

    label: str
    confidence: float
    is_inappropriate: bool


@dataclass(frozen=True)
class EvaluationResult:
    """Output of a single evaluator."""

    categories: tuple[ContentCategory, ...] = ()
    warnings: tuple[str, ...] = ()
    safe: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "safe", not any(c.is_inappropriate for c in self.categories))


def _category(label: str, confidence: float, threshold: float) -> ContentCategory:
    return ContentCategory(label=label, confidence=confidence, is_inappropriate=confidence > threshold)


# ---------------------------------------------------------------------------
# NSFW
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _NsfwRule:
    class_label: str
    category: str
    warning: str
    gate: float


class NsfwEvaluator:
    """Flags explicit content from the external classifier's probabilities."""

    def __init__(self, thresholds: NsfwThresholds) -> None:
        self._rules = (
            _NsfwRule("Porn", "Pornography", "Explicit sexual content", thresholds.porn),
            _NsfwRule("Hentai", "Hentai content", "Animated sexual content", thresholds.hentai),
            _NsfwRule("Sexy", "Suggestive content", "Sexually suggestive content", thresholds.sexy),
        )

    def evaluate(self, predictions: Sequence[ClassProbability]) -> EvaluationResult:
        categories: list[ContentCategory] = []
        warnings: list[str] = []
        for rule in self._rules:
            probability = _probability_of(predictions, rule.class_label)
            if probability > rule.gate:
                categories.append(_category(rule.category, probability, rule.gate))
                warnings.append(rule.warning)
        return EvaluationResult(tuple(categories), tuple(warnings))


def _probability_of(predictions: Sequence[ClassProbability], label: str) -> float:
    # First match wins; a missing label never triggers.
    return next((p.probability for p in predictions if p.label == label), 0.0)


# ---------------------------------------------------------------------------
# Violence
# ---------------------------------------------------------------------------


class ViolenceEvaluator:
    """Red-dominant, high-contrast images (blood, gore)."""

    CATEGORY = "Possible violent content"
    WARNING = "Possible violent content or blood"

    def __init__(self, thresholds: ViolenceThresholds) -> None:
        self._t = thresholds

    def evaluate(self, stats: ImageStatistics) -> EvaluationResult:
        t = self._t
        if not (stats.red_dominance > t.red_dominance and stats.contrast > t.contrast):
            return EvaluationResult()

        confidence = min(stats.red_dominance * stats.contrast, t.max_confidence)
        if confidence <= t.detection:
            return EvaluationResult()
        return EvaluationResult((_category(self.CATEGORY, confidence, t.detection),), (self.WARNING,))


# ---------------------------------------------------------------------------
# Drugs
# ---------------------------------------------------------------------------


class DrugsEvaluator:
    """Five independent visual patterns; the strongest match sets the confidence.

    A category is emitted above the detection gate but only blocks above the
    higher blocking gate.
    """

    WARNING = "Possible drug-related content"

    def __init__(self, thresholds: DrugsThresholds) -> None:
        self._t = thresholds

    def match_patterns(self, stats: ImageStatistics) -> tuple[float, list[str]]:
        """Return the max raw confidence across matched patterns and their reasons."""
        t = self._t
        confidence = 0.0
        reasons: list[str] = []

        p1 = t.small_objects
        if stats.sharpness > p1.sharpness and stats.small_object_density > p1.density:
            confidence = max(confidence, (stats.sharpness + stats.small_object_density) / 2)
            reasons.append("small objects")

        p2 = t.white_powder
        if stats.white_dominance > p2.white_dominance and stats.texture > p2.texture:
            confidence = max(confidence, (stats.white_dominance + stats.texture) / 2)
            reasons.append("powder substance")

        p3 = t.colored_pills
        if stats.color_variety > p3.color_variety and stats.saturation > p3.saturation:
            confidence = max(confidence, (stats.color_variety + stats.saturation) / 2 * p3.weight)
            reasons.append("varied-color objects")

        p4 = t.plant_material
        if stats.green_dominance > p4.green_dominance and stats.texture > p4.texture:
            confidence = max(confidence, (stats.green_dominance + stats.texture) / 2)
            reasons.append("plant material")

        p5 = t.cylindrical
        if stats.linear_shapes > p5.linear_shapes and stats.small_object_density > p5.density:
            confidence = max(confidence, (stats.linear_shapes + stats.small_object_density) / 2 * p5.weight)
            reasons.append("cylindrical objects")

        return confidence, reasons

    def evaluate(self, stats: ImageStatistics) -> EvaluationResult:
        t = self._t
        logger.debug("Drug detection stats: %s", stats.as_dict())

        raw, reasons = self.match_patterns(stats)
        if raw <= t.detection:
            logger.debug("No drug content detected (confidence=%.2f)", raw)
            return EvaluationResult()

        final = min(raw * t.boost, t.max_confidence)
        category = _category(f"Possible drug content ({', '.join(reasons)})", final, t.blocking)
        logger.debug("Drug detection result: confidence=%.2f blocked=%s", final, category.is_inappropriate)

        warnings = (self.WARNING,) if category.is_inappropriate else ()
        return EvaluationResult((category,), warnings)


# ---------------------------------------------------------------------------
# Weapons
# ---------------------------------------------------------------------------


class WeaponsEvaluator:
    CATEGORY = "Possible weapons"
    WARNING = "Possible presence of weapons"

    def __init__(self, thresholds: WeaponsThresholds) -> None:
        self._t = thresholds

    def evaluate(self, stats: ImageStatistics) -> EvaluationResult:
        t = self._t
        if not (stats.linear_shapes > t.linear_shapes and stats.metallic > t.metallic):
            return EvaluationResult()

        confidence = min(stats.linear_shapes * stats.metallic * t.weight, t.max_confidence)
        if confidence <= t.detection:
            return EvaluationResult()
        return EvaluationResult((_category(self.CATEGORY, confidence, t.detection),), (self.WARNING,))
