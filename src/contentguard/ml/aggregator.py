"""Merge the four evaluator results into a single verdict."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contentguard.ml.evaluators import ContentCategory, EvaluationResult


@dataclass(frozen=True)
class VerdictDetails:
    """Per-domain breakdown, one tuple per evaluator."""

    nsfw: tuple[ContentCategory, ...]
    violence: tuple[ContentCategory, ...]
    drugs: tuple[ContentCategory, ...]
    weapons: tuple[ContentCategory, ...]


@dataclass(frozen=True)
class Verdict:
    """Unified output of one image analysis."""

    categories: tuple[ContentCategory, ...]
    overall_safe: bool
    warnings: tuple[str, ...]
    details: VerdictDetails


def aggregate(
    nsfw: EvaluationResult,
    violence: EvaluationResult,
    drugs: EvaluationResult,
    weapons: EvaluationResult,
) -> Verdict:
    """Combine evaluator outputs.

    Categories are sorted by confidence, descending. ``sorted`` is stable, so
    ties keep evaluator order (NSFW, violence, drugs, weapons).
    """
    results = (nsfw, violence, drugs, weapons)
    merged = [category for result in results for category in result.categories]

    return Verdict(
        categories=tuple(sorted(merged, key=lambda c: c.confidence, reverse=True)),
        overall_safe=all(result.safe for result in results),
        warnings=tuple(warning for result in results for warning in result.warnings),
        details=VerdictDetails(
            nsfw=nsfw.categories,
            violence=violence.categories,
            drugs=drugs.categories,
            weapons=weapons.categories,
        ),
    )
