"""Composition root: build a ready-to-use engine from settings."""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING

from contentguard.config import get_settings
from contentguard.engine import ContentAnalysisEngine
from contentguard.ml.classifier_loader import ClassifierLoader
from contentguard.ml.nsfw_classifier import load_onnx_classifier

if TYPE_CHECKING:
    from contentguard.config import Settings
    from contentguard.ml.classifier_loader import ClassifierFactory

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_engine(
    settings: Settings | None = None,
    classifier_factory: ClassifierFactory | None = None,
) -> ContentAnalysisEngine:
    """Create and wire the analysis engine.

    Args:
        settings: Explicit settings; read from the environment when omitted.
        classifier_factory: Zero-argument async callable returning the
            classifier. Defaults to the configured ONNX model.
    """
    if settings is None:
        settings = get_settings()
    configure_logging(settings)

    factory = classifier_factory or functools.partial(load_onnx_classifier, settings)
    loader = ClassifierLoader(factory, timeout=settings.classifier_load_timeout)

    logger.info(
        "Starting ContentGuard (device=%s, cache=%s, ttl=%ss, max_entries=%s, max_concurrent=%s)",
        settings.device,
        settings.enable_cache,
        settings.cache_ttl_seconds,
        settings.cache_max_entries,
        settings.max_concurrent,
    )
    return ContentAnalysisEngine(settings, loader)
