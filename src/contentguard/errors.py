"""Typed errors raised by the analysis engine.

Every error carries the pipeline stage that failed so callers can decide
whether to retry, fall back, or surface a message.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    INVALID_INPUT = "invalid_input"
    CLASSIFIER_INIT = "classifier_init"
    CLASSIFIER_INFERENCE = "classifier_inference"


class ContentGuardError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind
    retryable: bool = True

    def __init__(self, message: str, *, stage: str) -> None:
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"


class InvalidInput(ContentGuardError, ValueError):
    """Malformed or zero-area pixel buffer. Not worth retrying."""

    kind = ErrorKind.INVALID_INPUT
    retryable = False

    def __init__(self, message: str, *, stage: str = "preprocessing") -> None:
        super().__init__(message, stage=stage)


class ClassifierInitFailure(ContentGuardError, RuntimeError):
    """The classifier factory failed, timed out, or was cancelled."""

    kind = ErrorKind.CLASSIFIER_INIT

    def __init__(self, message: str, *, stage: str = "classifier_init") -> None:
        super().__init__(message, stage=stage)


class ClassifierInferenceFailure(ContentGuardError, RuntimeError):
    """The classifier's inference step failed."""

    kind = ErrorKind.CLASSIFIER_INFERENCE

    def __init__(self, message: str, *, stage: str = "inference") -> None:
        super().__init__(message, stage=stage)


class AnalysisPoolSaturated(ClassifierInferenceFailure):
    """Every worker slot stayed busy for the whole wait."""

    def __init__(self, message: str, *, stage: str = "scheduling") -> None:
        super().__init__(message, stage=stage)
