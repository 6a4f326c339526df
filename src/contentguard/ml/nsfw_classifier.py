"""External NSFW classifier: protocol, ONNX adapter, and default factory.

The engine treats the classifier as opaque. It only needs ``classify`` to
return (label, probability) pairs. ``load_onnx_classifier`` is the default
factory handed to the ``ClassifierLoader``. It downloads the model from
HuggingFace and wraps an ONNX InferenceSession.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol

import numpy as np
from huggingface_hub import hf_hub_download
from onnxruntime import GraphOptimizationLevel, InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from contentguard.errors import ClassifierInferenceFailure, ClassifierInitFailure

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from contentguard.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassProbability:
    """A single class prediction from the external classifier."""

    label: str
    probability: float


class NsfwClassifier(Protocol):
    """Protocol for the external image classifier."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def classify(self, image: NDArray[np.generic]) -> list[ClassProbability]:
        """Classify an image.

        Args:
            image: HxWx3 RGB array, normalized float or uint8.

        Returns:
            Class probabilities sorted by probability (descending).
        """
        ...


# ---------------------------------------------------------------------------
# ONNX implementation
# ---------------------------------------------------------------------------


def _softmax(values: NDArray[np.float64]) -> NDArray[np.float64]:
    shifted = np.exp(values - values.max())
    result: NDArray[np.float64] = shifted / shifted.sum()
    return result


class OnnxNsfwClassifier:
    """Runs an image-classification ONNX model on pre-sized RGB buffers."""

    def __init__(
        self,
        session: InferenceSession,
        labels: Sequence[str],
        *,
        input_size: int,
        output_kind: Literal["probabilities", "logits"] = "probabilities",
        model_name: str = "onnx-nsfw",
    ) -> None:
        self._session = session
        self._labels = tuple(labels)
        self._input_size = input_size
        self._output_kind = output_kind
        self._model_name = model_name
        self._input_name = session.get_inputs()[0].name

    @property
    def model_name(self) -> str:
        return self._model_name

    def classify(self, image: NDArray[np.generic]) -> list[ClassProbability]:
        tensor = self._to_tensor(image)
        outputs = self._session.run(None, {self._input_name: tensor})
        scores = np.asarray(outputs[0], dtype=np.float64).reshape(-1)
        if scores.shape[0] != len(self._labels):
            raise ClassifierInferenceFailure(f"Model returned {scores.shape[0]} scores for {len(self._labels)} labels")

        if self._output_kind == "logits":
            scores = _softmax(scores)
        scores = np.clip(scores, 0.0, 1.0)

        predictions = [
            ClassProbability(label=label, probability=float(score))
            for label, score in zip(self._labels, scores, strict=True)
        ]
        return sorted(predictions, key=lambda p: p.probability, reverse=True)

    def _to_tensor(self, image: NDArray[np.generic]) -> NDArray[np.float32]:
        # Callers hand in buffers already checked by to_pixel_buffer.
        if image.ndim != 3 or image.shape[2] != 3:
            raise ClassifierInferenceFailure(f"Expected an HxWx3 RGB buffer, got shape {image.shape}")
        height, width = image.shape[0], image.shape[1]
        if (height, width) != (self._input_size, self._input_size):
            raise ClassifierInferenceFailure(
                f"Model expects {self._input_size}x{self._input_size} input, got {height}x{width}"
            )

        tensor = image[np.newaxis, ...].astype(np.float32)
        if image.dtype == np.uint8:
            tensor /= 255.0
        return tensor


# ---------------------------------------------------------------------------
# Default factory
# ---------------------------------------------------------------------------


Provider = str | tuple[str, dict[str, object]]


def _session_config(settings: Settings) -> tuple[SessionOptions, list[Provider]]:
    """Session options and execution providers for ``settings.device``.

    ``CPUExecutionProvider`` is always appended last as the fallback.
    """
    opts = SessionOptions()
    opts.intra_op_num_threads = settings.intra_op_threads
    opts.inter_op_num_threads = settings.inter_op_threads
    opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL

    providers: list[Provider] = []
    if settings.device == "cuda":
        cuda_opts: dict[str, object] = {"device_id": 0, "gpu_mem_limit": settings.gpu_mem_limit}
        providers.append(("CUDAExecutionProvider", cuda_opts))
    elif settings.device == "openvino":
        # OpenVINO optimizes the graph itself
        opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        providers.append(("OpenVINOExecutionProvider", {"device_type": "CPU"}))
    providers.append("CPUExecutionProvider")
    return opts, providers


def _load_blocking(settings: Settings) -> OnnxNsfwClassifier:
    repo_id = settings.classifier_repo_id
    if repo_id is None:
        raise ClassifierInitFailure("No classifier model configured (set CONTENTGUARD_CLASSIFIER_REPO_ID)")

    models_dir = Path(settings.models_dir)
    models_dir.mkdir(parents=True, exist_ok=True)
    model_path = Path(
        hf_hub_download(
            repo_id=repo_id,
            filename=settings.classifier_filename,
            subfolder=settings.classifier_subfolder,
            local_dir=str(models_dir),
        )
    )
    logger.info("Downloaded %s/%s to %s", repo_id, settings.classifier_filename, model_path)

    sess_options, providers = _session_config(settings)
    session = InferenceSession(str(model_path), sess_options=sess_options, providers=providers)
    logger.info("Loaded session for %s", repo_id)
    return OnnxNsfwClassifier(
        session,
        settings.classifier_labels,
        input_size=settings.classifier_input_size,
        output_kind=settings.classifier_output,
        model_name=repo_id,
    )


async def load_onnx_classifier(settings: Settings) -> OnnxNsfwClassifier:
    """Download and initialize the configured ONNX classifier off the event loop."""
    return await asyncio.to_thread(_load_blocking, settings)
