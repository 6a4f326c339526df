"""Environment-based configuration for ContentGuard."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Per-category thresholds
# ---------------------------------------------------------------------------


class NsfwThresholds(BaseModel):
    """Probability gates for the external classifier's NSFW labels."""

    porn: float = Field(default=0.60, ge=0.0, le=1.0)
    hentai: float = Field(default=0.60, ge=0.0, le=1.0)
    sexy: float = Field(default=0.70, ge=0.0, le=1.0)


class ViolenceThresholds(BaseModel):
    red_dominance: float = Field(default=0.60, ge=0.0, le=1.0)
    contrast: float = Field(default=0.70, ge=0.0, le=1.0)
    detection: float = Field(default=0.65, ge=0.0, le=1.0)
    max_confidence: float = Field(default=0.85, ge=0.0, le=1.0)


class SmallObjectsPattern(BaseModel):
    sharpness: float = Field(default=0.40, ge=0.0, le=1.0)
    density: float = Field(default=0.30, ge=0.0, le=1.0)


class WhitePowderPattern(BaseModel):
    white_dominance: float = Field(default=0.50, ge=0.0, le=1.0)
    texture: float = Field(default=0.40, ge=0.0, le=1.0)


class ColoredPillsPattern(BaseModel):
    color_variety: float = Field(default=0.60, ge=0.0, le=1.0)
    saturation: float = Field(default=0.50, ge=0.0, le=1.0)
    weight: float = Field(default=0.8, ge=0.0, le=1.0)


class PlantMaterialPattern(BaseModel):
    green_dominance: float = Field(default=0.50, ge=0.0, le=1.0)
    texture: float = Field(default=0.50, ge=0.0, le=1.0)


class CylindricalPattern(BaseModel):
    linear_shapes: float = Field(default=0.40, ge=0.0, le=1.0)
    density: float = Field(default=0.30, ge=0.0, le=1.0)
    weight: float = Field(default=0.9, ge=0.0, le=1.0)


class DrugsThresholds(BaseModel):
    """Pattern gates plus the separate detection and blocking thresholds.

    ``detection`` decides whether a category is emitted at all, ``blocking``
    decides whether the emitted category marks the image as unsafe.
    """

    detection: float = Field(default=0.35, ge=0.0, le=1.0)
    blocking: float = Field(default=0.45, ge=0.0, le=1.0)
    boost: float = Field(default=1.3, ge=0.0)
    max_confidence: float = Field(default=0.95, ge=0.0, le=1.0)

    small_objects: SmallObjectsPattern = Field(default_factory=SmallObjectsPattern)
    white_powder: WhitePowderPattern = Field(default_factory=WhitePowderPattern)
    colored_pills: ColoredPillsPattern = Field(default_factory=ColoredPillsPattern)
    plant_material: PlantMaterialPattern = Field(default_factory=PlantMaterialPattern)
    cylindrical: CylindricalPattern = Field(default_factory=CylindricalPattern)


class WeaponsThresholds(BaseModel):
    linear_shapes: float = Field(default=0.60, ge=0.0, le=1.0)
    metallic: float = Field(default=0.50, ge=0.0, le=1.0)
    detection: float = Field(default=0.55, ge=0.0, le=1.0)
    weight: float = Field(default=0.85, ge=0.0, le=1.0)
    max_confidence: float = Field(default=0.70, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Application settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Application settings loaded from CONTENTGUARD_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CONTENTGUARD_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Result cache
    enable_cache: bool = True
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    cache_max_entries: int = Field(default=10, ge=1)

    # Classifier loading and analysis
    classifier_load_timeout: float = Field(default=30.0, gt=0)
    analysis_timeout: float = Field(default=10.0, gt=0)
    max_concurrent: int = Field(default=2, ge=1)
    analysis_slot_timeout: float = Field(default=5.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)

    # External classifier (None = no default model, callers supply a factory)
    device: Literal["cpu", "cuda", "openvino"] = "cpu"
    classifier_repo_id: str | None = None
    classifier_filename: str = "model.onnx"
    classifier_subfolder: str | None = None
    classifier_labels: list[str] = Field(default_factory=lambda: ["Drawing", "Hentai", "Neutral", "Porn", "Sexy"])
    classifier_input_size: int = Field(default=224, ge=1)
    classifier_output: Literal["probabilities", "logits"] = "probabilities"
    models_dir: str = "models"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Heuristic thresholds
    nsfw: NsfwThresholds = Field(default_factory=NsfwThresholds)
    violence: ViolenceThresholds = Field(default_factory=ViolenceThresholds)
    drugs: DrugsThresholds = Field(default_factory=DrugsThresholds)
    weapons: WeaponsThresholds = Field(default_factory=WeaponsThresholds)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
