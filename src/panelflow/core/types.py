"""Data model for generation-config resolution.

Immutable catalog entries (size, quality and model presets) are frozen
dataclasses: they are module-level constants and never cross an API boundary
on their own. Everything a caller builds or receives (settings layers, slot
contexts, resolution options, the resolved config) is a pydantic model so it
validates on the way in and serializes on the way out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ModelFamily(str, Enum):
    """Checkpoint architecture a model belongs to."""

    ILLUSTRIOUS = "illustrious"
    PONY = "pony"
    SDXL = "sdxl"
    FLUX = "flux"
    SD15 = "sd15"
    REALISTIC = "realistic"


class DimensionBucket(str, Enum):
    """Native-resolution class shared by several model families."""

    SDXL = "sdxl"
    SD15 = "sd15"
    FLUX = "flux"


class TargetResolution(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QualityPresetId(str, Enum):
    DRAFT = "draft"
    STANDARD = "standard"
    HIGH = "high"
    ULTRA = "ultra"


class ConfigSource(str, Enum):
    """Override layer that supplied a resolved field."""

    GLOBAL = "global"
    ENV = "env"
    PROJECT = "project"
    STORYBOARD = "storyboard"
    PANEL = "panel"
    SLOT = "slot"
    PRESET = "preset"
    EXPLICIT = "explicit"


# ---------------------------------------------------------------------------
# Immutable catalog entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class SizePreset:
    """A named aspect ratio with per-bucket pixel dimensions."""

    id: str
    name: str
    aspect_ratio: float
    dimensions: dict[DimensionBucket, Dimensions]
    suggested_for: tuple[str, ...] = ()


@dataclass(frozen=True)
class QualityPreset:
    """Sampling parameters for one speed/quality trade-off."""

    id: QualityPresetId
    name: str
    description: str
    steps: int
    cfg: float
    sampler: str
    scheduler: str
    hires_fix: bool = False
    upscale: bool = False


@dataclass(frozen=True)
class ModelPreset:
    """Family-level defaults applied when nothing more specific is set."""

    family: ModelFamily
    cfg: float
    sampler: str
    scheduler: str
    min_steps: int
    default_steps: int
    supports_negative: bool
    default_model: str | None = None
    notes: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Settings layers
# ---------------------------------------------------------------------------


class LoraConfig(BaseModel):
    name: str
    strength: float = 1.0
    strength_clip: float | None = None


class PartialGenerationSettings(BaseModel):
    """Sparse bag of generation fields. Unset means "not specified here"."""

    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    steps: int | None = Field(default=None, gt=0)
    cfg: float | None = Field(default=None, gt=0)
    sampler: str | None = None
    scheduler: str | None = None
    model: str | None = None
    negative_prompt: str | None = None
    loras: list[LoraConfig] | None = None
    size_preset: str | None = None
    quality_preset: QualityPresetId | None = None
    seed: int | None = None


class StoryboardGenerationSettings(PartialGenerationSettings):
    default_template: str | None = None
    default_page_size: str | None = None


class PanelGenerationSettings(PartialGenerationSettings):
    locked: bool = False


def merge_settings(*layers: PartialGenerationSettings | None) -> PartialGenerationSettings:
    """Fold settings layers from lowest to highest priority.

    Later layers override earlier ones field by field; ``None`` fields never
    override. A :class:`PanelGenerationSettings` layer with ``locked=True``
    freezes the merged result, so layers after it are ignored.

    Args:
        *layers: Settings layers in ascending priority (e.g. project,
            storyboard, panel, caller). ``None`` entries are skipped.

    Returns:
        A new :class:`PartialGenerationSettings` with the merged values.
    """
    merged: dict = {}
    for layer in layers:
        if layer is None:
            continue
        values = layer.model_dump(exclude_none=True)
        values.pop("locked", None)
        values.pop("default_template", None)
        values.pop("default_page_size", None)
        merged.update(values)
        if isinstance(layer, PanelGenerationSettings) and layer.locked:
            break
    return PartialGenerationSettings(**merged)


# ---------------------------------------------------------------------------
# Resolution inputs and outputs
# ---------------------------------------------------------------------------


class SlotContext(BaseModel):
    """Placement of a panel inside a page template."""

    model_config = ConfigDict(frozen=True)

    template_id: str
    slot_id: str
    page_size_preset: str | None = None
    slot_pixels: Dimensions | None = None
    aspect_ratio: float | None = Field(default=None, gt=0)


class ConfigResolutionOptions(BaseModel):
    panel_id: str | None = None
    project_id: str | None = None
    storyboard_id: str | None = None
    slot: SlotContext | None = None
    overrides: PartialGenerationSettings | None = None
    quality_preset: QualityPresetId | None = None
    size_preset: str | None = None


class OptimalSize(BaseModel):
    """Synthesized dimensions, tagged with the preset they came from if any."""

    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    preset_id: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


class ResolvedGenerationConfig(BaseModel):
    """Fully resolved generation parameters with per-field provenance."""

    width: int
    height: int
    size_preset_used: str | None = None
    steps: int
    cfg: float
    sampler: str
    scheduler: str
    seed: int | None = None
    model: str
    model_family: ModelFamily
    negative_prompt: str | None = None
    loras: list[LoraConfig] = Field(default_factory=list)
    quality_preset_used: QualityPresetId | None = None
    hires_fix: bool = False
    upscale: bool = False
    sources: dict[str, ConfigSource] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height
