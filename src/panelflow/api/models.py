"""Pydantic request models for the Panelflow API.

FastAPI uses these for request validation and OpenAPI documentation.
Resolution requests reuse :class:`~panelflow.core.types.ConfigResolutionOptions`
directly; the models here cover the endpoints whose bodies have no core
counterpart.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from panelflow.core.ip_adapter import DEFAULT_ADAPTER_MODEL, AdapterModel
from panelflow.core.types import ModelFamily, QualityPresetId, TargetResolution
from panelflow.workflows.consistency import DEFAULT_CONTINUITY_STRENGTH, MaintainFlags


class OptimalSizeRequest(BaseModel):
    """Request body for ``POST /api/config/optimal-size``."""

    aspect_ratio: float = Field(gt=0, description="Target width / height")
    family: ModelFamily = Field(default=ModelFamily.PONY, description="Model family")
    resolution: TargetResolution = Field(
        default=TargetResolution.MEDIUM, description="Pixel-budget tier"
    )


class ExtractIdentityRequest(BaseModel):
    """Request body for ``POST /api/identities``.

    Attributes:
        name: Display name used in reference-sheet prompts.
        sources: Panel ids (default) or image paths.
        sources_are_panel_ids: Whether ``sources`` are panel ids.
        adapter_model: IP-Adapter variant that will encode the references.
    """

    name: str = Field(min_length=1)
    sources: list[str] = Field(min_length=1)
    description: str | None = None
    adapter_model: AdapterModel = DEFAULT_ADAPTER_MODEL
    sources_are_panel_ids: bool = True


class ApplyIdentityRequest(BaseModel):
    """Request body for ``POST /api/consistency/apply``."""

    identity_id: str
    panel_id: str
    strength: float | None = Field(default=None, ge=0.0, le=1.5)
    prompt: str | None = None
    quality_preset: QualityPresetId | None = None
    seed: int | None = None


class ApplyIdentityManyRequest(BaseModel):
    """Request body for ``POST /api/consistency/apply-many``."""

    identity_id: str
    panel_ids: list[str] = Field(min_length=1)
    strength: float | None = Field(default=None, ge=0.0, le=1.5)
    quality_preset: QualityPresetId | None = None


class ChainRequest(BaseModel):
    """Request body for ``POST /api/consistency/chain``."""

    panel_id: str
    previous_panel_id: str
    maintain: MaintainFlags = Field(default_factory=MaintainFlags)
    continuity_strength: float = Field(default=DEFAULT_CONTINUITY_STRENGTH, ge=0.0, le=1.0)
    prompt: str | None = None
    quality_preset: QualityPresetId | None = None


class ChainSequenceRequest(BaseModel):
    """Request body for ``POST /api/consistency/chain-sequence``."""

    panel_ids: list[str] = Field(min_length=2)
    maintain: MaintainFlags = Field(default_factory=MaintainFlags)
    continuity_strength: float = Field(default=DEFAULT_CONTINUITY_STRENGTH, ge=0.0, le=1.0)
    prompt: str | None = None
    quality_preset: QualityPresetId | None = None


class ReferenceSheetRequest(BaseModel):
    """Request body for ``POST /api/consistency/reference-sheet``."""

    identity_id: str
    output_dir: str | None = Field(
        default=None, description="Defaults to <output_dir>/references"
    )
    pose_count: int = Field(default=4, ge=1, le=8)
    poses: list[str] | None = None
    include_expressions: bool = False
    quality_preset: QualityPresetId = QualityPresetId.HIGH
