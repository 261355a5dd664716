"""Contract between the orchestrator and an image-generation backend.

Backends take fully-specified requests and return a
:class:`GenerationResult`. They report failure through ``success=False``
rather than raising, so a batch of panels can keep going past one bad
generation. :class:`~panelflow.core.adapters.comfyui.ComfyUIBackend` is the
shipped implementation.
"""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from panelflow.core.controlnet import ControlCondition
from panelflow.core.ip_adapter import AdapterModel, IdentityEmbedding
from panelflow.core.types import LoraConfig, ResolvedGenerationConfig


class GenerationRequest(BaseModel):
    prompt: str
    output_path: str
    negative_prompt: str | None = None
    model: str | None = None
    width: int = 768
    height: int = 1024
    steps: int = 28
    cfg: float = 7.0
    sampler: str = "euler_ancestral"
    scheduler: str = "normal"
    seed: int | None = None
    loras: list[LoraConfig] = Field(default_factory=list)

    @classmethod
    def from_config(
        cls,
        prompt: str,
        resolved: ResolvedGenerationConfig,
        output_path: str,
        seed: int | None = None,
    ) -> GenerationRequest:
        """Build a request from a resolved config. ``seed`` overrides the config's seed."""
        return cls(
            prompt=prompt,
            output_path=output_path,
            negative_prompt=resolved.negative_prompt,
            model=resolved.model,
            width=resolved.width,
            height=resolved.height,
            steps=resolved.steps,
            cfg=resolved.cfg,
            sampler=resolved.sampler,
            scheduler=resolved.scheduler,
            seed=seed if seed is not None else resolved.seed,
            loras=list(resolved.loras),
        )


class ControlNetRequest(GenerationRequest):
    controls: list[ControlCondition] = Field(min_length=1)

    @property
    def control_type_label(self) -> str:
        """Control types joined with ``+``, e.g. ``openpose+depth``."""
        return "+".join(control.type.value for control in self.controls)


# Upper bound accepted by IP-Adapter strength fields.
MAX_IDENTITY_STRENGTH = 1.5


class IdentityRequest(GenerationRequest):
    reference_images: list[str] = Field(min_length=1)
    strength: float = Field(default=0.8, ge=0.0, le=MAX_IDENTITY_STRENGTH)
    adapter_model: AdapterModel = AdapterModel.PLUS_FACE


class IdentityReference(BaseModel):
    embedding: IdentityEmbedding
    strength: float | None = None


class GenerationResult(BaseModel):
    """Backend outcome. Accepts the REST server's camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    local_path: str | None = Field(default=None, alias="localPath")
    signed_url: str | None = Field(default=None, alias="signedUrl")
    seed: int | None = None
    model: str | None = None
    error: str | None = None


def identity_request_from_embedding(
    reference: IdentityReference, request: GenerationRequest
) -> IdentityRequest:
    """Expand an embedding reference into a concrete identity-guided request."""
    embedding = reference.embedding
    return IdentityRequest(
        **request.model_dump(include=set(GenerationRequest.model_fields)),
        reference_images=embedding.source_images,
        strength=reference.strength if reference.strength is not None else 0.8,
        adapter_model=embedding.adapter_model,
    )


class GenerationBackend(Protocol):
    async def generate_image(self, request: GenerationRequest) -> GenerationResult: ...

    async def generate_with_controlnet(self, request: ControlNetRequest) -> GenerationResult: ...

    async def generate_with_identity(self, request: IdentityRequest) -> GenerationResult: ...

    async def generate_from_embedding(
        self, reference: IdentityReference, request: GenerationRequest
    ) -> GenerationResult: ...
