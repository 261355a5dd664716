"""Visual-consistency orchestration across comic panels.

The orchestrator keeps characters and scenes coherent from panel to panel
by combining three tools:

- **Identity** (IP-Adapter): reference images of a character, extracted
  once and applied to any later panel.
- **Chaining** (ControlNet): the previous panel's output guides the next
  one's pose, composition or style.
- **Reference sheets**: a set of canonical views of an identity.

Every public coroutine returns a result object. Missing panels or
identities, backend failures and timeouts come back as ``success=False``
with an ``error`` message and the taxonomy class name in ``error_type``,
so batch operations continue past individual failures.

Typical usage::

    orchestrator = ConsistencyOrchestrator(engine, backend, store, store, IdentityStore(), config)
    extracted = await orchestrator.extract_identity(["panel-1"], name="Hero")
    await orchestrator.apply_identity("panel-2", extracted.identity_id)
    await orchestrator.chain_sequence(
        ["panel-2", "panel-3", "panel-4"], MaintainFlags(identity=True, pose=True)
    )
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from panelflow.core import ip_adapter
from panelflow.core.backend import (
    MAX_IDENTITY_STRENGTH,
    ControlNetRequest,
    GenerationBackend,
    GenerationRequest,
    GenerationResult,
    IdentityReference,
    IdentityRequest,
)
from panelflow.core.config import PanelflowConfig
from panelflow.core.controlnet import (
    CONTROL_STACK_PRESETS,
    ControlCondition,
    ControlStackPreset,
    ControlType,
    get_recommended_strength,
)
from panelflow.core.engine import ConfigResolutionEngine
from panelflow.core.errors import GenerationError, NotFoundError, PanelflowError, ValidationError
from panelflow.core.ip_adapter import AdapterModel
from panelflow.core.panel_store import GeneratedImage, NewGeneratedImage, Panel
from panelflow.core.types import (
    ConfigResolutionOptions,
    QualityPresetId,
    ResolvedGenerationConfig,
)
from panelflow.workflows.identity_store import IdentityStore, StoredIdentity

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "1girl"
DEFAULT_CONTINUITY_STRENGTH = 0.7
DEFAULT_POSES = ("front view", "side view", "back view", "three-quarter view")
REFERENCE_EXPRESSIONS = ("smiling", "serious", "surprised", "angry")

# Share of continuity strength given to each chained control.
POSE_WEIGHT = 0.9
COMPOSITION_WEIGHT = 0.5
STYLE_WEIGHT = 0.4

POSE_STRENGTH_BOOST = 0.1
EXPRESSION_STRENGTH_BOOST = 0.15


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------


class PanelService(Protocol):
    async def get_by_id(self, panel_id: str) -> Panel | None: ...

    async def select_output(self, panel_id: str, image_id: str) -> Panel: ...


class ImageService(Protocol):
    async def get_selected(self, panel_id: str) -> GeneratedImage | None: ...

    async def create(self, data: NewGeneratedImage) -> GeneratedImage: ...


# ---------------------------------------------------------------------------
# Options and results
# ---------------------------------------------------------------------------


class MaintainFlags(BaseModel):
    """What to carry over from the previous panel when chaining."""

    identity: bool = False
    pose: bool = False
    composition: bool = False
    style: bool = False


class ConsistencyResult(BaseModel):
    success: bool
    panel_id: str | None = None
    identity_id: str | None = None
    generation_result: GenerationResult | None = None
    error: str | None = None
    error_type: str | None = None


class ReferenceSheetResult(BaseModel):
    success: bool
    images: list[str] = Field(default_factory=list)
    error: str | None = None


class BatchResult(BaseModel):
    results: list[ConsistencyResult] = Field(default_factory=list)
    success_count: int = 0


def _failure(exc: Exception, **fields) -> ConsistencyResult:
    if isinstance(exc, GenerationError) and exc.result is not None:
        fields.setdefault("generation_result", exc.result)
    return ConsistencyResult(success=False, error=str(exc), error_type=type(exc).__name__, **fields)


def _boosted(strength: float, boost: float) -> float:
    return min(strength + boost, MAX_IDENTITY_STRENGTH)


def _compose_prompt(panel: Panel, prompt: str | None) -> str:
    if prompt and panel.description:
        return f"{panel.description}, {prompt}"
    return prompt or panel.description or DEFAULT_PROMPT


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ConsistencyOrchestrator:
    """Chains identity, pose, composition and style across generations.

    Args:
        engine: Resolves generation configs for panels.
        backend: Generation backend.
        panels: Panel lookup and output selection.
        images: Generated-image records.
        identities: Identity store. Pass one built with a path for durable
            identities.
        config: Supplies ``output_dir``, ``generation_timeout`` and
            ``default_quality_preset``.
    """

    def __init__(
        self,
        engine: ConfigResolutionEngine,
        backend: GenerationBackend,
        panels: PanelService,
        images: ImageService,
        identities: IdentityStore,
        config: PanelflowConfig,
    ):
        self.engine = engine
        self.backend = backend
        self.panels = panels
        self.images = images
        self.identities = identities
        self.config = config

    # -- Identity management ------------------------------------------------

    async def extract_identity(
        self,
        sources: list[str],
        name: str,
        description: str | None = None,
        adapter_model: AdapterModel | str = ip_adapter.DEFAULT_ADAPTER_MODEL,
        sources_are_panel_ids: bool = True,
    ) -> ConsistencyResult:
        """Create and store an identity from panels or image paths.

        With ``sources_are_panel_ids`` each source is a panel id and
        contributes its selected image; panels without one are skipped.
        Otherwise sources are used as image paths directly.
        """
        try:
            if sources_are_panel_ids:
                source_images = []
                for panel_id in sources:
                    selected = await self.images.get_selected(panel_id)
                    if selected is not None and selected.local_path:
                        source_images.append(selected.local_path)
                    else:
                        logger.debug("Panel %s has no selected image, skipping", panel_id)
            else:
                source_images = list(sources)

            if not source_images:
                raise ValidationError("No valid source images found")

            embedding = ip_adapter.create_embedding(
                source_images, adapter_model, name=name, description=description
            )
            settings = ip_adapter.get_recommended_settings(embedding.adapter_model)
            identity = self.identities.add(
                StoredIdentity(
                    id=embedding.id,
                    name=name,
                    description=description,
                    embedding=embedding,
                    default_strength=settings["default_strength"],
                    reference_images=source_images,
                )
            )
        except PanelflowError as exc:
            logger.warning("Identity extraction for %r failed: %s", name, exc)
            return _failure(exc)
        except Exception as exc:
            logger.exception("Unexpected error extracting identity %r", name)
            return _failure(exc)

        logger.info("Stored identity %s (%s) from %d images", identity.id, name, len(source_images))
        return ConsistencyResult(success=True, identity_id=identity.id)

    def list_identities(self) -> list[StoredIdentity]:
        return self.identities.list()

    def get_identity(self, identity_id: str) -> StoredIdentity | None:
        return self.identities.get(identity_id)

    def delete_identity(self, identity_id: str) -> bool:
        return self.identities.delete(identity_id)

    async def apply_identity(
        self,
        panel_id: str,
        identity_id: str,
        strength: float | None = None,
        prompt: str | None = None,
        quality_preset: QualityPresetId | str | None = QualityPresetId.STANDARD,
        seed: int | None = None,
    ) -> ConsistencyResult:
        """Generate a panel guided by a stored identity and select the output."""
        try:
            identity = self._require_identity(identity_id)
            panel = await self._require_panel(panel_id)
            resolved = self._resolve_for_panel(panel, quality_preset)

            final_prompt = _compose_prompt(panel, prompt)
            request = GenerationRequest.from_config(
                final_prompt, resolved, self._output_path(panel_id), seed=seed
            )
            reference = IdentityReference(
                embedding=identity.embedding,
                strength=strength if strength is not None else identity.default_strength,
            )
            result = await self._dispatch(self.backend.generate_from_embedding(reference, request))

            await self._store_and_select(
                panel_id,
                result,
                final_prompt,
                resolved,
                seed=seed,
                used_ip_adapter=True,
                ip_adapter_images=identity.reference_images,
                ip_adapter_strength=reference.strength,
            )
            try:
                self.identities.record_usage(identity_id)
            except (NotFoundError, OSError) as exc:
                # The image is already stored and selected.
                logger.warning("Could not record usage of identity %s: %s", identity_id, exc)
        except PanelflowError as exc:
            logger.warning("Applying identity %s to panel %s failed: %s", identity_id, panel_id, exc)
            return _failure(exc, panel_id=panel_id, identity_id=identity_id)
        except Exception as exc:
            logger.exception("Unexpected error applying identity %s to %s", identity_id, panel_id)
            return _failure(exc, panel_id=panel_id, identity_id=identity_id)

        return ConsistencyResult(
            success=True, panel_id=panel_id, identity_id=identity_id, generation_result=result
        )

    async def apply_identity_to_many(
        self,
        identity_id: str,
        panel_ids: list[str],
        strength: float | None = None,
        quality_preset: QualityPresetId | str | None = None,
    ) -> BatchResult:
        batch = BatchResult()
        for panel_id in panel_ids:
            result = await self.apply_identity(
                panel_id, identity_id, strength=strength, quality_preset=quality_preset
            )
            batch.results.append(result)
            if result.success:
                batch.success_count += 1
        return batch

    # -- Panel chaining -----------------------------------------------------

    async def chain_from_previous(
        self,
        panel_id: str,
        previous_panel_id: str,
        maintain: MaintainFlags,
        continuity_strength: float = DEFAULT_CONTINUITY_STRENGTH,
        prompt: str | None = None,
        quality_preset: QualityPresetId | str | None = QualityPresetId.STANDARD,
    ) -> ConsistencyResult:
        """Generate ``panel_id`` using the previous panel's selected output as a guide.

        Pose, composition and style each add a ControlNet condition on the
        previous image; with any of them set the request goes through
        ControlNet. With only ``identity`` set, the previous image is the
        sole IP-Adapter reference. With nothing set, the panel is generated
        without guidance.
        """
        try:
            panel = await self._require_panel(panel_id)
            await self._require_panel(previous_panel_id)

            previous_image = await self.images.get_selected(previous_panel_id)
            if previous_image is None or not previous_image.local_path:
                raise NotFoundError("Previous panel has no selected image to chain from")
            guide = previous_image.local_path

            resolved = self._resolve_for_panel(panel, quality_preset)
            final_prompt = _compose_prompt(panel, prompt)
            base = GenerationRequest.from_config(final_prompt, resolved, self._output_path(panel_id))
            controls = self._continuity_controls(guide, maintain, continuity_strength)

            metadata: dict = {"used_ip_adapter": maintain.identity}
            if maintain.identity:
                metadata["ip_adapter_images"] = [guide]

            if controls:
                request = ControlNetRequest(**base.model_dump(), controls=controls)
                result = await self._dispatch(self.backend.generate_with_controlnet(request))
                metadata.update(
                    controlnet_type=request.control_type_label,
                    controlnet_image=guide,
                    controlnet_strength=continuity_strength,
                )
            elif maintain.identity:
                request = IdentityRequest(
                    **base.model_dump(),
                    reference_images=[guide],
                    strength=continuity_strength,
                )
                result = await self._dispatch(self.backend.generate_with_identity(request))
                metadata["ip_adapter_strength"] = continuity_strength
            else:
                result = await self._dispatch(self.backend.generate_image(base))

            await self._store_and_select(panel_id, result, final_prompt, resolved, **metadata)
        except PanelflowError as exc:
            logger.warning("Chaining %s -> %s failed: %s", previous_panel_id, panel_id, exc)
            return _failure(exc, panel_id=panel_id)
        except Exception as exc:
            logger.exception("Unexpected error chaining %s -> %s", previous_panel_id, panel_id)
            return _failure(exc, panel_id=panel_id)

        return ConsistencyResult(success=True, panel_id=panel_id, generation_result=result)

    async def chain_sequence(
        self,
        panel_ids: list[str],
        maintain: MaintainFlags,
        continuity_strength: float = DEFAULT_CONTINUITY_STRENGTH,
        prompt: str | None = None,
        quality_preset: QualityPresetId | str | None = QualityPresetId.STANDARD,
    ) -> BatchResult:
        """Chain each panel from the one before it, strictly in order.

        The first panel is the anchor and is not generated; a sequence of
        ``n`` panels yields ``n - 1`` results.
        """
        batch = BatchResult()
        for previous_panel_id, panel_id in zip(panel_ids, panel_ids[1:]):
            result = await self.chain_from_previous(
                panel_id,
                previous_panel_id,
                maintain,
                continuity_strength=continuity_strength,
                prompt=prompt,
                quality_preset=quality_preset,
            )
            batch.results.append(result)
            if result.success:
                batch.success_count += 1
        logger.info("Chained %d/%d panels", batch.success_count, len(batch.results))
        return batch

    # -- Reference sheets ---------------------------------------------------

    async def generate_reference_sheet(
        self,
        identity_id: str,
        output_dir: str | Path,
        pose_count: int = 4,
        poses: list[str] | None = None,
        include_expressions: bool = False,
        quality_preset: QualityPresetId | str | None = QualityPresetId.HIGH,
    ) -> ReferenceSheetResult:
        """Render canonical views (and optionally expressions) of an identity.

        Individual failures are skipped; the sheet succeeds when at least
        one image was produced.
        """
        identity = self.identities.get(identity_id)
        if identity is None:
            return ReferenceSheetResult(success=False, error=f"Identity not found: {identity_id}")

        try:
            options = ConfigResolutionOptions(quality_preset=quality_preset)
        except PydanticValidationError:
            return ReferenceSheetResult(
                success=False, error=f"Invalid quality preset: {quality_preset}"
            )
        try:
            resolved = self.engine.resolve(options)
        except Exception as exc:
            logger.exception("Resolving reference sheet config for %s failed", identity_id)
            return ReferenceSheetResult(success=False, error=str(exc))

        out = Path(output_dir)
        jobs: list[tuple[str, Path, float]] = []
        for i, pose in enumerate(list(poses or DEFAULT_POSES)[: max(pose_count, 0)]):
            jobs.append((
                f"{identity.name}, {pose}, full body, simple background, character reference sheet",
                out / f"ref_{identity.id}_{i}.png",
                _boosted(identity.default_strength, POSE_STRENGTH_BOOST),
            ))
        if include_expressions:
            for i, expression in enumerate(REFERENCE_EXPRESSIONS):
                jobs.append((
                    f"{identity.name}, portrait, {expression} expression, simple background",
                    out / f"ref_{identity.id}_expr_{i}.png",
                    _boosted(identity.default_strength, EXPRESSION_STRENGTH_BOOST),
                ))

        images: list[str] = []
        for prompt, output_path, strength in jobs:
            try:
                request = GenerationRequest.from_config(prompt, resolved, str(output_path))
                reference = IdentityReference(embedding=identity.embedding, strength=strength)
                result = await self._dispatch(self.backend.generate_from_embedding(reference, request))
            except GenerationError as exc:
                logger.warning("Reference view %s failed: %s", output_path.name, exc)
                continue
            except Exception:
                logger.exception("Unexpected error rendering reference view %s", output_path.name)
                continue
            if result.success and result.local_path:
                images.append(result.local_path)
            else:
                logger.warning("Reference view %s failed: %s", output_path.name, result.error)

        logger.info("Reference sheet for %s: %d/%d images", identity_id, len(images), len(jobs))
        return ReferenceSheetResult(
            success=bool(images),
            images=images,
            error=None if images else "No reference images were generated",
        )

    # -- Reference data -----------------------------------------------------

    def list_adapter_models(self) -> list[AdapterModel]:
        return ip_adapter.list_adapter_models()

    def get_recommended_adapter_settings(self, adapter_model: AdapterModel | str) -> dict:
        return ip_adapter.get_recommended_settings(adapter_model)

    def list_control_presets(self) -> list[ControlStackPreset]:
        return list(CONTROL_STACK_PRESETS.values())

    def list_control_types(self) -> list[ControlType]:
        return list(ControlType)

    def get_recommended_control_strength(self, control_type: ControlType | str) -> dict:
        return get_recommended_strength(control_type)

    # -- Internal helpers ---------------------------------------------------

    def _require_identity(self, identity_id: str) -> StoredIdentity:
        identity = self.identities.get(identity_id)
        if identity is None:
            raise NotFoundError(f"Identity not found: {identity_id}")
        return identity

    async def _require_panel(self, panel_id: str) -> Panel:
        panel = await self.panels.get_by_id(panel_id)
        if panel is None:
            raise NotFoundError(f"Panel not found: {panel_id}")
        return panel

    def _resolve_for_panel(
        self, panel: Panel, quality_preset: QualityPresetId | str | None
    ) -> ResolvedGenerationConfig:
        try:
            options = ConfigResolutionOptions(
                panel_id=panel.id,
                overrides=panel.generation_settings,
                quality_preset=quality_preset or self.config.default_quality_preset,
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid quality preset: {quality_preset}") from exc
        return self.engine.resolve(options)

    @staticmethod
    def _continuity_controls(
        guide: str, maintain: MaintainFlags, continuity_strength: float
    ) -> list[ControlCondition]:
        controls = []
        if maintain.pose:
            controls.append(ControlCondition(
                type=ControlType.OPENPOSE, image=guide, strength=continuity_strength * POSE_WEIGHT
            ))
        if maintain.composition:
            controls.append(ControlCondition(
                type=ControlType.DEPTH, image=guide, strength=continuity_strength * COMPOSITION_WEIGHT
            ))
        if maintain.style:
            controls.append(ControlCondition(
                type=ControlType.SOFTEDGE, image=guide, strength=continuity_strength * STYLE_WEIGHT
            ))
        return controls

    def _output_path(self, panel_id: str) -> str:
        return str(Path(self.config.output_dir) / "panels" / f"{panel_id}_{int(time.time() * 1000)}.png")

    async def _dispatch(self, call: Awaitable[GenerationResult]) -> GenerationResult:
        """Await a backend call under the configured deadline."""
        timeout = self.config.generation_timeout
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            raise GenerationError(f"Generation timed out after {timeout}s") from None

    async def _store_and_select(
        self,
        panel_id: str,
        result: GenerationResult,
        prompt: str,
        resolved: ResolvedGenerationConfig,
        seed: int | None = None,
        **metadata,
    ) -> GeneratedImage:
        if not result.success:
            raise GenerationError(result.error or "Generation failed", result=result)
        if not result.local_path:
            raise GenerationError("Backend reported success without an output path", result=result)

        image = await self.images.create(
            NewGeneratedImage(
                panel_id=panel_id,
                local_path=result.local_path,
                cloud_url=result.signed_url,
                seed=result.seed if result.seed is not None else (
                    seed if seed is not None else random.randint(0, 2**31 - 2)
                ),
                prompt=prompt,
                negative_prompt=resolved.negative_prompt,
                model=result.model or resolved.model,
                width=resolved.width,
                height=resolved.height,
                steps=resolved.steps,
                cfg=resolved.cfg,
                sampler=resolved.sampler,
                scheduler=resolved.scheduler,
                loras=resolved.loras,
                **metadata,
            )
        )
        await self.panels.select_output(panel_id, image.id)
        logger.info("Panel %s now shows image %s", panel_id, image.id)
        return image
