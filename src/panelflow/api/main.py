"""Panelflow — FastAPI Application.

This module defines the FastAPI ``app``, its REST routes, and the ``main()``
CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration resolution** is served by a
  :class:`~panelflow.core.engine.ConfigResolutionEngine` built at start-up.
- **Consistency operations** go through a
  :class:`~panelflow.workflows.consistency.ConsistencyOrchestrator`, backed
  by the JSON panel store, the identity store and the ComfyUI backend.
- All collaborators live on ``app.state``; there are no module singletons
  beyond the app itself.

Orchestrator failures (missing panel, backend error, timeout) are returned
as ``200`` responses with ``success: false``. Lookups of unknown templates
or identities return ``404``.

Endpoints
---------
========  ====================================  ================================
Method    Path                                  Purpose
========  ====================================  ================================
GET       ``/api/health``                       Liveness and backend status
GET       ``/api/presets``                      Size, quality and model presets
POST      ``/api/config/resolve``               Resolve a generation config
POST      ``/api/config/optimal-size``          Dimensions for an aspect ratio
GET       ``/api/templates``                    Page templates
GET       ``/api/templates/{id}/sizes``         Sizes for every slot
GET       ``/api/templates/{id}/slots/{slot}``  Size for one slot
GET       ``/api/identities``                   Stored identities
POST      ``/api/identities``                   Extract an identity
GET       ``/api/identities/{id}``              One identity
DELETE    ``/api/identities/{id}``              Delete an identity
POST      ``/api/consistency/apply``            Apply identity to a panel
POST      ``/api/consistency/apply-many``       Apply identity to many panels
POST      ``/api/consistency/chain``            Chain from previous panel
POST      ``/api/consistency/chain-sequence``   Chain a panel sequence
POST      ``/api/consistency/reference-sheet``  Generate a reference sheet
========  ====================================  ================================

Usage
-----
CLI (installed entry point)::

    panelflow

Direct invocation::

    python -m panelflow.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from panelflow import __version__
from panelflow.api.models import (
    ApplyIdentityManyRequest,
    ApplyIdentityRequest,
    ChainRequest,
    ChainSequenceRequest,
    ExtractIdentityRequest,
    OptimalSizeRequest,
    ReferenceSheetRequest,
)
from panelflow.core.adapters.comfyui import ComfyUIBackend
from panelflow.core.backend import GenerationBackend
from panelflow.core.config import PanelflowConfig, config
from panelflow.core.controlnet import CONTROL_STACK_PRESETS
from panelflow.core.engine import ConfigResolutionEngine
from panelflow.core.ip_adapter import ADAPTER_SETTINGS
from panelflow.core.panel_store import JsonPanelStore
from panelflow.core.presets import (
    MODEL_PRESETS,
    estimate_relative_time,
    get_recommended_cfg_range,
    list_quality_presets,
    list_size_presets,
)
from panelflow.core.types import (
    ConfigResolutionOptions,
    ModelFamily,
    OptimalSize,
    ResolvedGenerationConfig,
    SlotContext,
)
from panelflow.workflows.consistency import (
    BatchResult,
    ConsistencyOrchestrator,
    ConsistencyResult,
    ReferenceSheetResult,
)
from panelflow.workflows.identity_store import IdentityStore, StoredIdentity

logger = logging.getLogger(__name__)


def create_app(
    settings: PanelflowConfig | None = None,
    backend: GenerationBackend | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration. Defaults to the global ``config``.
        backend: Generation backend. Defaults to a :class:`ComfyUIBackend`
            pointed at ``settings.comfyui_url``, opened and closed with the
            application lifespan.

    Returns:
        A configured :class:`FastAPI` instance.
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # --- Startup -------------------------------------------------------
        owned_backend = backend is None
        active_backend = backend if backend is not None else ComfyUIBackend(settings)
        store = JsonPanelStore(settings.panels_db, settings.images_db)
        engine = ConfigResolutionEngine(settings)

        app.state.settings = settings
        app.state.engine = engine
        app.state.backend = active_backend
        app.state.panel_store = store
        app.state.orchestrator = ConsistencyOrchestrator(
            engine=engine,
            backend=active_backend,
            panels=store,
            images=store,
            identities=IdentityStore(settings.identity_store_path),
            config=settings,
        )
        logger.info(
            "Panelflow started (strategy=%s, backend=%s)",
            engine.strategy_id,
            type(active_backend).__name__,
        )

        yield

        # --- Shutdown ------------------------------------------------------
        if owned_backend:
            await active_backend.aclose()
        logger.info("Panelflow stopped.")

    app = FastAPI(
        title="Panelflow",
        description="Generation config resolution and visual consistency for comic panels.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_routes(app)
    return app


def _engine(request: Request) -> ConfigResolutionEngine:
    return request.app.state.engine


def _orchestrator(request: Request) -> ConsistencyOrchestrator:
    return request.app.state.orchestrator


def _register_routes(app: FastAPI) -> None:
    # -----------------------------------------------------------------------
    # Status and presets.
    # -----------------------------------------------------------------------

    @app.get("/api/health")
    async def health(request: Request) -> dict:
        """Report liveness, the active strategy and backend connectivity."""
        backend = request.app.state.backend
        backend_status = await backend.health() if hasattr(backend, "health") else None
        return {
            "status": "ok",
            "version": __version__,
            "strategy": _engine(request).strategy_id,
            "backend": backend_status,
        }

    @app.get("/api/presets")
    async def presets() -> dict:
        """Return every preset catalog in one payload."""
        return {
            "sizes": [
                {
                    "id": p.id,
                    "name": p.name,
                    "aspect_ratio": p.aspect_ratio,
                    "suggested_for": list(p.suggested_for),
                    "dimensions": {
                        bucket.value: {"width": d.width, "height": d.height}
                        for bucket, d in p.dimensions.items()
                    },
                }
                for p in list_size_presets()
            ],
            "quality": [
                {
                    "id": q.id.value,
                    "name": q.name,
                    "description": q.description,
                    "steps": q.steps,
                    "cfg": q.cfg,
                    "sampler": q.sampler,
                    "scheduler": q.scheduler,
                    "hires_fix": q.hires_fix,
                    "upscale": q.upscale,
                    "relative_time": estimate_relative_time(q),
                }
                for q in list_quality_presets()
            ],
            "models": [
                {
                    "family": m.family.value,
                    "default_steps": m.default_steps,
                    "sampler": m.sampler,
                    "scheduler": m.scheduler,
                    "supports_negative": m.supports_negative,
                    "cfg_range": get_recommended_cfg_range(m.family),
                }
                for m in MODEL_PRESETS.values()
            ],
            "adapters": {
                model.value: {"default_strength": strength, "recommended_cfg": cfg}
                for model, (strength, cfg, _notes) in ADAPTER_SETTINGS.items()
            },
            "control_stacks": [
                {
                    "id": preset.id,
                    "name": preset.name,
                    "controls": [
                        {"type": control_type.value, "strength": strength}
                        for control_type, strength in preset.controls
                    ],
                }
                for preset in CONTROL_STACK_PRESETS.values()
            ],
        }

    # -----------------------------------------------------------------------
    # Configuration resolution.
    # -----------------------------------------------------------------------

    @app.post("/api/config/resolve")
    async def resolve_config(
        options: ConfigResolutionOptions, request: Request
    ) -> ResolvedGenerationConfig:
        """Resolve a generation config through the active strategy."""
        return _engine(request).resolve(options)

    @app.post("/api/config/optimal-size")
    async def optimal_size(req: OptimalSizeRequest, request: Request) -> OptimalSize:
        return _engine(request).calculate_optimal_size(req.aspect_ratio, req.family, req.resolution)

    # -----------------------------------------------------------------------
    # Templates.
    # -----------------------------------------------------------------------

    @app.get("/api/templates")
    async def list_templates(request: Request) -> list[dict]:
        return [
            {"id": t.id, "name": t.name, "description": t.description, "panel_count": t.panel_count}
            for t in _engine(request).registry.list_templates()
        ]

    @app.get("/api/templates/{template_id}/sizes")
    async def template_sizes(
        template_id: str,
        request: Request,
        page_size: str | None = None,
        family: ModelFamily = ModelFamily.PONY,
    ) -> dict:
        """Sizes for every slot, grouped by preset.

        Raises:
            HTTPException: 404 if the template does not exist.
        """
        engine = _engine(request)
        if engine.registry.get_template(template_id) is None:
            raise HTTPException(status_code=404, detail=f"Template not found: {template_id}")
        return engine.slot_calculator.recommend_sizes_for_template(template_id, page_size, family)

    @app.get("/api/templates/{template_id}/slots/{slot_id}")
    async def slot_size(
        template_id: str,
        slot_id: str,
        request: Request,
        page_size: str | None = None,
        family: ModelFamily = ModelFamily.PONY,
    ) -> OptimalSize:
        """Size for a single slot.

        Raises:
            HTTPException: 404 if the template or slot does not exist.
        """
        result = _engine(request).slot_calculator.lookup(
            SlotContext(template_id=template_id, slot_id=slot_id, page_size_preset=page_size),
            family,
        )
        if result.size is None:
            raise HTTPException(status_code=404, detail=str(result.error))
        return result.size

    # -----------------------------------------------------------------------
    # Identities.
    # -----------------------------------------------------------------------

    @app.get("/api/identities")
    async def list_identities(request: Request) -> list[StoredIdentity]:
        return _orchestrator(request).list_identities()

    @app.post("/api/identities")
    async def extract_identity(req: ExtractIdentityRequest, request: Request) -> ConsistencyResult:
        return await _orchestrator(request).extract_identity(
            req.sources,
            req.name,
            description=req.description,
            adapter_model=req.adapter_model,
            sources_are_panel_ids=req.sources_are_panel_ids,
        )

    @app.get("/api/identities/{identity_id}")
    async def get_identity(identity_id: str, request: Request) -> StoredIdentity:
        identity = _orchestrator(request).get_identity(identity_id)
        if identity is None:
            raise HTTPException(status_code=404, detail=f"Identity not found: {identity_id}")
        return identity

    @app.delete("/api/identities/{identity_id}")
    async def delete_identity(identity_id: str, request: Request) -> dict:
        if not _orchestrator(request).delete_identity(identity_id):
            raise HTTPException(status_code=404, detail=f"Identity not found: {identity_id}")
        return {"success": True, "id": identity_id}

    # -----------------------------------------------------------------------
    # Consistency operations.
    # -----------------------------------------------------------------------

    @app.post("/api/consistency/apply")
    async def apply_identity(req: ApplyIdentityRequest, request: Request) -> ConsistencyResult:
        return await _orchestrator(request).apply_identity(
            req.panel_id,
            req.identity_id,
            strength=req.strength,
            prompt=req.prompt,
            quality_preset=req.quality_preset,
            seed=req.seed,
        )

    @app.post("/api/consistency/apply-many")
    async def apply_identity_many(req: ApplyIdentityManyRequest, request: Request) -> BatchResult:
        return await _orchestrator(request).apply_identity_to_many(
            req.identity_id,
            req.panel_ids,
            strength=req.strength,
            quality_preset=req.quality_preset,
        )

    @app.post("/api/consistency/chain")
    async def chain(req: ChainRequest, request: Request) -> ConsistencyResult:
        return await _orchestrator(request).chain_from_previous(
            req.panel_id,
            req.previous_panel_id,
            req.maintain,
            continuity_strength=req.continuity_strength,
            prompt=req.prompt,
            quality_preset=req.quality_preset,
        )

    @app.post("/api/consistency/chain-sequence")
    async def chain_sequence(req: ChainSequenceRequest, request: Request) -> BatchResult:
        return await _orchestrator(request).chain_sequence(
            req.panel_ids,
            req.maintain,
            continuity_strength=req.continuity_strength,
            prompt=req.prompt,
            quality_preset=req.quality_preset,
        )

    @app.post("/api/consistency/reference-sheet")
    async def reference_sheet(req: ReferenceSheetRequest, request: Request) -> ReferenceSheetResult:
        settings: PanelflowConfig = request.app.state.settings
        output_dir = req.output_dir or str(Path(settings.output_dir) / "references")
        return await _orchestrator(request).generate_reference_sheet(
            req.identity_id,
            output_dir,
            pose_count=req.pose_count,
            poses=req.poses,
            include_expressions=req.include_expressions,
            quality_preset=req.quality_preset,
        )


app = create_app()


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~panelflow.core.config.config`
    (``PANELFLOW_SERVER_HOST``, ``PANELFLOW_SERVER_PORT``,
    ``PANELFLOW_LOG_LEVEL``).

    This function is registered as the ``panelflow`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "panelflow.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
