"""ComfyUI backend speaking to a comfyui-mcp REST server.

Endpoints used:

========  ===============  ==========================================
Method    Path             Purpose
========  ===============  ==========================================
GET       ``/health``      Connectivity and GPU status
POST      ``/image``       Text-to-image, optionally IP-Adapter guided
POST      ``/controlnet``  ControlNet-guided generation
========  ===============  ==========================================

Request bodies are snake_case; responses use the server's camelCase keys
(``localPath``, ``signedUrl``), which :class:`GenerationResult` accepts via
aliases. Every failure mode (connection error, timeout, non-2xx status, or
``success: false`` in the body) comes back as a failed
:class:`GenerationResult` with the error text; nothing is raised to the
caller.
"""

from __future__ import annotations

import logging

import httpx

from panelflow.core.backend import (
    ControlNetRequest,
    GenerationRequest,
    GenerationResult,
    IdentityReference,
    IdentityRequest,
    identity_request_from_embedding,
)
from panelflow.core.config import PanelflowConfig
from panelflow.core.errors import GenerationError

logger = logging.getLogger(__name__)


class ComfyUIBackend:
    """Async HTTP client for comfyui-mcp.

    Args:
        config: Supplies ``comfyui_url`` and ``generation_timeout``.
        client: Optional pre-built ``httpx.AsyncClient`` (tests pass one
            backed by ``httpx.MockTransport``). When omitted the backend
            owns its client and :meth:`aclose` closes it.
    """

    def __init__(self, config: PanelflowConfig, client: httpx.AsyncClient | None = None):
        self.base_url = config.comfyui_url.rstrip("/")
        self.timeout = config.generation_timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -- Public interface ---------------------------------------------------

    async def health(self) -> dict:
        """Return the server's health payload, or ``{"connected": False, ...}``."""
        try:
            response = await self._client.get(f"{self.base_url}/health", timeout=10.0)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("ComfyUI health check failed: %s", exc)
            return {"connected": False, "error": str(exc)}
        payload = response.json()
        payload.setdefault("connected", True)
        return payload

    async def generate_image(self, request: GenerationRequest) -> GenerationResult:
        return await self._post("/image", self._base_body(request))

    async def generate_with_controlnet(self, request: ControlNetRequest) -> GenerationResult:
        primary = request.controls[0]
        body = self._base_body(request)
        body.update(
            control_image=primary.image,
            control_type=request.control_type_label,
            strength=primary.strength,
            controls=[control.model_dump(mode="json") for control in request.controls],
        )
        return await self._post("/controlnet", body)

    async def generate_with_identity(self, request: IdentityRequest) -> GenerationResult:
        body = self._base_body(request)
        body.update(
            reference_images=request.reference_images,
            ip_adapter_strength=request.strength,
            ip_adapter_model=request.adapter_model.value,
        )
        return await self._post("/image", body)

    async def generate_from_embedding(
        self, reference: IdentityReference, request: GenerationRequest
    ) -> GenerationResult:
        return await self.generate_with_identity(identity_request_from_embedding(reference, request))

    # -- Internal helpers ---------------------------------------------------

    @staticmethod
    def _base_body(request: GenerationRequest) -> dict:
        body = {
            "prompt": request.prompt,
            "negative_prompt": request.negative_prompt,
            "model": request.model,
            "width": request.width,
            "height": request.height,
            "steps": request.steps,
            "cfg_scale": request.cfg,
            "sampler": request.sampler,
            "scheduler": request.scheduler,
            "seed": request.seed,
            "output_path": request.output_path,
        }
        if request.loras:
            body["loras"] = [
                {
                    "name": lora.name,
                    "strength_model": lora.strength,
                    "strength_clip": lora.strength_clip,
                }
                for lora in request.loras
            ]
        return {key: value for key, value in body.items() if value is not None}

    async def _post(self, path: str, body: dict) -> GenerationResult:
        try:
            try:
                response = await self._client.post(f"{self.base_url}{path}", json=body)
            except httpx.TimeoutException as exc:
                raise GenerationError(f"Request to {path} timed out after {self.timeout}s") from exc
            except httpx.HTTPError as exc:
                raise GenerationError(f"Request to {path} failed: {exc}") from exc

            if response.is_error:
                raise GenerationError(
                    f"{path} returned HTTP {response.status_code}: {response.text[:200]}"
                )
            try:
                result = GenerationResult.model_validate(response.json())
            except ValueError as exc:
                raise GenerationError(f"{path} returned an unreadable body") from exc
        except GenerationError as exc:
            logger.error("ComfyUI generation failed: %s", exc)
            return GenerationResult(success=False, error=str(exc))

        if not result.success:
            logger.error("ComfyUI reported failure on %s: %s", path, result.error)
        return result
