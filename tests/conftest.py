"""Shared pytest fixtures for Panelflow tests."""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from panelflow.core.backend import (
    ControlNetRequest,
    GenerationRequest,
    GenerationResult,
    IdentityReference,
    IdentityRequest,
    identity_request_from_embedding,
)
from panelflow.core.config import PanelflowConfig
from panelflow.core.engine import ConfigResolutionEngine
from panelflow.core.panel_store import JsonPanelStore, NewGeneratedImage
from panelflow.workflows.consistency import ConsistencyOrchestrator
from panelflow.workflows.identity_store import IdentityStore


class FakeBackend:
    """In-process generation backend that records every call.

    Successful calls "write" to the requested ``output_path``. Call kinds
    listed in ``fail_kinds`` return ``success=False`` instead, and a
    positive ``delay`` makes every call sleep first. ``raise_on_call`` maps
    a 1-based call number to an exception raised by that call.
    """

    def __init__(self):
        self.calls: list[tuple[str, GenerationRequest]] = []
        self.fail_kinds: set[str] = set()
        self.fail_after: int | None = None
        self.delay = 0.0
        self.raise_on_call: dict[int, Exception] = {}

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]

    async def _respond(self, kind: str, request: GenerationRequest) -> GenerationResult:
        self.calls.append((kind, request))
        error = self.raise_on_call.get(len(self.calls))
        if error is not None:
            raise error
        if self.delay:
            await asyncio.sleep(self.delay)
        failing = kind in self.fail_kinds or (
            self.fail_after is not None and len(self.calls) > self.fail_after
        )
        if failing:
            return GenerationResult(success=False, error=f"{kind} generation failed")
        return GenerationResult(
            success=True,
            local_path=request.output_path,
            seed=1000 + len(self.calls),
            model=request.model,
        )

    async def generate_image(self, request: GenerationRequest) -> GenerationResult:
        return await self._respond("image", request)

    async def generate_with_controlnet(self, request: ControlNetRequest) -> GenerationResult:
        return await self._respond("controlnet", request)

    async def generate_with_identity(self, request: IdentityRequest) -> GenerationResult:
        return await self._respond("identity", request)

    async def generate_from_embedding(
        self, reference: IdentityReference, request: GenerationRequest
    ) -> GenerationResult:
        return await self._respond("embedding", identity_request_from_embedding(reference, request))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> PanelflowConfig:
    """Create a test configuration with temporary directories.

    Environment overrides are cleared so a developer's shell cannot leak
    into the defaults under test.
    """
    for name in (
        "PANELFLOW_DEFAULT_MODEL",
        "PANELFLOW_DEFAULT_PAGE_SIZE",
        "PANELFLOW_DEFAULT_QUALITY_PRESET",
        "PANELFLOW_IDENTITY_STORE_PATH",
        "PANELFLOW_GENERATION_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)

    return PanelflowConfig(
        output_dir=temp_dir / "output",
        data_dir=temp_dir / "data",
        comfyui_url="http://comfyui.test",
        generation_timeout=5.0,
        _env_file=None,
    )


@pytest.fixture
def engine(test_config: PanelflowConfig) -> ConfigResolutionEngine:
    return ConfigResolutionEngine(test_config)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def panel_store(test_config: PanelflowConfig) -> JsonPanelStore:
    return JsonPanelStore(test_config.panels_db, test_config.images_db)


@pytest.fixture
def identity_store() -> IdentityStore:
    return IdentityStore()


@pytest.fixture
def orchestrator(
    engine: ConfigResolutionEngine,
    fake_backend: FakeBackend,
    panel_store: JsonPanelStore,
    identity_store: IdentityStore,
    test_config: PanelflowConfig,
) -> ConsistencyOrchestrator:
    return ConsistencyOrchestrator(
        engine=engine,
        backend=fake_backend,
        panels=panel_store,
        images=panel_store,
        identities=identity_store,
        config=test_config,
    )


async def add_panel_with_image(
    store: JsonPanelStore,
    panel_id: str,
    description: str = "",
    image_path: str | None = None,
) -> None:
    """Create a panel and, if ``image_path`` is given, a selected output for it."""
    await store.create_panel(description=description, panel_id=panel_id)
    if image_path is None:
        return
    image = await store.create(
        NewGeneratedImage(
            panel_id=panel_id,
            local_path=image_path,
            prompt=description or "seed image",
            model="ponyDiffusionV6XL.safetensors",
            width=768,
            height=1024,
            steps=28,
            cfg=7.0,
            sampler="euler_ancestral",
            scheduler="normal",
        )
    )
    await store.select_output(panel_id, image.id)


@pytest.fixture
def seed_panel(panel_store: JsonPanelStore):
    """Synchronous helper: ``seed_panel(panel_id, description="", image_path=None)``."""

    def _seed(panel_id: str, description: str = "", image_path: str | None = None) -> None:
        asyncio.run(add_panel_with_image(panel_store, panel_id, description, image_path))

    return _seed


@pytest.fixture
def test_client(test_config: PanelflowConfig, fake_backend: FakeBackend):
    """FastAPI TestClient wired to the fake backend and temporary storage.

    Entering the client runs the application lifespan, so ``app.state`` is
    populated for every request.
    """
    from fastapi.testclient import TestClient

    from panelflow.api.main import create_app

    with TestClient(create_app(test_config, backend=fake_backend)) as client:
        yield client
