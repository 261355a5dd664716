"""JSON-file storage for panels and their generated images.

This store backs the orchestrator when no external database is wired in.
It is deliberately small:

- panel records live in ``panels.json``
- generated-image records live in ``images.json``
- each file is a JSON list, rewritten whole on every mutation

Loads are forgiving, as in a gallery file that users may edit by hand: a
missing, empty or malformed file reads as an empty list, and entries that
are not objects or fail validation are dropped. When dropping changed the
list, the cleaned list is written back so the next read sees it.

The store implements both the ``PanelService`` and ``ImageService``
protocols from :mod:`panelflow.workflows.consistency`.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from panelflow.core.errors import NotFoundError
from panelflow.core.types import LoraConfig, PanelGenerationSettings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class Panel(BaseModel):
    id: str = Field(default_factory=_new_id)
    storyboard_id: str | None = None
    position: int = 0
    description: str = ""
    selected_output_id: str | None = None
    generation_settings: PanelGenerationSettings | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class NewGeneratedImage(BaseModel):
    """Fields a caller supplies when recording a generation output."""

    panel_id: str
    local_path: str
    cloud_url: str | None = None
    seed: int | None = None
    prompt: str
    negative_prompt: str | None = None
    model: str
    width: int
    height: int
    steps: int
    cfg: float
    sampler: str
    scheduler: str
    loras: list[LoraConfig] = Field(default_factory=list)
    used_ip_adapter: bool = False
    ip_adapter_images: list[str] = Field(default_factory=list)
    ip_adapter_strength: float | None = None
    controlnet_type: str | None = None
    controlnet_image: str | None = None
    controlnet_strength: float | None = None


class GeneratedImage(NewGeneratedImage):
    id: str = Field(default_factory=_new_id)
    is_selected: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def load_records(path: Path, model: type[BaseModel]) -> list:
    """Load and validate a JSON list of records, pruning unusable entries."""
    if path.exists():
        try:
            with open(path, encoding="utf-8") as handle:
                raw_entries = json.load(handle)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s (%s); starting empty", path, exc)
            raw_entries = []
    else:
        raw_entries = []

    if not isinstance(raw_entries, list):
        raw_entries = []

    records = []
    for entry in raw_entries:
        if not isinstance(entry, dict):
            continue
        try:
            records.append(model.model_validate(entry))
        except PydanticValidationError:
            logger.warning("Dropping malformed record in %s: %r", path.name, entry.get("id"))

    if len(records) != len(raw_entries):
        save_records(path, records)

    return records


def save_records(path: Path, records: list[BaseModel]) -> None:
    """Persist records to disk, creating the parent directory if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump([record.model_dump(mode="json") for record in records], handle, indent=2)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class JsonPanelStore:
    """Panels and generated images persisted as two JSON files.

    Args:
        panels_db: Path to ``panels.json``.
        images_db: Path to ``images.json``.
    """

    def __init__(self, panels_db: Path, images_db: Path):
        self.panels_db = Path(panels_db)
        self.images_db = Path(images_db)
        self._lock = threading.Lock()

    # -- Panels -------------------------------------------------------------

    async def get_by_id(self, panel_id: str) -> Panel | None:
        with self._lock:
            panels = load_records(self.panels_db, Panel)
        return next((panel for panel in panels if panel.id == panel_id), None)

    async def create_panel(
        self,
        description: str = "",
        storyboard_id: str | None = None,
        position: int = 0,
        generation_settings: PanelGenerationSettings | None = None,
        panel_id: str | None = None,
    ) -> Panel:
        panel = Panel(
            description=description,
            storyboard_id=storyboard_id,
            position=position,
            generation_settings=generation_settings,
        )
        if panel_id is not None:
            panel.id = panel_id
        with self._lock:
            panels = load_records(self.panels_db, Panel)
            panels.append(panel)
            save_records(self.panels_db, panels)
        logger.debug("Created panel %s", panel.id)
        return panel

    async def list_panels(self, storyboard_id: str | None = None) -> list[Panel]:
        with self._lock:
            panels = load_records(self.panels_db, Panel)
        if storyboard_id is not None:
            panels = [panel for panel in panels if panel.storyboard_id == storyboard_id]
        return sorted(panels, key=lambda panel: panel.position)

    async def select_output(self, panel_id: str, image_id: str) -> Panel:
        """Mark ``image_id`` as the panel's chosen output.

        Raises:
            NotFoundError: If the panel or image does not exist, or the image
                belongs to another panel.
        """
        with self._lock:
            panels = load_records(self.panels_db, Panel)
            images = load_records(self.images_db, GeneratedImage)

            panel = next((p for p in panels if p.id == panel_id), None)
            if panel is None:
                raise NotFoundError(f"Panel not found: {panel_id}")
            image = next((i for i in images if i.id == image_id), None)
            if image is None or image.panel_id != panel_id:
                raise NotFoundError(f"Image {image_id} not found for panel {panel_id}")

            for candidate in images:
                if candidate.panel_id == panel_id:
                    candidate.is_selected = candidate.id == image_id
            panel.selected_output_id = image_id
            panel.updated_at = _utcnow()

            save_records(self.images_db, images)
            save_records(self.panels_db, panels)
        return panel

    # -- Generated images ---------------------------------------------------

    async def create(self, data: NewGeneratedImage) -> GeneratedImage:
        image = GeneratedImage(**data.model_dump())
        with self._lock:
            images = load_records(self.images_db, GeneratedImage)
            images.append(image)
            save_records(self.images_db, images)
        logger.debug("Recorded image %s for panel %s", image.id, image.panel_id)
        return image

    async def get_selected(self, panel_id: str) -> GeneratedImage | None:
        with self._lock:
            panels = load_records(self.panels_db, Panel)
            images = load_records(self.images_db, GeneratedImage)
        panel = next((p for p in panels if p.id == panel_id), None)
        if panel is None or panel.selected_output_id is None:
            return None
        return next((i for i in images if i.id == panel.selected_output_id), None)

    async def list_for_panel(self, panel_id: str) -> list[GeneratedImage]:
        with self._lock:
            images = load_records(self.images_db, GeneratedImage)
        return [image for image in images if image.panel_id == panel_id]
