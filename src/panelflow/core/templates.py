"""Page templates and page sizes consumed by slot sizing.

Slot geometry is expressed in percent of the page so one template works for
any page size. The :class:`TemplateRegistry` protocol is all the resolution
engine needs; :class:`StaticTemplateRegistry` serves the built-in layouts and
accepts custom ones at runtime.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PanelSlot:
    """One panel region, in percent of page width/height."""

    id: str
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class PageTemplate:
    id: str
    name: str
    slots: tuple[PanelSlot, ...]
    description: str = ""
    gutter: float = 2.0
    margin: float = 2.0
    aspect_ratio: float = 0.65

    @property
    def panel_count(self) -> int:
        return len(self.slots)

    def get_slot(self, slot_id: str) -> PanelSlot | None:
        return next((slot for slot in self.slots if slot.id == slot_id), None)


@dataclass(frozen=True)
class PageSize:
    name: str
    width: int
    height: int
    dpi: int = 300


class TemplateRegistry(Protocol):
    def get_template(self, template_id: str) -> PageTemplate | None: ...

    def get_page_size(self, name: str) -> PageSize | None: ...


PAGE_SIZES: dict[str, PageSize] = {
    p.name: p
    for p in (
        PageSize("comic_standard", 1988, 3075, 300),
        PageSize("comic_digest", 1650, 2550, 300),
        PageSize("manga_b6", 1500, 2100, 300),
        PageSize("manga_tankoubon", 1512, 2151, 300),
        PageSize("web_hd", 1080, 1920, 72),
        PageSize("web_4k", 2160, 3840, 72),
        PageSize("spread_comic", 3975, 3075, 300),
    )
}

DEFAULT_PAGE_SIZE = "comic_standard"


def _slots(*specs: tuple[str, float, float, float, float]) -> tuple[PanelSlot, ...]:
    return tuple(PanelSlot(*spec) for spec in specs)


BUILTIN_TEMPLATES: tuple[PageTemplate, ...] = (
    PageTemplate(
        "full-page", "Full Page",
        _slots(("main", 2, 2, 96, 96)),
        description="Single panel covering the page",
        gutter=0,
    ),
    PageTemplate(
        "two-vertical", "Two Vertical",
        _slots(("top", 2, 2, 96, 47), ("bottom", 2, 51, 96, 47)),
        description="Two panels stacked vertically",
    ),
    PageTemplate(
        "two-horizontal", "Two Horizontal",
        _slots(("left", 2, 2, 47, 96), ("right", 51, 2, 47, 96)),
        description="Two panels side by side",
    ),
    PageTemplate(
        "three-top-heavy", "Three (Top Heavy)",
        _slots(
            ("top", 2, 2, 96, 60),
            ("bottom-left", 2, 64, 47, 34),
            ("bottom-right", 51, 64, 47, 34),
        ),
        description="Large top panel with two below",
    ),
    PageTemplate(
        "three-bottom-heavy", "Three (Bottom Heavy)",
        _slots(
            ("top-left", 2, 2, 47, 34),
            ("top-right", 51, 2, 47, 34),
            ("bottom", 2, 38, 96, 60),
        ),
        description="Two small panels above a large bottom panel",
    ),
    PageTemplate(
        "four-grid", "Four Grid",
        _slots(
            ("top-left", 2, 2, 47, 47),
            ("top-right", 51, 2, 47, 47),
            ("bottom-left", 2, 51, 47, 47),
            ("bottom-right", 51, 51, 47, 47),
        ),
        description="Four equal panels in a 2x2 grid",
    ),
    PageTemplate(
        "six-grid", "Six Grid",
        _slots(
            ("row1-left", 2, 2, 47, 30),
            ("row1-right", 51, 2, 47, 30),
            ("row2-left", 2, 34, 47, 30),
            ("row2-right", 51, 34, 47, 30),
            ("row3-left", 2, 66, 47, 32),
            ("row3-right", 51, 66, 47, 32),
        ),
        description="Six panels in a 2x3 grid",
    ),
    PageTemplate(
        "nine-grid", "Nine Grid",
        _slots(
            ("r1c1", 2, 2, 30.67, 30.67),
            ("r1c2", 34.17, 2, 30.67, 30.67),
            ("r1c3", 66.33, 2, 31.67, 30.67),
            ("r2c1", 2, 34.17, 30.67, 30.67),
            ("r2c2", 34.17, 34.17, 30.67, 30.67),
            ("r2c3", 66.33, 34.17, 31.67, 30.67),
            ("r3c1", 2, 66.33, 30.67, 31.67),
            ("r3c2", 34.17, 66.33, 30.67, 31.67),
            ("r3c3", 66.33, 66.33, 31.67, 31.67),
        ),
        description="Nine panels in a 3x3 grid",
        gutter=1.5,
    ),
    PageTemplate(
        "cinematic", "Cinematic",
        _slots(
            ("top", 2, 2, 96, 30),
            ("middle", 2, 34, 96, 30),
            ("bottom", 2, 66, 96, 32),
        ),
        description="Three widescreen strips",
    ),
    PageTemplate(
        "action", "Action",
        _slots(
            ("hero", 2, 2, 60, 55),
            ("top-right", 63.5, 2, 34.5, 26.5),
            ("mid-right", 63.5, 30, 34.5, 27),
            ("bottom-left", 2, 58.5, 47, 39.5),
            ("bottom-right", 50.5, 58.5, 47.5, 39.5),
        ),
        description="Dynamic asymmetric layout for action sequences",
        gutter=1.5,
    ),
    PageTemplate(
        "splash-insets", "Splash with Insets",
        _slots(
            ("splash", 0, 0, 100, 100),
            ("inset-1", 3, 3, 25, 20),
            ("inset-2", 72, 3, 25, 20),
            ("inset-3", 3, 77, 35, 20),
        ),
        description="Full-bleed splash with small inset panels",
        gutter=0,
        margin=0,
    ),
)


def create_custom_template(
    template_id: str,
    name: str,
    slots: list[PanelSlot],
    *,
    description: str = "",
    gutter: float = 2.0,
    margin: float = 2.0,
    aspect_ratio: float = 0.65,
) -> PageTemplate:
    """Build a template from caller-supplied slots.

    Raises:
        ValueError: If no slots are given, slot ids repeat, or a slot has a
            non-positive size.
    """
    if not slots:
        raise ValueError("A template needs at least one slot")
    ids = [slot.id for slot in slots]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate slot ids in template {template_id}")
    for slot in slots:
        if slot.width <= 0 or slot.height <= 0:
            raise ValueError(f"Slot {slot.id} must have a positive size")
    return PageTemplate(
        id=template_id,
        name=name,
        slots=tuple(slots),
        description=description,
        gutter=gutter,
        margin=margin,
        aspect_ratio=aspect_ratio,
    )


@dataclass
class StaticTemplateRegistry:
    """In-memory template registry seeded with the built-in layouts."""

    templates: dict[str, PageTemplate] = field(
        default_factory=lambda: {t.id: t for t in BUILTIN_TEMPLATES}
    )
    page_sizes: dict[str, PageSize] = field(default_factory=lambda: dict(PAGE_SIZES))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get_template(self, template_id: str) -> PageTemplate | None:
        return self.templates.get(template_id)

    def get_page_size(self, name: str) -> PageSize | None:
        return self.page_sizes.get(name)

    def list_templates(self) -> list[PageTemplate]:
        return list(self.templates.values())

    def register(self, template: PageTemplate) -> None:
        with self._lock:
            if template.id in self.templates:
                logger.info("Replacing template %s", template.id)
            self.templates = {**self.templates, template.id: template}
