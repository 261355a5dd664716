"""Generation sizes for panel slots in a page template."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from panelflow.core.dimensions import DEFAULT_DIMENSIONS, calculate_optimal_size
from panelflow.core.errors import SlotLookupError
from panelflow.core.templates import DEFAULT_PAGE_SIZE, TemplateRegistry
from panelflow.core.types import ModelFamily, OptimalSize, SlotContext

logger = logging.getLogger(__name__)

FALLBACK_SLOT_SIZE = OptimalSize(
    width=DEFAULT_DIMENSIONS.width,
    height=DEFAULT_DIMENSIONS.height,
    preset_id="portrait_3x4",
)


@dataclass(frozen=True)
class SlotSizeResult:
    """Outcome of a slot lookup: a size, or the reason there is none."""

    size: OptimalSize | None = None
    error: SlotLookupError | None = None

    @property
    def ok(self) -> bool:
        return self.size is not None


class SlotSizeCalculator:
    """Turns template slots into generation sizes.

    Slot geometry is percent-of-page, so the slot's pixel aspect ratio
    depends on the page size it is laid out on. An unknown page size falls
    back to ``comic_standard``.

    Args:
        registry: Source of templates and page sizes.
        default_page_size: Page size used when a slot names none.
    """

    def __init__(self, registry: TemplateRegistry, default_page_size: str = DEFAULT_PAGE_SIZE):
        self.registry = registry
        self.default_page_size = default_page_size

    # -- Public interface ---------------------------------------------------

    def lookup(self, slot: SlotContext, family: ModelFamily = ModelFamily.PONY) -> SlotSizeResult:
        """Resolve a slot to a size without falling back.

        A cached ``slot.aspect_ratio`` skips the template lookup entirely.
        """
        if slot.aspect_ratio is not None:
            return SlotSizeResult(size=calculate_optimal_size(slot.aspect_ratio, family))

        aspect = self._slot_aspect_ratio(slot.template_id, slot.slot_id, slot.page_size_preset)
        if isinstance(aspect, SlotLookupError):
            return SlotSizeResult(error=aspect)
        return SlotSizeResult(size=calculate_optimal_size(aspect, family))

    def calculate_slot_size(
        self, slot: SlotContext, family: ModelFamily = ModelFamily.PONY
    ) -> OptimalSize:
        """Resolve a slot to a size, using 768x1024 when the lookup fails."""
        result = self.lookup(slot, family)
        if result.size is not None:
            return result.size
        logger.warning("%s; using fallback size %dx%d", result.error,
                       FALLBACK_SLOT_SIZE.width, FALLBACK_SLOT_SIZE.height)
        return FALLBACK_SLOT_SIZE

    def calculate_all_slot_sizes(
        self,
        template_id: str,
        page_size: str | None = None,
        family: ModelFamily = ModelFamily.PONY,
    ) -> dict[str, OptimalSize]:
        """Sizes for every slot of a template, in slot order.

        Returns an empty dict when the template is unknown.
        """
        template = self.registry.get_template(template_id)
        if template is None:
            logger.warning("Template not found: %s", template_id)
            return {}

        sizes: dict[str, OptimalSize] = {}
        for slot in template.slots:
            sizes[slot.id] = self.calculate_slot_size(
                SlotContext(template_id=template_id, slot_id=slot.id, page_size_preset=page_size),
                family,
            )
        return sizes

    def recommend_sizes_for_template(
        self,
        template_id: str,
        page_size: str | None = None,
        family: ModelFamily = ModelFamily.PONY,
    ) -> dict:
        """Group a template's slots by the size preset they resolve to.

        Slots that resolved through the pixel budget rather than a preset are
        grouped under ``custom_<w>x<h>``.

        Returns:
            ``{"by_preset": {key: [slot ids]}, "by_slot": {slot id: size},
            "unique_presets": [keys in first-seen order]}``
        """
        by_slot = self.calculate_all_slot_sizes(template_id, page_size, family)
        by_preset: dict[str, list[str]] = {}
        for slot_id, size in by_slot.items():
            key = size.preset_id or f"custom_{size.width}x{size.height}"
            by_preset.setdefault(key, []).append(slot_id)
        return {
            "by_preset": by_preset,
            "by_slot": by_slot,
            "unique_presets": list(by_preset),
        }

    # -- Internal helpers ---------------------------------------------------

    def _slot_aspect_ratio(
        self, template_id: str, slot_id: str, page_size: str | None
    ) -> float | SlotLookupError:
        template = self.registry.get_template(template_id)
        if template is None:
            return SlotLookupError(template_id)
        slot = template.get_slot(slot_id)
        if slot is None:
            return SlotLookupError(template_id, slot_id)

        page = self.registry.get_page_size(page_size or self.default_page_size)
        if page is None:
            logger.debug("Unknown page size %r, using %s", page_size, DEFAULT_PAGE_SIZE)
            page = self.registry.get_page_size(DEFAULT_PAGE_SIZE)
        if page is None:
            return SlotLookupError(template_id, slot_id)

        slot_width = slot.width / 100 * page.width
        slot_height = slot.height / 100 * page.height
        return slot_width / slot_height
