"""Configuration resolution engine.

The engine is a thin façade over a swappable
:class:`~panelflow.core.strategies.ConfigurationStrategy` plus the preset
catalogs. It holds no global state; construct one per application (the API
keeps its instance on ``app.state``) and pass it to whatever needs it.

Typical usage::

    engine = ConfigResolutionEngine(config)
    resolved = engine.get_config_for_slot(
        SlotContext(template_id="six-grid", slot_id="row1-left"),
        quality_preset="high",
    )
    print(resolved.width, resolved.height, resolved.sources["width"])
"""

from __future__ import annotations

import logging
import threading

from panelflow.core.config import PanelflowConfig
from panelflow.core.presets import models as model_presets
from panelflow.core.presets import quality as quality_presets
from panelflow.core.presets import sizes as size_presets
from panelflow.core.slot_sizing import SlotSizeCalculator
from panelflow.core.strategies import ConfigurationStrategy, create_strategy
from panelflow.core.templates import StaticTemplateRegistry, TemplateRegistry
from panelflow.core.types import (
    ConfigResolutionOptions,
    ModelFamily,
    ModelPreset,
    OptimalSize,
    PartialGenerationSettings,
    QualityPreset,
    QualityPresetId,
    ResolvedGenerationConfig,
    SizePreset,
    SlotContext,
    TargetResolution,
)

logger = logging.getLogger(__name__)


class ConfigResolutionEngine:
    """Resolve generation configs through the active strategy.

    Args:
        config: Application configuration (default model, page size).
        strategy: Initial strategy. Defaults to ``slot-aware``.
        registry: Template registry used for slot sizing. Defaults to the
            built-in templates.
    """

    def __init__(
        self,
        config: PanelflowConfig,
        strategy: ConfigurationStrategy | None = None,
        registry: TemplateRegistry | None = None,
    ):
        self.config = config
        self.registry = registry if registry is not None else StaticTemplateRegistry()
        self.slot_calculator = SlotSizeCalculator(
            self.registry, default_page_size=config.default_page_size
        )
        self._lock = threading.Lock()
        self._strategy = strategy or create_strategy("slot-aware", config, self.registry)

    # -- Strategy management ------------------------------------------------

    @property
    def strategy(self) -> ConfigurationStrategy:
        return self._strategy

    @property
    def strategy_id(self) -> str:
        return self._strategy.id

    def set_strategy(self, strategy: ConfigurationStrategy) -> None:
        with self._lock:
            logger.info("Switching config strategy %s -> %s", self._strategy.id, strategy.id)
            self._strategy = strategy

    def use_default_strategy(self) -> None:
        self.set_strategy(create_strategy("default", self.config, self.registry))

    def use_slot_aware_strategy(self) -> None:
        self.set_strategy(create_strategy("slot-aware", self.config, self.registry))

    # -- Resolution ---------------------------------------------------------

    def resolve(self, options: ConfigResolutionOptions | None = None) -> ResolvedGenerationConfig:
        # Bind once so a concurrent set_strategy cannot split one resolution.
        strategy = self._strategy
        return strategy.resolve(options or ConfigResolutionOptions())

    def get_config_for_panel(
        self,
        panel_id: str,
        overrides: PartialGenerationSettings | None = None,
        quality_preset: QualityPresetId | str | None = None,
    ) -> ResolvedGenerationConfig:
        return self.resolve(
            ConfigResolutionOptions(
                panel_id=panel_id,
                overrides=overrides,
                quality_preset=quality_preset,
            )
        )

    def get_config_for_slot(
        self,
        slot: SlotContext,
        quality_preset: QualityPresetId | str | None = None,
        overrides: PartialGenerationSettings | None = None,
    ) -> ResolvedGenerationConfig:
        return self.resolve(
            ConfigResolutionOptions(slot=slot, overrides=overrides, quality_preset=quality_preset)
        )

    def get_config_with_presets(
        self,
        size_preset: str,
        quality_preset: QualityPresetId | str = QualityPresetId.STANDARD,
        overrides: PartialGenerationSettings | None = None,
    ) -> ResolvedGenerationConfig:
        return self.resolve(
            ConfigResolutionOptions(
                size_preset=size_preset,
                quality_preset=quality_preset,
                overrides=overrides,
            )
        )

    # -- Dimensions ---------------------------------------------------------

    def calculate_optimal_size(
        self,
        aspect_ratio: float,
        family: ModelFamily = ModelFamily.PONY,
        resolution: TargetResolution | str = TargetResolution.MEDIUM,
    ) -> OptimalSize:
        strategy = self._strategy
        return strategy.calculate_optimal_size(aspect_ratio, family, resolution)

    def get_dimensions_for_slot(
        self,
        template_id: str,
        slot_id: str,
        page_size_preset: str | None = None,
        family: ModelFamily = ModelFamily.PONY,
    ) -> OptimalSize:
        """Slot size regardless of the active strategy."""
        return self.slot_calculator.calculate_slot_size(
            SlotContext(template_id=template_id, slot_id=slot_id, page_size_preset=page_size_preset),
            family,
        )

    def get_template_size_map(
        self,
        template_id: str,
        page_size_preset: str | None = None,
        family: ModelFamily = ModelFamily.PONY,
    ) -> dict[str, OptimalSize]:
        """Sizes for every slot of a template regardless of the active strategy."""
        return self.slot_calculator.calculate_all_slot_sizes(template_id, page_size_preset, family)

    # -- Preset catalogs ----------------------------------------------------

    def list_size_presets(self) -> list[SizePreset]:
        return size_presets.list_size_presets()

    def get_size_preset(self, preset_id: str) -> SizePreset | None:
        return size_presets.get_size_preset(preset_id)

    def find_closest_size_preset(self, aspect_ratio: float, tolerance: float = 0.15) -> SizePreset | None:
        return size_presets.find_closest_preset(aspect_ratio, tolerance)

    def list_quality_presets(self) -> list[QualityPreset]:
        return quality_presets.list_quality_presets()

    def get_quality_preset(self, preset_id: QualityPresetId | str) -> QualityPreset:
        return quality_presets.get_quality_preset(preset_id)

    def list_model_families(self) -> list[ModelFamily]:
        return model_presets.list_model_families()

    def get_model_preset(self, family: ModelFamily) -> ModelPreset:
        return model_presets.get_model_preset(family)

    def detect_model_family(self, model_name: str) -> ModelFamily:
        return model_presets.detect_model_family(model_name)
