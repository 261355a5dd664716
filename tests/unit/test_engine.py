"""Tests for panelflow.core.engine."""

from __future__ import annotations

import threading

from panelflow.core.engine import ConfigResolutionEngine
from panelflow.core.strategies import DefaultStrategy
from panelflow.core.templates import PanelSlot, StaticTemplateRegistry, create_custom_template
from panelflow.core.types import (
    ConfigResolutionOptions,
    ConfigSource,
    ModelFamily,
    PartialGenerationSettings,
    SlotContext,
)

GRID_SLOT = SlotContext(template_id="six-grid", slot_id="row1-left")


class TestStrategySwitching:
    def test_slot_aware_by_default(self, engine):
        assert engine.strategy_id == "slot-aware"

    def test_initial_strategy_can_be_injected(self, test_config):
        engine = ConfigResolutionEngine(test_config, strategy=DefaultStrategy(test_config))
        assert engine.strategy_id == "default"

    def test_switch_and_back(self, engine):
        engine.use_default_strategy()
        assert engine.strategy_id == "default"
        engine.use_slot_aware_strategy()
        assert engine.strategy_id == "slot-aware"

    def test_switch_changes_slot_resolution(self, engine):
        slot_aware = engine.get_config_for_slot(GRID_SLOT)
        engine.use_default_strategy()
        default = engine.get_config_for_slot(GRID_SLOT)

        assert (slot_aware.width, slot_aware.height) == (1024, 1024)
        assert slot_aware.sources["width"] == ConfigSource.SLOT
        assert (default.width, default.height) == (768, 1024)

    def test_concurrent_switching_never_mixes_results(self, engine):
        results = []
        errors = []

        def resolve_many():
            try:
                for _ in range(50):
                    results.append(engine.get_config_for_slot(GRID_SLOT))
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        def switch_many():
            for _ in range(50):
                engine.use_default_strategy()
                engine.use_slot_aware_strategy()

        threads = [threading.Thread(target=resolve_many) for _ in range(4)]
        threads.append(threading.Thread(target=switch_many))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(results) == 200
        for resolved in results:
            if resolved.sources["width"] == ConfigSource.SLOT:
                assert (resolved.width, resolved.height) == (1024, 1024)
            else:
                assert (resolved.width, resolved.height) == (768, 1024)


class TestResolution:
    def test_resolve_without_options(self, engine):
        resolved = engine.resolve()
        assert (resolved.width, resolved.height) == (768, 1024)

    def test_get_config_for_panel(self, engine):
        resolved = engine.get_config_for_panel(
            "panel-1",
            overrides=PartialGenerationSettings(seed=7),
            quality_preset="draft",
        )
        assert resolved.steps == 15
        assert resolved.seed == 7

    def test_get_config_with_presets(self, engine):
        resolved = engine.get_config_with_presets("portrait_2x3")

        assert (resolved.width, resolved.height) == (832, 1216)
        assert resolved.quality_preset_used == "standard"
        assert resolved.sources["steps"] == ConfigSource.PRESET

    def test_resolve_accepts_options(self, engine):
        resolved = engine.resolve(ConfigResolutionOptions(size_preset="landscape_2x1"))
        assert resolved.size_preset_used == "landscape_2x1"


class TestSlotHelpers:
    def test_dimensions_for_slot_ignore_strategy(self, engine):
        engine.use_default_strategy()
        size = engine.get_dimensions_for_slot("six-grid", "row1-left")
        assert size.preset_id == "square_1x1"

    def test_template_size_map(self, engine):
        sizes = engine.get_template_size_map("two-vertical")
        assert list(sizes) == ["top", "bottom"]
        assert sizes["top"].preset_id == "landscape_4x3"

    def test_custom_registry(self, test_config):
        registry = StaticTemplateRegistry()
        registry.register(
            create_custom_template("square", "Square", [PanelSlot("only", 0, 0, 100, 64.65)])
        )
        engine = ConfigResolutionEngine(test_config, registry=registry)

        resolved = engine.get_config_for_slot(SlotContext(template_id="square", slot_id="only"))
        assert resolved.size_preset_used == "square_1x1"

    def test_calculate_optimal_size_defaults_to_pony(self, engine):
        size = engine.calculate_optimal_size(1.0)
        assert (size.width, size.height, size.preset_id) == (1024, 1024, "square_1x1")


class TestCatalogAccess:
    def test_preset_lookups(self, engine):
        assert len(engine.list_size_presets()) == 17
        assert engine.get_size_preset("manga_full_page").aspect_ratio == 0.71
        assert engine.find_closest_size_preset(0.74).id == "portrait_3x4"
        assert engine.get_quality_preset("ultra").upscale is True
        assert len(engine.list_quality_presets()) == 4

    def test_model_lookups(self, engine):
        assert engine.detect_model_family("noobaiXL_v1") == ModelFamily.ILLUSTRIOUS
        assert engine.get_model_preset(ModelFamily.FLUX).supports_negative is False
        assert ModelFamily.REALISTIC in engine.list_model_families()
