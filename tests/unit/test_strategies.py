"""Tests for configuration strategies and settings merging."""

from __future__ import annotations

import pytest

from panelflow.core.strategies import (
    DefaultStrategy,
    SlotAwareStrategy,
    create_strategy,
    resolve_config,
)
from panelflow.core.types import (
    ConfigResolutionOptions,
    ConfigSource,
    LoraConfig,
    ModelFamily,
    PanelGenerationSettings,
    PartialGenerationSettings,
    SlotContext,
    StoryboardGenerationSettings,
    merge_settings,
)

PONY = "ponyDiffusionV6XL.safetensors"
FULL_PAGE = SlotContext(template_id="full-page", slot_id="main")


class TestResolveConfig:
    """Field-by-field cascade of resolve_config."""

    def test_bare_options_use_family_defaults(self):
        resolved = resolve_config(ConfigResolutionOptions(), PONY)

        assert (resolved.width, resolved.height) == (768, 1024)
        assert resolved.model == PONY
        assert resolved.model_family == ModelFamily.PONY
        assert resolved.steps == 28
        assert resolved.cfg == 7.0
        assert resolved.sampler == "euler_ancestral"
        assert resolved.scheduler == "normal"
        assert resolved.quality_preset_used is None
        assert resolved.sources["width"] == ConfigSource.GLOBAL
        assert resolved.sources["model"] == ConfigSource.ENV
        assert resolved.sources["steps"] == ConfigSource.GLOBAL

    def test_explicit_dimensions_pass_through(self):
        options = ConfigResolutionOptions(
            overrides=PartialGenerationSettings(width=777, height=555),
            size_preset="square_1x1",
        )
        resolved = resolve_config(options, PONY)

        assert (resolved.width, resolved.height) == (777, 555)
        assert resolved.size_preset_used is None
        assert resolved.sources["height"] == ConfigSource.EXPLICIT

    def test_width_alone_is_not_explicit(self):
        options = ConfigResolutionOptions(overrides=PartialGenerationSettings(width=900))
        resolved = resolve_config(options, PONY)
        assert (resolved.width, resolved.height) == (768, 1024)

    def test_size_preset_uses_family_bucket(self):
        options = ConfigResolutionOptions(size_preset="landscape_16x9")

        sdxl = resolve_config(options, PONY)
        sd15 = resolve_config(options, "dreamshaper_8.safetensors")

        assert (sdxl.width, sdxl.height) == (1344, 768)
        assert sdxl.size_preset_used == "landscape_16x9"
        assert sdxl.sources["width"] == ConfigSource.PRESET
        assert (sd15.width, sd15.height) == (512, 320)

    def test_size_preset_from_overrides(self):
        options = ConfigResolutionOptions(
            overrides=PartialGenerationSettings(size_preset="square_1x1")
        )
        assert resolve_config(options, PONY).width == 1024

    def test_unknown_size_preset_falls_through(self, caplog):
        resolved = resolve_config(ConfigResolutionOptions(size_preset="poster_a0"), PONY)

        assert (resolved.width, resolved.height) == (768, 1024)
        assert resolved.sources["width"] == ConfigSource.GLOBAL
        assert "poster_a0" in caplog.text

    def test_quality_preset_fills_sampling(self):
        resolved = resolve_config(ConfigResolutionOptions(quality_preset="high"), PONY)

        assert resolved.steps == 35
        assert resolved.cfg == 7.5
        assert resolved.sampler == "dpmpp_2m_sde"
        assert resolved.scheduler == "karras"
        assert resolved.hires_fix is True
        assert resolved.upscale is False
        assert resolved.quality_preset_used == "high"
        assert resolved.sources["steps"] == ConfigSource.PRESET
        assert resolved.sources["hires_fix"] == ConfigSource.PRESET

    def test_explicit_field_beats_quality_preset(self):
        options = ConfigResolutionOptions(
            quality_preset="ultra",
            overrides=PartialGenerationSettings(steps=12),
        )
        resolved = resolve_config(options, PONY)

        assert resolved.steps == 12
        assert resolved.cfg == 7.5
        assert resolved.upscale is True
        assert resolved.sources["steps"] == ConfigSource.EXPLICIT
        assert resolved.sources["cfg"] == ConfigSource.PRESET

    def test_model_override_switches_family(self):
        options = ConfigResolutionOptions(
            overrides=PartialGenerationSettings(model="flux1-dev-fp8.safetensors")
        )
        resolved = resolve_config(options, PONY)

        assert resolved.model_family == ModelFamily.FLUX
        assert resolved.cfg == 3.5
        assert resolved.scheduler == "simple"
        assert resolved.sources["model"] == ConfigSource.EXPLICIT
        assert resolved.sources["model_family"] == ConfigSource.EXPLICIT

    def test_passthrough_fields_are_tracked(self):
        options = ConfigResolutionOptions(
            overrides=PartialGenerationSettings(
                seed=42,
                negative_prompt="blurry",
                loras=[LoraConfig(name="ink_style", strength=0.6)],
            )
        )
        resolved = resolve_config(options, PONY)

        assert resolved.seed == 42
        assert resolved.negative_prompt == "blurry"
        assert resolved.loras[0].name == "ink_style"
        for name in ("seed", "negative_prompt", "loras"):
            assert resolved.sources[name] == ConfigSource.EXPLICIT

    def test_unset_passthrough_fields_have_no_source(self):
        resolved = resolve_config(ConfigResolutionOptions(), PONY)
        assert "seed" not in resolved.sources
        assert resolved.loras == []

    def test_aspect_ratio_is_derived(self):
        resolved = resolve_config(ConfigResolutionOptions(size_preset="square_1x1"), PONY)
        assert resolved.aspect_ratio == 1.0


class TestStrategies:
    def test_default_strategy_ignores_slot(self, test_config):
        strategy = DefaultStrategy(test_config)
        resolved = strategy.resolve(ConfigResolutionOptions(slot=FULL_PAGE))

        assert (resolved.width, resolved.height) == (768, 1024)
        assert resolved.sources["width"] == ConfigSource.GLOBAL

    def test_slot_aware_strategy_sizes_from_slot(self, test_config):
        strategy = SlotAwareStrategy(test_config)
        resolved = strategy.resolve(ConfigResolutionOptions(slot=FULL_PAGE))

        assert (resolved.width, resolved.height) == (832, 1280)
        assert resolved.size_preset_used == "comic_full_page"
        assert resolved.sources["width"] == ConfigSource.SLOT

    def test_size_preset_beats_slot(self, test_config):
        strategy = SlotAwareStrategy(test_config)
        resolved = strategy.resolve(
            ConfigResolutionOptions(slot=FULL_PAGE, size_preset="square_1x1")
        )
        assert resolved.sources["width"] == ConfigSource.PRESET
        assert resolved.width == resolved.height == 1024

    def test_unknown_size_preset_still_sizes_from_slot(self, test_config):
        strategy = SlotAwareStrategy(test_config)
        resolved = strategy.resolve(
            ConfigResolutionOptions(slot=FULL_PAGE, size_preset="poster_7x5")
        )

        assert (resolved.width, resolved.height) == (832, 1280)
        assert resolved.sources["width"] == ConfigSource.SLOT

    def test_override_size_preset_beats_slot(self, test_config):
        strategy = SlotAwareStrategy(test_config)
        resolved = strategy.resolve(
            ConfigResolutionOptions(
                slot=FULL_PAGE, overrides=PartialGenerationSettings(size_preset="square_1x1")
            )
        )
        assert resolved.sources["width"] == ConfigSource.PRESET
        assert resolved.size_preset_used == "square_1x1"

    def test_explicit_dimensions_beat_slot_and_preset(self, test_config):
        strategy = SlotAwareStrategy(test_config)
        resolved = strategy.resolve(
            ConfigResolutionOptions(
                slot=FULL_PAGE,
                size_preset="landscape_16x9",
                overrides=PartialGenerationSettings(width=1000, height=600),
            )
        )
        assert (resolved.width, resolved.height) == (1000, 600)
        assert resolved.sources["width"] == resolved.sources["height"] == ConfigSource.EXPLICIT

    def test_unknown_slot_uses_fallback_size(self, test_config):
        strategy = SlotAwareStrategy(test_config)
        resolved = strategy.resolve(
            ConfigResolutionOptions(slot=SlotContext(template_id="nope", slot_id="main"))
        )

        assert (resolved.width, resolved.height) == (768, 1024)
        assert resolved.size_preset_used == "portrait_3x4"
        assert resolved.sources["width"] == ConfigSource.SLOT

    def test_configured_default_model_is_used(self, test_config):
        config = test_config.model_copy(update={"default_model": "sd_xl_base_1.0.safetensors"})
        resolved = DefaultStrategy(config).resolve(ConfigResolutionOptions())
        assert resolved.model_family == ModelFamily.SDXL
        assert resolved.steps == 30

    def test_both_strategies_share_size_math(self, test_config):
        default = DefaultStrategy(test_config).calculate_optimal_size(0.4, ModelFamily.PONY)
        slot_aware = SlotAwareStrategy(test_config).calculate_optimal_size(0.4, ModelFamily.PONY)
        assert default == slot_aware

    def test_create_strategy_by_id(self, test_config):
        assert create_strategy("default", test_config).id == "default"
        assert create_strategy("slot-aware", test_config).id == "slot-aware"

    def test_create_strategy_unknown_id(self, test_config):
        with pytest.raises(KeyError, match="Available: default, slot-aware"):
            create_strategy("fancy", test_config)


class TestMergeSettings:
    def test_later_layers_win(self):
        merged = merge_settings(
            PartialGenerationSettings(steps=20, cfg=6.0),
            StoryboardGenerationSettings(steps=30, default_template="six-grid"),
            PartialGenerationSettings(cfg=8.0),
        )
        assert merged.steps == 30
        assert merged.cfg == 8.0

    def test_none_never_overrides(self):
        merged = merge_settings(
            PartialGenerationSettings(sampler="euler"),
            None,
            PartialGenerationSettings(sampler=None, steps=10),
        )
        assert merged.sampler == "euler"
        assert merged.steps == 10

    def test_locked_panel_stops_later_layers(self):
        merged = merge_settings(
            PartialGenerationSettings(steps=20),
            PanelGenerationSettings(cfg=5.0, locked=True),
            PartialGenerationSettings(steps=50, cfg=9.0),
        )
        assert merged.steps == 20
        assert merged.cfg == 5.0

    def test_layer_only_fields_are_dropped(self):
        merged = merge_settings(
            StoryboardGenerationSettings(default_page_size="web_hd"),
            PanelGenerationSettings(locked=False),
        )
        assert merged.model_dump(exclude_none=True) == {}
