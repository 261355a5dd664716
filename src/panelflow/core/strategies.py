"""Configuration strategies: how resolution options become a generation config.

Two strategies ship, selected through :data:`STRATEGIES`:

``default``
    Explicit dimensions, then a named size preset, then 768x1024. Slot
    context is ignored.
``slot-aware``
    Same cascade, with the panel's template slot inserted before the
    768x1024 default so a panel is generated at its slot's aspect ratio.

Both share :func:`resolve_config` and the pure math in
:mod:`panelflow.core.dimensions`; they differ only in whether a slot sizer
is plugged in.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from panelflow.core.config import PanelflowConfig
from panelflow.core.dimensions import (
    DEFAULT_DIMENSIONS,
    calculate_optimal_size,
    preset_dimensions,
)
from panelflow.core.presets.models import detect_model_family, get_model_preset
from panelflow.core.presets.quality import get_quality_preset, get_quality_preset_safe
from panelflow.core.presets.sizes import get_size_preset
from panelflow.core.slot_sizing import SlotSizeCalculator
from panelflow.core.templates import StaticTemplateRegistry, TemplateRegistry
from panelflow.core.types import (
    ConfigResolutionOptions,
    ConfigSource,
    ModelFamily,
    OptimalSize,
    PartialGenerationSettings,
    ResolvedGenerationConfig,
    SlotContext,
    TargetResolution,
)

logger = logging.getLogger(__name__)

SlotSizer = Callable[[SlotContext, ModelFamily], OptimalSize]


class ConfigurationStrategy(Protocol):
    id: str
    name: str

    def resolve(self, options: ConfigResolutionOptions) -> ResolvedGenerationConfig: ...

    def calculate_optimal_size(
        self,
        aspect_ratio: float,
        family: ModelFamily,
        resolution: TargetResolution | str = TargetResolution.MEDIUM,
    ) -> OptimalSize: ...


def resolve_config(
    options: ConfigResolutionOptions,
    default_model: str,
    slot_sizer: SlotSizer | None = None,
) -> ResolvedGenerationConfig:
    """Resolve every generation field, recording where each one came from.

    Dimensions cascade as a pair: explicit width and height, then a named
    size preset, then the slot (only when ``slot_sizer`` is given), then
    768x1024. Steps, cfg, sampler and scheduler cascade independently:
    explicit override, then quality preset, then the model family default.

    Args:
        options: Caller options. ``overrides`` is the already-merged union
            of any project/storyboard/panel settings.
        default_model: Checkpoint used when ``overrides.model`` is unset.
        slot_sizer: Callable mapping a slot to a size. ``None`` disables
            slot-based sizing.

    Returns:
        The resolved config with a ``sources`` entry per resolved field.
    """
    overrides = options.overrides or PartialGenerationSettings()
    sources: dict[str, ConfigSource] = {}

    if overrides.model:
        model = overrides.model
        sources["model"] = ConfigSource.EXPLICIT
    else:
        model = default_model
        sources["model"] = ConfigSource.ENV
    family = detect_model_family(model)
    sources["model_family"] = sources["model"]
    model_preset = get_model_preset(family)

    # -- Dimensions ---------------------------------------------------------
    size_preset_used: str | None = None
    size_preset_name = options.size_preset or overrides.size_preset
    size_preset = get_size_preset(size_preset_name) if size_preset_name else None
    if size_preset_name and size_preset is None:
        logger.warning("Unknown size preset %r, ignoring", size_preset_name)

    if overrides.width is not None and overrides.height is not None:
        width, height = overrides.width, overrides.height
        dim_source = ConfigSource.EXPLICIT
    elif size_preset is not None:
        dims = preset_dimensions(size_preset, family)
        width, height = dims.width, dims.height
        size_preset_used = size_preset.id
        dim_source = ConfigSource.PRESET
    elif slot_sizer is not None and options.slot is not None:
        size = slot_sizer(options.slot, family)
        width, height = size.width, size.height
        size_preset_used = size.preset_id
        dim_source = ConfigSource.SLOT
    else:
        width, height = DEFAULT_DIMENSIONS.width, DEFAULT_DIMENSIONS.height
        dim_source = ConfigSource.GLOBAL
    sources["width"] = sources["height"] = dim_source

    # -- Sampling parameters ------------------------------------------------
    quality_id = options.quality_preset or overrides.quality_preset
    quality = get_quality_preset(quality_id) if quality_id else None

    def pick(field_name: str, family_default):
        explicit = getattr(overrides, field_name)
        if explicit is not None:
            sources[field_name] = ConfigSource.EXPLICIT
            return explicit
        if quality is not None:
            sources[field_name] = ConfigSource.PRESET
            return getattr(quality, field_name)
        sources[field_name] = ConfigSource.GLOBAL
        return family_default

    steps = pick("steps", model_preset.default_steps)
    cfg = pick("cfg", model_preset.cfg)
    sampler = pick("sampler", model_preset.sampler)
    scheduler = pick("scheduler", model_preset.scheduler)

    post = get_quality_preset_safe(quality_id)
    sources["hires_fix"] = sources["upscale"] = (
        ConfigSource.PRESET if quality is not None else ConfigSource.GLOBAL
    )

    for name in ("seed", "negative_prompt", "loras"):
        if getattr(overrides, name) is not None:
            sources[name] = ConfigSource.EXPLICIT

    return ResolvedGenerationConfig(
        width=width,
        height=height,
        size_preset_used=size_preset_used,
        steps=steps,
        cfg=cfg,
        sampler=sampler,
        scheduler=scheduler,
        seed=overrides.seed,
        model=model,
        model_family=family,
        negative_prompt=overrides.negative_prompt,
        loras=list(overrides.loras or []),
        quality_preset_used=quality.id if quality is not None else None,
        hires_fix=post.hires_fix,
        upscale=post.upscale,
        sources=sources,
    )


class DefaultStrategy:
    """Explicit, then size preset, then 768x1024. Slots are ignored."""

    id = "default"
    name = "Default"

    def __init__(self, config: PanelflowConfig):
        self.config = config

    def resolve(self, options: ConfigResolutionOptions) -> ResolvedGenerationConfig:
        return resolve_config(options, self.config.default_model)

    def calculate_optimal_size(
        self,
        aspect_ratio: float,
        family: ModelFamily,
        resolution: TargetResolution | str = TargetResolution.MEDIUM,
    ) -> OptimalSize:
        return calculate_optimal_size(aspect_ratio, family, resolution)


class SlotAwareStrategy:
    """Sizes panels from their template slot when no explicit size is given."""

    id = "slot-aware"
    name = "Slot Aware"

    def __init__(self, config: PanelflowConfig, registry: TemplateRegistry | None = None):
        self.config = config
        self.slot_calculator = SlotSizeCalculator(
            registry if registry is not None else StaticTemplateRegistry(),
            default_page_size=config.default_page_size,
        )

    def resolve(self, options: ConfigResolutionOptions) -> ResolvedGenerationConfig:
        return resolve_config(
            options,
            self.config.default_model,
            slot_sizer=self.slot_calculator.calculate_slot_size,
        )

    def calculate_optimal_size(
        self,
        aspect_ratio: float,
        family: ModelFamily,
        resolution: TargetResolution | str = TargetResolution.MEDIUM,
    ) -> OptimalSize:
        return calculate_optimal_size(aspect_ratio, family, resolution)


STRATEGIES: dict[str, Callable[..., ConfigurationStrategy]] = {
    DefaultStrategy.id: lambda config, registry=None: DefaultStrategy(config),
    SlotAwareStrategy.id: lambda config, registry=None: SlotAwareStrategy(config, registry),
}


def create_strategy(
    strategy_id: str,
    config: PanelflowConfig,
    registry: TemplateRegistry | None = None,
) -> ConfigurationStrategy:
    """Instantiate a strategy by id.

    Raises:
        KeyError: If ``strategy_id`` is not registered.
    """
    try:
        factory = STRATEGIES[strategy_id]
    except KeyError:
        raise KeyError(
            f"Unknown strategy '{strategy_id}'. Available: {', '.join(STRATEGIES)}"
        ) from None
    return factory(config, registry)
