"""Quality presets: sampling parameters from fast preview to publication."""

from __future__ import annotations

import logging

from panelflow.core.types import QualityPreset, QualityPresetId

logger = logging.getLogger(__name__)

QUALITY_PRESETS: dict[QualityPresetId, QualityPreset] = {
    QualityPresetId.DRAFT: QualityPreset(
        id=QualityPresetId.DRAFT,
        name="Draft (Fast Preview)",
        description="Quick preview for composition checks",
        steps=15,
        cfg=6.0,
        sampler="euler",
        scheduler="normal",
    ),
    QualityPresetId.STANDARD: QualityPreset(
        id=QualityPresetId.STANDARD,
        name="Standard",
        description="Balanced quality for iteration",
        steps=28,
        cfg=7.0,
        sampler="euler_ancestral",
        scheduler="normal",
    ),
    QualityPresetId.HIGH: QualityPreset(
        id=QualityPresetId.HIGH,
        name="High Quality",
        description="Detailed output with hi-res fix",
        steps=35,
        cfg=7.5,
        sampler="dpmpp_2m_sde",
        scheduler="karras",
        hires_fix=True,
    ),
    QualityPresetId.ULTRA: QualityPreset(
        id=QualityPresetId.ULTRA,
        name="Ultra (Publication Ready)",
        description="Maximum quality with hi-res fix and upscale",
        steps=40,
        cfg=7.5,
        sampler="dpmpp_2m_sde",
        scheduler="karras",
        hires_fix=True,
        upscale=True,
    ),
}

# Relative to the standard preset's 28 steps.
_BASELINE_STEPS = 28

_USE_CASE_PRESETS = {
    "preview": QualityPresetId.DRAFT,
    "iteration": QualityPresetId.STANDARD,
    "web": QualityPresetId.STANDARD,
    "social": QualityPresetId.STANDARD,
    "final": QualityPresetId.HIGH,
    "print": QualityPresetId.ULTRA,
}


def get_quality_preset(preset_id: QualityPresetId | str) -> QualityPreset:
    """Look up a quality preset.

    Raises:
        KeyError: If ``preset_id`` is not a known preset.
    """
    try:
        return QUALITY_PRESETS[QualityPresetId(preset_id)]
    except ValueError:
        raise KeyError(f"Unknown quality preset: {preset_id}") from None


def get_quality_preset_safe(
    preset_id: QualityPresetId | str | None,
    fallback: QualityPresetId | str = QualityPresetId.STANDARD,
) -> QualityPreset:
    if preset_id is None:
        return get_quality_preset(fallback)
    try:
        return get_quality_preset(preset_id)
    except KeyError:
        logger.warning("Unknown quality preset %r, using %s", preset_id, fallback)
        return get_quality_preset(fallback)


def list_quality_presets() -> list[QualityPreset]:
    return list(QUALITY_PRESETS.values())


def get_quality_presets_by_speed() -> list[QualityPreset]:
    """Presets ordered fastest first."""
    return sorted(QUALITY_PRESETS.values(), key=estimate_relative_time)


def estimate_relative_time(preset: QualityPreset) -> float:
    """Rough generation time relative to the standard preset (1.0)."""
    time = preset.steps / _BASELINE_STEPS
    if preset.hires_fix:
        time *= 1.8
    if preset.upscale:
        time *= 1.5
    if "dpmpp" in preset.sampler:
        time *= 1.1
    return round(time, 2)


def recommend_quality_preset(use_case: str) -> QualityPresetId:
    return _USE_CASE_PRESETS.get(use_case.lower(), QualityPresetId.STANDARD)
