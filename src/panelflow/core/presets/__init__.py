"""Immutable preset catalogs: sizes, quality levels and model families."""

from panelflow.core.presets.models import (
    FAMILY_RULES,
    MODEL_PRESETS,
    detect_model_family,
    family_to_bucket,
    get_model_preset,
    get_recommended_cfg_range,
    list_model_families,
    supports_negative_prompt,
)
from panelflow.core.presets.quality import (
    QUALITY_PRESETS,
    estimate_relative_time,
    get_quality_preset,
    get_quality_preset_safe,
    get_quality_presets_by_speed,
    list_quality_presets,
    recommend_quality_preset,
)
from panelflow.core.presets.sizes import (
    SIZE_PRESETS,
    find_closest_preset,
    find_presets_for_use_case,
    get_presets_by_category,
    get_size_preset,
    list_size_presets,
)

__all__ = [
    "FAMILY_RULES",
    "MODEL_PRESETS",
    "QUALITY_PRESETS",
    "SIZE_PRESETS",
    "detect_model_family",
    "estimate_relative_time",
    "family_to_bucket",
    "find_closest_preset",
    "find_presets_for_use_case",
    "get_model_preset",
    "get_presets_by_category",
    "get_quality_preset",
    "get_quality_preset_safe",
    "get_quality_presets_by_speed",
    "get_recommended_cfg_range",
    "get_size_preset",
    "list_model_families",
    "list_quality_presets",
    "list_size_presets",
    "recommend_quality_preset",
    "supports_negative_prompt",
]
