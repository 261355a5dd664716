"""Model-family presets and family detection from checkpoint names."""

from __future__ import annotations

from panelflow.core.types import DimensionBucket, ModelFamily, ModelPreset

MODEL_PRESETS: dict[ModelFamily, ModelPreset] = {
    ModelFamily.ILLUSTRIOUS: ModelPreset(
        family=ModelFamily.ILLUSTRIOUS,
        cfg=7.0,
        sampler="euler_ancestral",
        scheduler="normal",
        min_steps=20,
        default_steps=28,
        supports_negative=True,
        notes=("Anime-focused SDXL finetune", "Responds well to booru tags"),
    ),
    ModelFamily.PONY: ModelPreset(
        family=ModelFamily.PONY,
        cfg=7.0,
        sampler="euler_ancestral",
        scheduler="normal",
        min_steps=20,
        default_steps=28,
        supports_negative=True,
        notes=("SDXL finetune", "Expects score_9 style quality tags"),
    ),
    ModelFamily.SDXL: ModelPreset(
        family=ModelFamily.SDXL,
        default_model="sdxl_base_1.0.safetensors",
        cfg=7.0,
        sampler="dpmpp_2m_sde",
        scheduler="karras",
        min_steps=25,
        default_steps=30,
        supports_negative=True,
    ),
    ModelFamily.FLUX: ModelPreset(
        family=ModelFamily.FLUX,
        cfg=3.5,
        sampler="euler",
        scheduler="simple",
        min_steps=20,
        default_steps=28,
        supports_negative=False,
        notes=("Low CFG", "Ignores negative prompts"),
    ),
    ModelFamily.SD15: ModelPreset(
        family=ModelFamily.SD15,
        cfg=7.5,
        sampler="euler_ancestral",
        scheduler="normal",
        min_steps=20,
        default_steps=30,
        supports_negative=True,
    ),
    ModelFamily.REALISTIC: ModelPreset(
        family=ModelFamily.REALISTIC,
        cfg=7.5,
        sampler="dpmpp_2m_sde",
        scheduler="karras",
        min_steps=25,
        default_steps=35,
        supports_negative=True,
    ),
}

# Evaluated top to bottom; the first rule with a matching substring wins.
# "xl" sits below pony so "ponyDiffusionV6XL" resolves to pony.
FAMILY_RULES: tuple[tuple[tuple[str, ...], ModelFamily], ...] = (
    (("illustrious", "noob"), ModelFamily.ILLUSTRIOUS),
    (("pony", "yiff"), ModelFamily.PONY),
    (("flux",), ModelFamily.FLUX),
    (("realistic", "photon"), ModelFamily.REALISTIC),
    (("xl", "sdxl"), ModelFamily.SDXL),
)
FALLBACK_FAMILY = ModelFamily.SD15

_FAMILY_BUCKETS = {
    ModelFamily.ILLUSTRIOUS: DimensionBucket.SDXL,
    ModelFamily.PONY: DimensionBucket.SDXL,
    ModelFamily.SDXL: DimensionBucket.SDXL,
    ModelFamily.REALISTIC: DimensionBucket.SDXL,
    ModelFamily.FLUX: DimensionBucket.FLUX,
    ModelFamily.SD15: DimensionBucket.SD15,
}

_CFG_RANGES = {
    ModelFamily.FLUX: (1.0, 5.0),
    ModelFamily.REALISTIC: (5.0, 10.0),
}
_DEFAULT_CFG_RANGE = (4.0, 12.0)


def detect_model_family(model_name: str) -> ModelFamily:
    """Infer the model family from a checkpoint file name."""
    lowered = model_name.lower()
    for patterns, family in FAMILY_RULES:
        if any(pattern in lowered for pattern in patterns):
            return family
    return FALLBACK_FAMILY


def family_to_bucket(family: ModelFamily) -> DimensionBucket:
    return _FAMILY_BUCKETS[family]


def get_model_preset(family: ModelFamily) -> ModelPreset:
    return MODEL_PRESETS[family]


def list_model_families() -> list[ModelFamily]:
    return list(MODEL_PRESETS)


def supports_negative_prompt(family: ModelFamily) -> bool:
    return MODEL_PRESETS[family].supports_negative


def get_recommended_cfg_range(family: ModelFamily) -> dict[str, float]:
    """Return ``{"min", "max", "default"}`` CFG guidance for a family."""
    low, high = _CFG_RANGES.get(family, _DEFAULT_CFG_RANGE)
    return {"min": low, "max": high, "default": MODEL_PRESETS[family].cfg}
