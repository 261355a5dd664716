"""Aspect-ratio-driven dimension synthesis.

Pure functions shared by every configuration strategy. Nothing here holds
state; the only inputs are the immutable size catalog and the constants
below.

The synthesis order is:

1. Snap to a catalog preset when one is within 10% of the requested aspect.
2. Otherwise spend the family's pixel budget at the requested aspect,
   rounding each side to a multiple of 64.
3. If that lands outside the family's supported range, retry the catalog
   with a loose 50% tolerance.
4. If even that finds nothing, return the computed size unchanged.

Every size produced here is a positive multiple of 64.
"""

from __future__ import annotations

import logging
import math

from panelflow.core.errors import BoundsError
from panelflow.core.presets.models import family_to_bucket
from panelflow.core.presets.sizes import find_closest_preset
from panelflow.core.types import (
    DimensionBucket,
    Dimensions,
    ModelFamily,
    OptimalSize,
    SizePreset,
    TargetResolution,
)

logger = logging.getLogger(__name__)

GRID = 64

PRESET_TOLERANCE = 0.1
FALLBACK_PRESET_TOLERANCE = 0.5

BASE_PIXELS: dict[DimensionBucket, int] = {
    DimensionBucket.SDXL: 1024 * 1024,
    DimensionBucket.SD15: 512 * 512,
    DimensionBucket.FLUX: 1024 * 1024,
}

RESOLUTION_MULTIPLIERS: dict[TargetResolution, float] = {
    TargetResolution.LOW: 0.5,
    TargetResolution.MEDIUM: 1.0,
    TargetResolution.HIGH: 1.5,
}

# (min side, max side, max total pixels)
BOUNDS: dict[DimensionBucket, tuple[int, int, int]] = {
    DimensionBucket.SDXL: (512, 2048, 4_194_304),
    DimensionBucket.SD15: (256, 1024, 786_432),
    DimensionBucket.FLUX: (512, 2048, 4_194_304),
}

DEFAULT_DIMENSIONS = Dimensions(768, 1024)


def round_to_grid(value: float) -> int:
    """Round half-up to the nearest multiple of 64, never below 64."""
    return max(GRID, math.floor(value / GRID + 0.5) * GRID)


def target_pixel_count(
    family: ModelFamily,
    resolution: TargetResolution | str = TargetResolution.MEDIUM,
) -> int:
    bucket = family_to_bucket(family)
    return int(BASE_PIXELS[bucket] * RESOLUTION_MULTIPLIERS[TargetResolution(resolution)])


def dimensions_for_pixel_count(aspect_ratio: float, pixels: int) -> Dimensions:
    """Width and height covering roughly ``pixels`` at ``aspect_ratio``."""
    height = math.sqrt(pixels / aspect_ratio)
    width = height * aspect_ratio
    return Dimensions(round_to_grid(width), round_to_grid(height))


def check_dimensions(width: int, height: int, family: ModelFamily) -> None:
    """Validate a size against the family's supported range.

    Raises:
        BoundsError: If either side or the total pixel count is out of range.
    """
    min_side, max_side, max_pixels = BOUNDS[family_to_bucket(family)]
    if width < min_side or height < min_side:
        raise BoundsError(width, height, f"below minimum side {min_side}")
    if width > max_side or height > max_side:
        raise BoundsError(width, height, f"above maximum side {max_side}")
    if width * height > max_pixels:
        raise BoundsError(width, height, f"exceeds {max_pixels} pixels")


def preset_dimensions(preset: SizePreset, family: ModelFamily) -> Dimensions:
    """A preset's bucket dimensions for ``family``, snapped to the 64 grid.

    A few catalog entries carry source-resolution values (1080, 341, ...)
    that diffusion backends reject; those are snapped here.
    """
    dims = preset.dimensions[family_to_bucket(family)]
    return Dimensions(round_to_grid(dims.width), round_to_grid(dims.height))


def calculate_optimal_size(
    aspect_ratio: float,
    family: ModelFamily,
    resolution: TargetResolution | str = TargetResolution.MEDIUM,
) -> OptimalSize:
    """Synthesize generation dimensions for an aspect ratio.

    Args:
        aspect_ratio: Desired width / height. Must be positive.
        family: Model family whose bucket, budget and bounds apply.
        resolution: Pixel-budget tier.

    Returns:
        An :class:`OptimalSize`. ``preset_id`` is set when the size came
        from the catalog.

    Raises:
        ValueError: If ``aspect_ratio`` is not positive.
    """
    if aspect_ratio <= 0:
        raise ValueError(f"aspect_ratio must be positive, got {aspect_ratio}")

    preset = find_closest_preset(aspect_ratio, PRESET_TOLERANCE)
    if preset is not None:
        dims = preset_dimensions(preset, family)
        return OptimalSize(width=dims.width, height=dims.height, preset_id=preset.id)

    dims = dimensions_for_pixel_count(aspect_ratio, target_pixel_count(family, resolution))
    try:
        check_dimensions(dims.width, dims.height, family)
    except BoundsError as exc:
        logger.debug("Budget size for aspect %.3f rejected (%s)", aspect_ratio, exc)
        fallback = find_closest_preset(aspect_ratio, FALLBACK_PRESET_TOLERANCE)
        if fallback is not None:
            fb_dims = preset_dimensions(fallback, family)
            return OptimalSize(width=fb_dims.width, height=fb_dims.height, preset_id=fallback.id)

    return OptimalSize(width=dims.width, height=dims.height)
