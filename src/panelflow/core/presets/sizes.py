"""Size presets: named aspect ratios with per-bucket bucket resolutions."""

from __future__ import annotations

from panelflow.core.types import DimensionBucket, Dimensions, SizePreset

_SDXL = DimensionBucket.SDXL
_SD15 = DimensionBucket.SD15
_FLUX = DimensionBucket.FLUX


def _preset(
    id: str,
    name: str,
    aspect_ratio: float,
    sdxl: tuple[int, int],
    sd15: tuple[int, int],
    flux: tuple[int, int],
    suggested_for: tuple[str, ...],
) -> SizePreset:
    return SizePreset(
        id=id,
        name=name,
        aspect_ratio=aspect_ratio,
        dimensions={
            _SDXL: Dimensions(*sdxl),
            _SD15: Dimensions(*sd15),
            _FLUX: Dimensions(*flux),
        },
        suggested_for=suggested_for,
    )


# Insertion order matters: find_closest_preset keeps the first preset seen
# on an exact tie.
SIZE_PRESETS: dict[str, SizePreset] = {
    p.id: p
    for p in (
        _preset("square_1x1", "Square (1:1)", 1.0,
                (1024, 1024), (512, 512), (1024, 1024),
                ("avatar", "icon", "thumbnail", "profile")),
        _preset("portrait_3x4", "Portrait (3:4)", 0.75,
                (768, 1024), (384, 512), (768, 1024),
                ("character", "full-body", "standard-panel")),
        _preset("portrait_2x3", "Portrait (2:3)", 0.667,
                (832, 1216), (341, 512), (832, 1248),
                ("comic-panel", "page", "poster")),
        _preset("portrait_9x16", "Portrait (9:16)", 0.5625,
                (768, 1344), (288, 512), (720, 1280),
                ("mobile", "story", "vertical-video")),
        _preset("portrait_1x2", "Tall Portrait (1:2)", 0.5,
                (704, 1408), (256, 512), (640, 1280),
                ("tall-panel", "vertical-strip")),
        _preset("landscape_4x3", "Landscape (4:3)", 1.333,
                (1024, 768), (512, 384), (1024, 768),
                ("scene", "establishing-shot", "dialog")),
        _preset("landscape_3x2", "Landscape (3:2)", 1.5,
                (1216, 832), (512, 341), (1248, 832),
                ("cinematic", "wide-panel", "photography")),
        _preset("landscape_16x9", "Widescreen (16:9)", 1.778,
                (1344, 768), (512, 288), (1280, 720),
                ("cinematic-wide", "banner", "video-frame")),
        _preset("landscape_21x9", "Ultrawide (21:9)", 2.333,
                (1536, 640), (512, 219), (1344, 576),
                ("panoramic", "establishing", "ultra-wide")),
        _preset("landscape_2x1", "Wide Landscape (2:1)", 2.0,
                (1408, 704), (512, 256), (1280, 640),
                ("horizontal-strip", "spread")),
        _preset("comic_full_page", "Comic Full Page", 0.65,
                (832, 1280), (333, 512), (832, 1280),
                ("full-page", "splash", "cover")),
        _preset("comic_half_horizontal", "Comic Half Page (Horizontal)", 1.3,
                (1024, 768), (512, 394), (1024, 787),
                ("half-page", "wide-panel", "action-strip")),
        _preset("comic_third_vertical", "Comic Third (Vertical)", 0.48,
                (640, 1344), (246, 512), (640, 1344),
                ("vertical-strip", "side-panel", "action-sequence")),
        _preset("comic_sixth_grid", "Comic Sixth (Grid)", 0.97,
                (1024, 1056), (496, 512), (1024, 1056),
                ("grid-panel", "six-grid", "four-grid")),
        _preset("manga_full_page", "Manga Full Page", 0.71,
                (832, 1152), (363, 512), (832, 1168),
                ("manga-page", "manga-splash")),
        _preset("instagram_square", "Instagram Square", 1.0,
                (1080, 1080), (512, 512), (1080, 1080),
                ("instagram", "social-square")),
        _preset("instagram_portrait", "Instagram Portrait (4:5)", 0.8,
                (864, 1080), (410, 512), (864, 1080),
                ("instagram-portrait", "social-portrait")),
    )
}

_CATEGORY_PREFIXES = (
    ("square", "square_"),
    ("portrait", "portrait_"),
    ("landscape", "landscape_"),
    ("comic", "comic_"),
    ("manga", "manga_"),
    ("social", "instagram_"),
)


def get_size_preset(preset_id: str) -> SizePreset | None:
    return SIZE_PRESETS.get(preset_id)


def list_size_presets() -> list[SizePreset]:
    return list(SIZE_PRESETS.values())


def find_closest_preset(target_aspect: float, tolerance: float = 0.15) -> SizePreset | None:
    """Return the preset whose aspect ratio is nearest to ``target_aspect``.

    Distance is relative, ``|p - t| / max(p, t)``, so a 0.1 tolerance means
    "within 10%" regardless of whether the target is tall or wide. Only
    presets within ``tolerance`` are candidates. On an exact tie the earlier
    preset in catalog order wins.

    Args:
        target_aspect: Desired width / height. Must be positive.
        tolerance: Maximum relative difference accepted.

    Returns:
        The closest preset, or ``None`` when nothing is within tolerance.
    """
    closest: SizePreset | None = None
    closest_diff = float("inf")

    for preset in SIZE_PRESETS.values():
        diff = abs(preset.aspect_ratio - target_aspect) / max(preset.aspect_ratio, target_aspect)
        if diff < closest_diff and diff <= tolerance:
            closest = preset
            closest_diff = diff

    return closest


def find_presets_for_use_case(use_case: str) -> list[SizePreset]:
    """Presets whose ``suggested_for`` tags contain ``use_case`` (case-insensitive)."""
    needle = use_case.lower()
    return [
        preset
        for preset in SIZE_PRESETS.values()
        if any(needle in tag.lower() for tag in preset.suggested_for)
    ]


def get_presets_by_category() -> dict[str, list[SizePreset]]:
    categories: dict[str, list[SizePreset]] = {name: [] for name, _ in _CATEGORY_PREFIXES}
    for preset in SIZE_PRESETS.values():
        for name, prefix in _CATEGORY_PREFIXES:
            if preset.id.startswith(prefix):
                categories[name].append(preset)
                break
    return categories
