"""ControlNet control types, stack presets and strength guidance."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field


class ControlType(str, Enum):
    CANNY = "canny"
    DEPTH = "depth"
    OPENPOSE = "openpose"
    LINEART = "lineart"
    SCRIBBLE = "scribble"
    SOFTEDGE = "softedge"
    NORMALBAE = "normalbae"
    MLSD = "mlsd"
    SHUFFLE = "shuffle"
    TILE = "tile"
    BLUR = "blur"
    INPAINT = "inpaint"
    IP2P = "ip2p"
    SEMANTIC_SEG = "semantic_seg"
    QRCODE = "qrcode"
    REFERENCE = "reference"


class ControlCondition(BaseModel):
    """One control in a stack: a guide image and how hard it steers."""

    type: ControlType
    image: str
    strength: float = Field(default=1.0, ge=0.0, le=2.0)


@dataclass(frozen=True)
class ControlStackPreset:
    id: str
    name: str
    description: str
    controls: tuple[tuple[ControlType, float], ...]

    def build(self, image: str, strength_scale: float = 1.0) -> list[ControlCondition]:
        """Instantiate the stack against one guide image."""
        return [
            ControlCondition(type=control_type, image=image, strength=strength * strength_scale)
            for control_type, strength in self.controls
        ]


CONTROL_STACK_PRESETS: dict[str, ControlStackPreset] = {
    p.id: p
    for p in (
        ControlStackPreset(
            "pose_transfer", "Pose Transfer",
            "Transfer character pose from reference while changing content",
            ((ControlType.OPENPOSE, 0.9),),
        ),
        ControlStackPreset(
            "pose_depth", "Pose + Depth",
            "Maintain pose and spatial relationships",
            ((ControlType.OPENPOSE, 0.85), (ControlType.DEPTH, 0.5)),
        ),
        ControlStackPreset(
            "character_consistency", "Character Consistency",
            "Maintain character pose and linework for panel sequences",
            ((ControlType.OPENPOSE, 0.8), (ControlType.LINEART, 0.6)),
        ),
        ControlStackPreset(
            "lineart_color", "Lineart to Color",
            "Colorize line art while preserving details",
            ((ControlType.LINEART, 1.0),),
        ),
        ControlStackPreset(
            "scene_reconstruction", "Scene Reconstruction",
            "Reconstruct scene with different style from reference",
            ((ControlType.DEPTH, 0.7), (ControlType.CANNY, 0.5)),
        ),
        ControlStackPreset(
            "sketch_to_render", "Sketch to Render",
            "Transform rough sketches into finished artwork",
            ((ControlType.SCRIBBLE, 0.8), (ControlType.DEPTH, 0.4)),
        ),
        ControlStackPreset(
            "panel_continuity", "Panel Continuity",
            "Maintain visual continuity between comic panels",
            ((ControlType.OPENPOSE, 0.75), (ControlType.DEPTH, 0.4), (ControlType.SOFTEDGE, 0.3)),
        ),
    )
}

# type -> (min, max, default, notes)
_STRENGTH_GUIDANCE: dict[ControlType, tuple[float, float, float, str]] = {
    ControlType.CANNY: (0.3, 1.2, 0.7, "Lower for creative freedom, higher for exact edge following"),
    ControlType.DEPTH: (0.3, 1.0, 0.5, "Best combined with other controls for spatial guidance"),
    ControlType.OPENPOSE: (0.5, 1.0, 0.85, "High strength for accurate pose, lower for flexible interpretation"),
    ControlType.LINEART: (0.5, 1.2, 0.8, "Higher values preserve line detail better"),
    ControlType.SCRIBBLE: (0.4, 1.0, 0.7, "Works well with rough sketches"),
    ControlType.SOFTEDGE: (0.3, 0.9, 0.5, "Subtle guidance, good for backgrounds"),
}
_DEFAULT_GUIDANCE = (0.3, 1.0, 0.7, "Adjust based on desired influence level")


def get_recommended_strength(control_type: ControlType | str) -> dict:
    low, high, default, notes = _STRENGTH_GUIDANCE.get(ControlType(control_type), _DEFAULT_GUIDANCE)
    return {"min": low, "max": high, "default": default, "notes": notes}


def calculate_total_influence(controls: list[ControlCondition]) -> dict:
    """Sum of control strengths, with a warning when controls may fight."""
    total = round(sum(control.strength for control in controls), 4)
    warning = None
    if total > 2.0:
        warning = "Very high total influence. Consider reducing individual strengths to avoid artifacts."
    elif total > 1.5:
        warning = "High total influence. Some controls may fight each other."
    return {"total": total, "warning": warning}
