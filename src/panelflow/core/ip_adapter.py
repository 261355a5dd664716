"""IP-Adapter model catalog and identity embeddings.

An identity embedding here is a reference, not tensors: the source image
paths plus the adapter variant that should encode them. The backend does the
actual encoding on every generation.
"""

from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from panelflow.core.errors import ValidationError


class AdapterModel(str, Enum):
    PLUS = "ip-adapter-plus"
    PLUS_FACE = "ip-adapter-plus-face"
    FULL_FACE = "ip-adapter-full-face"
    FACEID = "ip-adapter-faceid"
    FACEID_PLUS = "ip-adapter-faceid-plus"
    STYLE = "ip-adapter-style"
    COMPOSITION = "ip-adapter-composition"


DEFAULT_ADAPTER_MODEL = AdapterModel.PLUS_FACE

# model -> (default strength, recommended cfg, notes)
ADAPTER_SETTINGS: dict[AdapterModel, tuple[float, float, str]] = {
    AdapterModel.PLUS: (0.7, 7.0, "Good all-around choice. Works well for character consistency."),
    AdapterModel.PLUS_FACE: (0.8, 7.0, "Best for portrait/face consistency. Preserves facial features well."),
    AdapterModel.FULL_FACE: (0.85, 6.0, "Strongest face preservation. May reduce pose flexibility."),
    AdapterModel.FACEID: (0.9, 5.0, "Uses FaceID encoder. Most accurate for face identity."),
    AdapterModel.FACEID_PLUS: (0.85, 6.0, "FaceID with style flexibility. Good balance."),
    AdapterModel.STYLE: (0.6, 7.0, "Transfers visual style without identity. Lower strength recommended."),
    AdapterModel.COMPOSITION: (0.5, 7.0, "Transfers layout/composition. Use with specific scene descriptions."),
}

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_identity_id() -> str:
    """``identity_<epoch ms>_<7 base36 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"identity_{int(time.time() * 1000)}_{suffix}"


class IdentityEmbedding(BaseModel):
    id: str = Field(default_factory=new_identity_id)
    source_images: list[str]
    adapter_model: AdapterModel = DEFAULT_ADAPTER_MODEL
    created_at: datetime = Field(default_factory=_utcnow)
    name: str | None = None
    description: str | None = None


def get_recommended_settings(adapter_model: AdapterModel | str) -> dict:
    strength, cfg, notes = ADAPTER_SETTINGS[AdapterModel(adapter_model)]
    return {"default_strength": strength, "recommended_cfg": cfg, "notes": notes}


def list_adapter_models() -> list[AdapterModel]:
    return list(AdapterModel)


def create_embedding(
    source_images: list[str],
    adapter_model: AdapterModel | str = DEFAULT_ADAPTER_MODEL,
    name: str | None = None,
    description: str | None = None,
) -> IdentityEmbedding:
    """Create an identity embedding from reference images.

    Raises:
        ValidationError: If ``source_images`` is empty.
    """
    if not source_images:
        raise ValidationError("At least one source image is required")
    return IdentityEmbedding(
        source_images=list(source_images),
        adapter_model=AdapterModel(adapter_model),
        name=name,
        description=description,
    )
