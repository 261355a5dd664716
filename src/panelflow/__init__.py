"""Panelflow - generation config resolution and visual consistency for comic panels."""

__version__ = "0.1.0"

from panelflow.core.config import PanelflowConfig
from panelflow.core.engine import ConfigResolutionEngine
from panelflow.core.errors import (
    BoundsError,
    GenerationError,
    NotFoundError,
    PanelflowError,
    SlotLookupError,
    ValidationError,
)
from panelflow.workflows.consistency import ConsistencyOrchestrator
from panelflow.workflows.identity_store import IdentityStore

__all__ = [
    "PanelflowConfig",
    "ConfigResolutionEngine",
    "ConsistencyOrchestrator",
    "IdentityStore",
    "PanelflowError",
    "ValidationError",
    "NotFoundError",
    "SlotLookupError",
    "GenerationError",
    "BoundsError",
]
