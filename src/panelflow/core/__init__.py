"""Core generation-config machinery for Panelflow."""

from panelflow.core.config import PanelflowConfig
from panelflow.core.engine import ConfigResolutionEngine

__all__ = ["PanelflowConfig", "ConfigResolutionEngine"]
