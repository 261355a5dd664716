"""Concrete generation backends."""

from panelflow.core.adapters.comfyui import ComfyUIBackend

__all__ = ["ComfyUIBackend"]
