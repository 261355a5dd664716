"""Exception taxonomy shared by the resolution engine and the orchestrator.

The resolution layer raises these internally and recovers from them with
logged fallbacks. The orchestrator converts them into result objects, so
callers of its public methods only ever see them by class name in
``ConsistencyResult.error_type``.
"""

from __future__ import annotations


class PanelflowError(Exception):
    """Base class for every error raised by Panelflow."""


class ValidationError(PanelflowError):
    """Input was structurally valid but semantically unusable."""


class NotFoundError(PanelflowError):
    """A referenced panel, identity, image, template or slot does not exist."""


class SlotLookupError(NotFoundError):
    """A template or slot named by a SlotContext could not be found."""

    def __init__(self, template_id: str, slot_id: str | None = None):
        self.template_id = template_id
        self.slot_id = slot_id
        if slot_id is None:
            message = f"Template not found: {template_id}"
        else:
            message = f"Slot not found: {slot_id} in template {template_id}"
        super().__init__(message)


class GenerationError(PanelflowError):
    """The generation backend failed, timed out, or returned an error.

    ``result`` carries the backend's failed result when there was one.
    """

    def __init__(self, message: str, result=None):
        self.result = result
        super().__init__(message)


class BoundsError(PanelflowError):
    """Computed dimensions fall outside the model family's supported range."""

    def __init__(self, width: int, height: int, reason: str):
        self.width = width
        self.height = height
        self.reason = reason
        super().__init__(f"{width}x{height} rejected: {reason}")
