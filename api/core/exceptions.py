"""
Error taxonomy for the design pipeline.

Routers translate these into HTTP responses; services raise them and never
swallow them, except for the per-element failures the mask orchestrator
reports as status=error.
"""
from typing import Dict, Optional


class DesignPipelineError(Exception):
    """Base class for every failure surfaced by the design pipeline."""

    pass


class CodecError(DesignPipelineError):
    """Raised when bytes or transport text cannot be decoded as an image stream."""

    pass


class UnsupportedImage(DesignPipelineError):
    """Raised when an uploaded file is not an accepted image type or is too large."""

    def __init__(self, message: str, too_large: bool = False):
        super().__init__(message)
        self.too_large = too_large


class VisionServiceError(DesignPipelineError):
    """Base class for failures talking to the external vision service."""

    pass


class ServiceUnavailable(VisionServiceError):
    """Transport failure or timeout reaching the vision service."""

    pass


class ServiceError(VisionServiceError):
    """The vision service was reached but returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MaskGenerationFailed(DesignPipelineError):
    """A single element's segmentation request produced no mask."""

    def __init__(self, element, reason: str):
        super().__init__(f"Failed to generate mask for {element.value}: {reason}")
        self.element = element
        self.reason = reason


class AllMasksFailed(DesignPipelineError):
    """Every element's mask request failed; nothing to design with."""

    def __init__(self, failures: Optional[Dict] = None):
        super().__init__("AI analysis failed for all parts of the house. Please try a different image.")
        self.failures = failures or {}


class NoEligibleChanges(DesignPipelineError):
    """No element has both a selection and a completed mask."""

    def __init__(self):
        super().__init__("Nothing to apply: select a product for at least one part of the house that has a mask.")


class StepFailed(DesignPipelineError):
    """An edit step returned no image; the whole edit operation is aborted."""

    def __init__(self, element, reason: str, step: int = 0, total_steps: int = 0):
        super().__init__(f"AI failed to apply changes for {element.value}: {reason}")
        self.element = element
        self.reason = reason
        self.step = step
        self.total_steps = total_steps


class UnknownProduct(DesignPipelineError):
    """A selection names a product that is not in the element's option list."""

    def __init__(self, element, product: str):
        super().__init__(f"Unknown {element.value} product: {product}")
        self.element = element
        self.product = product


class InvalidColor(DesignPipelineError):
    """A selection names a color the chosen product is not offered in."""

    def __init__(self, element, product: str, color: str):
        super().__init__(f"Color '{color}' is not available for {element.value} product '{product}'")
        self.element = element
        self.product = product
        self.color = color


class SessionNotFound(DesignPipelineError):
    """No live design session with the given id."""

    def __init__(self, session_id: str):
        super().__init__(f"Design session not found: {session_id}")
        self.session_id = session_id


class SessionBusy(DesignPipelineError):
    """Another masking or editing operation is already running for the session."""

    def __init__(self, session_id: str):
        super().__init__(f"Design session {session_id} is already processing a request")
        self.session_id = session_id


class SessionAbandoned(DesignPipelineError):
    """The session was discarded while an operation was between steps."""

    def __init__(self, session_id: str):
        super().__init__(f"Design session {session_id} was abandoned")
        self.session_id = session_id
