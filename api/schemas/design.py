"""
Pydantic schemas for the design studio API endpoints
"""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class StructuralElement(str, Enum):
    """House parts the studio can segment and redesign"""

    SIDING = "siding"
    ROOFING = "roofing"
    TRIM = "trim"
    DOOR = "door"


class MaskingStatus(str, Enum):
    """Per-element mask generation state"""

    PENDING = "pending"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


CUSTOM_COLOR = "Custom"


class ElementSelectionSchema(BaseModel):
    """Chosen product and color for one element"""

    product: Optional[str] = None
    color: Optional[str] = None


class SetSelectionRequest(BaseModel):
    """Request to choose a product (and optionally a color) for an element"""

    product: Optional[str] = Field(None, description="Product identifier; null clears the element")
    color: Optional[str] = Field(None, description="Color label; defaults to the product's first color")


class GenerationProgressSchema(BaseModel):
    """Progress of the edit pipeline"""

    active: bool = False
    message: str = ""
    percentage: float = Field(0.0, ge=0.0, le=100.0)


class MaskPreviewSchema(BaseModel):
    """Mask status for one element with an optional preview"""

    element: StructuralElement
    status: MaskingStatus
    mask_image: Optional[str] = Field(None, description="Data URL of the mask when complete")


class CustomMaterialSchema(BaseModel):
    """A user-supplied material standing in for a catalog product"""

    element: StructuralElement
    product: str
    preview_url: str


class DesignSessionResponse(BaseModel):
    """State of a design session"""

    session_id: str
    mime_type: str
    width: int
    height: int
    masking_status: Dict[StructuralElement, MaskingStatus]
    selections: Dict[StructuralElement, ElementSelectionSchema]
    custom_materials: List[CustomMaterialSchema] = Field(default_factory=list)
    progress: GenerationProgressSchema
    has_result: bool = False


class GenerateMasksResponse(BaseModel):
    """Result of mask acquisition"""

    success: bool
    masks: List[MaskPreviewSchema]
    completed: int = 0
    processing_time: float = Field(0.0, description="Processing time in seconds")


class GenerateDesignResponse(BaseModel):
    """Result of the edit pipeline"""

    success: bool
    rendered_image: Optional[str] = Field(None, description="Data URL of the final image")
    steps_applied: List[StructuralElement] = Field(default_factory=list)
    error_message: Optional[str] = None
    processing_time: float = Field(0.0, description="Processing time in seconds")
