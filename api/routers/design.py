"""
Design studio API routes

Upload a house photo, segment it into structural elements, choose products
and colors (or custom material photos), and render the redesigned exterior.
"""
import logging
import time
from typing import List

from fastapi import APIRouter, File, HTTPException, Response, UploadFile
from schemas.catalog import ProductData
from schemas.design import (
    CustomMaterialSchema,
    DesignSessionResponse,
    ElementSelectionSchema,
    GenerateDesignResponse,
    GenerateMasksResponse,
    GenerationProgressSchema,
    MaskPreviewSchema,
    SetSelectionRequest,
    StructuralElement,
)

from core.config import settings
from core.exceptions import (
    AllMasksFailed,
    CodecError,
    DesignPipelineError,
    InvalidColor,
    NoEligibleChanges,
    ServiceUnavailable,
    SessionAbandoned,
    SessionBusy,
    SessionNotFound,
    StepFailed,
    UnknownProduct,
    UnsupportedImage,
    VisionServiceError,
)
from services.design_session import DesignSession
from services.design_studio_service import design_studio_service
from services.image_codec import ImagePayload, sniff_mime_type
from services.mask_orchestrator import MASK_ORDER

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/design", tags=["design"])


def _http_error(e: DesignPipelineError) -> HTTPException:
    """Map pipeline failures to HTTP errors with a readable detail"""
    if isinstance(e, SessionNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (SessionBusy, SessionAbandoned)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, UnsupportedImage):
        return HTTPException(status_code=413 if e.too_large else 415, detail=str(e))
    if isinstance(e, (AllMasksFailed, NoEligibleChanges, UnknownProduct, InvalidColor, CodecError)):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, StepFailed):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, ServiceUnavailable):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, VisionServiceError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


async def _read_image_upload(file: UploadFile) -> ImagePayload:
    """Read an uploaded image, enforcing the configured type and size limits"""
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise UnsupportedImage("File must be an image")

    data = await file.read()
    if len(data) > settings.max_file_size:
        raise UnsupportedImage(
            f"Image is larger than {settings.max_file_size // (1024 * 1024)}MB", too_large=True
        )

    mime_type = sniff_mime_type(data) or content_type
    if mime_type not in settings.allowed_image_types:
        raise UnsupportedImage(f"Unsupported image type {mime_type}; use one of {', '.join(settings.allowed_image_types)}")
    return ImagePayload(data=data, mime_type=mime_type)


def _mask_previews(session: DesignSession) -> List[MaskPreviewSchema]:
    previews = []
    for element in MASK_ORDER:
        mask = session.mask_previews.get(element)
        previews.append(
            MaskPreviewSchema(
                element=element,
                status=session.masking_status[element],
                mask_image=mask.to_data_url() if mask is not None else None,
            )
        )
    return previews


def _session_response(session: DesignSession) -> DesignSessionResponse:
    return DesignSessionResponse(
        session_id=session.session_id,
        mime_type=session.photo.mime_type,
        width=session.width,
        height=session.height,
        masking_status=dict(session.masking_status),
        selections={
            element: ElementSelectionSchema(product=choice.product, color=choice.color)
            for element, choice in session.selection.elements.items()
        },
        custom_materials=[
            CustomMaterialSchema(
                element=material.element,
                product=material.option.value,
                preview_url=material.option.image_urls[0],
            )
            for material in session.custom_materials.all()
        ],
        progress=GenerationProgressSchema(
            active=session.progress.active,
            message=session.progress.message,
            percentage=session.progress.percentage,
        ),
        has_result=session.result is not None,
    )


@router.get("/catalog", response_model=ProductData)
async def get_catalog():
    """Get the product catalog: product groups per structural element."""
    return design_studio_service.catalog.data


@router.post("/sessions", response_model=DesignSessionResponse)
async def create_session(file: UploadFile = File(...)):
    """
    Upload a house photo and start a design session.

    Every element starts with the first catalog product and its first color.
    """
    try:
        photo = await _read_image_upload(file)
        session = design_studio_service.create_session(photo)
        return _session_response(session)

    except DesignPipelineError as e:
        logger.warning(f"Rejected house photo upload: {e}")
        raise _http_error(e)


@router.get("/sessions/{session_id}", response_model=DesignSessionResponse)
async def get_session(session_id: str):
    """Get the state of a design session."""
    try:
        return _session_response(design_studio_service.get_session(session_id))
    except DesignPipelineError as e:
        raise _http_error(e)


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    """Abandon a design session and release its previews."""
    if not design_studio_service.discard_session(session_id):
        raise HTTPException(status_code=404, detail=f"Design session not found: {session_id}")
    return {"success": True}


@router.post("/sessions/{session_id}/masks", response_model=GenerateMasksResponse)
async def generate_masks(session_id: str):
    """
    Segment the session's photo into siding, roofing, trim and door.

    Elements that fail are reported with status "error"; the call only fails
    when no mask could be generated at all.
    """
    start_time = time.time()
    try:
        mask_set = await design_studio_service.generate_masks(session_id)
        session = design_studio_service.get_session(session_id)
        return GenerateMasksResponse(
            success=True,
            masks=_mask_previews(session),
            completed=len(mask_set),
            processing_time=time.time() - start_time,
        )

    except DesignPipelineError as e:
        logger.error(f"Mask generation failed for session {session_id}: {e}")
        raise _http_error(e)


@router.post("/sessions/{session_id}/masks/{element}", response_model=MaskPreviewSchema)
async def regenerate_mask(session_id: str, element: StructuralElement):
    """Regenerate the mask for a single element."""
    try:
        await design_studio_service.regenerate_mask(session_id, element)
        session = design_studio_service.get_session(session_id)
        mask = session.mask_previews.get(element)
        return MaskPreviewSchema(
            element=element,
            status=session.masking_status[element],
            mask_image=mask.to_data_url() if mask is not None else None,
        )

    except DesignPipelineError as e:
        logger.error(f"Mask regeneration for {element.value} failed in session {session_id}: {e}")
        raise _http_error(e)


@router.put("/sessions/{session_id}/selections/{element}", response_model=ElementSelectionSchema)
async def set_selection(session_id: str, element: StructuralElement, request: SetSelectionRequest):
    """Choose a product and color for an element (product null clears it)."""
    try:
        choice = design_studio_service.set_selection(session_id, element, request.product, request.color)
        return ElementSelectionSchema(product=choice.product, color=choice.color)
    except DesignPipelineError as e:
        raise _http_error(e)


@router.get("/sessions/{session_id}/catalog", response_model=ProductData)
async def get_session_catalog(session_id: str):
    """Get the session's catalog, including any custom materials."""
    try:
        return design_studio_service.get_session(session_id).catalog.data
    except DesignPipelineError as e:
        raise _http_error(e)


@router.post("/sessions/{session_id}/custom-materials/{element}", response_model=CustomMaterialSchema)
async def add_custom_material(session_id: str, element: StructuralElement, file: UploadFile = File(...)):
    """
    Use a photo of a material instead of a catalog product for an element.

    The material is selected immediately; uploading another one for the same
    element replaces it.
    """
    try:
        image = await _read_image_upload(file)
        option = design_studio_service.add_custom_material(session_id, element, image)
        return CustomMaterialSchema(element=element, product=option.value, preview_url=option.image_urls[0])

    except DesignPipelineError as e:
        logger.warning(f"Custom {element.value} material rejected for session {session_id}: {e}")
        raise _http_error(e)


@router.delete("/sessions/{session_id}/custom-materials/{element}")
async def remove_custom_material(session_id: str, element: StructuralElement):
    """Remove an element's custom material."""
    try:
        removed = design_studio_service.remove_custom_material(session_id, element)
    except DesignPipelineError as e:
        raise _http_error(e)

    if not removed:
        raise HTTPException(status_code=404, detail=f"No custom {element.value} material in this session")
    return {"success": True}


@router.get("/sessions/{session_id}/previews/{handle}")
async def get_preview(session_id: str, handle: str):
    """Serve a custom material preview image."""
    try:
        session = design_studio_service.get_session(session_id)
    except DesignPipelineError as e:
        raise _http_error(e)

    preview = session.previews.get(handle)
    if preview is None:
        raise HTTPException(status_code=404, detail="Preview not found")
    return Response(content=preview.data, media_type=preview.mime_type)


@router.post("/sessions/{session_id}/generate", response_model=GenerateDesignResponse)
async def generate_design(session_id: str):
    """
    Render the design: apply every selected product to its masked region,
    one element at a time.
    """
    try:
        result = await design_studio_service.generate_design(session_id)
        return GenerateDesignResponse(
            success=True,
            rendered_image=result.image.to_data_url(),
            steps_applied=result.steps_applied,
            processing_time=result.processing_time,
        )

    except DesignPipelineError as e:
        logger.error(f"Design generation failed for session {session_id}: {e}")
        raise _http_error(e)


@router.get("/sessions/{session_id}/progress", response_model=GenerationProgressSchema)
async def get_progress(session_id: str):
    """Get the progress of the running (or last) design generation."""
    try:
        progress = design_studio_service.get_session(session_id).progress
    except DesignPipelineError as e:
        raise _http_error(e)
    return GenerationProgressSchema(active=progress.active, message=progress.message, percentage=progress.percentage)


@router.get("/sessions/{session_id}/result")
async def get_result(session_id: str):
    """Get the last rendered design as an image."""
    try:
        session = design_studio_service.get_session(session_id)
    except DesignPipelineError as e:
        raise _http_error(e)

    if session.result is None:
        raise HTTPException(status_code=404, detail="No design has been generated yet")
    return {"rendered_image": session.result.to_data_url()}


@router.get("/health")
async def health():
    """Vision service configuration and usage"""
    return await design_studio_service.vision_client.health_check()
