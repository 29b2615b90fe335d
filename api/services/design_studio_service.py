"""
Design studio service: ties sessions to the mask and edit pipelines.
"""

from typing import Optional

import structlog

from core.exceptions import AllMasksFailed, SessionAbandoned, UnknownProduct
from schemas.catalog import ProductOption
from schemas.design import CUSTOM_COLOR, MaskingStatus, StructuralElement
from services.custom_materials import is_custom_product
from services.design_session import DesignSession, DesignSessionStore
from services.edit_orchestrator import EditOrchestrator, EditResult, GenerationProgress
from services.image_codec import ImagePayload
from services.mask_orchestrator import MASK_ORDER, MaskOrchestrator, MaskSet
from services.product_catalog import ElementSelection, ProductCatalog, load_catalog
from services.reference_images import ReferenceImageLoader
from services.vision_client import GeminiVisionClient

logger = structlog.get_logger(__name__)

PREVIEW_URL_TEMPLATE = "/api/design/sessions/{session_id}/previews/{handle}"


class DesignStudioService:
    """Session-level operations behind the design studio endpoints"""

    def __init__(
        self,
        vision_client=None,
        catalog: Optional[ProductCatalog] = None,
        reference_loader: Optional[ReferenceImageLoader] = None,
        pacing_seconds: Optional[float] = None,
    ):
        self.vision_client = vision_client if vision_client is not None else GeminiVisionClient()
        self.catalog = catalog or load_catalog()
        self.reference_loader = reference_loader if reference_loader is not None else ReferenceImageLoader()
        self.mask_orchestrator = MaskOrchestrator(self.vision_client, pacing_seconds=pacing_seconds)
        self.edit_orchestrator = EditOrchestrator(self.vision_client, self.reference_loader)
        self.sessions = DesignSessionStore(
            self.catalog,
            preview_url=lambda session_id, handle: PREVIEW_URL_TEMPLATE.format(session_id=session_id, handle=handle),
        )

    def create_session(self, photo: ImagePayload) -> DesignSession:
        return self.sessions.create(photo)

    def get_session(self, session_id: str) -> DesignSession:
        return self.sessions.get(session_id)

    def discard_session(self, session_id: str) -> bool:
        return self.sessions.discard(session_id)

    def _ensure_active(self, session: DesignSession) -> None:
        # Results for a discarded session are dropped
        if not self.sessions.is_active(session):
            raise SessionAbandoned(session.session_id)

    async def generate_masks(self, session_id: str) -> MaskSet:
        """Run mask acquisition for a session's photo, replacing any previous masks."""
        session = self.sessions.get(session_id)
        async with self.sessions.exclusive(session):
            session.result = None
            session.mask_previews.clear()
            for element in MASK_ORDER:
                session.masking_status[element] = MaskingStatus.PENDING

            try:
                mask_set = await self.mask_orchestrator.generate_masks(
                    session.photo, progress=session.on_mask_progress, checkpoint=session.checkpoint
                )
            except AllMasksFailed:
                if self.sessions.is_active(session):
                    session.mask_set = MaskSet(masks={}, statuses=dict(session.masking_status))
                raise

            self._ensure_active(session)
            session.mask_set = mask_set
            logger.info(
                "masks_ready",
                session_id=session_id,
                completed=[e.value for e in mask_set.completed_elements],
                total=len(MASK_ORDER),
            )
            return mask_set

    async def regenerate_mask(self, session_id: str, element: StructuralElement) -> MaskSet:
        """Redo one element's mask without touching the others."""
        session = self.sessions.get(session_id)
        async with self.sessions.exclusive(session):
            mask_set = await self.mask_orchestrator.regenerate_mask(
                session.photo, session.mask_set, element, progress=session.on_mask_progress, checkpoint=session.checkpoint
            )
            self._ensure_active(session)
            session.mask_set = mask_set
            session.result = None
            return mask_set

    def set_selection(
        self,
        session_id: str,
        element: StructuralElement,
        product: Optional[str],
        color: Optional[str] = None,
    ) -> ElementSelection:
        """
        Choose a product (and color) for an element; None clears the element.

        Raises:
            UnknownProduct / InvalidColor
        """
        session = self.sessions.get(session_id)
        if not product:
            session.selection.clear(element)
        elif is_custom_product(product):
            material = session.custom_materials.get(element)
            if material is None or product != material.option.value:
                raise UnknownProduct(element, product)
            session.selection.set(element, product, CUSTOM_COLOR)
        else:
            resolved = session.catalog.resolve_color(element, product, color)
            session.selection.set(element, product, resolved)
        return session.selection.get(element)

    def add_custom_material(self, session_id: str, element: StructuralElement, image: ImagePayload) -> ProductOption:
        session = self.sessions.get(session_id)
        option = session.custom_materials.add(element, image)
        logger.info("custom_material_selected", session_id=session_id, element=element.value)
        return option

    def remove_custom_material(self, session_id: str, element: StructuralElement) -> bool:
        session = self.sessions.get(session_id)
        return session.custom_materials.remove(element)

    async def generate_design(self, session_id: str) -> EditResult:
        """Apply the session's selections to its photo."""
        session = self.sessions.get(session_id)
        async with self.sessions.exclusive(session):
            session.result = None
            session.progress = GenerationProgress(active=True, message="Preparing your design...", percentage=0.0)
            try:
                result = await self.edit_orchestrator.apply_design(
                    session.photo,
                    session.mask_set,
                    session.selection,
                    session.catalog,
                    materials=session.custom_materials.materials(),
                    progress=session.on_generation_progress,
                    checkpoint=session.checkpoint,
                )
            except Exception:
                if session.progress.active:
                    session.on_generation_progress(
                        GenerationProgress(active=False, message="Design generation failed", percentage=session.progress.percentage)
                    )
                raise

            self._ensure_active(session)
            session.result = result.image
            logger.info("design_rendered", session_id=session_id, steps=[e.value for e in result.steps_applied])
            return result

    async def close(self):
        self.sessions.discard_all()
        await self.reference_loader.close()


# Global service instance
design_studio_service = DesignStudioService()
