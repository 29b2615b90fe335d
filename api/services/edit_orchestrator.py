"""
Iterative edit pipeline: one material/color change per structural element.

Steps run in a fixed order and each one edits the image returned by the
previous step, so nothing here can run in parallel and any failed step
aborts the whole operation. A half-applied design is never returned.
"""
import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Tuple

from core.exceptions import CodecError, NoEligibleChanges, StepFailed, VisionServiceError
from schemas.design import StructuralElement
from services.custom_materials import is_custom_product
from services.design_prompts import recolor_instruction, texture_instruction
from services.image_codec import ImagePayload, TransportImage, encode_payload, image_dimensions
from services.mask_orchestrator import MaskSet
from services.product_catalog import DesignSelection, ProductCatalog
from services.reference_images import ReferenceImageLoader
from services.vision_client import Refusal

logger = logging.getLogger(__name__)

# Background to foreground: later edits are composited onto earlier ones
EDIT_ORDER: Tuple[StructuralElement, ...] = (
    StructuralElement.ROOFING,
    StructuralElement.SIDING,
    StructuralElement.TRIM,
    StructuralElement.DOOR,
)


@dataclass
class GenerationProgress:
    """Progress reported at step boundaries"""

    active: bool = False
    message: str = ""
    percentage: float = 0.0


ProgressSink = Callable[[GenerationProgress], None]


@dataclass
class EditStep:
    """One planned edit"""

    element: StructuralElement
    product: str
    color: str
    mask: ImagePayload
    reference: Optional[ImagePayload] = None


@dataclass
class EditResult:
    """Final image and the elements that were changed"""

    image: TransportImage
    steps_applied: List[StructuralElement] = field(default_factory=list)
    processing_time: float = 0.0


def eligible_elements(mask_set: MaskSet, selection: DesignSelection) -> List[StructuralElement]:
    """Elements, in EDIT_ORDER, that have both a product selection and a completed mask."""
    return [
        element
        for element in EDIT_ORDER
        if not selection.get(element).is_empty and mask_set.is_complete(element)
    ]


class EditOrchestrator:
    """Applies a design selection to a house photo one element at a time"""

    def __init__(self, vision_client, reference_loader: Optional[ReferenceImageLoader] = None):
        self.vision_client = vision_client
        self.reference_loader = reference_loader

    async def _material_reference(
        self,
        element: StructuralElement,
        product: str,
        catalog: ProductCatalog,
        materials: Mapping[StructuralElement, ImagePayload],
    ) -> Optional[ImagePayload]:
        if is_custom_product(product) and element in materials:
            return materials[element]

        url = catalog.reference_image_url(element, product)
        if not url or self.reference_loader is None:
            return None

        reference = await self.reference_loader.load(url)
        if reference is None:
            logger.warning(f"[EditOrchestrator] No reference image for {product}; recoloring {element.value} instead")
        return reference

    async def plan(
        self,
        mask_set: MaskSet,
        selection: DesignSelection,
        catalog: ProductCatalog,
        materials: Optional[Mapping[StructuralElement, ImagePayload]] = None,
    ) -> List[EditStep]:
        """
        Resolve every eligible element into an EditStep before any edit runs,
        so that a bad selection fails the operation up front.

        Raises:
            NoEligibleChanges: nothing has both a selection and a mask
            UnknownProduct / InvalidColor: a selection does not match the catalog
        """
        materials = materials or {}
        elements = eligible_elements(mask_set, selection)
        if not elements:
            raise NoEligibleChanges()

        steps = []
        for element in elements:
            chosen = selection.get(element)
            if is_custom_product(chosen.product) and element in materials:
                color = chosen.color or catalog.resolve_color(element, chosen.product)
            else:
                color = catalog.resolve_color(element, chosen.product, chosen.color)
            reference = await self._material_reference(element, chosen.product, catalog, materials)
            steps.append(
                EditStep(
                    element=element,
                    product=chosen.product,
                    color=color or chosen.product,
                    mask=mask_set.get(element),
                    reference=reference,
                )
            )
        return steps

    async def _apply_step(self, working_image: ImagePayload, step: EditStep) -> ImagePayload:
        parts = [working_image, step.mask]
        if step.reference is not None:
            parts.append(step.reference)
            parts.append(texture_instruction(step.element, step.product, step.color))
        else:
            parts.append(recolor_instruction(step.element, step.product, step.color))

        result = await self.vision_client.generate(parts)
        if isinstance(result, Refusal):
            raise StepFailed(step.element, result.message)
        try:
            image_dimensions(result.image.data)
        except CodecError as e:
            raise StepFailed(step.element, f"returned an unreadable image ({e})") from e
        return result.image

    async def apply_design(
        self,
        photo: ImagePayload,
        mask_set: MaskSet,
        selection: DesignSelection,
        catalog: ProductCatalog,
        materials: Optional[Mapping[StructuralElement, ImagePayload]] = None,
        progress: Optional[ProgressSink] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> EditResult:
        """
        Run the edit pipeline and return the final image.

        Args:
            photo: the original upload; the first WorkingImage
            mask_set: masks from the mask orchestrator
            selection: product/color per element
            catalog: the session's catalog view (custom options included)
            materials: custom material images keyed by element
            progress: receives GenerationProgress at step boundaries
            checkpoint: called before every step; raising from it stops the run

        Raises:
            NoEligibleChanges: nothing to apply
            StepFailed: a step produced no image; later steps were not run
            SessionAbandoned: raised by the checkpoint when the session was discarded
        """

        def report(active: bool, message: str, percentage: float) -> None:
            if progress:
                progress(GenerationProgress(active=active, message=message, percentage=percentage))

        start_time = time.time()
        # Selections can change while plan() awaits reference downloads
        selection = copy.deepcopy(selection)
        materials = dict(materials or {})
        steps = await self.plan(mask_set, selection, catalog, materials)
        total_steps = len(steps)
        logger.info(
            f"[EditOrchestrator] Applying {total_steps} step(s): {[step.element.value for step in steps]}"
        )

        working_image = photo
        percentage = 0.0
        for index, step in enumerate(steps):
            if checkpoint:
                checkpoint()

            report(True, f"Applying new {step.element.value}...", percentage)
            try:
                working_image = await self._apply_step(working_image, step)
            except StepFailed as e:
                e.step, e.total_steps = index + 1, total_steps
                logger.error(f"[EditOrchestrator] Step {index + 1}/{total_steps} failed: {e}")
                report(False, str(e), percentage)
                raise
            except VisionServiceError as e:
                failure = StepFailed(step.element, str(e), step=index + 1, total_steps=total_steps)
                logger.error(f"[EditOrchestrator] Step {index + 1}/{total_steps} failed: {failure}")
                report(False, str(failure), percentage)
                raise failure from e

            percentage = (index + 1) / total_steps * 100
            logger.info(
                f"[EditOrchestrator] Step {index + 1}/{total_steps} ({step.element.value}) done "
                f"[{'texture' if step.reference is not None else 'recolor'}]"
            )
            report(True, f"Applied new {step.element.value}", percentage)

        processing_time = time.time() - start_time
        report(False, "Your new design is ready", 100.0)
        logger.info(f"[EditOrchestrator] Design complete in {processing_time:.2f}s")

        return EditResult(
            image=encode_payload(working_image),
            steps_applied=[step.element for step in steps],
            processing_time=processing_time,
        )
