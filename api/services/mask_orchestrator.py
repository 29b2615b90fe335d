"""
Mask acquisition: one segmentation request per structural element.

Requests run strictly one after another with a pacing delay in between;
parallel requests trip the vision service's rate limits. A failure for one
element is reported as status=error and the batch carries on. Only a batch
that yields no mask at all is an error.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from core.config import settings
from core.exceptions import AllMasksFailed, CodecError, MaskGenerationFailed, VisionServiceError
from schemas.design import MaskingStatus, StructuralElement
from services.design_prompts import segmentation_instruction
from services.image_codec import ImagePayload, TransportImage, encode_payload, image_dimensions
from services.vision_client import Refusal

logger = logging.getLogger(__name__)

# Order in which masks are requested
MASK_ORDER: Tuple[StructuralElement, ...] = (
    StructuralElement.SIDING,
    StructuralElement.ROOFING,
    StructuralElement.TRIM,
    StructuralElement.DOOR,
)

MaskProgressSink = Callable[[StructuralElement, MaskingStatus, Optional[TransportImage]], None]


def _initial_statuses() -> Dict[StructuralElement, MaskingStatus]:
    return {element: MaskingStatus.PENDING for element in MASK_ORDER}


@dataclass
class MaskSet:
    """Masks produced for one photo, possibly partial, with per-element status"""

    masks: Dict[StructuralElement, ImagePayload] = field(default_factory=dict)
    statuses: Dict[StructuralElement, MaskingStatus] = field(default_factory=_initial_statuses)

    def get(self, element: StructuralElement) -> Optional[ImagePayload]:
        return self.masks.get(element)

    def status(self, element: StructuralElement) -> MaskingStatus:
        return self.statuses.get(element, MaskingStatus.PENDING)

    def is_complete(self, element: StructuralElement) -> bool:
        """True when the element has a finished mask usable for editing."""
        return self.status(element) == MaskingStatus.COMPLETE and element in self.masks

    @property
    def completed_elements(self) -> List[StructuralElement]:
        return [element for element in MASK_ORDER if self.is_complete(element)]

    def with_mask(self, element: StructuralElement, mask: ImagePayload) -> "MaskSet":
        """Copy with one element's mask replaced wholesale."""
        masks = dict(self.masks)
        masks[element] = mask
        statuses = dict(self.statuses)
        statuses[element] = MaskingStatus.COMPLETE
        return MaskSet(masks=masks, statuses=statuses)

    def without(self, element: StructuralElement, status: MaskingStatus = MaskingStatus.ERROR) -> "MaskSet":
        """Copy with one element's mask dropped."""
        masks = {k: v for k, v in self.masks.items() if k != element}
        statuses = dict(self.statuses)
        statuses[element] = status
        return MaskSet(masks=masks, statuses=statuses)

    def __len__(self) -> int:
        return len(self.masks)

    def __contains__(self, element) -> bool:
        return element in self.masks


class MaskOrchestrator:
    """Produces a MaskSet for a house photo, tolerant of per-element failure"""

    def __init__(self, vision_client, pacing_seconds: Optional[float] = None):
        self.vision_client = vision_client
        self.pacing_seconds = settings.mask_pacing_seconds if pacing_seconds is None else pacing_seconds

    async def generate_mask(self, photo: ImagePayload, element: StructuralElement) -> ImagePayload:
        """
        Request the segmentation mask for a single element.

        Raises:
            MaskGenerationFailed: on refusal, service failure, or a non-image result
        """
        instruction = segmentation_instruction(element)
        try:
            result = await self.vision_client.generate([photo, instruction])
        except VisionServiceError as e:
            raise MaskGenerationFailed(element, str(e)) from e

        if isinstance(result, Refusal):
            raise MaskGenerationFailed(element, result.message)

        mask = result.image
        try:
            mask_size = image_dimensions(mask.data)
            photo_size = image_dimensions(photo.data)
        except CodecError as e:
            raise MaskGenerationFailed(element, str(e)) from e

        if mask_size != photo_size:
            # Broken results later on, but the service owns this contract
            logger.warning(
                f"[MaskOrchestrator] {element.value} mask is {mask_size[0]}x{mask_size[1]}, "
                f"photo is {photo_size[0]}x{photo_size[1]}"
            )
        return mask

    async def _attempt(
        self,
        photo: ImagePayload,
        element: StructuralElement,
        progress: Optional[MaskProgressSink],
    ) -> Optional[ImagePayload]:
        if progress:
            progress(element, MaskingStatus.GENERATING, None)
        try:
            mask = await self.generate_mask(photo, element)
        except MaskGenerationFailed as e:
            logger.error(f"[MaskOrchestrator] {e}")
            if progress:
                progress(element, MaskingStatus.ERROR, None)
            return None

        logger.info(f"[MaskOrchestrator] {element.value} mask complete ({len(mask.data)} bytes)")
        if progress:
            progress(element, MaskingStatus.COMPLETE, encode_payload(mask))
        return mask

    async def generate_masks(
        self,
        photo: ImagePayload,
        progress: Optional[MaskProgressSink] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> MaskSet:
        """
        Request masks for every structural element in MASK_ORDER.

        checkpoint is called before each request; whatever it raises stops the
        batch, so an abandoned session makes no further vision calls.

        Returns:
            MaskSet with an entry for each element that succeeded

        Raises:
            AllMasksFailed: when no element produced a mask
        """
        start_time = time.time()
        mask_set = MaskSet()
        failures = {}

        for index, element in enumerate(MASK_ORDER):
            if checkpoint:
                checkpoint()
            mask_set.statuses[element] = MaskingStatus.GENERATING
            mask = await self._attempt(photo, element, progress)
            if mask is None:
                mask_set = mask_set.without(element, MaskingStatus.ERROR)
                failures[element] = MaskingStatus.ERROR
            else:
                mask_set = mask_set.with_mask(element, mask)

            if index < len(MASK_ORDER) - 1 and self.pacing_seconds > 0:
                await asyncio.sleep(self.pacing_seconds)

        elapsed = time.time() - start_time
        logger.info(
            f"[MaskOrchestrator] {len(mask_set)}/{len(MASK_ORDER)} masks generated in {elapsed:.2f}s"
            + (f", failed: {[e.value for e in failures]}" if failures else "")
        )

        if len(mask_set) == 0:
            raise AllMasksFailed(failures)
        return mask_set

    async def regenerate_mask(
        self,
        photo: ImagePayload,
        mask_set: MaskSet,
        element: StructuralElement,
        progress: Optional[MaskProgressSink] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> MaskSet:
        """
        Redo one element's mask. Returns a new MaskSet where only that entry
        changed: replaced on success, dropped with status=error on failure.
        """
        if checkpoint:
            checkpoint()
        logger.info(f"[MaskOrchestrator] Regenerating {element.value} mask")
        mask = await self._attempt(photo, element, progress)
        if mask is None:
            return mask_set.without(element, MaskingStatus.ERROR)
        return mask_set.with_mask(element, mask)
