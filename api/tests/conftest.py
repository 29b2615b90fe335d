"""
Pytest configuration and fixtures for the design studio tests.

No test talks to the real vision service: FakeVisionClient stands in for
GeminiVisionClient and records every request it receives.
"""
import io
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pytest
from PIL import Image, ImageDraw
from schemas.design import StructuralElement

from services.design_prompts import segmentation_instruction
from services.image_codec import ImagePayload
from services.mask_orchestrator import MASK_ORDER, MaskSet
from services.product_catalog import ProductCatalog
from services.vision_client import GeneratedImage

PHOTO_SIZE = (64, 48)


def make_png(size: Tuple[int, int] = PHOTO_SIZE, color="beige", fmt: str = "PNG") -> bytes:
    """Encode a solid-color test image."""
    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_mask(size: Tuple[int, int] = PHOTO_SIZE, box=(10, 10, 40, 30)) -> bytes:
    """Binary mask: white box on black."""
    img = Image.new("L", size, color=0)
    ImageDraw.Draw(img).rectangle(box, fill=255)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@dataclass
class VisionCall:
    """One recorded request"""

    kind: str  # "mask" or "edit"
    element: StructuralElement
    parts: list
    result: object = None


class FakeVisionClient:
    """
    Scripted vision client.

    Segmentation requests answer from mask_results and edit requests from
    edit_results (keyed by element). A scripted value may be a GeneratedImage,
    a Refusal, or an exception to raise. Unscripted requests succeed: masks get
    a binary mask of the photo size, edits get a fresh image whose color
    changes with every call.
    """

    def __init__(self, size: Tuple[int, int] = PHOTO_SIZE):
        self.size = size
        self.mask_results: Dict[StructuralElement, object] = {}
        self.edit_results: Dict[StructuralElement, object] = {}
        self.calls: List[VisionCall] = []
        self.configured = True

    @staticmethod
    def classify(instruction: str) -> Tuple[str, StructuralElement]:
        for element in StructuralElement:
            if instruction == segmentation_instruction(element):
                return "mask", element
        for element in StructuralElement:
            if f"the new {element.value}" in instruction:
                return "edit", element
        raise AssertionError(f"Unrecognised instruction: {instruction[:80]}")

    async def generate(self, parts):
        instruction = next(part for part in parts if isinstance(part, str))
        kind, element = self.classify(instruction)
        call = VisionCall(kind=kind, element=element, parts=list(parts))
        self.calls.append(call)

        scripted = (self.mask_results if kind == "mask" else self.edit_results).get(element)
        if isinstance(scripted, Exception):
            raise scripted
        if scripted is not None:
            call.result = scripted
        elif kind == "mask":
            call.result = GeneratedImage(image=ImagePayload(data=make_mask(self.size)))
        else:
            shade = (len(self.calls) * 37) % 256
            call.result = GeneratedImage(image=ImagePayload(data=make_png(self.size, color=(shade, 90, 160))))
        return call.result

    @property
    def mask_calls(self) -> List[VisionCall]:
        return [call for call in self.calls if call.kind == "mask"]

    @property
    def edit_calls(self) -> List[VisionCall]:
        return [call for call in self.calls if call.kind == "edit"]

    async def health_check(self):
        return {"status": "healthy", "model": "fake"}


@pytest.fixture
def fake_vision():
    return FakeVisionClient()


@pytest.fixture
def png_factory():
    """make_png as a fixture, for tests that need their own images."""
    return make_png


@pytest.fixture
def house_photo():
    """64x48 PNG house photo."""
    return ImagePayload(data=make_png(color="beige"), mime_type="image/png")


@pytest.fixture
def mask_payload():
    return ImagePayload(data=make_mask(), mime_type="image/png")


@pytest.fixture
def catalog():
    return ProductCatalog.default()


@pytest.fixture
def full_mask_set(mask_payload):
    """Completed masks for every element."""
    mask_set = MaskSet()
    for element in MASK_ORDER:
        mask_set = mask_set.with_mask(element, mask_payload)
    return mask_set


def mask_set_for(mask: ImagePayload, *elements: StructuralElement) -> MaskSet:
    mask_set = MaskSet()
    for element in elements:
        mask_set = mask_set.with_mask(element, mask)
    return mask_set


@pytest.fixture
def partial_mask_set(mask_payload):
    """Factory: MaskSet with masks for the given elements only."""

    def build(*elements: StructuralElement, mask: Optional[ImagePayload] = None) -> MaskSet:
        return mask_set_for(mask or mask_payload, *elements)

    return build
