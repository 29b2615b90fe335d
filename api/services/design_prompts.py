"""
Instruction text for the vision service.

Every element is segmented with the same binary-fill strategy (element white,
everything else black) so that the edit step can always rely on a filled
mask. What differs per element is the description of what belongs to it.
"""
from dataclasses import dataclass
from typing import Dict, Tuple

from schemas.design import StructuralElement


@dataclass(frozen=True)
class ElementInstructions:
    """Element-specific wording used by segmentation and editing"""

    description: str
    includes: Tuple[str, ...]
    excludes: Tuple[str, ...]


ELEMENT_INSTRUCTIONS: Dict[StructuralElement, ElementInstructions] = {
    StructuralElement.SIDING: ElementInstructions(
        description="the siding, the main exterior wall covering of the house",
        includes=(
            "every distinct section of siding, e.g. horizontal panels on one level and shake shingles on another",
        ),
        excludes=("windows", "doors", "trim boards", "the roof", "gutters", "shutters"),
    ),
    StructuralElement.ROOFING: ElementInstructions(
        description="the roofing, the visible roof surfaces covered by shingles or tiles",
        includes=("all roof planes, dormer roofs and porch roofs",),
        excludes=("chimneys", "skylights", "gutters", "fascia boards", "the sky", "trees"),
    ),
    StructuralElement.TRIM: ElementInstructions(
        description="the trim",
        includes=(
            "the boards framing the windows",
            "the boards framing the doors",
            "the corner boards of the house",
            "the fascia boards along the roofline",
        ),
        excludes=("siding", "window glass", "the door itself", "the roof"),
    ),
    StructuralElement.DOOR: ElementInstructions(
        description="the front door",
        includes=("the door slab and any glass panels set into it",),
        excludes=("the door frame and surrounding trim", "sidelights", "siding", "steps"),
    ),
}


def segmentation_instruction(element: StructuralElement) -> str:
    """Instruction asking for a filled binary mask of one element."""
    rules = ELEMENT_INSTRUCTIONS[element]
    includes = "\n".join(f"- Include {item}." for item in rules.includes)
    excludes = ", ".join(rules.excludes)
    return f"""From the provided image of a house, generate a precise, binary segmentation mask for {rules.description}.
{includes}
- Exclude everything else, in particular: {excludes}.
The mask must be entirely black and white:
- The area belonging to the {element.value} must be pure white (#FFFFFF).
- All other areas, including the background, sky and trees, must be pure black (#000000).
Do not include any other colors, shades of gray, or anti-aliasing.
The output image must have exactly the same dimensions as the input image. Output only the mask image, no text."""


def texture_instruction(element: StructuralElement, product: str, color: str) -> str:
    """Instruction transplanting a material reference into the masked region."""
    return f"""You are given three images: a photo of a house, a black and white mask, and a material reference image.
Replace the area of the house indicated by the white portion of the mask with the material shown in the reference image ({product}, color: {color}).
- Change only the white region of the mask. Everything in the black region must stay exactly as it is.
- Keep the original lighting, shadows and perspective so the new {element.value} blends in photorealistically.
- Scale the material pattern to the real size of the house.
- The output image must have exactly the same dimensions as the house photo. Output only the edited image."""


def recolor_instruction(element: StructuralElement, product: str, color: str) -> str:
    """Instruction recoloring the masked region to a named color."""
    return f"""You are given a photo of a house and a black and white mask.
Change the color of the area indicated by the white portion of the mask to {color}. The product style is "{product}".
- Change only the white region of the mask. Everything in the black region must stay exactly as it is.
- Keep the original texture, lighting, shadows and perspective so the new {element.value} color blends in photorealistically.
- The output image must have exactly the same dimensions as the house photo. Output only the edited image."""
