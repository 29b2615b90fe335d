"""
Custom materials: a user-captured photo standing in for a catalog product.

The photo becomes a synthetic catalog option ("custom-<element>") at the head
of the element's option list and is auto-selected with the "Custom" color.
There is at most one custom material per element; adding another replaces
the first and releases its preview.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from schemas.catalog import ProductCategory, ProductOption
from schemas.design import CUSTOM_COLOR, StructuralElement
from services.image_codec import ImagePayload, image_dimensions
from services.product_catalog import DesignSelection, ProductCatalog

logger = logging.getLogger(__name__)

CUSTOM_PRODUCT_PREFIX = "custom-"
CUSTOM_CATEGORY_LABEL = "Custom Materials"
CUSTOM_OPTION_LABEL = "Custom Material"


def custom_product_id(element: StructuralElement) -> str:
    return f"{CUSTOM_PRODUCT_PREFIX}{element.value}"


def is_custom_product(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(CUSTOM_PRODUCT_PREFIX)


class PreviewStore:
    """Transient preview images addressable by handle"""

    def __init__(self):
        self._previews: Dict[str, ImagePayload] = {}

    def create(self, image: ImagePayload) -> str:
        handle = uuid.uuid4().hex
        self._previews[handle] = image
        return handle

    def get(self, handle: str) -> Optional[ImagePayload]:
        return self._previews.get(handle)

    def release(self, handle: str) -> bool:
        return self._previews.pop(handle, None) is not None

    def release_all(self) -> int:
        count = len(self._previews)
        self._previews.clear()
        return count

    def __len__(self) -> int:
        return len(self._previews)


@dataclass
class CustomMaterial:
    """A custom material registered for one element"""

    element: StructuralElement
    image: ImagePayload
    preview_handle: str
    option: ProductOption


class CustomMaterialRegistry:
    """Keeps a session's custom materials, catalog view and selection in step"""

    def __init__(
        self,
        catalog: ProductCatalog,
        selection: DesignSelection,
        previews: Optional[PreviewStore] = None,
        preview_url: Optional[Callable[[str], str]] = None,
    ):
        self.catalog = catalog
        self.selection = selection
        self.previews = previews if previews is not None else PreviewStore()
        self.preview_url = preview_url or (lambda handle: handle)
        self._materials: Dict[StructuralElement, CustomMaterial] = {}

    def _strip_custom_entries(self, element: StructuralElement) -> None:
        categories: List[ProductCategory] = []
        for category in self.catalog.categories(element):
            options = [option for option in category.options if not is_custom_product(option.value)]
            if options or category.label != CUSTOM_CATEGORY_LABEL:
                categories.append(category.model_copy(update={"options": options}))
        self.catalog.set_categories(element, categories)

    def add(self, element: StructuralElement, image: ImagePayload) -> ProductOption:
        """
        Register a material photo for an element and select it.

        Raises:
            CodecError: when the photo is not a decodable image
        """
        image_dimensions(image.data)

        previous = self._materials.pop(element, None)
        if previous is not None:
            self.previews.release(previous.preview_handle)
            logger.info(f"[CustomMaterials] Replacing custom {element.value} material")

        handle = self.previews.create(image)
        option = ProductOption(
            value=custom_product_id(element),
            label=CUSTOM_OPTION_LABEL,
            image_urls=[self.preview_url(handle)],
            colors=[CUSTOM_COLOR],
        )

        self._strip_custom_entries(element)
        categories = self.catalog.categories(element)
        self.catalog.set_categories(element, [ProductCategory(label=CUSTOM_CATEGORY_LABEL, options=[option])] + categories)

        self._materials[element] = CustomMaterial(element=element, image=image, preview_handle=handle, option=option)
        self.selection.set(element, option.value, CUSTOM_COLOR)
        logger.info(f"[CustomMaterials] Custom {element.value} material added ({len(image.data)} bytes)")
        return option

    def remove(self, element: StructuralElement) -> bool:
        """Drop an element's custom material and fall back to the catalog default."""
        material = self._materials.pop(element, None)
        if material is None:
            return False

        self.previews.release(material.preview_handle)
        self._strip_custom_entries(element)

        if self.selection.get(element).product == material.option.value:
            default = self.catalog.default_product(element)
            if default is not None:
                self.selection.set(element, default.value, default.colors[0] if default.colors else None)
            else:
                self.selection.clear(element)
        return True

    def get(self, element: StructuralElement) -> Optional[CustomMaterial]:
        return self._materials.get(element)

    def materials(self) -> Dict[StructuralElement, ImagePayload]:
        """Material images keyed by element, as the edit pipeline consumes them"""
        return {element: material.image for element, material in self._materials.items()}

    def all(self) -> List[CustomMaterial]:
        return [self._materials[element] for element in StructuralElement if element in self._materials]

    def release_all(self) -> None:
        for material in self._materials.values():
            self.previews.release(material.preview_handle)
        self._materials.clear()
