"""
Exterior product catalog and design selections.

The pipeline only needs three things from the catalog: does a product exist
for an element, which colors it comes in, and where its reference image
lives. Custom materials are inserted into a session's copy of the catalog so
that selection logic treats them exactly like catalog entries.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from core.config import settings
from core.exceptions import InvalidColor, UnknownProduct
from schemas.catalog import ProductCategory, ProductData, ProductOption
from schemas.design import StructuralElement

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_DATA = {
    "siding": [
        {
            "label": "Siding Styles",
            "options": [
                {
                    "value": "Gray Cedar Shake Siding",
                    "label": "Gray Cedar Shake",
                    "colors": ["Light Gray", "Stormy Gray", "Charcoal"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/a93a32c0-a5cf-4f7f-b673-690252554d6d/svn/light-gray-certainteed-vinyl-siding-520101-64_1000.jpg"
                    ],
                },
                {
                    "value": "Beige Horizontal Siding",
                    "label": "Beige Horizontal",
                    "colors": ["Beige", "Tan", "Khaki"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/91993b8e-3d0b-48a0-9a3d-2f08518814a8/svn/savannah-wicker-royal-building-products-vinyl-siding-1120010-64_1000.jpg"
                    ],
                },
            ],
        }
    ],
    "roofing": [
        {
            "label": "Asphalt Shingles",
            "options": [
                {
                    "value": "Onyx Black Asphalt Shingles",
                    "label": "Onyx Black",
                    "colors": ["Onyx Black", "Charcoal"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/d3369a4c-a192-4af3-94c6-8a9c80d416f4/svn/onyx-black-owens-corning-roofing-shingles-td01-64_1000.jpg"
                    ],
                },
                {
                    "value": "Weathered Wood Asphalt Shingles",
                    "label": "Weathered Wood",
                    "colors": ["Weathered Wood", "Driftwood"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/f422b442-4f3b-486a-a1b7-1f488e1c640e/svn/weathered-wood-owens-corning-roofing-shingles-de04-64_1000.jpg"
                    ],
                },
                {
                    "value": "Desert Tan Asphalt Shingles",
                    "label": "Desert Tan",
                    "colors": ["Desert Tan", "Shakewood"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/fd23e980-b747-4137-9759-191060e227a9/svn/shakewood-gaf-roofing-shingles-0600300-64_1000.jpg"
                    ],
                },
                {
                    "value": "Pewter Gray Asphalt Shingles",
                    "label": "Pewter Gray",
                    "colors": ["Pewter Gray", "Colonial Slate"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/394c86a5-3342-491c-813c-1b77626c8b32/svn/pewter-gray-gaf-roofing-shingles-0600700-64_1000.jpg"
                    ],
                },
                {
                    "value": "Autumn Blend Asphalt Shingles",
                    "label": "Autumn Blend",
                    "colors": ["Mission Brown", "Barkwood"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/be2a563f-14a0-452f-b44f-12c87b923c8a/svn/mission-brown-iko-roofing-shingles-010-8025-64_1000.jpg"
                    ],
                },
            ],
        },
        {
            "label": "Tile Roofing",
            "options": [
                {
                    "value": "Terracotta Spanish Tile Roofing",
                    "label": "Terracotta Spanish Tile",
                    "colors": ["Terracotta", "Adobe Red", "Spanish Clay"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/d63e52f4-813c-4a94-817e-3a78b5de3823/svn/terracotta-bca-roof-tiles-s-tile-terracotta-64_1000.jpg"
                    ],
                }
            ],
        },
    ],
    "trim": [
        {
            "label": "Trim Boards",
            "options": [
                {
                    "value": "Classic White Trim",
                    "label": "Classic White",
                    "colors": ["White"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/c35a643c-39e2-45e0-8186-455b9514f762/svn/arctic-white-james-hardie-pvc-boards-210511-64_1000.jpg"
                    ],
                },
                {
                    "value": "Modern Black Trim",
                    "label": "Modern Black",
                    "colors": ["Black"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/71a85b67-548c-443e-a698-2a7813a4010b/svn/black-james-hardie-pvc-boards-210561-64_1000.jpg"
                    ],
                },
            ],
        }
    ],
    "door": [
        {
            "label": "Front Doors",
            "options": [
                {
                    "value": "Craftsman Style Blue Door",
                    "label": "Craftsman Blue",
                    "colors": ["Navy Blue", "Deep Ocean", "Royal Blue"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/a74092dd-1135-4537-a279-847ba8495a63/svn/deep-ocean-mmi-door-doors-with-glass-z029851l-64_1000.jpg"
                    ],
                },
                {
                    "value": "Craftsman Style Oak Door",
                    "label": "Craftsman Oak",
                    "colors": ["Natural Oak", "Walnut Stain", "Golden Pecan"],
                    "image_urls": [
                        "https://images.thdstatic.com/productImages/2775a20d-0343-43c9-93e1-38c6428c069b/svn/walnut-stain-jeld-wen-doors-with-glass-a1310-a1232-64_1000.jpg"
                    ],
                },
            ],
        }
    ],
}


@dataclass
class ElementSelection:
    """Product and color chosen for one element; empty product means no change"""

    product: Optional[str] = None
    color: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.product


@dataclass
class DesignSelection:
    """Per-element selections for a design session"""

    elements: Dict[StructuralElement, ElementSelection] = field(
        default_factory=lambda: {element: ElementSelection() for element in StructuralElement}
    )

    def get(self, element: StructuralElement) -> ElementSelection:
        return self.elements.get(element) or ElementSelection()

    def set(self, element: StructuralElement, product: Optional[str], color: Optional[str] = None) -> None:
        self.elements[element] = ElementSelection(product=product, color=color)

    def clear(self, element: StructuralElement) -> None:
        self.elements[element] = ElementSelection()


class ProductCatalog:
    """Lookup over product groups per structural element"""

    def __init__(self, data: ProductData):
        self.data = data

    @classmethod
    def default(cls) -> "ProductCatalog":
        return cls(ProductData.model_validate(DEFAULT_PRODUCT_DATA))

    @classmethod
    def from_file(cls, path: str) -> "ProductCatalog":
        catalog_file = Path(path)
        data = ProductData.model_validate_json(catalog_file.read_text(encoding="utf-8"))
        logger.info(f"[ProductCatalog] Loaded catalog from {catalog_file}")
        return cls(data)

    def copy(self) -> "ProductCatalog":
        """Independent copy a session can augment without touching the shared catalog."""
        return ProductCatalog(self.data.model_copy(deep=True))

    def categories(self, element: StructuralElement) -> List[ProductCategory]:
        return getattr(self.data, element.value)

    def set_categories(self, element: StructuralElement, categories: List[ProductCategory]) -> None:
        setattr(self.data, element.value, categories)

    def options(self, element: StructuralElement) -> List[ProductOption]:
        return [option for category in self.categories(element) for option in category.options]

    def find_product(self, element: StructuralElement, value: str) -> Optional[ProductOption]:
        for option in self.options(element):
            if option.value == value:
                return option
        return None

    def get_product(self, element: StructuralElement, value: str) -> ProductOption:
        product = self.find_product(element, value)
        if product is None:
            raise UnknownProduct(element, value)
        return product

    def colors_for(self, element: StructuralElement, value: str) -> List[str]:
        return list(self.get_product(element, value).colors)

    def default_product(self, element: StructuralElement) -> Optional[ProductOption]:
        options = self.options(element)
        return options[0] if options else None

    def resolve_color(self, element: StructuralElement, value: str, color: Optional[str] = None) -> Optional[str]:
        """
        Validate a color choice for a product. No color means the product's
        first color.
        """
        colors = self.colors_for(element, value)
        if color is None:
            return colors[0] if colors else None
        if color not in colors:
            raise InvalidColor(element, value, color)
        return color

    def reference_image_url(self, element: StructuralElement, value: str) -> Optional[str]:
        product = self.find_product(element, value)
        return product.reference_image_url if product else None

    def default_selection(self) -> DesignSelection:
        """First product and its first color for every element"""
        selection = DesignSelection()
        for element in StructuralElement:
            product = self.default_product(element)
            if product is not None:
                selection.set(element, product.value, product.colors[0] if product.colors else None)
        return selection


def load_catalog(path: Optional[str] = None) -> ProductCatalog:
    """Catalog from a JSON file when configured, else the built-in one."""
    path = path or settings.catalog_path
    if path:
        return ProductCatalog.from_file(path)
    return ProductCatalog.default()
