"""
Tests for the product catalog and design selections.
"""
import json

import pytest
from schemas.design import StructuralElement

from core.exceptions import InvalidColor, UnknownProduct
from services.product_catalog import DEFAULT_PRODUCT_DATA, DesignSelection, ProductCatalog, load_catalog


class TestCatalogLookup:
    def test_default_catalog_covers_every_element(self, catalog):
        for element in StructuralElement:
            assert catalog.options(element), f"no options for {element.value}"

    def test_roofing_groups(self, catalog):
        labels = [category.label for category in catalog.categories(StructuralElement.ROOFING)]
        assert labels == ["Asphalt Shingles", "Tile Roofing"]
        assert len(catalog.options(StructuralElement.ROOFING)) == 6

    def test_get_product(self, catalog):
        product = catalog.get_product(StructuralElement.SIDING, "Gray Cedar Shake Siding")
        assert product.label == "Gray Cedar Shake"
        assert product.colors == ["Light Gray", "Stormy Gray", "Charcoal"]

    def test_products_are_scoped_to_their_element(self, catalog):
        with pytest.raises(UnknownProduct):
            catalog.get_product(StructuralElement.DOOR, "Gray Cedar Shake Siding")

    def test_reference_image_url(self, catalog):
        url = catalog.reference_image_url(StructuralElement.TRIM, "Modern Black Trim")
        assert url.startswith("https://")
        assert catalog.reference_image_url(StructuralElement.TRIM, "Nope") is None


class TestResolveColor:
    def test_defaults_to_first_color(self, catalog):
        assert catalog.resolve_color(StructuralElement.DOOR, "Craftsman Style Blue Door") == "Navy Blue"

    def test_accepts_listed_color(self, catalog):
        assert catalog.resolve_color(StructuralElement.DOOR, "Craftsman Style Blue Door", "Royal Blue") == "Royal Blue"

    def test_rejects_unlisted_color(self, catalog):
        with pytest.raises(InvalidColor) as exc_info:
            catalog.resolve_color(StructuralElement.DOOR, "Craftsman Style Blue Door", "Hot Pink")
        assert exc_info.value.color == "Hot Pink"

    def test_unknown_product(self, catalog):
        with pytest.raises(UnknownProduct):
            catalog.resolve_color(StructuralElement.ROOFING, "Thatch")


class TestSelections:
    def test_default_selection_is_first_product_and_color(self, catalog):
        selection = catalog.default_selection()
        assert selection.get(StructuralElement.SIDING).product == "Gray Cedar Shake Siding"
        assert selection.get(StructuralElement.SIDING).color == "Light Gray"
        assert selection.get(StructuralElement.ROOFING).product == "Onyx Black Asphalt Shingles"
        assert selection.get(StructuralElement.TRIM).color == "White"

    def test_clear(self):
        selection = DesignSelection()
        selection.set(StructuralElement.TRIM, "Classic White Trim", "White")
        selection.clear(StructuralElement.TRIM)
        assert selection.get(StructuralElement.TRIM).is_empty

    def test_new_selection_is_empty(self):
        selection = DesignSelection()
        assert all(selection.get(element).is_empty for element in StructuralElement)


class TestCatalogLoading:
    def test_copy_is_independent(self, catalog):
        copy = catalog.copy()
        copy.set_categories(StructuralElement.DOOR, [])
        assert catalog.options(StructuralElement.DOOR)
        assert copy.options(StructuralElement.DOOR) == []

    def test_from_file(self, tmp_path):
        data = {
            "siding": [{"label": "Vinyl", "options": [{"value": "White Vinyl", "label": "White", "colors": ["White"]}]}],
            "door": [],
        }
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps(data))

        catalog = ProductCatalog.from_file(str(path))
        assert [option.value for option in catalog.options(StructuralElement.SIDING)] == ["White Vinyl"]
        assert catalog.options(StructuralElement.ROOFING) == []

    def test_load_catalog_defaults(self):
        catalog = load_catalog()
        assert len(catalog.options(StructuralElement.SIDING)) == len(DEFAULT_PRODUCT_DATA["siding"][0]["options"])
