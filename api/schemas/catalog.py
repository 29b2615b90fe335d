"""
Pydantic schemas for the exterior product catalog
"""
from typing import List

from pydantic import BaseModel, Field


class ProductOption(BaseModel):
    """A selectable product for one structural element"""

    value: str = Field(..., description="Product identifier used in selections")
    label: str
    image_urls: List[str] = Field(default_factory=list, description="Reference image locations")
    colors: List[str] = Field(default_factory=list)

    @property
    def reference_image_url(self):
        return self.image_urls[0] if self.image_urls else None


class ProductCategory(BaseModel):
    """A labelled group of product options"""

    label: str
    options: List[ProductOption] = Field(default_factory=list)


class ProductData(BaseModel):
    """Product groups for every structural element"""

    siding: List[ProductCategory] = Field(default_factory=list)
    roofing: List[ProductCategory] = Field(default_factory=list)
    trim: List[ProductCategory] = Field(default_factory=list)
    door: List[ProductCategory] = Field(default_factory=list)
