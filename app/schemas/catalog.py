"""
Schemas for the catalog entities the sync engine reads.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from app.core.enums import ProductStatus
from app.schemas.base import BaseSchema


class OptionData(BaseSchema):
    name: str
    values: List[str] = Field(default_factory=list)
    position: int = 0


class VariantData(BaseSchema):
    id: str
    title: str = "Default Title"
    price: Decimal
    compare_at_price: Optional[Decimal] = None
    sku: Optional[str] = None
    inventory_quantity: int = Field(default=0, ge=0)
    position: int = 0
    option_values: Dict[str, str] = Field(default_factory=dict)


class ProductData(BaseSchema):
    id: str
    title: str
    description: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    status: ProductStatus = ProductStatus.DRAFT
    variants: List[VariantData] = Field(default_factory=list)
    options: List[OptionData] = Field(default_factory=list)

    @field_validator('variants')
    @classmethod
    def validate_unique_variant_ids(cls, v):
        seen = set()
        for variant in v:
            if variant.id in seen:
                raise ValueError(f"Duplicate variant id {variant.id!r}")
            seen.add(variant.id)
        return sorted(v, key=lambda variant: variant.position)

    def variant(self, variant_id: str) -> Optional[VariantData]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    @property
    def variant_ids(self) -> List[str]:
        return [variant.id for variant in self.variants]
