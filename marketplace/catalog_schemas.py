from typing import List, Optional
from uuid import UUID
from decimal import Decimal
from pydantic import BaseModel, Field, conint, field_validator

from marketplace.order_schemas import unique_products
from marketplace.pricing import PriceSource


class BaseSchema(BaseModel):
    model_config = {"from_attributes": True}


class ProductRef(BaseSchema):
    product_id: UUID
    product_name: str


class PricePreviewResponse(BaseSchema):
    price: Decimal
    source: PriceSource
    product: ProductRef


class CatalogProductResponse(BaseSchema):
    product_id: UUID
    product_name: str
    sku: Optional[str]
    base_price: Decimal
    price: Decimal
    source: PriceSource
    stock_quantity: int


class CatalogPageResponse(BaseSchema):
    products: List[CatalogProductResponse]
    page: int
    limit: int
    total: int


class CartItem(BaseSchema):
    product_id: UUID
    quantity: conint(ge=1)


class CartQuoteRequest(BaseSchema):
    supplier_id: UUID
    customer_id: Optional[UUID] = None
    items: List[CartItem] = Field(..., min_length=1)

    @field_validator("items")
    @classmethod
    def no_duplicate_products(cls, items):
        return unique_products(items)


class CartLineResponse(BaseSchema):
    product_id: UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    source: PriceSource


class CartQuoteResponse(BaseSchema):
    items: List[CartLineResponse]
    subtotal: Decimal
    discount: Decimal
    freight: Decimal
    total: Decimal
