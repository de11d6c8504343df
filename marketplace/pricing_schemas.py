from typing import Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, condecimal, model_validator

from marketplace.models import DiscountType


class BaseSchema(BaseModel):
    model_config = {"from_attributes": True}


class PriceListCreate(BaseSchema):
    supplier_id: UUID
    price_list_name: str = Field(..., min_length=3)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: condecimal(ge=0, max_digits=12, decimal_places=2)
    active: bool = True

    @model_validator(mode="after")
    def percentage_within_bounds(self):
        if self.discount_type == DiscountType.percentage and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class PriceListResponse(BaseSchema):
    price_list_id: UUID
    supplier_id: UUID
    price_list_name: str
    description: Optional[str]
    discount_type: DiscountType
    discount_value: Decimal
    active: bool
    created_at: datetime


class PriceListItemUpsert(BaseSchema):
    product_id: UUID
    special_price: Optional[condecimal(ge=0, max_digits=12, decimal_places=2)] = None


class PriceListItemResponse(BaseSchema):
    price_list_item_id: UUID
    price_list_id: UUID
    product_id: UUID
    special_price: Optional[Decimal]


class CustomerPriceUpsert(BaseSchema):
    customer_id: UUID
    product_id: UUID
    price: condecimal(ge=0, max_digits=12, decimal_places=2)


class CustomerPriceResponse(BaseSchema):
    customer_price_id: UUID
    customer_id: UUID
    product_id: UUID
    price: Decimal


class SupplierLinkUpdate(BaseSchema):
    customer_id: UUID
    supplier_id: UUID
    price_list_id: Optional[UUID] = None


class SupplierLinkResponse(BaseSchema):
    link_id: UUID
    customer_id: UUID
    supplier_id: UUID
    price_list_id: Optional[UUID]
