from typing import List, Optional
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal
from pydantic import BaseModel, Field, conint, field_validator

from marketplace.models import OrderStatus


class BaseSchema(BaseModel):
    model_config = {"from_attributes": True}


# ---------- ORDER REQUESTS ----------

class OrderItemCreate(BaseSchema):
    product_id: UUID
    quantity: conint(ge=1)


class DeliveryAddressIn(BaseSchema):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


def unique_products(items):
    product_ids = [item.product_id for item in items]
    if len(set(product_ids)) != len(product_ids):
        raise ValueError("Each product may appear only once")
    return items


class OrderCreate(BaseSchema):
    supplier_id: UUID
    items: List[OrderItemCreate] = Field(..., min_length=1)
    delivery_address: Optional[DeliveryAddressIn] = None
    notes: Optional[str] = None

    @field_validator("items")
    @classmethod
    def no_duplicate_products(cls, items):
        return unique_products(items)


class OrderStatusUpdate(BaseSchema):
    status: OrderStatus
    note: Optional[str] = None


class OrderCancelRequest(BaseSchema):
    note: Optional[str] = None


class TrackingUpdate(BaseSchema):
    tracking_code: str = Field(..., min_length=1)
    estimated_delivery: Optional[date] = None


# ---------- ORDER RESPONSES ----------

class OrderItemResponse(BaseSchema):
    product_id: UUID
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    price_source: str


class OrderResponse(BaseSchema):
    order_id: UUID
    order_number: str
    customer_id: UUID
    supplier_id: UUID
    status: OrderStatus
    subtotal: Decimal
    discount: Decimal
    freight: Decimal
    total: Decimal
    delivery_address: Optional[str]
    delivery_city: Optional[str]
    delivery_state: Optional[str]
    delivery_postal_code: Optional[str]
    notes: Optional[str]
    tracking_code: Optional[str]
    estimated_delivery: Optional[date]
    items: List[OrderItemResponse]
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseSchema):
    orders: List[OrderResponse]
    page: int
    limit: int
    total: int


class OrderHistoryResponse(BaseSchema):
    status: OrderStatus
    note: Optional[str]
    created_by: Optional[str]
    created_at: datetime
