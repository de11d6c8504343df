from typing import Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, conint

from marketplace.models import MovementType


class BaseSchema(BaseModel):
    model_config = {
        "from_attributes": True
    }


class ProductStockResponse(BaseSchema):
    product_id: UUID
    supplier_id: UUID
    product_name: str
    sku: Optional[str]
    base_price: Decimal
    stock_quantity: int
    stock_minimum: int
    stock_maximum: Optional[int]
    active: bool

    below_minimum: bool
    buffer_remaining: int
    suggested_reorder_qty: int


class StockMovementCreate(BaseSchema):
    movement_type: MovementType
    quantity: conint(ge=0) = Field(
        ..., description="Units moved, or the new stock level for an adjustment"
    )
    reason: str = Field(..., min_length=3, description="Reason for the movement")
    reference: Optional[str] = None


class StockMovementResponse(BaseSchema):
    movement_id: int
    product_id: UUID
    movement_type: MovementType
    quantity: int
    stock_before: int
    stock_after: int
    reason: str
    reference: Optional[str]
    created_by: Optional[str]
    created_at: datetime


class LowStockAlertResponse(BaseSchema):
    product_id: UUID
    product_name: str
    current_qty: int
    stock_minimum: int
    suggested_reorder_qty: int
    urgency_score: float
