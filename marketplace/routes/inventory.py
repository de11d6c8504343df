from fastapi import APIRouter, HTTPException
from uuid import UUID
from sqlalchemy.orm import Session
from fastapi import Depends
from typing import Optional
from marketplace.db import get_db
from marketplace.models import Product
from marketplace.stock import adjust_stock, product_movements
from marketplace.inventory_schemas import (
    ProductStockResponse,
    StockMovementCreate,
    StockMovementResponse,
    LowStockAlertResponse
)
from fastapi import Header

router = APIRouter(
    prefix="/inventory",
    tags=["Inventory"]
)


def _reorder_suggestion(product: Product) -> int:
    # refill to the maximum when one is set, otherwise to twice the minimum
    if product.stock_quantity >= product.stock_minimum:
        return 0
    target = product.stock_maximum or product.stock_minimum * 2
    return max(target - product.stock_quantity, 0)


@router.get("/products/{product_id}", response_model=ProductStockResponse)
def get_product_stock(
    product_id: UUID,
    db: Session = Depends(get_db)
):
    product = db.get(Product, product_id)

    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    stock_quantity = product.stock_quantity
    stock_minimum = product.stock_minimum

    return {
        "product_id": product.product_id,
        "supplier_id": product.supplier_id,
        "product_name": product.product_name,
        "sku": product.sku,
        "base_price": product.base_price,
        "stock_quantity": stock_quantity,
        "stock_minimum": stock_minimum,
        "stock_maximum": product.stock_maximum,
        "active": product.active,

        "below_minimum": stock_quantity < stock_minimum,
        "buffer_remaining": stock_quantity - stock_minimum,
        "suggested_reorder_qty": _reorder_suggestion(product),
    }


@router.post(
    "/products/{product_id}/movements",
    response_model=StockMovementResponse,
    status_code=201
)
def record_stock_movement(
    product_id: UUID,
    movement: StockMovementCreate,
    x_actor_id: Optional[str] = Header(None),
    db: Session = Depends(get_db)
):
    return adjust_stock(
        db,
        product_id,
        movement.movement_type,
        movement.quantity,
        reason=movement.reason,
        reference=movement.reference,
        actor=x_actor_id,
    )


@router.get(
    "/products/{product_id}/movements",
    response_model=list[StockMovementResponse]
)
def list_stock_movements(product_id: UUID, db: Session = Depends(get_db)):
    if not db.get(Product, product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return product_movements(db, product_id)


@router.get(
    "/alerts/low-stock",
    response_model=list[LowStockAlertResponse]
)
def get_low_stock_alerts(
    supplier_id: Optional[UUID] = None,
    db: Session = Depends(get_db)
):
    query = db.query(Product).filter(Product.active.is_(True))
    if supplier_id is not None:
        query = query.filter(Product.supplier_id == supplier_id)

    alerts = []

    for product in query.all():
        if product.stock_quantity < product.stock_minimum:
            urgency_score = (
                (product.stock_minimum - product.stock_quantity) / product.stock_minimum
            )

            alerts.append({
                "product_id": product.product_id,
                "product_name": product.product_name,
                "current_qty": product.stock_quantity,
                "stock_minimum": product.stock_minimum,
                "suggested_reorder_qty": _reorder_suggestion(product),
                "urgency_score": round(urgency_score, 2)
            })

    # highest urgency first
    alerts.sort(key=lambda x: x["urgency_score"], reverse=True)

    return alerts
