from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from marketplace.db import get_db
from marketplace.models import OrderStatus
from marketplace.orders import (
    DeliveryAddress, cancel_order, change_order_status, create_order, get_order,
    list_orders, order_history, set_tracking
)
from marketplace.order_schemas import (
    OrderCreate, OrderResponse, OrderListResponse,
    OrderStatusUpdate, OrderCancelRequest, TrackingUpdate,
    OrderHistoryResponse
)

router = APIRouter(prefix="/orders", tags=["Orders"])


def get_customer_id(x_customer_id: UUID = Header(...)) -> UUID:
    return x_customer_id


def get_actor(x_actor_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_actor_id


# ---------- CREATE ----------

@router.post("", response_model=OrderResponse, status_code=201)
def place_order(
    payload: OrderCreate,
    customer_id: UUID = Depends(get_customer_id),
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db)
):
    delivery = None
    if payload.delivery_address:
        delivery = DeliveryAddress(**payload.delivery_address.model_dump())

    order = create_order(
        db,
        customer_id=customer_id,
        supplier_id=payload.supplier_id,
        items=payload.items,
        actor=actor,
        delivery=delivery,
        notes=payload.notes,
    )
    return get_order(db, order.order_id)


# ---------- READS ----------

@router.get("", response_model=OrderListResponse)
def list_all_orders(
    customer_id: Optional[UUID] = None,
    supplier_id: Optional[UUID] = None,
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    orders, total = list_orders(
        db,
        customer_id=customer_id,
        supplier_id=supplier_id,
        status=status,
        page=page,
        limit=limit,
    )
    return {"orders": orders, "page": page, "limit": limit, "total": total}


@router.get("/{order_id}", response_model=OrderResponse)
def get_single_order(order_id: UUID, db: Session = Depends(get_db)):
    return get_order(db, order_id)


@router.get("/{order_id}/history", response_model=list[OrderHistoryResponse])
def get_order_history(order_id: UUID, db: Session = Depends(get_db)):
    return order_history(db, order_id)


# ---------- STATUS ----------

@router.put("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db)
):
    change_order_status(db, order_id, payload.status, note=payload.note, actor=actor)
    return get_order(db, order_id)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_customer_order(
    order_id: UUID,
    payload: Optional[OrderCancelRequest] = None,
    customer_id: UUID = Depends(get_customer_id),
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db)
):
    note = payload.note if payload and payload.note else "Order cancelled"
    cancel_order(
        db, order_id,
        customer_id=customer_id,
        actor=actor or str(customer_id),
        note=note,
    )
    return get_order(db, order_id)


@router.put("/{order_id}/tracking", response_model=OrderResponse)
def update_order_tracking(
    order_id: UUID,
    payload: TrackingUpdate,
    db: Session = Depends(get_db)
):
    set_tracking(db, order_id, payload.tracking_code, payload.estimated_delivery)
    return get_order(db, order_id)
