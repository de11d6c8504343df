"""Order fulfillment.

``create_order`` is the write path: it validates, prices and commits an
order in one transaction. Stock rows are locked before they are read, so
two orders for the same product are serialized and the second one sees the
first one's decrement. Either the order, its items, the stock decrements,
the ledger rows and the first status row all commit, or none of them do.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from marketplace.config import settings
from marketplace.db import begin_write
from marketplace.errors import (
    ConflictError, CustomerNotFound, InsufficientStock, InvalidStatusTransition,
    MarketplaceError, OrderNotFound, PersistenceError, ProductNotFound,
    SupplierNotFound, ValidationError
)
from marketplace.models import (
    Customer, MovementType, ORDER_TRANSITIONS, Order, OrderItem, OrderStatus,
    OrderStatusHistory, Product, Supplier
)
from marketplace.pricing import resolve_prices
from marketplace.stock import apply_stock_changes, lock_products, validate_stock
from marketplace.totals import calculate_totals

logger = logging.getLogger(__name__)

# Crockford base32: no I, L, O or U
ORDER_NUMBER_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ORDER_NUMBER_RANDOM_LENGTH = 10

CUSTOMER_CANCELLABLE = frozenset({OrderStatus.pending, OrderStatus.confirmed})


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class DeliveryAddress:
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    suffix = "".join(
        secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(ORDER_NUMBER_RANDOM_LENGTH)
    )
    return f"{settings.order_number_prefix}-{now:%Y%m%d}-{suffix}"


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return OrderStatus(requested) in ORDER_TRANSITIONS[OrderStatus(current)]


def append_status_history(
    db: Session,
    order: Order,
    status: OrderStatus,
    note: Optional[str] = None,
    actor: Optional[str] = None,
) -> OrderStatusHistory:
    entry = OrderStatusHistory(
        order_id=order.order_id,
        status=status,
        note=note,
        created_by=actor,
    )
    db.add(entry)
    db.flush()
    return entry


def _check_lines(items) -> List[OrderLineRequest]:
    if not items:
        raise ValidationError("Order must have at least one item")

    lines = []
    seen = set()
    for item in items:
        if item.quantity is None or item.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if item.product_id in seen:
            raise ValidationError(f"Product {item.product_id} is listed more than once")
        seen.add(item.product_id)
        lines.append(OrderLineRequest(product_id=item.product_id, quantity=item.quantity))
    return lines


def _number_taken(db: Session, order_number: str) -> bool:
    return db.query(Order.order_id).filter(Order.order_number == order_number).first() is not None


def _is_number_collision(exc: IntegrityError) -> bool:
    # SQLite names the column, PostgreSQL the orders_order_number_key constraint
    return "order_number" in str(exc.orig)


def _insert_order(
    db: Session,
    build_order: Callable[[str], Order],
    number_generator: Callable[[], str],
) -> Order:
    """Insert the order under a fresh number, retrying when the number is taken.

    Each attempt runs in a savepoint so a collision only discards that attempt.
    """
    for attempt in range(1, settings.order_number_attempts + 1):
        order_number = number_generator()
        if _number_taken(db, order_number):
            logger.warning("Order number %s already used (attempt %d)", order_number, attempt)
            continue

        order = build_order(order_number)
        try:
            with db.begin_nested():
                db.add(order)
                db.flush()
        except IntegrityError as exc:
            if not _is_number_collision(exc):
                raise
            logger.warning("Order number %s collided on insert (attempt %d)", order_number, attempt)
            continue
        return order

    raise PersistenceError("Could not allocate a unique order number")


def _place_order(db, customer_id, supplier_id, lines, actor, delivery, notes, number_generator):
    if db.get(Customer, customer_id) is None:
        raise CustomerNotFound(customer_id)
    if db.get(Supplier, supplier_id) is None:
        raise SupplierNotFound(supplier_id)

    requested_ids = [line.product_id for line in lines]
    products = lock_products(
        db,
        requested_ids,
        Product.supplier_id == supplier_id,
        Product.active.is_(True),
    )
    if len(products) != len(lines):
        found = {product.product_id for product in products}
        raise ProductNotFound([pid for pid in requested_ids if pid not in found])

    plan = validate_stock(lines, products, supplier_id)

    prices = resolve_prices(db, customer_id, supplier_id, products)
    totals = calculate_totals(
        (line.product.product_id, line.quantity, prices[line.product.product_id].unit_price)
        for line in plan
    )

    delivery = delivery or DeliveryAddress()

    def build_order(order_number):
        return Order(
            order_number=order_number,
            customer_id=customer_id,
            supplier_id=supplier_id,
            status=OrderStatus.pending,
            subtotal=totals.subtotal,
            discount=totals.discount,
            freight=totals.freight,
            total=totals.total,
            delivery_address=delivery.street,
            delivery_city=delivery.city,
            delivery_state=delivery.state,
            delivery_postal_code=delivery.postal_code,
            notes=notes,
            created_by=actor,
            items=[
                OrderItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                    price_source=prices[line.product_id].source.value,
                )
                for line in totals.lines
            ],
        )

    order = _insert_order(db, build_order, number_generator)

    apply_stock_changes(
        db,
        [(line.product_id, line.quantity) for line in totals.lines],
        MovementType.out,
        reason="Sale - order created",
        reference=order.order_number,
        actor=actor,
    )
    append_status_history(db, order, OrderStatus.pending, "Order created", actor)
    return order


def create_order(
    db: Session,
    customer_id: UUID,
    supplier_id: UUID,
    items,
    actor: Optional[str] = None,
    delivery: Optional[DeliveryAddress] = None,
    notes: Optional[str] = None,
    number_generator: Callable[[], str] = generate_order_number,
) -> Order:
    lines = _check_lines(items)
    actor = actor or str(customer_id)

    try:
        begin_write(db)
        order = _place_order(
            db, customer_id, supplier_id, lines, actor, delivery, notes, number_generator
        )
        db.commit()
    except InsufficientStock as exc:
        db.rollback()
        logger.warning(
            "Order rejected for customer %s: %d line(s) short of stock",
            customer_id, len(exc.shortages),
        )
        raise
    except MarketplaceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Order creation failed for customer %s", customer_id)
        raise PersistenceError("Order could not be saved; retry the request") from exc

    logger.info(
        "Order created: %s (%s) customer=%s supplier=%s total=%s",
        order.order_id, order.order_number, customer_id, supplier_id, order.total,
    )
    return order


def _lock_order(db: Session, order_id: UUID) -> Order:
    stmt = (
        select(Order)
        .where(Order.order_id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    order = db.scalars(stmt).first()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def _transition(db, order_id, status, note, actor, allowed_from=None, customer_id=None):
    status = OrderStatus(status)
    try:
        begin_write(db)
        order = _lock_order(db, order_id)
        if customer_id is not None and order.customer_id != customer_id:
            raise OrderNotFound(order_id)

        previous = order.status
        if not can_transition(previous, status):
            raise InvalidStatusTransition(previous, status)
        if allowed_from is not None and previous not in allowed_from:
            raise InvalidStatusTransition(previous, status)

        order.status = status
        append_status_history(db, order, status, note, actor)

        if status == OrderStatus.cancelled:
            apply_stock_changes(
                db,
                [(item.product_id, item.quantity) for item in order.items],
                MovementType.in_,
                reason=f"Order {order.order_number} cancelled",
                reference=order.order_number,
                actor=actor,
            )
        db.commit()
    except MarketplaceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Status change on order %s failed", order_id)
        raise PersistenceError("Order status could not be saved; retry the request") from exc

    logger.info(
        "Order %s status changed: %s -> %s by %s",
        order.order_number, previous.value, status.value, actor,
    )
    return order


def change_order_status(
    db: Session,
    order_id: UUID,
    status: OrderStatus,
    note: Optional[str] = None,
    actor: Optional[str] = None,
) -> Order:
    """Move an order along the status table; cancelling puts its stock back."""
    return _transition(db, order_id, status, note, actor)


def cancel_order(
    db: Session,
    order_id: UUID,
    customer_id: Optional[UUID] = None,
    actor: Optional[str] = None,
    note: str = "Order cancelled",
) -> Order:
    """Customer-side cancel, only before the supplier starts processing."""
    return _transition(
        db, order_id, OrderStatus.cancelled, note, actor,
        allowed_from=CUSTOMER_CANCELLABLE, customer_id=customer_id,
    )


def set_tracking(db: Session, order_id: UUID, tracking_code: str, estimated_delivery=None) -> Order:
    try:
        begin_write(db)
        order = _lock_order(db, order_id)
        if order.status == OrderStatus.cancelled:
            raise ConflictError("Cannot add tracking to a cancelled order")

        order.tracking_code = tracking_code
        order.estimated_delivery = estimated_delivery
        db.commit()
    except MarketplaceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Tracking update on order %s failed", order_id)
        raise PersistenceError("Tracking could not be saved; retry the request") from exc

    logger.info("Tracking code %s added to order %s", tracking_code, order.order_number)
    return order


def get_order(db: Session, order_id: UUID) -> Order:
    order = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.order_id == order_id)
        .first()
    )
    if order is None:
        raise OrderNotFound(order_id)
    return order


def list_orders(
    db: Session,
    customer_id: Optional[UUID] = None,
    supplier_id: Optional[UUID] = None,
    status: Optional[OrderStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Order], int]:
    query = db.query(Order)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if supplier_id is not None:
        query = query.filter(Order.supplier_id == supplier_id)
    if status is not None:
        query = query.filter(Order.status == OrderStatus(status))

    total = query.with_entities(func.count(Order.order_id)).scalar()
    orders = (
        query.options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.order_number)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def order_history(db: Session, order_id: UUID) -> List[OrderStatusHistory]:
    if db.get(Order, order_id) is None:
        raise OrderNotFound(order_id)
    stmt = (
        select(OrderStatusHistory)
        .where(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.history_id)
    )
    return list(db.scalars(stmt))
