"""Stock checks and the stock ledger.

``validate_stock`` is the read-side check run before an order is priced.
``apply_stock_changes`` is the only code that writes ``Product.stock_quantity``;
it locks the rows it touches and appends one ``StockMovement`` per change in
the caller's transaction.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.db import begin_write
from marketplace.errors import (
    InsufficientStock, LedgerInconsistency, MarketplaceError, PersistenceError,
    ProductNotFound, Shortage, ValidationError
)
from marketplace.models import MovementType, Product, StockMovement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockLine:
    product: Product
    quantity: int


def validate_stock(items, products: Iterable[Product], supplier_id: UUID) -> List[StockLine]:
    """Match requested lines to products and check every line has enough stock.

    ``items`` are objects with ``product_id`` and ``quantity``. Fails the whole
    batch: either every line is fulfillable or nothing is.
    """
    by_id = {product.product_id: product for product in products}

    missing = []
    for item in items:
        product = by_id.get(item.product_id)
        if product is None or not product.active or product.supplier_id != supplier_id:
            missing.append(item.product_id)
    if missing:
        raise ProductNotFound(missing)

    plan = []
    shortages = []
    for item in items:
        product = by_id[item.product_id]
        if product.stock_quantity < item.quantity:
            shortages.append(Shortage(
                product_id=product.product_id,
                name=product.product_name,
                available=product.stock_quantity,
                requested=item.quantity,
            ))
        plan.append(StockLine(product=product, quantity=item.quantity))

    if shortages:
        raise InsufficientStock(shortages)
    return plan


def lock_products(db: Session, product_ids: Iterable[UUID], *criteria) -> List[Product]:
    """Load products with row locks, in id order so concurrent lockers never deadlock."""
    stmt = (
        select(Product)
        .where(Product.product_id.in_(list(product_ids)), *criteria)
        .order_by(Product.product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(db.scalars(stmt))


def _signed_delta(movement_type: MovementType, quantity: int) -> int:
    if movement_type == MovementType.out:
        return -quantity
    return quantity


def apply_stock_changes(
    db: Session,
    changes: Sequence[Tuple[UUID, int]],
    movement_type: MovementType,
    reason: str,
    reference: Optional[str] = None,
    actor: Optional[str] = None,
) -> List[StockMovement]:
    """Apply ``(product_id, quantity)`` changes and append the ledger rows.

    For ``in`` and ``out`` the quantity is the amount moved; for
    ``adjustment`` it is a signed delta. Nothing is committed here.
    """
    quantities = {}
    for product_id, quantity in changes:
        if movement_type != MovementType.adjustment and quantity < 1:
            raise ValidationError("Movement quantity must be at least 1")
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    products = {p.product_id: p for p in lock_products(db, quantities)}
    missing = [product_id for product_id in quantities if product_id not in products]
    if missing:
        raise ProductNotFound(missing)

    shortages = []
    for product_id, quantity in quantities.items():
        product = products[product_id]
        if product.stock_quantity + _signed_delta(movement_type, quantity) < 0:
            shortages.append(Shortage(
                product_id=product_id,
                name=product.product_name,
                available=product.stock_quantity,
                requested=abs(quantity),
            ))
    if shortages:
        raise InsufficientStock(shortages)

    movements = []
    for product_id in sorted(quantities):
        product = products[product_id]
        quantity = quantities[product_id]
        stock_before = product.stock_quantity
        stock_after = stock_before + _signed_delta(movement_type, quantity)

        product.stock_quantity = stock_after
        movement = StockMovement(
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            stock_before=stock_before,
            stock_after=stock_after,
            reason=reason,
            reference=reference,
            created_by=actor,
        )
        db.add(movement)
        movements.append(movement)

    db.flush()
    return movements


def adjust_stock(
    db: Session,
    product_id: UUID,
    movement_type: MovementType,
    quantity: int,
    reason: str,
    reference: Optional[str] = None,
    actor: Optional[str] = None,
) -> StockMovement:
    """Record a manual stock movement and commit it.

    ``in`` adds ``quantity``, ``out`` removes it and ``adjustment`` sets the
    stock to exactly ``quantity``.
    """
    try:
        begin_write(db)
        if movement_type == MovementType.adjustment:
            if quantity < 0:
                raise ValidationError("Adjusted stock cannot be negative")
            products = lock_products(db, [product_id])
            if not products:
                raise ProductNotFound([product_id])
            delta = quantity - products[0].stock_quantity
        else:
            delta = quantity

        [movement] = apply_stock_changes(
            db, [(product_id, delta)], movement_type, reason, reference, actor
        )
        db.commit()
    except MarketplaceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Stock movement for product %s failed", product_id)
        raise PersistenceError("Stock movement could not be saved") from exc

    logger.info(
        "Stock %s on product %s: %s -> %s (%s)",
        movement_type.value, product_id, movement.stock_before, movement.stock_after, reason,
    )
    return movement


def replay_movements(movements: Iterable[StockMovement], opening_stock: int = 0) -> int:
    """Rebuild a product's stock from its ledger rows, oldest first."""
    stock = opening_stock
    for movement in movements:
        if movement.stock_before != stock:
            raise LedgerInconsistency(
                f"Movement {movement.movement_id} starts at {movement.stock_before}, "
                f"expected {stock}"
            )
        stock = movement.stock_before + movement.signed_quantity
        if stock != movement.stock_after:
            raise LedgerInconsistency(
                f"Movement {movement.movement_id} ends at {movement.stock_after}, "
                f"expected {stock}"
            )
    return stock


def product_movements(db: Session, product_id: UUID) -> List[StockMovement]:
    stmt = (
        select(StockMovement)
        .where(StockMovement.product_id == product_id)
        .order_by(StockMovement.movement_id)
    )
    return list(db.scalars(stmt))
