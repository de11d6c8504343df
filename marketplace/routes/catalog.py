"""Read-only pricing views.

Nothing here takes row locks: stock counts shown by the catalog and the
cart quote may be stale. Only order creation enforces stock.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.db import get_db
from marketplace.errors import CustomerNotFound, ProductNotFound, SupplierNotFound
from marketplace.models import Customer, Product, Supplier
from marketplace.pricing import resolve_prices
from marketplace.stock import validate_stock
from marketplace.totals import calculate_totals
from marketplace.catalog_schemas import (
    PricePreviewResponse, CatalogPageResponse,
    CartQuoteRequest, CartQuoteResponse
)

router = APIRouter(prefix="/catalog", tags=["Catalog"])


def _check_customer(db: Session, customer_id: Optional[UUID]):
    if customer_id is not None and db.get(Customer, customer_id) is None:
        raise CustomerNotFound(customer_id)


@router.get("/products/{product_id}/price", response_model=PricePreviewResponse)
def preview_price(
    product_id: UUID,
    customer_id: Optional[UUID] = None,
    db: Session = Depends(get_db)
):
    product = db.get(Product, product_id)
    if not product or not product.active:
        raise ProductNotFound([product_id])
    _check_customer(db, customer_id)

    price = resolve_prices(db, customer_id, product.supplier_id, [product])[product_id]
    return {
        "price": price.unit_price,
        "source": price.source,
        "product": product,
    }


@router.get("/suppliers/{supplier_id}/products", response_model=CatalogPageResponse)
def list_supplier_products(
    supplier_id: UUID,
    customer_id: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    if db.get(Supplier, supplier_id) is None:
        raise SupplierNotFound(supplier_id)
    _check_customer(db, customer_id)

    query = db.query(Product).filter(
        Product.supplier_id == supplier_id,
        Product.active.is_(True),
    )
    total = query.count()
    products = (
        query.order_by(Product.product_name, Product.product_id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    prices = resolve_prices(db, customer_id, supplier_id, products)

    return {
        "products": [
            {
                "product_id": product.product_id,
                "product_name": product.product_name,
                "sku": product.sku,
                "base_price": product.base_price,
                "price": prices[product.product_id].unit_price,
                "source": prices[product.product_id].source,
                "stock_quantity": product.stock_quantity,
            }
            for product in products
        ],
        "page": page,
        "limit": limit,
        "total": total,
    }


@router.post("/cart/quote", response_model=CartQuoteResponse)
def quote_cart(payload: CartQuoteRequest, db: Session = Depends(get_db)):
    if db.get(Supplier, payload.supplier_id) is None:
        raise SupplierNotFound(payload.supplier_id)
    _check_customer(db, payload.customer_id)

    product_ids = [item.product_id for item in payload.items]
    products = db.query(Product).filter(Product.product_id.in_(product_ids)).all()

    plan = validate_stock(payload.items, products, payload.supplier_id)
    prices = resolve_prices(
        db, payload.customer_id, payload.supplier_id, [line.product for line in plan]
    )
    totals = calculate_totals(
        (line.product.product_id, line.quantity, prices[line.product.product_id].unit_price)
        for line in plan
    )

    return {
        "items": [
            {
                "product_id": line.product.product_id,
                "product_name": line.product.product_name,
                "quantity": priced.quantity,
                "unit_price": priced.unit_price,
                "line_total": priced.line_total,
                "source": prices[line.product.product_id].source,
            }
            for line, priced in zip(plan, totals.lines)
        ],
        "subtotal": totals.subtotal,
        "discount": totals.discount,
        "freight": totals.freight,
        "total": totals.total,
    }
