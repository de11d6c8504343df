import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.db import begin_write, get_db
from marketplace.errors import PersistenceError
from marketplace.models import (
    Customer, CustomerProductPrice, CustomerSupplierLink, PriceList, PriceListItem,
    Product, Supplier
)
from marketplace.pricing_schemas import (
    PriceListCreate, PriceListResponse,
    PriceListItemUpsert, PriceListItemResponse,
    CustomerPriceUpsert, CustomerPriceResponse,
    SupplierLinkUpdate, SupplierLinkResponse
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pricing", tags=["Pricing"])


def _commit(db: Session, what: str):
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Saving %s failed: %s", what, exc)
        raise PersistenceError(f"{what.capitalize()} could not be saved; retry the request") from exc


def _supplier_product(db: Session, product_id: UUID, supplier_id: UUID) -> Product:
    product = db.query(Product).filter(
        Product.product_id == product_id,
        Product.supplier_id == supplier_id
    ).first()
    if not product:
        raise HTTPException(404, "Product not found for this supplier")
    return product


# ---------- PRICE LISTS ----------

@router.post("/price-lists", response_model=PriceListResponse, status_code=201)
def create_price_list(payload: PriceListCreate, db: Session = Depends(get_db)):
    begin_write(db)
    if not db.get(Supplier, payload.supplier_id):
        raise HTTPException(404, "Supplier not found")

    price_list = PriceList(**payload.model_dump())
    db.add(price_list)
    _commit(db, "price list")
    db.refresh(price_list)

    logger.info(
        "Price list %s created for supplier %s (%s %s)",
        price_list.price_list_id, price_list.supplier_id,
        price_list.discount_type.value, price_list.discount_value,
    )
    return price_list


@router.post(
    "/price-lists/{price_list_id}/items",
    response_model=PriceListItemResponse
)
def upsert_price_list_item(
    price_list_id: UUID,
    payload: PriceListItemUpsert,
    db: Session = Depends(get_db)
):
    begin_write(db)
    price_list = db.get(PriceList, price_list_id)
    if not price_list:
        raise HTTPException(404, "Price list not found")
    _supplier_product(db, payload.product_id, price_list.supplier_id)

    item = db.query(PriceListItem).filter(
        PriceListItem.price_list_id == price_list_id,
        PriceListItem.product_id == payload.product_id
    ).first()

    if item:
        item.special_price = payload.special_price
    else:
        item = PriceListItem(
            price_list_id=price_list_id,
            product_id=payload.product_id,
            special_price=payload.special_price
        )
        db.add(item)

    _commit(db, "price list item")
    db.refresh(item)
    return item


# ---------- CUSTOMER PRICES ----------

@router.post("/customer-prices", response_model=CustomerPriceResponse)
def upsert_customer_price(payload: CustomerPriceUpsert, db: Session = Depends(get_db)):
    begin_write(db)
    product = db.get(Product, payload.product_id)
    if not product:
        raise HTTPException(404, "Product not found")

    # the customer must already buy from the product's supplier
    link = db.query(CustomerSupplierLink).filter(
        CustomerSupplierLink.customer_id == payload.customer_id,
        CustomerSupplierLink.supplier_id == product.supplier_id
    ).first()
    if not link:
        raise HTTPException(404, "Customer is not linked to this supplier")

    price = db.query(CustomerProductPrice).filter(
        CustomerProductPrice.customer_id == payload.customer_id,
        CustomerProductPrice.product_id == payload.product_id
    ).first()

    if price:
        price.price = payload.price
    else:
        price = CustomerProductPrice(**payload.model_dump())
        db.add(price)

    _commit(db, "customer price")
    db.refresh(price)
    return price


# ---------- CUSTOMER / SUPPLIER LINKS ----------

@router.put("/links", response_model=SupplierLinkResponse)
def set_supplier_link(payload: SupplierLinkUpdate, db: Session = Depends(get_db)):
    begin_write(db)
    if not db.get(Customer, payload.customer_id):
        raise HTTPException(404, "Customer not found")
    if not db.get(Supplier, payload.supplier_id):
        raise HTTPException(404, "Supplier not found")

    if payload.price_list_id is not None:
        price_list = db.get(PriceList, payload.price_list_id)
        if not price_list or price_list.supplier_id != payload.supplier_id:
            raise HTTPException(404, "Price list not found for this supplier")

    link = db.query(CustomerSupplierLink).filter(
        CustomerSupplierLink.customer_id == payload.customer_id,
        CustomerSupplierLink.supplier_id == payload.supplier_id
    ).first()

    if link:
        link.price_list_id = payload.price_list_id
    else:
        link = CustomerSupplierLink(**payload.model_dump())
        db.add(link)

    _commit(db, "supplier link")
    db.refresh(link)
    return link
