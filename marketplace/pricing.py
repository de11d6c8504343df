"""Price cascade.

Every place that shows or charges a price (order creation, cart quotes,
the catalog and the single-product preview) resolves it through
:func:`resolve_price`, so the rules live in exactly one spot.

Resolution order, first match wins:

1. a customer-specific price for the product;
2. a special price on the customer's active price list;
3. the blanket discount of the customer's active price list;
4. the product's base price.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from marketplace.models import (
    CustomerProductPrice, CustomerSupplierLink, DiscountType, PriceList, PriceListItem
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class PriceSource(str, Enum):
    base = "base"
    customer_override = "customer_override"
    price_list_special = "price_list_special"
    price_list_discount = "price_list_discount"


@dataclass(frozen=True)
class PriceLookups:
    customer_price: Optional[CustomerProductPrice] = None
    price_list: Optional[PriceList] = None
    price_list_item: Optional[PriceListItem] = None


@dataclass(frozen=True)
class ResolvedPrice:
    unit_price: Decimal
    source: PriceSource


NO_LOOKUPS = PriceLookups()


def apply_discount(base_price: Decimal, discount_type, discount_value: Decimal) -> Decimal:
    base_price = Decimal(base_price)
    discount_value = Decimal(discount_value)

    if DiscountType(discount_type) == DiscountType.percentage:
        final = base_price * (1 - discount_value / Decimal(100))
    else:
        final = base_price - discount_value

    return max(final, ZERO).quantize(CENT, rounding=ROUND_HALF_UP)


def _applicable_price_list(price_list, supplier_id):
    if price_list is None or not price_list.active:
        return None
    if supplier_id is not None and price_list.supplier_id != supplier_id:
        return None
    return price_list


def resolve_price(
    customer_id: Optional[UUID],
    supplier_id: Optional[UUID],
    product,
    lookups: PriceLookups = NO_LOOKUPS,
) -> ResolvedPrice:
    base_price = Decimal(product.base_price)

    if customer_id is None:
        return ResolvedPrice(base_price, PriceSource.base)

    if lookups.customer_price is not None:
        return ResolvedPrice(Decimal(lookups.customer_price.price), PriceSource.customer_override)

    price_list = _applicable_price_list(lookups.price_list, supplier_id)
    if price_list is None:
        return ResolvedPrice(base_price, PriceSource.base)

    item = lookups.price_list_item
    if item is not None and item.special_price is not None:
        return ResolvedPrice(Decimal(item.special_price), PriceSource.price_list_special)

    final = apply_discount(base_price, price_list.discount_type, price_list.discount_value)
    return ResolvedPrice(final, PriceSource.price_list_discount)


def load_price_lookups(
    db: Session,
    customer_id: Optional[UUID],
    supplier_id: UUID,
    product_ids: Iterable[UUID],
) -> Dict[UUID, PriceLookups]:
    """Fetch everything the cascade needs for a batch of one supplier's products."""
    product_ids = list(product_ids)
    if customer_id is None or not product_ids:
        return {product_id: NO_LOOKUPS for product_id in product_ids}

    link = (
        db.query(CustomerSupplierLink)
        .options(joinedload(CustomerSupplierLink.price_list))
        .filter(
            CustomerSupplierLink.customer_id == customer_id,
            CustomerSupplierLink.supplier_id == supplier_id,
        )
        .first()
    )
    price_list = link.price_list if link else None

    customer_prices = {
        row.product_id: row
        for row in db.query(CustomerProductPrice).filter(
            CustomerProductPrice.customer_id == customer_id,
            CustomerProductPrice.product_id.in_(product_ids),
        )
    }

    list_items = {}
    if price_list is not None:
        list_items = {
            row.product_id: row
            for row in db.query(PriceListItem).filter(
                PriceListItem.price_list_id == price_list.price_list_id,
                PriceListItem.product_id.in_(product_ids),
            )
        }

    return {
        product_id: PriceLookups(
            customer_price=customer_prices.get(product_id),
            price_list=price_list,
            price_list_item=list_items.get(product_id),
        )
        for product_id in product_ids
    }


def resolve_prices(
    db: Session,
    customer_id: Optional[UUID],
    supplier_id: UUID,
    products,
) -> Dict[UUID, ResolvedPrice]:
    products = list(products)
    lookups = load_price_lookups(
        db, customer_id, supplier_id, [product.product_id for product in products]
    )

    resolved = {}
    for product in products:
        price = resolve_price(customer_id, supplier_id, product, lookups[product.product_id])
        logger.debug(
            "Resolved price %s (%s) for product %s, customer %s",
            price.unit_price, price.source.value, product.product_id, customer_id,
        )
        resolved[product.product_id] = price
    return resolved
