from decimal import Decimal, InvalidOperation
from enum import Enum

from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, Enum as SAEnum, ForeignKey, Integer,
    Numeric, String, TIMESTAMP, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
import uuid

from marketplace.db import Base
from marketplace.errors import ValidationError

Money = Numeric(12, 2)


class DiscountType(str, Enum):
    percentage = "percentage"
    fixed_amount = "fixed_amount"


class MovementType(str, Enum):
    in_ = "in"
    out = "out"
    adjustment = "adjustment"


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


# cancelled is reachable from every non-terminal state
ORDER_TRANSITIONS = {
    OrderStatus.pending: {OrderStatus.confirmed, OrderStatus.cancelled},
    OrderStatus.confirmed: {OrderStatus.processing, OrderStatus.cancelled},
    OrderStatus.processing: {OrderStatus.shipped, OrderStatus.cancelled},
    OrderStatus.shipped: {OrderStatus.delivered, OrderStatus.cancelled},
    OrderStatus.delivered: set(),
    OrderStatus.cancelled: set(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ORDER_TRANSITIONS.items() if not targets
)


def _enum_column(enum_cls, **kwargs):
    return Column(
        SAEnum(
            enum_cls,
            native_enum=False,
            length=20,
            values_callable=lambda members: [member.value for member in members],
        ),
        **kwargs,
    )


def check_discount(discount_type, discount_value):
    """Reject discounts a price list must never carry."""
    try:
        value = Decimal(str(discount_value))
    except InvalidOperation:
        raise ValidationError("Discount value must be a decimal number")

    if value < 0:
        raise ValidationError("Discount value cannot be negative")
    if DiscountType(discount_type) == DiscountType.percentage and value > 100:
        raise ValidationError("Percentage discount cannot exceed 100")
    return value


class Supplier(Base):
    __tablename__ = "suppliers"

    supplier_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    supplier_name = Column(String, nullable=False)
    supplier_email = Column(String)
    created_at = Column(TIMESTAMP, server_default=func.now())


class Customer(Base):
    __tablename__ = "customers"

    customer_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String)
    created_at = Column(TIMESTAMP, server_default=func.now())

    supplier_links = relationship("CustomerSupplierLink", back_populates="customer")


class Product(Base):
    __tablename__ = "products"

    product_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    supplier_id = Column(Uuid, ForeignKey("suppliers.supplier_id"), nullable=False, index=True)
    product_name = Column(String, nullable=False)
    sku = Column(String)
    base_price = Column(Money, nullable=False)
    stock_quantity = Column(Integer, nullable=False, default=0)
    stock_minimum = Column(Integer, nullable=False, default=0)
    stock_maximum = Column(Integer, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(
        TIMESTAMP,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("base_price >= 0", name="ck_products_base_price_non_negative"),
    )


class PriceList(Base):
    __tablename__ = "price_lists"

    price_list_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    supplier_id = Column(Uuid, ForeignKey("suppliers.supplier_id"), nullable=False, index=True)
    price_list_name = Column(String, nullable=False)
    description = Column(String)
    discount_type = _enum_column(DiscountType, nullable=False)
    discount_value = Column(Money, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    items = relationship("PriceListItem", back_populates="price_list")

    __table_args__ = (
        CheckConstraint("discount_value >= 0", name="ck_price_lists_discount_non_negative"),
        CheckConstraint(
            "discount_type != 'percentage' OR discount_value <= 100",
            name="ck_price_lists_percentage_bound",
        ),
    )

    @validates("discount_type", "discount_value")
    def _validate_discount(self, key, value):
        discount_type = value if key == "discount_type" else self.discount_type
        discount_value = value if key == "discount_value" else self.discount_value
        if discount_type is not None and discount_value is not None:
            check_discount(discount_type, discount_value)
        return value


class PriceListItem(Base):
    __tablename__ = "price_list_items"

    price_list_item_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    price_list_id = Column(Uuid, ForeignKey("price_lists.price_list_id"), nullable=False)
    product_id = Column(Uuid, ForeignKey("products.product_id"), nullable=False)
    special_price = Column(Money, nullable=True)

    price_list = relationship("PriceList", back_populates="items")

    __table_args__ = (
        UniqueConstraint("price_list_id", "product_id", name="uq_price_list_items_list_product"),
        CheckConstraint("special_price >= 0", name="ck_price_list_items_price_non_negative"),
    )


class CustomerSupplierLink(Base):
    __tablename__ = "customer_supplier_links"

    link_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, ForeignKey("customers.customer_id"), nullable=False)
    supplier_id = Column(Uuid, ForeignKey("suppliers.supplier_id"), nullable=False)
    price_list_id = Column(Uuid, ForeignKey("price_lists.price_list_id"), nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    customer = relationship("Customer", back_populates="supplier_links")
    price_list = relationship("PriceList")

    __table_args__ = (
        UniqueConstraint("customer_id", "supplier_id", name="uq_customer_supplier_links_pair"),
    )


class CustomerProductPrice(Base):
    __tablename__ = "customer_product_prices"

    customer_price_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, ForeignKey("customers.customer_id"), nullable=False)
    product_id = Column(Uuid, ForeignKey("products.product_id"), nullable=False)
    price = Column(Money, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("customer_id", "product_id", name="uq_customer_product_prices_pair"),
        CheckConstraint("price >= 0", name="ck_customer_product_prices_non_negative"),
    )


class Order(Base):
    __tablename__ = "orders"

    order_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String(40), nullable=False, unique=True)

    customer_id = Column(Uuid, ForeignKey("customers.customer_id"), nullable=False, index=True)
    supplier_id = Column(Uuid, ForeignKey("suppliers.supplier_id"), nullable=False, index=True)

    status = _enum_column(OrderStatus, nullable=False, default=OrderStatus.pending)

    subtotal = Column(Money, nullable=False)
    discount = Column(Money, nullable=False, default=0)
    freight = Column(Money, nullable=False, default=0)
    total = Column(Money, nullable=False)

    delivery_address = Column(String)
    delivery_city = Column(String)
    delivery_state = Column(String)
    delivery_postal_code = Column(String)
    notes = Column(String)

    tracking_code = Column(String)
    estimated_delivery = Column(Date)

    created_by = Column(String)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(
        TIMESTAMP, server_default=func.now(), onupdate=func.now()
    )

    items = relationship(
        "OrderItem", back_populates="order", order_by="OrderItem.order_item_id"
    )
    history = relationship(
        "OrderStatusHistory", back_populates="order", order_by="OrderStatusHistory.history_id"
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    order_item_id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid, ForeignKey("orders.order_id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.product_id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    # frozen at purchase time, never recalculated
    unit_price = Column(Money, nullable=False)
    line_total = Column(Money, nullable=False)
    price_source = Column(String(30), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
    )


class StockMovement(Base):
    """Append-only stock ledger. Replaying a product's rows by id rebuilds its stock."""

    __tablename__ = "stock_movements"

    movement_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Uuid, ForeignKey("products.product_id"), nullable=False, index=True)

    movement_type = _enum_column(MovementType, nullable=False)
    # positive for in/out; signed delta for adjustment
    quantity = Column(Integer, nullable=False)
    stock_before = Column(Integer, nullable=False)
    stock_after = Column(Integer, nullable=False)

    reason = Column(String, nullable=False)
    reference = Column(String)
    created_by = Column(String)
    created_at = Column(TIMESTAMP, server_default=func.now())

    __table_args__ = (
        CheckConstraint("stock_after >= 0", name="ck_stock_movements_after_non_negative"),
    )

    @property
    def signed_quantity(self) -> int:
        if self.movement_type == MovementType.out:
            return -self.quantity
        return self.quantity


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    history_id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid, ForeignKey("orders.order_id"), nullable=False, index=True)
    status = _enum_column(OrderStatus, nullable=False)
    note = Column(String)
    created_by = Column(String)
    created_at = Column(TIMESTAMP, server_default=func.now())

    order = relationship("Order", back_populates="history")
