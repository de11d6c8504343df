"""Domain errors raised by the pricing, stock and order modules.

The HTTP layer in ``marketplace.main`` maps each family to a status code.
None of these are retried inside the core, apart from order number
collisions which never surface as errors.
"""
from dataclasses import asdict, dataclass
from uuid import UUID


class MarketplaceError(Exception):
    """Base class for every error the core reports to its caller."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def payload(self) -> dict:
        return {"error": self.message}


class ValidationError(MarketplaceError):
    """The request is well-formed JSON but breaks a business rule."""


class NotFoundError(MarketplaceError):
    pass


class CustomerNotFound(NotFoundError):
    def __init__(self, customer_id):
        super().__init__("Customer not found")
        self.customer_id = customer_id


class SupplierNotFound(NotFoundError):
    def __init__(self, supplier_id):
        super().__init__("Supplier not found")
        self.supplier_id = supplier_id


class OrderNotFound(NotFoundError):
    def __init__(self, order_id):
        super().__init__("Order not found")
        self.order_id = order_id


class ProductNotFound(NotFoundError):
    """One or more products are missing, inactive, or owned by another supplier."""

    def __init__(self, product_ids):
        super().__init__("One or more products not found")
        self.product_ids = list(product_ids)

    def payload(self) -> dict:
        return {
            "error": self.message,
            "product_ids": [str(product_id) for product_id in self.product_ids],
        }


class ConflictError(MarketplaceError):
    pass


@dataclass(frozen=True)
class Shortage:
    product_id: UUID
    name: str
    available: int
    requested: int


class InsufficientStock(ConflictError):
    def __init__(self, shortages):
        super().__init__("insufficient stock")
        self.shortages = list(shortages)

    def payload(self) -> dict:
        shortages = []
        for shortage in self.shortages:
            row = asdict(shortage)
            row["product_id"] = str(shortage.product_id)
            shortages.append(row)
        return {"error": self.message, "shortages": shortages}


class InvalidStatusTransition(ConflictError):
    def __init__(self, current, requested):
        super().__init__(
            f"Cannot change order status from {current.value} to {requested.value}"
        )
        self.current = current
        self.requested = requested


class LedgerInconsistency(ConflictError):
    pass


class PersistenceError(MarketplaceError):
    """The transaction was rolled back; the caller may retry the whole operation."""

    retriable = True

    def payload(self) -> dict:
        return {"error": self.message, "retriable": self.retriable}
