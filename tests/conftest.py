import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from marketplace.db import Base, get_db, make_engine
from marketplace.main import app
from marketplace.models import Customer, CustomerSupplierLink, Product, Supplier


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'marketplace.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(db):
    """One supplier with four products, a second supplier, and two customers."""
    ids = SimpleNamespace(
        supplier=uuid.uuid4(),
        other_supplier=uuid.uuid4(),
        customer=uuid.uuid4(),
        stranger=uuid.uuid4(),
        widget=uuid.uuid4(),
        gadget=uuid.uuid4(),
        retired=uuid.uuid4(),
        foreign=uuid.uuid4(),
    )

    db.add_all([
        Supplier(supplier_id=ids.supplier, supplier_name="Acme Wholesale"),
        Supplier(supplier_id=ids.other_supplier, supplier_name="Other Goods"),
        Customer(customer_id=ids.customer, customer_name="Corner Shop"),
        Customer(customer_id=ids.stranger, customer_name="New Buyer"),
    ])
    db.flush()

    db.add_all([
        Product(
            product_id=ids.widget, supplier_id=ids.supplier, product_name="Widget",
            sku="W-1", base_price=Decimal("10.00"), stock_quantity=10, stock_minimum=2,
        ),
        Product(
            product_id=ids.gadget, supplier_id=ids.supplier, product_name="Gadget",
            sku="G-1", base_price=Decimal("5.50"), stock_quantity=5, stock_minimum=10,
            stock_maximum=40,
        ),
        Product(
            product_id=ids.retired, supplier_id=ids.supplier, product_name="Retired",
            base_price=Decimal("3.00"), stock_quantity=100, active=False,
        ),
        Product(
            product_id=ids.foreign, supplier_id=ids.other_supplier, product_name="Foreign",
            base_price=Decimal("7.00"), stock_quantity=100,
        ),
    ])
    db.flush()

    db.add(CustomerSupplierLink(customer_id=ids.customer, supplier_id=ids.supplier))
    db.commit()
    return ids


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def fetch(session_factory):
    """Read a row through a fresh session so the value reflects committed state."""
    def _fetch(model, key):
        session = session_factory()
        try:
            return session.get(model, key)
        finally:
            session.close()

    return _fetch
