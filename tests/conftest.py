"""
Test Configuration and Fixtures
Shared testing infrastructure for the back office service
"""

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from backoffice.main import app
from backoffice.api.deps import get_db
from backoffice.core.cache import aggregation_cache
from backoffice.core.database import Base, enable_sqlite_savepoints
from backoffice.models import (
    Client, ClientInvoice, ClientReceipt, Product, ProductVariant, Supplier
)

# Test database - in-memory SQLite shared through a single connection
TEST_DATABASE_URL = "sqlite://"

engine = enable_sqlite_savepoints(create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
))

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def clear_aggregation_cache():
    """Cached aggregations must not leak between tests"""
    aggregation_cache.clear()
    yield
    aggregation_cache.clear()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager: startup would create tables in the configured database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sample_client(db_session: Session) -> Client:
    """A client with a zero stored balance"""
    record = Client(name="Acme Boutique", email="orders@acme.test", phone="555-0100", balance=Decimal("0"))
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def second_client(db_session: Session) -> Client:
    record = Client(name="Zenith Stores", email="buying@zenith.test", balance=Decimal("0"))
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def sample_supplier(db_session: Session) -> Supplier:
    record = Supplier(name="Textile Mills Ltd", email="sales@mills.test", balance=Decimal("0"))
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def sample_product(db_session: Session) -> Product:
    """A shirt in two variants: S/Red with 10 units and M/Blue with 20"""
    product = Product(name="Linen Shirt", price=Decimal("25.00"), cost=Decimal("10.00"), photo="shirt.jpg")
    product.variants = [
        ProductVariant(size="S", color="Red", quantity=10),
        ProductVariant(size="M", color="Blue", quantity=20),
    ]
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def variants(sample_product: Product):
    red, blue = sorted(sample_product.variants, key=lambda v: v.id)
    return red, blue


@pytest.fixture
def make_client_invoice(db_session: Session):
    """Insert a client invoice row directly, without moving stock or balances"""
    def _make(client: Client, total, type="regular", products=None, created_at=None, currency="usd"):
        invoice = ClientInvoice(
            client_id=client.id,
            total_price=Decimal(str(total)),
            remaining_amount=Decimal(str(total)),
            type=type,
            currency=currency,
            products=products or [],
            created_at=created_at or datetime.now(),
        )
        db_session.add(invoice)
        db_session.commit()
        return invoice
    return _make


@pytest.fixture
def make_client_receipt(db_session: Session):
    """Insert a client receipt row directly"""
    def _make(client: Client, amount, invoice=None, paid_at=None):
        receipt = ClientReceipt(
            client_id=client.id,
            invoice_id=invoice.id if invoice else None,
            amount=Decimal(str(amount)),
            paid_at=paid_at or datetime.now(),
        )
        db_session.add(receipt)
        db_session.commit()
        return receipt
    return _make
