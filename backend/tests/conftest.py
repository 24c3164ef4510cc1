"""
Pytest fixtures for BatchPOS backend tests.

Provides test database setup, two isolated tenants with stores, products,
batch receipt helpers, tenant contexts and identity headers for the test
client.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from batchpos import create_app
from batchpos.extensions import db
from batchpos.models import Product, Store, Tenant
from batchpos.services import batch_service
from batchpos.services.identity_service import context_headers
from batchpos.services.tenant_service import TenantContext
from batchpos.time_utils import business_today


STORE_TZ = "Asia/Kolkata"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def today():
    """Business date of the test stores."""
    return business_today(STORE_TZ)


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Tenant A - Acme Pharmacy", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Tenant B - Beta Medicals", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def store_a(db_session, tenant_a):
    """Create Store A in Tenant A."""
    store = Store(tenant_id=tenant_a.id, name="Store A1", timezone=STORE_TZ)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, tenant_b):
    """Create Store B in Tenant B."""
    store = Store(tenant_id=tenant_b.id, name="Store B1", timezone=STORE_TZ)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def cashier_a(tenant_a, store_a):
    return TenantContext(user_id=11, tenant_id=tenant_a.id, store_id=store_a.id, role="cashier")


@pytest.fixture(scope='function')
def manager_a(tenant_a, store_a):
    return TenantContext(user_id=12, tenant_id=tenant_a.id, store_id=store_a.id, role="manager")


@pytest.fixture(scope='function')
def manager_b(tenant_b, store_b):
    return TenantContext(user_id=21, tenant_id=tenant_b.id, store_id=store_b.id, role="manager")


def make_product(db_session, store, **overrides):
    fields = {
        "tenant_id": store.tenant_id,
        "store_id": store.id,
        "sku": "SKU-001",
        "name": "Paracetamol 500mg",
        "hsn_code": "3004",
        "purchase_price": Decimal("6.00"),
        "selling_price": Decimal("10.00"),
        "tax_rate": Decimal("18.00"),
        "stock_quantity": 0,
        "min_stock_level": 10,
        "min_batch_stock_level": 5,
        "is_active": True,
    }
    fields.update(overrides)
    product = Product(**fields)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, store_a):
    """Create Product in Store A (no stock until batches are received)."""
    return make_product(db_session, store_a, sku="PROD-A-001", name="Product A")


@pytest.fixture(scope='function')
def product_b(db_session, store_b):
    """Create Product in Store B."""
    return make_product(db_session, store_b, sku="PROD-B-001", name="Product B")


@pytest.fixture(scope='function')
def receive(db_session, today):
    """
    Receive a batch through the ledger so product stock stays in step.

    receive(ctx, product, "B1", expires_in=10, quantity=20)
    """
    def _receive(ctx, product, batch_number, *, expires_in, quantity, purchase_price="5.00"):
        return batch_service.receive_batch(ctx, product.id, {
            "batch_number": batch_number,
            "expiry_date": today + timedelta(days=expires_in),
            "quantity": quantity,
            "purchase_price": Decimal(purchase_price),
        })

    return _receive


def headers_for(ctx: TenantContext) -> dict:
    """Identity headers as the upstream gateway would send them."""
    return context_headers(ctx)


@pytest.fixture(scope='function')
def headers():
    return headers_for


@pytest.fixture(scope='function')
def new_product(db_session):
    """new_product(store, sku="X-1", ...) with the same defaults as product_a."""
    def _new(store, **overrides):
        return make_product(db_session, store, **overrides)

    return _new
