# Overview: Concurrent checkout test against a file-backed SQLite database.

"""
Concurrency Tests

Two terminals sell from the same batch at the same moment. The conditional
decrement must let exactly one of them through:

    remaining 10, two sales of 6 -> one success, one BatchOversoldError,
    remaining 4, product stock 4.

Uses a separate application on a file database so that each thread gets
its own connection (the in-memory test database is a single shared
connection).
"""

import threading
from datetime import timedelta

import pytest

from batchpos import create_app
from batchpos.errors import BatchOversoldError
from batchpos.extensions import db
from batchpos.models import Product, ProductBatch, Sale
from batchpos.services import batch_service, sales_service
from batchpos.services.tenant_service import TenantContext, create_tenant
from batchpos.time_utils import business_today


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'DB_RETRY_BACKOFF': 0,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded(file_app):
    """Tenant, store, product and one batch of 10 units."""
    with file_app.app_context():
        tenant, store = create_tenant(name="Race Pharmacy", store_name="Counter")
        manager = TenantContext(user_id=1, tenant_id=tenant.id, store_id=store.id, role="manager")

        product = Product(
            tenant_id=tenant.id,
            store_id=store.id,
            sku="RACE-1",
            name="Race Product",
            selling_price=10,
            tax_rate=0,
            stock_quantity=0,
        )
        db.session.add(product)
        db.session.commit()

        batch = batch_service.receive_batch(manager, product.id, {
            "batch_number": "B1",
            "expiry_date": business_today(store.timezone) + timedelta(days=90),
            "quantity": 10,
        })
        ids = {
            "tenant_id": tenant.id,
            "store_id": store.id,
            "product_id": product.id,
            "batch_id": batch.id,
        }
        db.session.remove()
    return ids


def _sell(app, ctx, cart, barrier, results, index):
    with app.app_context():
        barrier.wait()
        try:
            sale = sales_service.complete_sale(ctx, cart)
            results[index] = ("ok", sale.invoice_number)
        except BatchOversoldError as exc:
            results[index] = ("oversold", exc.details)
        except Exception as exc:
            results[index] = ("error", repr(exc))
        finally:
            db.session.remove()


class TestConcurrentCheckout:

    def test_two_sales_race_for_one_batch(self, file_app, seeded):
        cart = [{"product_id": seeded["product_id"], "quantity": 6, "batch_id": seeded["batch_id"]}]
        barrier = threading.Barrier(2)
        results = [None, None]

        threads = []
        for index, user_id in enumerate((101, 102)):
            ctx = TenantContext(
                user_id=user_id,
                tenant_id=seeded["tenant_id"],
                store_id=seeded["store_id"],
                role="cashier",
            )
            thread = threading.Thread(target=_sell, args=(file_app, ctx, cart, barrier, results, index))
            threads.append(thread)
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        outcomes = sorted(r[0] for r in results)
        assert outcomes == ["ok", "oversold"], results

        loser = next(r for r in results if r[0] == "oversold")
        assert loser[1]["batch_id"] == seeded["batch_id"]
        assert loser[1]["line_index"] == 0

        with file_app.app_context():
            batch = db.session.get(ProductBatch, seeded["batch_id"])
            product = db.session.get(Product, seeded["product_id"])
            assert batch.remaining_quantity == 4
            assert product.stock_quantity == 4
            assert db.session.query(Sale).count() == 1

            ctx = TenantContext(user_id=None, tenant_id=seeded["tenant_id"], store_id=seeded["store_id"], role="owner")
            assert batch_service.stock_invariant_violations(ctx) == []
            db.session.remove()

    def test_sequential_sales_never_go_negative(self, file_app, seeded):
        ctx = TenantContext(user_id=101, tenant_id=seeded["tenant_id"], store_id=seeded["store_id"], role="cashier")
        cart = [{"product_id": seeded["product_id"], "quantity": 4, "batch_id": seeded["batch_id"]}]

        with file_app.app_context():
            sales_service.complete_sale(ctx, cart)
            sales_service.complete_sale(ctx, cart)
            with pytest.raises(BatchOversoldError):
                sales_service.complete_sale(ctx, cart)

            batch = db.session.get(ProductBatch, seeded["batch_id"])
            assert batch.remaining_quantity == 2
            db.session.remove()
