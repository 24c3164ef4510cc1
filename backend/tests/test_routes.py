# Overview: HTTP-level tests for authentication, roles and the checkout flow.

"""
API route tests.

Verifies:
- Requests without identity headers return 401
- Role enforcement returns 403
- Full flow over HTTP: create product, receive batch, allocate, sell
- Domain errors map to their status codes (400/404/409)
"""

from datetime import timedelta

import pytest

from batchpos.services.tenant_service import TenantContext


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without identity headers."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/products/1/batches"),
            ("POST", "/api/pos/allocate"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("GET", "/api/alerts/low-stock-batches"),
            ("GET", "/api/reports/summary"),
            ("GET", "/api/stores"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_malformed_headers(self, client, db_session):
        resp = client.get("/api/products", headers={"X-Tenant-Id": "abc", "X-Role": "manager"})
        assert resp.status_code == 401

    def test_unknown_role(self, client, db_session):
        resp = client.get("/api/products", headers={"X-Tenant-Id": "1", "X-Role": "superuser"})
        assert resp.status_code == 401


class TestRoleEnforcement:

    def test_cashier_cannot_create_product(self, client, cashier_a, headers):
        resp = client.post("/api/products", json={"sku": "X", "name": "X", "selling_price": "1.00"},
                           headers=headers(cashier_a))
        assert resp.status_code == 403

    def test_cashier_cannot_receive_batch(self, client, cashier_a, product_a, headers, today):
        resp = client.post(
            f"/api/products/{product_a.id}/batches",
            json={"batch_number": "B1", "expiry_date": (today + timedelta(days=30)).isoformat(), "quantity": 5},
            headers=headers(cashier_a),
        )
        assert resp.status_code == 403

    def test_cashier_cannot_view_reports(self, client, cashier_a, headers):
        assert client.get("/api/reports/batches", headers=headers(cashier_a)).status_code == 403

    def test_manager_cannot_create_store(self, client, manager_a, headers):
        resp = client.post("/api/stores", json={"name": "Branch"}, headers=headers(manager_a))
        assert resp.status_code == 403


class TestCheckoutFlow:

    def test_full_flow(self, client, manager_a, cashier_a, store_a, headers, today):
        resp = client.post("/api/products", json={
            "sku": "CET-10",
            "name": "Cetirizine 10mg",
            "selling_price": "10.00",
            "mrp": "12.00",
            "tax_rate": "18",
            "stock_quantity": 5,
        }, headers=headers(manager_a))
        # stock is never client-writable
        assert resp.status_code == 400

        resp = client.post("/api/products", json={
            "sku": "CET-10",
            "name": "Cetirizine 10mg",
            "selling_price": "10.00",
            "mrp": "12.00",
            "tax_rate": "18",
        }, headers=headers(manager_a))
        assert resp.status_code == 201
        product = resp.get_json()["product"]
        assert product["stock_quantity"] == 0

        for number, days, qty in (("B2", 60, 30), ("B1", 10, 20)):
            resp = client.post(f"/api/products/{product['id']}/batches", json={
                "batch_number": number,
                "expiry_date": (today + timedelta(days=days)).isoformat(),
                "quantity": qty,
                "purchase_price": "6.50",
            }, headers=headers(manager_a))
            assert resp.status_code == 201

        resp = client.get(f"/api/pos/products/{product['id']}/eligible-batches", headers=headers(cashier_a))
        assert [b["batch_number"] for b in resp.get_json()["items"]] == ["B1", "B2"]

        resp = client.post("/api/pos/allocate", json={"product_id": product["id"], "quantity": 5, "mode": "AUTO"},
                           headers=headers(cashier_a))
        assert resp.status_code == 200
        allocation = resp.get_json()["allocation"]
        assert allocation["batch_number"] == "B1"
        assert allocation["warning"] == {"type": "EXPIRING_SOON", "days_remaining": 10}

        resp = client.post("/api/sales", json={
            "items": [{"product_id": product["id"], "quantity": 5, "batch_id": allocation["batch_id"]}],
            "payment_method": "card",
        }, headers=headers(cashier_a))
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["total_amount"] == "59.00"
        assert sale["items"][0]["batch_number"] == "B1"

        resp = client.get(f"/api/products/{product['id']}", headers=headers(cashier_a))
        assert resp.get_json()["product"]["stock_quantity"] == 45

        resp = client.get(f"/api/sales/{sale['id']}", headers=headers(manager_a))
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["invoice_number"] == sale["invoice_number"]

        resp = client.get("/api/batches/invariant", headers=headers(manager_a))
        assert resp.get_json()["ok"] is True

    def test_manual_allocation_returns_choices(self, client, manager_a, cashier_a, product_a, receive, headers):
        receive(manager_a, product_a, "B1", expires_in=10, quantity=20)
        receive(manager_a, product_a, "B2", expires_in=60, quantity=30)

        resp = client.post("/api/pos/allocate", json={"product_id": product_a.id, "quantity": 1, "mode": "MANUAL"},
                           headers=headers(cashier_a))

        assert resp.status_code == 200
        assert [c["batch_number"] for c in resp.get_json()["choices"]] == ["B1", "B2"]

    def test_cart_line(self, client, manager_a, cashier_a, product_a, receive, headers):
        batch = receive(manager_a, product_a, "B1", expires_in=90, quantity=20)

        resp = client.post("/api/pos/cart-lines", json={"product_id": product_a.id, "quantity": 2, "batch_id": batch.id},
                           headers=headers(cashier_a))

        assert resp.status_code == 200
        line = resp.get_json()["line"]
        assert line["batch_number"] == "B1"
        assert line["total_amount"] == "23.60"
        assert line["warning"] is None


class TestErrorMapping:

    def test_oversell_is_409(self, client, manager_a, cashier_a, product_a, receive, headers):
        batch = receive(manager_a, product_a, "B1", expires_in=30, quantity=3)

        resp = client.post("/api/sales", json={
            "items": [{"product_id": product_a.id, "quantity": 4, "batch_id": batch.id}],
        }, headers=headers(cashier_a))

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["details"]["line_index"] == 0
        assert body["details"]["batch_id"] == batch.id

    def test_no_eligible_batches_is_409(self, client, cashier_a, product_a, headers):
        resp = client.post("/api/pos/allocate", json={"product_id": product_a.id, "quantity": 1},
                           headers=headers(cashier_a))
        assert resp.status_code == 409

    def test_bad_quantity_is_400(self, client, cashier_a, product_a, headers):
        resp = client.post("/api/pos/allocate", json={"product_id": product_a.id, "quantity": 0},
                           headers=headers(cashier_a))
        assert resp.status_code == 400

    def test_superscript_quantity_is_400(self, client, manager_a, cashier_a, product_a, receive, headers):
        receive(manager_a, product_a, "B1", expires_in=30, quantity=10)

        resp = client.post("/api/pos/allocate", json={"product_id": product_a.id, "quantity": "²"},
                           headers=headers(cashier_a))
        assert resp.status_code == 400

        resp = client.post("/api/sales", json={"items": [{"product_id": product_a.id, "quantity": "²"}]},
                           headers=headers(cashier_a))
        assert resp.status_code == 400

    def test_negative_per_page_is_clamped(self, client, cashier_a, headers):
        resp = client.get("/api/sales?page=1&per_page=-5", headers=headers(cashier_a))

        assert resp.status_code == 200
        assert resp.get_json()["pagination"]["per_page"] == 1

    def test_empty_cart_is_400(self, client, cashier_a, headers):
        resp = client.post("/api/sales", json={"items": []}, headers=headers(cashier_a))
        assert resp.status_code == 400

    def test_foreign_product_is_404(self, client, cashier_a, product_b, headers):
        resp = client.get(f"/api/products/{product_b.id}", headers=headers(cashier_a))
        assert resp.status_code == 404

    def test_duplicate_batch_is_409(self, client, manager_a, product_a, receive, headers, today):
        receive(manager_a, product_a, "B1", expires_in=30, quantity=3)

        resp = client.post(f"/api/products/{product_a.id}/batches", json={
            "batch_number": "B1",
            "expiry_date": (today + timedelta(days=30)).isoformat(),
            "quantity": 5,
        }, headers=headers(manager_a))

        assert resp.status_code == 409

    def test_negative_horizon_is_400(self, client, manager_a, headers):
        resp = client.get("/api/alerts/expiry?horizon_days=-1", headers=headers(manager_a))
        assert resp.status_code == 400


class TestStores:

    def test_owner_manages_stores(self, client, tenant_a, store_a, headers):
        owner = TenantContext(user_id=1, tenant_id=tenant_a.id, store_id=store_a.id, role="owner")

        resp = client.post("/api/stores", json={"name": "Branch 2", "timezone": "UTC"}, headers=headers(owner))
        assert resp.status_code == 201
        branch = resp.get_json()

        resp = client.post("/api/stores", json={"name": "Branch 2"}, headers=headers(owner))
        assert resp.status_code == 409

        resp = client.delete(f"/api/stores/{branch['id']}", headers=headers(owner))
        assert resp.status_code == 200

        names = [s["name"] for s in client.get("/api/stores", headers=headers(owner)).get_json()]
        assert names == ["Store A1"]

    def test_cannot_delete_foreign_store(self, client, tenant_a, store_a, store_b, headers):
        owner = TenantContext(user_id=1, tenant_id=tenant_a.id, store_id=store_a.id, role="owner")

        resp = client.delete(f"/api/stores/{store_b.id}", headers=headers(owner))
        assert resp.status_code == 404


class TestPublicEndpoints:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"
