# Overview: Flask CLI command tests (bootstrap, tenants, inventory, alerts).

from sqlalchemy import update

from batchpos.models import Product, Store, Tenant


class TestSystemCommands:

    def test_init_creates_first_tenant(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init", "--tenant", "Acme", "--store", "Front"])

        assert result.exit_code == 0, result.output
        assert "Created tenant: Acme" in result.output
        assert db_session.query(Tenant).count() == 1
        assert db_session.query(Store).one().name == "Front"

    def test_init_is_idempotent(self, app, db_session, tenant_a, store_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init"])

        assert result.exit_code == 0, result.output
        assert "Using existing tenant" in result.output
        assert db_session.query(Tenant).count() == 1


class TestTenantCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        created = runner.invoke(args=["tenants", "create", "--name", "Beta", "--store", "Main", "--timezone", "UTC"])
        listed = runner.invoke(args=["tenants", "list"])

        assert created.exit_code == 0, created.output
        assert "Beta" in listed.output
        assert db_session.query(Store).one().timezone == "UTC"

    def test_create_requires_name(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["tenants", "create", "--name", " ", "--store", "Main"])

        assert result.exit_code != 0
        assert "name is required" in result.output


class TestInventoryCommands:

    def test_check_and_reconcile(self, app, db_session, manager_a, product_a, receive):
        receive(manager_a, product_a, "B1", expires_in=30, quantity=20)
        db_session.execute(update(Product).where(Product.id == product_a.id).values(stock_quantity=7))
        db_session.commit()
        runner = app.test_cli_runner()
        tenant_id = str(manager_a.tenant_id)

        check = runner.invoke(args=["inventory", "check", "--tenant-id", tenant_id])
        assert check.exit_code == 1
        assert "drift=-13" in check.output

        fixed = runner.invoke(args=["inventory", "reconcile", "--tenant-id", tenant_id])
        assert fixed.exit_code == 0, fixed.output
        assert "7 -> 20" in fixed.output

        again = runner.invoke(args=["inventory", "check", "--tenant-id", tenant_id])
        assert again.exit_code == 0

    def test_unknown_tenant(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["inventory", "check", "--tenant-id", "999"])

        assert result.exit_code != 0
        assert "Tenant not found" in result.output


class TestAlertCommands:

    def test_show_alerts(self, app, db_session, manager_a, product_a, receive):
        receive(manager_a, product_a, "LOW", expires_in=5, quantity=2)
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "alerts", "show",
            "--tenant-id", str(manager_a.tenant_id),
            "--store-id", str(manager_a.store_id),
        ])

        assert result.exit_code == 0, result.output
        assert "LOW STOCK BATCHES (1)" in result.output
        assert "EXPIRING WITHIN 30 DAYS (1)" in result.output
