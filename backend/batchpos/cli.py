# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/batchpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--tenant "Acme Pharmacy"] [--store "Main Store"]
#   Idempotent bootstrap: creates the schema and a first tenant with one store.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
# - python -m flask tenants create --name "Acme Pharmacy" --store "Main Store" [--timezone Asia/Kolkata]
#
# Inventory integrity:
# - python -m flask inventory check --tenant-id 1
#   Report products whose stock differs from the sum of their active batches.
# - python -m flask inventory reconcile --tenant-id 1 [--product-id 5]
#   Rewrite drifted product stock from the batch ledger.
#
# Alerts:
# - python -m flask alerts show --tenant-id 1 [--store-id 1] [--horizon-days 30]

from __future__ import annotations

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store, Tenant
from .services import alert_service, batch_service
from .services.tenant_service import TenantAccessError, TenantContext, create_tenant, validate_tenant_active
from .validation import ValidationError


def _system_context(tenant_id: int, store_id: int | None = None) -> TenantContext:
    """Operator context for maintenance commands (acts as tenant owner)."""
    try:
        validate_tenant_active(tenant_id)
    except TenantAccessError as exc:
        raise click.ClickException(str(exc))
    return TenantContext(user_id=None, tenant_id=tenant_id, store_id=store_id, role="owner")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--tenant', 'tenant_name', default='Default Tenant', help='Tenant name')
@click.option('--store', 'store_name', default='Main Store', help='First store name')
@with_appcontext
def init_system(tenant_name, store_name):
    """
    Create tables and a first tenant with one store (if none exists).
    """
    click.echo("START Initializing BatchPOS...")
    db.create_all()

    tenant = db.session.query(Tenant).order_by(Tenant.id).first()
    if tenant:
        store = db.session.query(Store).filter_by(tenant_id=tenant.id).order_by(Store.id).first()
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")
    else:
        tenant, store = create_tenant(name=tenant_name, store_name=store_name)
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")

    if store:
        click.echo(f"PASS Store: {store.name} (ID: {store.id}, TZ: {store.timezone})")
    click.echo("\nSend X-Tenant-Id / X-Store-Id / X-Role headers through your gateway to use the API.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Plan':<10} {'Active':<8} {'Stores'}")
    click.echo("="*70)

    for tenant in tenants:
        store_count = db.session.query(Store).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.plan:<10} {active_str:<8} {store_count}")

    click.echo("="*70 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--store', 'store_name', required=True, help='First store name')
@click.option('--plan', default='free', help='Plan')
@click.option('--timezone', default=None, help='Store timezone (IANA name, default Asia/Kolkata)')
@with_appcontext
def create_tenant_cli(name, store_name, plan, timezone):
    """Create a tenant together with its first store."""
    try:
        tenant, store = create_tenant(name=name, store_name=store_name, plan=plan, timezone=timezone)
    except ValidationError as exc:
        raise click.ClickException(str(exc))

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}), store: {store.name} (ID: {store.id})")


@click.group('inventory')
def inventory_group():
    """Batch ledger integrity commands."""


@inventory_group.command('check')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def check_inventory(tenant_id):
    """Report stock drift without changing anything (exit 1 on drift)."""
    ctx = _system_context(tenant_id)
    violations = batch_service.stock_invariant_violations(ctx)

    if not violations:
        click.echo("PASS Product stock matches active batches for every product.")
        return

    for row in violations:
        click.echo(
            f"DRIFT product={row['product_id']} sku={row['sku']} "
            f"recorded={row['recorded']} batches={row['computed']} drift={row['drift']:+d}"
        )
    raise SystemExit(1)


@inventory_group.command('reconcile')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--product-id', type=int, default=None, help='Limit to one product')
@with_appcontext
def reconcile_inventory(tenant_id, product_id):
    """Rewrite drifted product stock from the batch ledger."""
    ctx = _system_context(tenant_id)
    corrected = batch_service.reconcile_product_stock(ctx, product_id)

    if not corrected:
        click.echo("PASS Nothing to reconcile.")
        return

    for row in corrected:
        click.echo(f"FIXED product={row['product_id']} sku={row['sku']} {row['recorded']} -> {row['computed']}")
    click.echo(f"PASS Reconciled {len(corrected)} product(s).")


@click.group('alerts')
def alerts_group():
    """Stock and expiry alerts."""


@alerts_group.command('show')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--store-id', type=int, default=None, help='Evaluate "today" in this store\'s timezone')
@click.option('--horizon-days', type=int, default=None, help='Expiry horizon (days)')
@with_appcontext
def show_alerts(tenant_id, store_id, horizon_days):
    ctx = _system_context(tenant_id, store_id)

    low = alert_service.low_stock_batches(ctx)
    try:
        expiry = alert_service.expiry_alerts(ctx, horizon_days)
    except ValidationError as exc:
        raise click.ClickException(str(exc))

    click.echo(f"\nLOW STOCK BATCHES ({len(low)})")
    for row in low:
        click.echo(
            f"  {row['product_sku'] or '-':<12} {row['batch_number']:<16} "
            f"remaining={row['remaining_quantity']} threshold={row['threshold']}"
        )

    click.echo(f"\nEXPIRED ({len(expiry['expired'])})")
    for row in expiry["expired"]:
        click.echo(f"  {row['product_sku'] or '-':<12} {row['batch_number']:<16} expired {row['expiry_date']}")

    click.echo(f"\nEXPIRING WITHIN {expiry['horizon_days']} DAYS ({len(expiry['expiring_soon'])})")
    for row in expiry["expiring_soon"]:
        click.echo(
            f"  {row['product_sku'] or '-':<12} {row['batch_number']:<16} "
            f"{row['expiry_date']} ({row['days_remaining']} days)"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(alerts_group)
