# Overview: Flask CLI command groups for bootstrap and inventory inspection.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockledger (PowerShell: $env:FLASK_APP="stockledger").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management (MULTI-TENANT):
# - python -m flask tenants list
#   List all tenants.
# - python -m flask tenants create --name "Acme Corp" --code "ACME"
#   Create a new tenant.
#
# Inventory inspection:
# - python -m flask inventory summary --tenant-id 1
#   Product/variant counts, units on hand, stock value, low-stock products.
# - python -m flask inventory history --tenant-id 1 [--product-id 5] [--limit 20]
#   Most recent product log rows, newest first.
# - python -m flask inventory verify --tenant-id 1
#   List products/variants whose quantity differs from the sum of their log
#   deltas. Exits with status 1 when any drift is found.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Tenant
from .services import audit_service
from .services.stock_service import get_inventory_summary


def _money(cents) -> str:
    cents = int(cents or 0)
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def _require_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise click.ClickException(f"Tenant {tenant_id} not found")
    return tenant


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' to add a tenant.")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active'}")
    click.echo("="*60)

    for tenant in tenants:
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str}")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant_cli(name, code):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        return

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('summary')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def inventory_summary(tenant_id):
    """Show stock totals and low-stock products for a tenant."""
    tenant = _require_tenant(tenant_id)
    summary = get_inventory_summary(tenant.id)

    click.echo(f"\nInventory for {tenant.name} (ID: {tenant.id})")
    click.echo("="*60)
    click.echo(f"Products:        {summary['product_count']}")
    click.echo(f"Variants:        {summary['variant_count']}")
    click.echo(f"Units on hand:   {summary['total_units']}")
    click.echo(f"Stock value:     {_money(summary['inventory_value_cents'])}")

    if summary['low_stock']:
        click.echo(f"\nLow stock ({len(summary['low_stock'])}):")
        for row in summary['low_stock']:
            click.echo(f"  {row['id']:<5} {row['name']:<30} qty={row['current_quantity']} min={row['min_stock_level']}")
    else:
        click.echo("\nNo low-stock products.")


@inventory_group.command('history')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--product-id', type=int, default=None, help='Only this product')
@click.option('--limit', type=int, default=20, show_default=True, help='Rows to show')
@with_appcontext
def inventory_history(tenant_id, product_id, limit):
    """Show the most recent product log rows."""
    _require_tenant(tenant_id)
    logs = audit_service.get_product_history(tenant_id, product_id, limit=limit)

    if not logs:
        click.echo("No product logs found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Product':<8} {'Variant':<8} {'Action':<22} {'Delta':>6} {'Old':>6} {'New':>6}  Reference")
    click.echo("="*100)
    for log in logs:
        variant = log.product_variant_id if log.product_variant_id is not None else '-'
        click.echo(
            f"{log.id:<6} {log.product_id:<8} {variant:<8} {log.action:<22} "
            f"{log.quantity:>6} {log.old_quantity:>6} {log.new_quantity:>6}  {log.reference or '-'}"
        )


@inventory_group.command('verify')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def inventory_verify(tenant_id):
    """Check every quantity against the sum of its log deltas."""
    _require_tenant(tenant_id)
    drift = audit_service.verify_log_consistency(tenant_id)

    if not drift:
        click.echo("PASS All quantities match their product logs.")
        return

    click.echo(f"FAIL {len(drift)} record(s) drift from their product logs:")
    for row in drift:
        click.echo(
            f"  product={row['product_id']} variant={row['variant_id'] or '-'} {row['name']}: "
            f"quantity={row['current_quantity']} log_sum={row['log_sum']}"
        )
    click.get_current_context().exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(inventory_group)
