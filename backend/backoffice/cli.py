# Overview: Flask CLI command groups for bootstrap, tenants, and ledger inspection.

# backend/backoffice/cli.py
# Commands Legend (FLASK_APP=backoffice:create_app):
#
# System bootstrap:
# - flask system init-db
#   Create every table (development; production uses `flask db upgrade`).
#
# Tenant management:
# - flask tenants list
# - flask tenants create --name "Acme Retail" --code "ACME" [--allow-negative-stock]
#
# Inventory inspection:
# - flask inventory balances --tenant-id 1 [--location-id 2]
# - flask inventory low-stock --tenant-id 1 [--location-id 2]
# - flask inventory reconcile [--tenant-id 1]
#   Exits non-zero when any balance disagrees with its transactions.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Location, Product, Tenant
from .services.ledger_service import list_balances, list_low_stock
from .services.reconciliation_service import reconcile_balances


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created")


# =============================================================================
# TENANT MANAGEMENT COMMANDS
# =============================================================================

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

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Locations':<10} {'Products'}")
    click.echo("="*80)

    for tenant in tenants:
        location_count = db.session.query(Location).filter_by(tenant_id=tenant.id).count()
        product_count = db.session.query(Product).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"

        click.echo(
            f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} "
            f"{active_str:<8} {location_count:<10} {product_count}"
        )

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--allow-negative-stock/--no-allow-negative-stock', default=None,
              help='Override the ALLOW_NEGATIVE_STOCK default for this tenant')
@with_appcontext
def create_tenant_cli(name, code, allow_negative_stock):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        raise SystemExit(1)

    tenant = Tenant(name=name, code=code, is_active=True, allow_negative_stock=allow_negative_stock)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


# =============================================================================
# INVENTORY INSPECTION COMMANDS
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock ledger inspection commands."""


@inventory_group.command('balances')
@click.option('--tenant-id', type=int, required=True)
@click.option('--location-id', type=int, default=None)
@with_appcontext
def balances_cli(tenant_id, location_id):
    """List on-hand balances for a tenant."""
    result = list_balances(tenant_id, location_id=location_id)

    if not result["items"]:
        click.echo("No balances found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Location':<10} {'Product':<10} {'On hand':>16} {'Allocated':>16} {'Avg cost':>16}")
    click.echo("="*80)

    for row in result["items"]:
        click.echo(
            f"{row['location_id']:<10} {row['product_id']:<10} {row['quantity_on_hand']:>16} "
            f"{row['quantity_allocated']:>16} {row['average_cost'] or '-':>16}"
        )

    click.echo("="*80)
    click.echo(f"{result['count']} balance(s)\n")


@inventory_group.command('low-stock')
@click.option('--tenant-id', type=int, required=True)
@click.option('--location-id', type=int, default=None)
@with_appcontext
def low_stock_cli(tenant_id, location_id):
    """List balances at or below their reorder point."""
    result = list_low_stock(tenant_id, location_id=location_id)

    if not result["items"]:
        click.echo("PASS No products at or below their reorder point")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Location':<10} {'Product':<10} {'Available':>16} {'Reorder point':>16}")
    click.echo("="*80)

    for row in result["items"]:
        click.echo(
            f"{row['location_id']:<10} {row['product_id']:<10} "
            f"{row['quantity_available']:>16} {row['reorder_point']:>16}"
        )

    click.echo("="*80)
    click.echo(f"{result['count']} low-stock balance(s)\n")


@inventory_group.command('reconcile')
@click.option('--tenant-id', type=int, default=None, help='Limit to one tenant')
@with_appcontext
def reconcile_cli(tenant_id):
    """Compare every balance with the sum of its transactions."""
    drifts = reconcile_balances(tenant_id)

    if not drifts:
        click.echo("PASS Balances match the ledger")
        return

    click.echo(f"FAIL {len(drifts)} balance(s) drift from the ledger")
    for drift in drifts:
        click.echo(
            f"  tenant={drift.tenant_id} product={drift.product_id} location={drift.location_id} "
            f"balance={drift.balance_quantity} ledger={drift.ledger_quantity} drift={drift.drift}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(inventory_group)
