# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/millstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, the finance account and a default warehouse.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory maintenance:
# - python -m flask inventory reconcile [--fix]
#   Compare cached stock against inventory rows and the ledger; --fix rewrites the cache.
# - python -m flask inventory repair-returns
#   Locate legacy RETURN_OUT rows that never deducted from a storage location.
#
# Product maintenance:
# - python -m flask products mark-unmilled --name-contains "Dinorado" --yield-rate 66.67
#   Flag matching products as unmilled rice with a milling yield rate.

from decimal import Decimal, InvalidOperation

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import StorageLocation
from .services import finance_service, products_service, reconciliation_service
from .validation import ValidationError

CLI_ACTOR = "cli"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--warehouse-name', default='Main Warehouse', help='Name of the default warehouse')
@click.option('--warehouse-code', default='MAIN', help='Code of the default warehouse')
@with_appcontext
def init_system(warehouse_name, warehouse_code):
    """
    Initialize the database: tables, finance account and a default warehouse.

    Safe to run repeatedly; existing rows are left alone.
    """
    click.echo("START Initializing millstock...")

    db.create_all()
    click.echo("PASS Tables ready")

    account = finance_service.get_account(db.session, lock=False)
    db.session.commit()
    click.echo(f"PASS Finance account ready (ID: {account.id}, balance: {account.account_balance_cents} cents)")

    location = db.session.query(StorageLocation).first()
    if location is None:
        location = StorageLocation(name=warehouse_name, code=warehouse_code.upper(), type="WAREHOUSE")
        db.session.add(location)
        db.session.commit()
        click.echo(f"PASS Created default warehouse: {location.name} (ID: {location.id}, Code: {location.code})")
    else:
        click.echo(f"PASS Using existing storage location: {location.name} (ID: {location.id})")

    click.echo("DONE millstock initialized")


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


@click.group('inventory')
def inventory_group():
    """Inventory ledger maintenance commands."""


@inventory_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Rewrite cached stock from the inventory rows')
@with_appcontext
def reconcile_cli(fix):
    """
    Report products whose cached stock disagrees with inventory rows or the ledger.

    Exits with status 1 when drift remains (no --fix), so it can gate a cron job.
    """
    report = reconciliation_service.reconcile(fix=fix, actor=CLI_ACTOR)

    click.echo(f"Checked {report['checked']} product(s)")
    if not report["drifted"]:
        click.echo("PASS No drift")
        return

    click.echo("\n" + "=" * 111)
    click.echo(
        f"{'ID':<6} {'Product':<40} {'Cached':>10} {'Items':>10} {'Ledger':>10} "
        f"{'Unrepaired':>10} {'OnOrder':>10} {'Expected':>10}"
    )
    click.echo("=" * 111)
    for row in report["drifted"]:
        click.echo(
            f"{row['product_id']:<6} {row['product_name'][:40]:<40} {row['stock_on_hand']:>10} "
            f"{row['item_total']:>10} {row['ledger_total']:>10} {row['unrepaired_returns']:>10} "
            f"{row.get('stock_on_order', '-'):>10} {row.get('expected_on_order', '-'):>10}"
        )
    click.echo("=" * 111 + "\n")

    if any(row["unrepaired_returns"] for row in report["drifted"]):
        click.echo("WARN Unlocated purchase returns found; run 'flask inventory repair-returns'")

    if fix:
        click.echo(f"FIXED Rewrote cached stock on {report['fixed']} product(s)")
    else:
        click.echo("WARN Drift found; re-run with --fix to rewrite cached stock")
        raise SystemExit(1)


@inventory_group.command('repair-returns')
@with_appcontext
def repair_returns_cli():
    """
    Deduct legacy unlocated purchase returns from storage locations (LIFO).

    Rows that cannot be covered by current stock are listed for manual adjustment.
    """
    result = reconciliation_service.repair_unlocated_returns(actor=CLI_ACTOR)

    if result["found"] == 0:
        click.echo("PASS No repairs needed. All returns are located.")
        return

    click.echo(f"Found {result['found']} transaction(s) to repair")
    for row in result["repaired"]:
        click.echo(f"PASS Transaction {row['transaction_id']}")
        for loc in row["locations"]:
            click.echo(f"   - location {loc['location_id']}: {loc['deducted']} units")
    for row in result["skipped"]:
        click.echo(
            f"WARN Transaction {row['transaction_id']} skipped: {row['product']} "
            f"available {row['available']}, needed {row['requested']} (adjust manually)"
        )
    click.echo(f"DONE Repaired {len(result['repaired'])}, skipped {len(result['skipped'])}")


@click.group('products')
def products_group():
    """Product maintenance commands."""


@products_group.command('mark-unmilled')
@click.option('--name-contains', required=True, help='Case-insensitive product name filter')
@click.option('--yield-rate', default='66.67', show_default=True, help='Milling yield rate in percent')
@with_appcontext
def mark_unmilled_cli(name_contains, yield_rate):
    """Flag matching products as unmilled rice so they can be milled."""
    try:
        rate = Decimal(yield_rate)
    except InvalidOperation:
        raise click.BadParameter(f"{yield_rate!r} is not a number", param_hint="--yield-rate")

    try:
        products = products_service.mark_unmilled(name_contains=name_contains, yield_rate=rate)
    except ValidationError as e:
        raise click.ClickException(str(e))

    if not products:
        click.echo(f"No products matching {name_contains!r}")
        return
    for p in products:
        click.echo(f"PASS {p.name} (ID: {p.id}) unmilled at {p.milling_yield_rate}%")
    click.echo(f"DONE Updated {len(products)} product(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(products_group)
