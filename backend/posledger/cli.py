# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--business "Name"] [--code MAIN]
#   Idempotent bootstrap: business, primary location and one till.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection:
# - python -m flask stock low --business-id 1 [--location-id 2]
#   Balances below their product's reorder threshold.
# - python -m flask stock verify --business-id 1
#   Replay movement history and compare against stored balances.
#
# Shift inspection:
# - python -m flask shifts list [--business-id 1] [--open]
#   Recent shifts with expected / counted / variance.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Business, Location, StockBalance, Till
from .services import shift_service, stock_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--business', 'business_name', default='Default Business', help='Business name')
@click.option('--code', 'business_code', default='MAIN', help='Business code')
@click.option('--till', 'till_name', default='Till 1', help='Name of the first till')
@with_appcontext
def init_system(business_name, business_code, till_name):
    """
    Initialize a working system: business, primary location and a till.

    Safe to run repeatedly; existing rows are reused.
    """
    click.echo("START Initializing posledger...")

    business = db.session.query(Business).filter_by(code=business_code).first()
    if not business:
        business = Business(name=business_name, code=business_code, is_active=True)
        db.session.add(business)
        db.session.commit()
        click.echo(f"PASS Created business: {business.name} (ID: {business.id}, Code: {business.code})")
    else:
        click.echo(f"PASS Using existing business: {business.name} (ID: {business.id})")

    location = db.session.query(Location).filter_by(business_id=business.id, is_primary=True).first()
    if not location:
        location = Location(business_id=business.id, name="Main Store", is_primary=True, is_active=True)
        db.session.add(location)
        db.session.commit()
        click.echo(f"PASS Created primary location: {location.name} (ID: {location.id})")
    else:
        click.echo(f"PASS Using existing primary location: {location.name} (ID: {location.id})")

    till = db.session.query(Till).filter_by(business_id=business.id, name=till_name).first()
    if not till:
        till = shift_service.create_till(business.id, till_name)
        click.echo(f"PASS Created till: {till.name} (ID: {till.id})")
    else:
        click.echo(f"PASS Using existing till: {till.name} (ID: {till.id})")

    click.echo("\nDONE System ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate every table."""
    if not yes:
        click.echo("WARN Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('low')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--location-id', type=int, help='Filter by location ID')
@with_appcontext
def low_stock_cli(business_id, location_id):
    """
    List balances below their reorder threshold.

    Example:
        flask stock low --business-id 1
    """
    rows = stock_service.list_low_stock(business_id, location_id=location_id)
    if not rows:
        click.echo("No low-stock items.")
        return

    click.echo(f"\n{'Product':<10} {'Location':<10} {'Qty':>8}")
    click.echo("-" * 30)
    for row in rows:
        click.echo(f"{row['product_id']:<10} {row['location_id']:<10} {row['quantity']:>8}")
    click.echo(f"\nTotal: {len(rows)} low-stock balance(s)")


@stock_group.command('verify')
@click.option('--business-id', type=int, required=True, help='Business ID')
@with_appcontext
def verify_stock_cli(business_id):
    """
    Replay the movement ledger and compare with stored balances.

    Exits non-zero when any balance disagrees with its history.
    """
    balances = db.session.query(StockBalance).filter_by(business_id=business_id).all()
    mismatches = 0
    for balance in balances:
        replayed = stock_service.replay_balance(balance.product_id, balance.location_id)
        if replayed != balance.quantity:
            mismatches += 1
            click.echo(
                f"FAIL product={balance.product_id} location={balance.location_id} "
                f"stored={balance.quantity} replayed={replayed}"
            )

    if mismatches:
        click.echo(f"\n{mismatches} mismatch(es) across {len(balances)} balance(s)")
        raise SystemExit(1)
    click.echo(f"PASS {len(balances)} balance(s) match their movement history")


@click.group('shifts')
def shifts_group():
    """Cash shift inspection commands."""


@shifts_group.command('list')
@click.option('--business-id', type=int, help='Filter by business ID')
@click.option('--till-id', type=int, help='Filter by till ID')
@click.option('--open', 'only_open', is_flag=True, help='Only open shifts')
@with_appcontext
def list_shifts_cli(business_id, till_id, only_open):
    """
    List cash shifts.

    Example:
        flask shifts list --open
    """
    shifts = shift_service.list_shifts(
        business_id=business_id,
        till_id=till_id,
        is_open=True if only_open else None,
    )
    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo(f"\n{'ID':<6} {'Till':<6} {'Operator':<9} {'Status':<8} {'Expected':>10} {'Counted':>10} {'Variance':>10}")
    click.echo("-" * 65)
    for shift in shifts:
        expected = "" if shift.expected_cents is None else shift.expected_cents
        counted = "" if shift.counted_cents is None else shift.counted_cents
        variance = "" if shift.variance_cents is None else shift.variance_cents
        click.echo(
            f"{shift.id:<6} {shift.till_id:<6} {shift.operator_id:<9} {shift.status:<8} "
            f"{expected:>10} {counted:>10} {variance:>10}"
        )


def register_commands(app):
    """Attach all CLI command groups to the Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(shifts_group)
