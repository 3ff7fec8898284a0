# Overview: Flask CLI command groups for bootstrap, inspection, and stock receiving.

# backend/retail_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, an admin operator (PIN 1234) and one register.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Operators:
# - python -m flask operators create --username ann --name "Ann" --pin 4321 [--admin] [--all-registers]
#
# Registers:
# - python -m flask registers list [--all]
# - python -m flask registers create --name "Front Counter" --location "Main Floor" --opening-balance-cents 10000
#
# Sessions:
# - python -m flask sessions list --status open --limit 20
#
# Inventory:
# - python -m flask inventory receive --product-id 1 --quantity 24 [--variant-id 3]

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import Operator, Register, RegisterSession
from .services import auth_service, register_service

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PIN = "1234"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables, the default admin operator and a first register."""
    click.echo("START Initializing POS system...")
    db.session.commit()
    db.create_all()

    if db.session.query(Register).count() == 0:
        register = register_service.create_register(
            {"name": "Register 1"},
            default_currency=current_app.extensions["pos"].settings.default_currency,
        )
        click.echo(f"PASS Created register: {register.name} (ID: {register.id})")
    else:
        click.echo("PASS Registers already exist, skipping")

    if db.session.query(Operator).filter_by(username=DEFAULT_ADMIN_USERNAME).first() is None:
        admin = auth_service.create_operator(
            username=DEFAULT_ADMIN_USERNAME,
            display_name="Administrator",
            pin=DEFAULT_ADMIN_PIN,
            is_admin=True,
            can_access_all_registers=True,
        )
        click.echo(f"PASS Created operator: {admin.username} (ID: {admin.id})")
        click.echo(f"\nDefault credentials (CHANGE IN PRODUCTION!): {DEFAULT_ADMIN_USERNAME} / PIN {DEFAULT_ADMIN_PIN}")
    else:
        click.echo(f"WARN  Operator '{DEFAULT_ADMIN_USERNAME}' already exists, skipping...")

    click.echo("DONE POS system initialized")


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
    db.session.commit()
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('operators')
def operators_group():
    """Operator (cashier/admin) management."""


@operators_group.command('create')
@click.option('--username', required=True)
@click.option('--name', 'display_name', required=True, help='Display name')
@click.option('--pin', required=True, help='4-8 digit PIN')
@click.option('--admin', 'is_admin', is_flag=True, help='Grant admin rights')
@click.option('--all-registers', is_flag=True, help='Allow every register')
@click.option('--register-id', 'register_ids', type=int, multiple=True, help='Assign a register (repeatable)')
@with_appcontext
def create_operator_cli(username, display_name, pin, is_admin, all_registers, register_ids):
    """Create an operator."""
    try:
        operator = auth_service.create_operator(
            username=username,
            display_name=display_name,
            pin=pin,
            is_admin=is_admin,
            can_access_all_registers=all_registers,
            register_ids=list(register_ids),
        )
    except PosError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    click.echo(f"PASS Created operator: {operator.username} (ID: {operator.id})")


@click.group('registers')
def registers_group():
    """Register inspection and bootstrap."""


@registers_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive registers')
@with_appcontext
def list_registers_cli(include_inactive):
    """List registers with their open session, if any."""
    registers = register_service.list_registers(is_active=None if include_inactive else True)
    if not registers:
        click.echo("No registers found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Name':<25} {'Location':<20} {'Active':<8} {'Balance':>10}  {'Open session'}")
    click.echo("=" * 90)
    for r in registers:
        session = db.session.query(RegisterSession).filter_by(register_id=r.id, status="open").first()
        click.echo(
            f"{r.id:<5} {r.name:<25} {r.location or '-':<20} {'yes' if r.is_active else 'no':<8} "
            f"{r.current_balance_cents:>10}  {session.id if session else '-'}"
        )
    click.echo("=" * 90 + "\n")


@registers_group.command('create')
@click.option('--name', required=True)
@click.option('--location')
@click.option('--currency')
@click.option('--opening-balance-cents', type=int, default=0, show_default=True)
@with_appcontext
def create_register_cli(name, location, currency, opening_balance_cents):
    """Create a register."""
    payload = {"name": name, "opening_balance_cents": opening_balance_cents}
    if location:
        payload["location"] = location
    if currency:
        payload["currency"] = currency
    try:
        register = register_service.create_register(
            payload,
            default_currency=current_app.extensions["pos"].settings.default_currency,
        )
    except PosError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    click.echo(f"PASS Created register: {register.name} (ID: {register.id})")


@click.group('sessions')
def sessions_group():
    """Register session inspection."""


@sessions_group.command('list')
@click.option('--status', type=click.Choice(['open', 'closed']), help='Filter by status')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_sessions_cli(status, limit):
    """List recent register sessions."""
    query = db.session.query(RegisterSession)
    if status:
        query = query.filter_by(status=status)
    sessions = query.order_by(RegisterSession.opened_at.desc(), RegisterSession.id.desc()).limit(limit).all()
    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<5} {'Register':<9} {'Status':<8} {'Opened':<22} {'Net sales':>10} {'Expected':>10} {'Variance':>10}")
    click.echo("=" * 100)
    for s in sessions:
        opened = s.opened_at.strftime("%Y-%m-%d %H:%M:%S") if s.opened_at else "-"
        expected = s.expected_closing_balance_cents if s.expected_closing_balance_cents is not None else "-"
        variance = s.variance_cents if s.variance_cents is not None else "-"
        click.echo(
            f"{s.id:<5} {s.register_id:<9} {s.status:<8} {opened:<22} "
            f"{s.net_sales_cents:>10} {expected:>10} {variance:>10}"
        )
    click.echo("=" * 100 + "\n")


@click.group('inventory')
def inventory_group():
    """Stock receiving."""


@inventory_group.command('receive')
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--variant-id', type=int)
@click.option('--notes')
@with_appcontext
def receive_stock_cli(product_id, quantity, variant_id, notes):
    """Book incoming stock for a product or variant."""
    ledger = current_app.extensions["pos"].inventory
    try:
        movement = ledger.receive_stock(
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
            notes=notes,
        )
    except PosError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    on_hand = ledger.quantity_on_hand(product_id, variant_id)
    click.echo(f"PASS Received {movement.quantity_delta} (on hand now {on_hand})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(operators_group)
    app.cli.add_command(registers_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(inventory_group)
