# Overview: Flask CLI command groups for bootstrap, users, backup and demo data.

# backend/counterpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--shop "Corner Cafe"] [--admin-pin 1234]
#   Idempotent bootstrap: creates tables, shop settings and the admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Load a small demo catalog (raw materials, recipes, addons, a customer).
#
# Users:
# - python -m flask users list
# - python -m flask users create --name sara --pin 4321 --role cashier
#
# Backup:
# - python -m flask backup export backup.json
# - python -m flask backup import backup.json --yes

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .permissions import VALID_ROLES
from .services import auth_service, backup_service, catalog_service, party_service, settings_service
from .services.auth_service import AuthError
from .services.backup_service import BackupError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--shop', 'shop_name', default='My Shop', help='Shop name for receipts')
@click.option('--admin-name', default='admin', help='Admin user name')
@click.option('--admin-pin', default='1234', help='Admin PIN (4-8 digits)')
@with_appcontext
def init_system(shop_name, admin_name, admin_pin):
    """
    Initialize the shop: tables, settings row and an admin user.

    Checkout refuses to run until the settings row exists.

    SECURITY: Change the default admin PIN immediately!
    """
    click.echo("START Initializing counterpos...")

    db.create_all()
    click.echo("PASS Tables ready")

    settings = settings_service.ensure_shop_settings(shop_name)
    click.echo(f"PASS Shop settings: {settings.name}")

    existing = db.session.query(User).filter_by(name=admin_name).first()
    if existing:
        click.echo(f"WARN  User '{admin_name}' already exists, skipping...")
    else:
        try:
            auth_service.create_user(name=admin_name, pin=admin_pin, role='admin')
            click.echo(f"PASS Created admin user '{admin_name}'")
        except AuthError as e:
            click.echo(f"FAIL Failed to create admin user: {e}")
            return

    click.echo("\nDONE counterpos initialized.")
    if not existing and admin_pin == '1234':
        click.echo("SECURITY Default admin PIN is 1234. Change it now!")


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
    click.echo("PASS Database reset. Run 'python -m flask system init' next.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Load a small cafe catalog for trying out checkout."""
    if catalog_service.list_products():
        click.echo("WARN  Catalog is not empty, skipping demo data")
        return

    drinks = catalog_service.create_category("Drinks")
    retail = catalog_service.create_category("Retail")

    coffee = catalog_service.create_product(
        patch={"name": "Coffee beans", "unit": "kg", "cost": 20.0, "is_raw_material": True,
               "low_stock_threshold": 1.0},
        stock=5.0,
    )
    milk = catalog_service.create_product(
        patch={"name": "Milk", "unit": "l", "cost": 1.2, "is_raw_material": True,
               "low_stock_threshold": 2.0},
        stock=10.0,
    )
    catalog_service.create_product(
        patch={"name": "Bottled water", "price": 1.5, "wholesale_price": 1.0, "cost": 0.4,
               "barcode": "5000000000001", "category_id": retail.id, "low_stock_threshold": 6},
        stock=48,
    )

    shot = catalog_service.create_addon(name="Extra shot", price=0.8)
    oat = catalog_service.create_addon(name="Oat milk", price=0.5)
    extras = catalog_service.create_addon_group(name="Extras", selection_type="multiple", addon_ids=[shot.id])
    milks = catalog_service.create_addon_group(name="Milk choice", selection_type="single", addon_ids=[oat.id])

    catalog_service.create_recipe(
        name="Espresso", price=2.5, category_id=drinks.id,
        ingredients=[{"product_id": coffee.id, "quantity": 0.018}],
        addon_group_ids=[extras.id],
    )
    catalog_service.create_recipe(
        name="Latte", price=3.5, category_id=drinks.id,
        ingredients=[{"product_id": coffee.id, "quantity": 0.018},
                     {"product_id": milk.id, "quantity": 0.25}],
        addon_group_ids=[extras.id, milks.id],
    )

    party_service.create_customer(name="Walk-in regular", phone="555-0100")
    party_service.create_supplier(name="Roastery Ltd", phone="555-0199")

    click.echo("PASS Demo catalog loaded")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and active status."""
    users = auth_service.list_users()
    if not users:
        click.echo("No users found. Run 'python -m flask system init' first.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.name:<20} {user.role:<10} {status}")


@users_group.command('create')
@click.option('--name', prompt=True, help='User name')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='PIN (4-8 digits)')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@click.option('--permission', 'permissions', multiple=True, help='Permission code (custom role only)')
@with_appcontext
def create_user_cli(name, pin, role, permissions):
    """Create a new user."""
    try:
        user = auth_service.create_user(name=name, pin=pin, role=role, permissions=list(permissions))
        click.echo(f"PASS Created user '{user.name}' with role '{user.role}'")
    except AuthError as e:
        click.echo(f"FAIL {e}")


@click.group('backup')
def backup_group():
    """Snapshot export/import of business data."""


@backup_group.command('export')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@with_appcontext
def export_backup(path):
    snapshot = backup_service.export_snapshot()
    with open(path, 'w', encoding='utf-8') as fh:
        json.dump(snapshot, fh, indent=2)
    rows = sum(len(r) for r in snapshot["tables"].values())
    click.echo(f"PASS Exported {rows} rows to {path}")


@backup_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def import_backup(path, yes):
    """Replace all business data with the snapshot in PATH."""
    if not yes:
        click.confirm("WARN This will REPLACE all business data. Are you sure?", abort=True)

    with open(path, encoding='utf-8') as fh:
        data = json.load(fh)
    try:
        counts = backup_service.import_snapshot(data)
    except BackupError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Restored {sum(counts.values())} rows")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(backup_group)
