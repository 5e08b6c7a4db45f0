# Overview: Flask CLI command groups for bootstrap, directory seeding and warehouse access.

# backend/fulfillment/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Directory seeding:
# - python -m flask directory add-user --id u1 --username alice --role User
# - python -m flask directory add-warehouse --name "Main" --location "Dock 3"
# - python -m flask directory add-product --sku SKU-1 --name "Cable"
#
# Warehouse access:
# - python -m flask access assign u1 1 --level Full --default
#   Assign warehouse 1 to user u1.
# - python -m flask access list u1
#   List a user's assignments and accessible warehouses.

import click
from flask.cli import with_appcontext

from .errors import FulfillmentError
from .extensions import db
from .models import AccessLevel, Product, User, UserRoleName, Warehouse
from .services import warehouse_access_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset complete.")


# =============================================================================
# DIRECTORY COMMANDS
# =============================================================================

@click.group('directory')
def directory_group():
    """Seed users, warehouses and products."""


@directory_group.command('add-user')
@click.option('--id', 'user_id', required=True, help='External subject id')
@click.option('--username', required=True)
@click.option('--email', default=None)
@click.option('--role', type=click.Choice(UserRoleName.ALL), default=UserRoleName.USER, show_default=True)
@with_appcontext
def add_user(user_id, username, email, role):
    if db.session.get(User, user_id) is not None:
        click.echo(f"FAIL User '{user_id}' already exists")
        return

    user = User(id=user_id, username=username, email=email, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.id} ({user.username}, {user.role})")


@directory_group.command('add-warehouse')
@click.option('--name', required=True)
@click.option('--location', default=None)
@with_appcontext
def add_warehouse(name, location):
    if db.session.query(Warehouse).filter_by(name=name).first():
        click.echo(f"FAIL Warehouse '{name}' already exists")
        return

    warehouse = Warehouse(name=name, location=location, is_active=True)
    db.session.add(warehouse)
    db.session.commit()
    click.echo(f"PASS Created warehouse {warehouse.name} (ID: {warehouse.id})")


@directory_group.command('add-product')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@with_appcontext
def add_product(sku, name):
    if db.session.query(Product).filter_by(sku=sku).first():
        click.echo(f"FAIL Product with SKU '{sku}' already exists")
        return

    product = Product(sku=sku, name=name, is_active=True)
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product {product.sku} (ID: {product.id})")


# =============================================================================
# ACCESS COMMANDS
# =============================================================================

@click.group('access')
def access_group():
    """User-warehouse assignment commands."""


@access_group.command('assign')
@click.argument('user_id')
@click.argument('warehouse_id', type=int)
@click.option('--level', type=click.Choice(AccessLevel.ALL), default=AccessLevel.FULL, show_default=True)
@click.option('--default', 'is_default', is_flag=True, help='Make this the default warehouse')
@with_appcontext
def assign(user_id, warehouse_id, level, is_default):
    try:
        assignment = warehouse_access_service.assign_warehouse_to_user(
            user_id, warehouse_id, level, is_default
        )
    except FulfillmentError as e:
        click.echo(f"FAIL {e.message}")
        return

    marker = " (default)" if assignment.is_default else ""
    click.echo(f"PASS Assigned warehouse {warehouse_id} to {user_id} with {level} access{marker}")


@access_group.command('list')
@click.argument('user_id')
@with_appcontext
def list_access(user_id):
    rows = warehouse_access_service.get_user_warehouses(user_id)
    if not rows:
        click.echo(f"No warehouse assignments for {user_id}.")
    else:
        click.echo("\n" + "="*60)
        click.echo(f"{'Warehouse':<10} {'Name':<25} {'Level':<10} {'Default'}")
        click.echo("="*60)
        for row in rows:
            name = row.warehouse.name if row.warehouse else "-"
            click.echo(f"{row.warehouse_id:<10} {name:<25} {row.access_level:<10} {'Yes' if row.is_default else 'No'}")
        click.echo("="*60)

    ids = warehouse_access_service.get_accessible_warehouse_ids(user_id)
    click.echo(f"Accessible warehouses: {', '.join(str(i) for i in ids) or '-'}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(directory_group)
    app.cli.add_command(access_group)
