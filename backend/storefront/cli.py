# Overview: Flask CLI command groups for bootstrap, batch jobs, and stock maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to storefront (PowerShell: $env:FLASK_APP="storefront").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and seeds the five loyalty tiers.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username admin --role ADMIN
#   Create a user on the lowest tier.
#
# Tiers:
# - python -m flask tiers recalculate [--year 2025] [--chunk-size 1000]
#   Annual batch: reset total_spent to the year's settled spend and re-resolve tiers.
#
# Stock:
# - python -m flask stock adjust --product-id 7 --delta -2 --reason "Damaged"
#   Manual correction; writes an ADJUST history row.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .errors import OrderCoreError
from .services import stock_ledger, tier_service
from .services.tier_recalculation_service import recalculate_tiers


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables and seed the tier reference table (safe to re-run)."""
    db.create_all()
    tiers = tier_service.seed_tiers()
    db.session.commit()
    click.echo(f"OK  Tables ready, {len(tiers)} tiers seeded")


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
    tier_service.seed_tiers()
    db.session.commit()
    click.echo("OK  Database reset complete")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--username', required=True)
@click.option('--email', default=None)
@click.option('--role', type=click.Choice(['USER', 'ADMIN']), default='USER')
@with_appcontext
def create_user_cmd(username, email, role):
    """Create a user on the lowest tier."""
    if db.session.query(User).filter_by(username=username).first():
        raise click.ClickException(f"User {username!r} already exists")
    user = User(username=username, email=email, role=role, tier=tier_service.resolve_tier(0))
    db.session.add(user)
    db.session.commit()
    click.echo(f"OK  Created user {user.id} ({username}, {role})")


@click.group('tiers')
def tiers_group():
    """Loyalty tier batch jobs."""


@tiers_group.command('recalculate')
@click.option('--year', type=int, default=None, help='Spend year (default: last year)')
@click.option('--chunk-size', type=int, default=None, help='Users per transaction')
@with_appcontext
def recalculate_tiers_cmd(year, chunk_size):
    """Re-derive every user's tier from settled annual spend."""
    result = recalculate_tiers(year, chunk_size=chunk_size)
    click.echo(
        f"Tier recalculation {result.year}: processed={result.processed} "
        f"upgraded={result.upgraded} downgraded={result.downgraded} "
        f"unchanged={result.unchanged} errors={result.errors}"
    )
    if result.errors:
        raise SystemExit(1)


@click.group('stock')
def stock_group():
    """Stock maintenance commands."""


@stock_group.command('adjust')
@click.option('--product-id', type=int, required=True)
@click.option('--delta', type=int, required=True)
@click.option('--reason', required=True)
@with_appcontext
def adjust_stock_cmd(product_id, delta, reason):
    """Apply a manual stock correction."""
    try:
        record = stock_ledger.adjust_stock(product_id, delta, reason)
    except OrderCoreError as e:
        raise click.ClickException(f"{e.code}: {e.message}")
    click.echo(f"OK  Product {product_id}: {record.before_quantity} -> {record.after_quantity}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(tiers_group)
    app.cli.add_command(stock_group)
