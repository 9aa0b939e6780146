# Overview: Flask CLI command groups for order sweeps, outbox maintenance and inspection.

# backend/settlement/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Orders:
# - python -m flask orders expire-stale [--hours 24]
#   Cancel PENDING orders older than the window (abandoned checkouts).
#
# Settlement outbox:
# - python -m flask outbox pending [--limit 50]
#   List event publications whose listener has not completed.
# - python -m flask outbox republish [--max-attempts 5]
#   Re-dispatch incomplete publications that still have attempts left.
#
# Membership:
# - python -m flask plans list
#   List membership plans with their processor prices.
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask import current_app
from flask.cli import with_appcontext

from .container import get_services
from .extensions import db
from .time_utils import hours_ago


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('expire-stale')
@click.option('--hours', type=int, default=None, help='Age in hours (default: STALE_ORDER_HOURS)')
@with_appcontext
def expire_stale(hours):
    """Cancel PENDING orders that never completed checkout."""
    hours = hours if hours is not None else current_app.config["STALE_ORDER_HOURS"]
    if hours < 1:
        raise click.BadParameter("hours must be at least 1", param_hint="--hours")

    cutoff = hours_ago(hours)
    cancelled = get_services().ledger.expire_stale(cutoff)
    click.echo(f"PASS Cancelled {cancelled} stale pending order(s) older than {hours}h")


@click.group('outbox')
def outbox_group():
    """Settlement outbox commands."""


@outbox_group.command('pending')
@click.option('--limit', type=int, default=50, help='Max rows to show')
@with_appcontext
def outbox_pending(limit):
    """List incomplete event publications."""
    rows = get_services().bus.pending(limit=limit)
    if not rows:
        click.echo("No pending publications.")
        return

    click.echo(f"{'ID':<6} {'EVENT':<14} {'LISTENER':<32} {'ATTEMPTS':<9} LAST ERROR")
    for row in rows:
        click.echo(
            f"{row.id:<6} {row.event_type:<14} {row.listener:<32} {row.attempts:<9} {row.last_error or ''}"
        )


@outbox_group.command('republish')
@click.option('--max-attempts', type=int, default=None, help='Attempt ceiling (default: OUTBOX_MAX_ATTEMPTS)')
@with_appcontext
def outbox_republish(max_attempts):
    """Re-dispatch incomplete publications."""
    max_attempts = max_attempts if max_attempts is not None else current_app.config["OUTBOX_MAX_ATTEMPTS"]
    result = get_services().bus.republish_incomplete(max_attempts)
    click.echo(f"PASS Delivered {result['delivered']}, failed {result['failed']}")


@click.group('plans')
def plans_group():
    """Membership plan inspection."""


@plans_group.command('list')
@with_appcontext
def list_plans():
    plans = get_services().membership.list_plans()
    if not plans:
        click.echo("No plans configured.")
        return

    for plan in plans:
        state = "active" if plan.active else "inactive"
        click.echo(
            f"{plan.id:<4} {plan.slug:<24} {plan.name:<32} {state:<9} "
            f"CZK={plan.processor_price_czk or '-'} EUR={plan.processor_price_eur or '-'}"
        )


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

    click.echo("PASS Database reset complete.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(orders_group)
    app.cli.add_command(outbox_group)
    app.cli.add_command(plans_group)
    app.cli.add_command(system_group)
