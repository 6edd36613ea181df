# Overview: Flask CLI command groups for bootstrap, catalog upkeep, and statistics maintenance.

# backend/hallqueue/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to hallqueue (PowerShell: $env:FLASK_APP="hallqueue").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (dev/test; use `flask db upgrade` in production).
#
# Service catalog:
# - python -m flask catalog list [--active-only]
# - python -m flask catalog add --name "Barangay Clearance" --template clearance --price-cents 5000 [--requires-purpose]
# - python -m flask catalog toggle 3
#   Flip availability of a catalog entry.
#
# Statistics:
# - python -m flask stats show [--purok "Purok 1"]
# - python -m flask stats reconcile
#   Recompute every snapshot; prints drift per dimension. Schedule nightly.
#
# Queue:
# - python -m flask queue display [--done-limit 10]

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import catalog_service, queue_service, statistics_service
from .validation import EngineError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Tables created")


# =============================================================================
# SERVICE CATALOG COMMANDS
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Service catalog commands."""


@catalog_group.command('list')
@click.option('--active-only', is_flag=True, help='Hide inactive entries')
@with_appcontext
def list_catalog(active_only):
    """List catalog entries."""
    services = catalog_service.list_service_types(active_only=active_only)

    if not services:
        click.echo("No service types found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<36} {'Price':>10} {'Purpose':<8} {'Active'}")
    click.echo("="*80)

    for s in services:
        price = f"{s.price_cents / 100:.2f}"
        purpose = "Yes" if s.requires_purpose else "No"
        active = "Yes" if s.is_active else "No"
        click.echo(f"{s.id:<5} {s.name:<36} {price:>10} {purpose:<8} {active}")

    click.echo("="*80 + "\n")


@catalog_group.command('add')
@click.option('--name', required=True, help='Display name (unique)')
@click.option('--template', 'template_key', required=True, help='Document template key')
@click.option('--price-cents', type=int, default=0, show_default=True, help='Price in minor units')
@click.option('--requires-purpose', is_flag=True, help='Kiosk must ask for a purpose')
@with_appcontext
def add_catalog(name, template_key, price_cents, requires_purpose):
    """Create a catalog entry."""
    try:
        service_type = catalog_service.create_service_type({
            "name": name,
            "template_key": template_key,
            "price_cents": price_cents,
            "requires_purpose": requires_purpose,
        }, actor="cli")
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created service type {service_type.name} (ID: {service_type.id})")


@catalog_group.command('toggle')
@click.argument('service_type_id', type=int)
@with_appcontext
def toggle_catalog(service_type_id):
    """Activate or deactivate a catalog entry."""
    try:
        service_type = catalog_service.toggle_service_active(service_type_id, actor="cli")
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    state = "active" if service_type.is_active else "inactive"
    click.echo(f"PASS {service_type.name} is now {state}")


# =============================================================================
# STATISTICS COMMANDS
# =============================================================================

@click.group('stats')
def stats_group():
    """Statistics snapshot commands."""


@stats_group.command('show')
@click.option('--purok', default=None, help='Purok name; omit for the whole population')
@with_appcontext
def show_stats(purok):
    """Print a snapshot as JSON."""
    click.echo(json.dumps(statistics_service.get_snapshot(purok), indent=2, sort_keys=True))


@stats_group.command('reconcile')
@with_appcontext
def reconcile_stats():
    """Recompute every snapshot and report drift."""
    reports = statistics_service.reconcile_snapshots(actor="cli")

    drifted = 0
    for report in reports:
        if report["drift"]:
            drifted += 1
            click.echo(f"WARN  {report['dimension']}: {len(report['drift'])} bucket(s) drifted")
            for bucket, values in report["drift"].items():
                click.echo(f"      {bucket}: cached={values['cached']} actual={values['actual']}")
        elif report["created"]:
            click.echo(f"PASS {report['dimension']}: created")
        else:
            click.echo(f"PASS {report['dimension']}: in sync")

    click.echo(f"\nDONE {len(reports)} dimension(s) reconciled, {drifted} drifted")


# =============================================================================
# QUEUE COMMANDS
# =============================================================================

@click.group('queue')
def queue_group():
    """Queue inspection commands."""


@queue_group.command('display')
@click.option('--done-limit', type=int, default=None, help='Recently done tickets to show')
@with_appcontext
def queue_display(done_limit):
    """Print the public display feed."""
    data = queue_service.get_display_data(done_limit)
    for section in ("serving", "waiting", "done"):
        click.echo(f"\n{section.upper()} ({len(data[section])})")
        for ticket in data[section]:
            counter = f" @ counter {ticket['counter_number']}" if ticket["counter_number"] else ""
            click.echo(f"  {ticket['queue_number']}{counter}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(stats_group)
    app.cli.add_command(queue_group)
