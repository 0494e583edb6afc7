# Overview: Flask CLI command groups for schema bootstrap and edition operations.

# backend/edition_ledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to edition_ledger (PowerShell: $env:FLASK_APP="edition_ledger").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Edition operations:
# - python -m flask editions assign --product-id 8123456789
#   Recompute contiguous edition numbers for one product.
# - python -m flask editions assign --all
#   Recompute for every product with line items.
# - python -m flask editions verify [--product-id 8123456789]
#   Read-only drift report; exits 1 if any product deviates.
# - python -m flask editions revoke 42 --reason refunded --notes "Refund #1001"
#   Revoke a unit's edition and close the gap.
# - python -m flask editions reactivate 42
#   Return a revoked unit to the edition.
# - python -m flask editions history 42
#   Print the event log for one unit.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import edition_service, event_service, revocation_service, verification_service
from .services.edition_service import EditionStoreError
from .validation import REVOCATION_REASONS, ValidationError, normalize_product_id
from .time_utils import to_utc_z


SOURCE_CLI = "cli"


@click.group('system')
def system_group():
    """Schema bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables. Safe to run repeatedly."""
    db.create_all()
    click.echo("PASS Tables ready.")


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


@click.group('editions')
def editions_group():
    """Edition numbering operations."""


@editions_group.command('assign')
@click.option('--product-id', help='Product to renumber')
@click.option('--all', 'all_products', is_flag=True, help='Renumber every product')
@with_appcontext
def assign_cli(product_id, all_products):
    """Recompute contiguous edition numbers."""
    if bool(product_id) == all_products:
        raise click.UsageError("Pass exactly one of --product-id or --all")

    try:
        if all_products:
            results = edition_service.assign_all_products(source=SOURCE_CLI)
        else:
            results = [edition_service.assign_edition_numbers(normalize_product_id(product_id), source=SOURCE_CLI)]
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint='--product-id')
    except EditionStoreError as e:
        raise click.ClickException(str(e))

    for result in results:
        click.echo(
            f"PASS product {result.product_id}: {result.edition_total} editions, {result.writes} rows written"
        )
        for change in result.changes:
            click.echo(
                f"  line item {change.line_item_id}: "
                f"{change.previous_number if change.previous_number is not None else '-'} -> {change.edition_number}"
            )


@editions_group.command('verify')
@click.option('--product-id', help='Limit to one product')
@with_appcontext
def verify_cli(product_id):
    """Report products whose stored numbering deviates (read-only)."""
    if product_id:
        try:
            reports = [verification_service.verify_product(normalize_product_id(product_id))]
        except ValidationError as e:
            raise click.BadParameter(str(e), param_hint='--product-id')
        checked = 1
    else:
        summary = verification_service.verify_all_products()
        reports = summary.inconsistent
        checked = summary.products_checked

    inconsistent = [r for r in reports if not r.is_consistent]
    if not inconsistent:
        click.echo(f"PASS {checked} product(s) consistent.")
        return

    for report in inconsistent:
        click.echo(f"FAIL product {report.product_id} ({report.active_count} active):")
        if report.missing_numbers:
            click.echo(f"  missing numbers: {', '.join(str(n) for n in report.missing_numbers)}")
        if report.unexpected_numbers:
            click.echo(f"  unexpected numbers: {', '.join(str(n) for n in report.unexpected_numbers)}")
        for issue in report.issues:
            click.echo(f"  [{issue.type}] {issue.description}")
    click.get_current_context().exit(1)


@editions_group.command('revoke')
@click.argument('line_item_id', type=int)
@click.option('--reason', type=click.Choice(REVOCATION_REASONS), default='manual', show_default=True)
@click.option('--notes', help='Note stored on the status event')
@with_appcontext
def revoke_cli(line_item_id, reason, notes):
    """Revoke a unit's edition and close the gap."""
    try:
        result = revocation_service.revoke_line_item(
            line_item_id, reason=reason, notes=notes, source=SOURCE_CLI,
        )
    except EditionStoreError as e:
        raise click.ClickException(str(e))

    if not result.found:
        click.echo(f"SKIP line item {line_item_id} not found.")
    elif not result.changed:
        click.echo(f"SKIP line item {line_item_id} already removed.")
    else:
        total = result.assignment.edition_total if result.assignment else 0
        click.echo(
            f"PASS revoked line item {line_item_id} (released #{result.previous_edition_number}); "
            f"{total} editions remain."
        )


@editions_group.command('reactivate')
@click.argument('line_item_id', type=int)
@with_appcontext
def reactivate_cli(line_item_id):
    """Return a revoked unit to the edition."""
    try:
        result = revocation_service.reactivate_line_item(line_item_id, source=SOURCE_CLI)
    except EditionStoreError as e:
        raise click.ClickException(str(e))

    if not result.found:
        click.echo(f"SKIP line item {line_item_id} not found.")
    elif not result.changed:
        click.echo(f"SKIP line item {line_item_id} already active.")
    else:
        total = result.assignment.edition_total if result.assignment else 0
        click.echo(f"PASS reactivated line item {line_item_id}; {total} editions.")


@editions_group.command('history')
@click.argument('line_item_id', type=int)
@with_appcontext
def history_cli(line_item_id):
    """Print the event log for one unit."""
    events = event_service.get_edition_history(line_item_id)
    if not events:
        click.echo(f"No events for line item {line_item_id}.")
        return

    click.echo(f"{'OCCURRED':<22} {'EVENT':<20} {'EDITION':<8} {'SOURCE':<12} NOTE")
    for ev in events:
        edition = f"#{ev.edition_number}" if ev.edition_number is not None else "-"
        click.echo(
            f"{to_utc_z(ev.occurred_at):<22} {ev.event_type:<20} {edition:<8} {ev.source:<12} {ev.note or ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(editions_group)
