# Overview: Flask CLI command group for seeding and inspecting the business store.

# backend/bizmanager/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "bizmanager:create_app" (PowerShell: $env:FLASK_APP="bizmanager:create_app").
# - Use: python -m flask store <command> [options]
#
# - python -m flask store seed [--force]
#   Load the sample catalogue, customers and invoices (empty scopes only unless --force).
# - python -m flask store summary [--range month]
#   Print dashboard totals.
# - python -m flask store low-stock
#   List products at or below their low stock threshold.
# - python -m flask store overdue
#   List open invoices past their due date.
# - python -m flask store next-number
#   Print the invoice number the next invoice would get.
# - python -m flask store flush
#   Drain pending writes to the persistence backend.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import StoreError
from .extensions import STORE_EXTENSION_KEY
from .services.reporting_service import VALID_RANGES


def _store():
    store = current_app.extensions[STORE_EXTENSION_KEY]
    if not store.is_ready:
        raise click.ClickException(f"Business store is {store.state}; check persistence settings")
    return store


def _money(cents: int, currency: str) -> str:
    return f"{currency} {cents // 100:,}.{cents % 100:02d}" if cents >= 0 else f"-{_money(-cents, currency)}"


@click.group('store')
def store_group():
    """Business store inspection and maintenance commands."""


@store_group.command('seed')
@click.option('--force', is_flag=True, help='Seed even when the scope already has data')
@with_appcontext
def seed_store(force):
    """Create the sample catalogue, customers and invoices."""
    from .services.seed_service import seed_sample_data

    store = _store()
    if not store.is_empty and not force:
        click.echo("SKIP  Scope already has data (use --force to seed anyway)")
        return
    try:
        counts = seed_sample_data(store)
    except StoreError as exc:
        raise click.ClickException(f"Seeding failed: {exc}")
    store.flush()
    click.echo(
        f"PASS Seeded {counts['products']} products, {counts['customers']} customers, "
        f"{counts['invoices']} invoices"
    )


@store_group.command('summary')
@click.option('--range', 'time_range', type=click.Choice(VALID_RANGES), help='Dashboard time range')
@with_appcontext
def summary(time_range):
    """Print dashboard totals."""
    store = _store()
    data = store.get_dashboard_summary(time_range)
    currency = data["currency"]

    click.echo("\n" + "=" * 60)
    click.echo(f"{store.profile.company_name} ({time_range or 'all time'})")
    click.echo("=" * 60)
    click.echo(f"Sales:        {_money(data['total_sales_cents'], currency)}")
    click.echo(f"Expenses:     {_money(data['total_expenses_cents'], currency)}")
    click.echo(f"Profit:       {_money(data['profit_cents'], currency)}")
    click.echo(f"Outstanding:  {_money(data['outstanding_cents'], currency)} "
               f"({data['pending_invoice_count']} open, {data['overdue_invoice_count']} overdue)")
    click.echo(f"Inventory:    {_money(data['inventory_value_cents'], currency)} "
               f"({data['low_stock_count']} low stock)")
    if data["top_products"]:
        click.echo("\nTop products:")
        for row in data["top_products"]:
            click.echo(f"  {row['sku']:<12} {row['name']:<30} {row['quantity_sold']:>6}")
    click.echo("=" * 60 + "\n")


@store_group.command('low-stock')
@with_appcontext
def low_stock():
    """List products at or below their low stock threshold."""
    products = _store().get_low_stock_products()
    if not products:
        click.echo("No low stock products.")
        return
    click.echo(f"{'SKU':<12} {'Name':<30} {'Qty':>6} {'Threshold':>10}")
    click.echo("-" * 62)
    for p in products:
        click.echo(f"{p.sku:<12} {p.name:<30} {p.quantity:>6} {p.low_stock_threshold:>10}")


@store_group.command('overdue')
@with_appcontext
def overdue():
    """List open invoices past their due date."""
    store = _store()
    invoices = store.get_overdue_invoices()
    if not invoices:
        click.echo("No overdue invoices.")
        return
    currency = store.profile.currency
    click.echo(f"{'Number':<14} {'Customer':<25} {'Due':<12} {'Balance':>16}")
    click.echo("-" * 70)
    for inv in invoices:
        due = inv.due_date.strftime("%Y-%m-%d") if inv.due_date else "-"
        click.echo(f"{inv.invoice_number:<14} {inv.customer_name:<25} {due:<12} "
                   f"{_money(inv.balance_cents, currency):>16}")


@store_group.command('next-number')
@with_appcontext
def next_number():
    """Print the next invoice number."""
    click.echo(_store().generate_invoice_number())


@store_group.command('flush')
@with_appcontext
def flush():
    """Drain pending writes to the persistence backend."""
    store = current_app.extensions[STORE_EXTENSION_KEY]
    pending = store.pending_writes
    if store.flush():
        click.echo(f"PASS Flushed {pending} pending write(s)")
    else:
        raise click.ClickException(
            f"{store.pending_writes} write(s) still pending: {store.last_persistence_error}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(store_group)
