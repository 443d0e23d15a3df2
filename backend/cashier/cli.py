# Overview: Flask CLI command groups for bootstrap, catalog seeding, and transaction inspection.

# backend/cashier/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog seeding (the catalog itself is managed outside the checkout core):
# - python -m flask catalog add-store --name "Main Store" --address "Jl. Merdeka 1" --tax-rate 0.11
# - python -m flask catalog add-user --store-id 1 --username cashier --display-name "Cashier One"
# - python -m flask catalog add-product --store-id 1 --sku TEA-01 --name "Tea" --price-cents 1000 --stock 25
# - python -m flask catalog list --store-id 1
# - python -m flask catalog low-stock --store-id 1
#
# Transaction inspection:
# - python -m flask transactions list --store-id 1 --start 2026-10-01 --end 2026-10-31
# - python -m flask transactions show <transaction_id>
# - python -m flask transactions receipt <transaction_id>
#   Print the receipt text (reprint).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Store, User, Product
from .errors import CheckoutError
from .money import format_cents, rate_to_bps
from .services import transaction_service, receipt_service, stock_service
from .time_utils import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('catalog')
def catalog_group():
    """Catalog seeding and inspection."""


@catalog_group.command('add-store')
@click.option('--name', required=True)
@click.option('--address', default='')
@click.option('--phone', default=None)
@click.option('--tax-rate', default=None, help='Fractional flat tax rate, e.g. 0.11')
@with_appcontext
def add_store(name, address, phone, tax_rate):
    """Create a store."""
    try:
        bps = rate_to_bps(tax_rate) if tax_rate is not None else current_app.config["DEFAULT_TAX_RATE_BPS"]
    except CheckoutError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    store = Store(name=name, address=address, phone=phone, tax_rate_bps=bps)
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store: {store.name} (ID: {store.id}, tax {bps} bps)")


@catalog_group.command('add-user')
@click.option('--store-id', type=int, required=True)
@click.option('--username', required=True)
@click.option('--display-name', default=None)
@with_appcontext
def add_user(store_id, username, display_name):
    """Create a cashier for a store."""
    if db.session.get(Store, store_id) is None:
        click.echo(f"FAIL Store {store_id} not found")
        raise SystemExit(1)
    user = User(store_id=store_id, username=username, display_name=display_name, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {user.username} (ID: {user.id})")


@catalog_group.command('add-product')
@click.option('--store-id', type=int, required=True)
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=click.IntRange(min=0), required=True)
@click.option('--stock', type=click.IntRange(min=0), default=0)
@click.option('--category', default=None)
@with_appcontext
def add_product(store_id, sku, name, price_cents, stock, category):
    """Create a product with its opening stock."""
    if db.session.get(Store, store_id) is None:
        click.echo(f"FAIL Store {store_id} not found")
        raise SystemExit(1)
    product = Product(
        store_id=store_id,
        sku=sku,
        name=name,
        category=category,
        price_cents=price_cents,
        stock=stock,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, stock {product.stock})")


@catalog_group.command('list')
@click.option('--store-id', type=int, required=True)
@with_appcontext
def list_products(store_id):
    """List products with price and stock."""
    products = db.session.query(Product).filter_by(store_id=store_id).order_by(Product.id).all()
    if not products:
        click.echo("No products found.")
        return
    prefix = current_app.config["RECEIPT_CURRENCY_PREFIX"]
    for p in products:
        status = "active" if p.is_active else "inactive"
        click.echo(f"{p.id:>5}  {p.sku:<16} {p.name:<30} {format_cents(p.price_cents, prefix):>14}  stock={p.stock:<6} {status}")


@catalog_group.command('low-stock')
@click.option('--store-id', type=int, required=True)
@click.option('--threshold', type=int, default=None, help='Defaults to LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock(store_id, threshold):
    """List active products at or below the low-stock threshold."""
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    products = stock_service.low_stock(store_id, threshold)
    if not products:
        click.echo(f"No products at or below {threshold} units.")
        return
    for p in products:
        flag = "OUT" if p.stock <= 0 else "LOW"
        click.echo(f"{flag:<4} {p.id:>5}  {p.name:<30} stock={p.stock}")


@click.group('transactions')
def transactions_group():
    """Committed transaction inspection."""


@transactions_group.command('list')
@click.option('--store-id', type=int, required=True)
@click.option('--start', default=None, help='ISO-8601, inclusive')
@click.option('--end', default=None, help='ISO-8601, inclusive')
@click.option('--limit', type=click.IntRange(min=1), default=50)
@with_appcontext
def list_transactions(store_id, start, end, limit):
    """List transactions for a store, newest first."""
    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_iso_datetime(end)
    except ValueError:
        click.echo("FAIL --start/--end must be ISO-8601")
        raise SystemExit(1)

    rows = transaction_service.list_transactions(store_id, start=start_dt, end=end_dt, limit=limit)
    if not rows:
        click.echo("No transactions found.")
        return
    prefix = current_app.config["RECEIPT_CURRENCY_PREFIX"]
    for tx in rows:
        click.echo(
            f"{tx.transaction_number}  {tx.id}  {tx.transaction_date:%Y-%m-%d %H:%M}  "
            f"{tx.payment_method:<8} {tx.status:<9} {format_cents(tx.total_cents, prefix):>14}"
        )


@transactions_group.command('show')
@click.argument('transaction_id')
@with_appcontext
def show_transaction(transaction_id):
    """Show one transaction with its items."""
    try:
        tx = transaction_service.get_transaction(transaction_id)
    except CheckoutError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    data = tx.to_dict()
    for key in ("id", "transaction_number", "status", "payment_method", "subtotal_cents",
                "discount_cents", "tax_cents", "total_cents", "transaction_date"):
        click.echo(f"{key:<20} {data[key]}")
    for item in data["items"]:
        click.echo(f"  #{item['line_number']} {item['name']} x{item['quantity']} @ {item['price_cents']}")


@transactions_group.command('receipt')
@click.argument('transaction_id')
@with_appcontext
def print_receipt(transaction_id):
    """Print the receipt text for a completed transaction."""
    try:
        tx = transaction_service.get_transaction(transaction_id)
        payload = receipt_service.render_for_transaction(tx)
    except CheckoutError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(payload["text"], nl=False)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(transactions_group)
