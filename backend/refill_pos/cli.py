# Overview: Flask CLI command groups for bootstrap, inspection, and register sync.

# backend/refill_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to refill_pos (PowerShell: $env:FLASK_APP="refill_pos").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask products seed
#   Insert the demo ice / gas / water catalog (upsert by id, safe to repeat).
# - python -m flask products list [--all]
#
# Containers:
# - python -m flask containers pending [--customer-id C1]
#   List containers still out on deposit.
#
# Register (client side, talks to a running server over HTTP):
# - python -m flask register status --state-db sqlite:///register_state.sqlite3
#   Show the cart and the offline queue stored for a register.
# - python -m flask register drain --server http://127.0.0.1:5000
#   Deliver the register's offline queue now.

import click
from flask.cli import with_appcontext

from .config import RegisterConfig
from .extensions import db
from .services import products_service, container_service

DEMO_PRODUCTS = [
    {"id": "ice-cube-bag", "name": "Ice cubes (bag)", "category": "ice", "unit": "bag",
     "price": 20, "stock": 100, "low_stock_threshold": 10},
    {"id": "ice-block", "name": "Ice block", "category": "ice", "unit": "block",
     "price": 35, "stock": 40, "low_stock_threshold": 5},
    {"id": "gas-15kg", "name": "Gas cylinder 15 kg", "category": "gas", "unit": "cylinder",
     "price": 300, "stock": 20, "empty_stock": 5, "low_stock_threshold": 3, "deposit_amount": 200},
    {"id": "gas-48kg", "name": "Gas cylinder 48 kg", "category": "gas", "unit": "cylinder",
     "price": 1100, "stock": 6, "low_stock_threshold": 2, "deposit_amount": 1500, "outright_price": 3000},
    {"id": "water-20l", "name": "Drinking water 20 L", "category": "water", "unit": "bottle",
     "price": 15, "stock": 60, "empty_stock": 10, "low_stock_threshold": 10, "deposit_amount": 50},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def system_init():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Schema ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask products seed' for demo data.")


@click.group('products')
def products_group():
    """Catalog inspection and demo data."""


@products_group.command('seed')
@with_appcontext
def seed_products():
    """Insert or refresh the demo catalog."""
    for payload in DEMO_PRODUCTS:
        product, created = products_service.upsert_product(payload)
        click.echo(f"{'CREATE' if created else 'UPDATE'}  {product['id']}: {product['name']}")


@products_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include inactive products')
@with_appcontext
def list_products(show_all):
    """List products with stock levels."""
    products = products_service.list_products(active_only=not show_all)
    if not products:
        click.echo("No products.")
        return
    for p in products:
        flag = "" if p["is_active"] else " [inactive]"
        low = " LOW" if p["stock"] <= p["low_stock_threshold"] else ""
        empties = f" empties={p['empty_stock']}" if p["deposit_amount"] else ""
        click.echo(f"{p['id']:<16} {p['name']:<28} price={p['price']:g} stock={p['stock']}{empties}{low}{flag}")


@click.group('containers')
def containers_group():
    """Outstanding deposit containers."""


@containers_group.command('pending')
@click.option('--customer-id', default=None)
@with_appcontext
def pending_containers(customer_id):
    """List containers still out on deposit."""
    records = container_service.list_outstanding(status="pending", customer_id=customer_id)
    if not records:
        click.echo("No outstanding containers.")
        return
    for r in records:
        click.echo(
            f"{r['id']} sale={r['sale_id']} product={r['product_id']} qty={r['quantity']} "
            f"customer={r['customer_id'] or '-'} refund={r['refund_amount']:g}"
        )


@click.group('register')
def register_group():
    """Inspect and sync a register's local state."""


def _register_config(server, state_db) -> RegisterConfig:
    overrides = {}
    if server:
        overrides["server_url"] = server
    if state_db:
        overrides["state_db"] = state_db
    return RegisterConfig(**overrides)


@register_group.command('status')
@click.option('--state-db', default=None, help='SQLAlchemy URL of the register state file')
def register_status(state_db):
    """Show the stored cart and offline queue."""
    from .register.cart import Cart
    from .register.storage import LocalStore

    store = LocalStore(_register_config(None, state_db).state_db)
    try:
        cart = Cart.from_dict(store.load_cart())
        queue = store.load_queue()
    finally:
        store.close()

    click.echo(f"Cart: {len(cart)} line(s), total={cart.total():g}, deposits={cart.deposit_total():g}")
    click.echo(f"Offline queue: {len(queue)} operation(s)")
    for op in queue:
        click.echo(f"  {op['enqueued_at']}  {op['type']:<15} {op['id']} retries={op['retries']}")


@register_group.command('drain')
@click.option('--server', default=None, help='Base URL of the remote store')
@click.option('--state-db', default=None, help='SQLAlchemy URL of the register state file')
def register_drain(server, state_db):
    """Deliver the offline queue now."""
    from .register.notifications import InlineDispatcher
    from .register.session import RegisterSession

    session = RegisterSession.from_config(_register_config(server, state_db), dispatcher=InlineDispatcher())
    try:
        if not session.remote.ping():
            raise click.ClickException("Server is not reachable; queue left untouched.")
        report = session.sync()
    finally:
        session.close()

    click.echo(f"Delivered {report.delivered_count} operation(s).")
    if report.sync_failed:
        raise click.ClickException(f"{len(report.failed)} operation(s) still queued after retries.")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(containers_group)
    app.cli.add_command(register_group)
