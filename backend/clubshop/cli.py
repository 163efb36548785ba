# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/clubshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent: creates DATA_DIR, the three collection files and the default catalog.
#
# Member inspection/approval:
# - python -m flask users list [--pending]
#   List members with owner/approval status.
# - python -m flask users approve member@example.com
#   Approve a member waiting on the approval gate.
#
# Catalog:
# - python -m flask merch list
#   List every item, paused ones included.
# - python -m flask merch pause <item-id> / merch publish <item-id>
#   Hide an item from the storefront, or show it again.
#
# Orders:
# - python -m flask orders list [--open]
#   List orders, newest first.
# - python -m flask orders fulfill <order-id>
#   Mark an order fulfilled as OWNER_EMAIL (idempotent).

import os

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import store
from .storage import COLLECTION_FILES
from .services import auth_service, merch_service, order_service
from .services.auth_service import ForbiddenError
from .validation import ValidationError, NotFoundError, normalize_email


def _owner_actor() -> dict:
    return {"email": (current_app.config.get("OWNER_EMAIL") or "").strip().lower()}


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the data directory.

    Creates:
    - DATA_DIR and DATA_DIR/uploads
    - users.json, orders.json, merch-items.json (empty arrays if missing)
    - The default catalog, when MERCH_SEED_ENABLED and no catalog exists
    """
    click.echo("START Initializing club shop data...")

    if current_app.config.get("MERCH_SEED_ENABLED"):
        seeded = merch_service.seed_default_items()
        if seeded:
            click.echo(f"PASS Seeded {len(seeded)} default item(s)")
        else:
            click.echo("WARN  Catalog already has items, skipping seed...")

    # After seeding: an existing merch-items.json suppresses the seed
    store.ensure_collections()
    counts = store.counts()
    for name, filename in COLLECTION_FILES.items():
        click.echo(f"PASS {filename}: {counts[name]} record(s)")

    os.makedirs(store.uploads_dir, exist_ok=True)
    click.echo(f"PASS Uploads directory: {store.uploads_dir}")

    click.echo("\n" + "="*60)
    click.echo("DONE Club shop initialized")
    click.echo("="*60)
    click.echo(f"\nData directory: {store.data_dir}")
    click.echo(f"Owner: {current_app.config['OWNER_EMAIL']}")
    click.echo("")


@click.group('users')
def users_group():
    """Member inspection and approval."""


@users_group.command('list')
@click.option('--pending', is_flag=True, help='Only members waiting for approval')
@with_appcontext
def list_users(pending):
    """List all members."""
    users = auth_service.list_users()
    if pending:
        users = [u for u in users if not auth_service.is_approved(u)]

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Email':<35} {'Name':<30} {'Initials':<9} {'Approved':<9} {'Owner'}")
    click.echo("="*100)

    for user in users:
        shape = auth_service.user_public_shape(user)
        approved_str = "Yes" if shape["approved"] else "No"
        owner_str = "Yes" if shape["isOwner"] else ""
        click.echo(
            f"{shape['email'] or '':<35} {shape['name'] or '':<30} {shape['initials'] or '':<9} "
            f"{approved_str:<9} {owner_str}"
        )

    click.echo("="*100 + "\n")


@users_group.command('approve')
@click.argument('email')
@with_appcontext
def approve_user_cli(email):
    """Approve a member by email."""
    normalized = normalize_email(email)
    match = next(
        (u for u in auth_service.list_users() if (u.get("email") or "").lower() == normalized),
        None,
    )
    if normalized is None or match is None:
        click.echo(f"FAIL No user with email '{email}'")
        raise SystemExit(1)

    try:
        user = auth_service.approve_user(match["id"], _owner_actor())
    except (ForbiddenError, NotFoundError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Approved {user['email']} (approved at {user.get('approvedAt')})")


@click.group('merch')
def merch_group():
    """Catalog inspection and publishing."""


@merch_group.command('list')
@with_appcontext
def list_merch():
    """List every catalog item, paused ones included."""
    items = merch_service.list_all_items()
    if not items:
        click.echo("No items found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<32} {'Name':<25} {'Price':>9} {'2XL':>9}  {'Sizes':<6} {'Status'}")
    click.echo("="*100)
    for item in items:
        two_xl = f"{item['twoXlPrice']:.2f}" if item["twoXlPrice"] is not None else "-"
        sizes = "Yes" if item["sizes"] else "No"
        status = "PAUSED" if item["paused"] else "LIVE"
        click.echo(f"{item['id']:<32} {item['name']:<25} {item['price']:>9.2f} {two_xl:>9}  {sizes:<6} {status}")
    click.echo("="*100 + "\n")


def _set_paused(item_id: str, paused: bool) -> None:
    try:
        item = merch_service.update_item(item_id, {"paused": paused})
    except (ValidationError, NotFoundError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS {item['name']} is now {'paused' if item['paused'] else 'published'}")


@merch_group.command('pause')
@click.argument('item_id')
@with_appcontext
def pause_merch(item_id):
    """Hide an item from the storefront."""
    _set_paused(item_id, True)


@merch_group.command('publish')
@click.argument('item_id')
@with_appcontext
def publish_merch(item_id):
    """Show a paused item again."""
    _set_paused(item_id, False)


@click.group('orders')
def orders_group():
    """Order inspection and fulfillment."""


@orders_group.command('list')
@click.option('--open', 'open_only', is_flag=True, help='Only open orders')
@with_appcontext
def list_orders_cli(open_only):
    """List orders, newest first."""
    try:
        if open_only:
            orders = order_service.list_orders(_owner_actor())["openOrders"]
        else:
            orders = order_service.list_all_orders(_owner_actor())
    except ForbiddenError as e:
        click.echo(f"FAIL {e} (is OWNER_EMAIL set?)")
        raise SystemExit(1)

    if not orders:
        click.echo("No orders found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<38} {'Item':<22} {'Size':<5} {'Qty':>4} {'Total':>9}  {'Member':<20} {'Status'}")
    click.echo("="*110)
    for o in orders:
        status = "FULFILLED" if o["fulfilled"] else "OPEN"
        click.echo(
            f"{o.get('id', ''):<38} {o.get('itemName', ''):<22} {o.get('selectedSize') or '-':<5} "
            f"{o.get('quantity', 0):>4} {float(o.get('totalPrice') or 0):>9.2f}  "
            f"{o.get('userName', ''):<20} {status}"
        )
    click.echo("="*110 + "\n")


@orders_group.command('fulfill')
@click.argument('order_id')
@with_appcontext
def fulfill_order_cli(order_id):
    """Mark an order fulfilled on behalf of the owner."""
    try:
        order = order_service.fulfill_order(order_id, _owner_actor())
    except (ForbiddenError, ValidationError, NotFoundError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Order {order['id']} fulfilled at {order['fulfilledAt']} by {order['fulfilledBy']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(merch_group)
    app.cli.add_command(orders_group)
