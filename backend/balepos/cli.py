# Overview: Flask CLI command groups for bootstrap, remote mirror, devices and sessions.

# backend/balepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default settings, demo bales, products and customers.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Remote mirror:
# - python -m flask mirror status
#   Show pending/failing outbox events.
# - python -m flask mirror flush --limit 200
#   Deliver pending events to the remote table service.
# - python -m flask mirror pull
#   Merge remote rows into the local database.
#
# Devices:
# - python -m flask devices list
# - python -m flask devices approve 3
# - python -m flask devices block 3
#
# Live sessions:
# - python -m flask sessions list [--open]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Bale, BaleStatus, Customer, DeviceStatus, LiveSession, Product
from .services import device_service, mirror_service, settings_service
from .services.device_service import DeviceError
from .services.mirror_service import MirrorError


DEMO_BALES = [
    {"name": "Spring/Summer Selection 2024", "status": BaleStatus.ON_SALE, "cost_cents": 1_200_000, "item_count": 300},
    {"name": "Premium Korean Knit Bale", "status": BaleStatus.ARRIVED, "cost_cents": 1_500_000, "item_count": 250},
]

# (sku, name, brand, bale index, cost, price, stock)
DEMO_PRODUCTS = [
    ("p1", "Cotton Ribbon Dress (Blue)", "Belif", 0, 4500, 15000, 12),
    ("p2", "Summer Floral Shirt", "HD Crown", 0, 3500, 12000, 8),
    ("p3", "Puffy Sleeved Knit", "Korean Bale", 1, 6000, 20000, 15),
    ("p4", "Waterproof Rain Coat", "Handpick", 0, 8500, 28000, 5),
    ("p5", "Lace Pajamas (Pink)", "Belif", 1, 5000, 18000, 10),
]

# (username, is_vip, vip_tickets, is_blacklisted)
DEMO_CUSTOMERS = [
    ("dogmom_ph", True, 2, False),
    ("pawlover_jen", False, 0, False),
    ("joy_reserver_123", False, 0, True),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--no-demo', is_flag=True, help='Skip demo bales, products and customers')
@with_appcontext
def init_system(no_demo):
    """
    Initialize the shop database.

    Creates:
    - All tables (if missing)
    - Default shop settings (preset prices, expense categories)
    - Demo bales, products and customers (unless --no-demo or data exists)
    """
    click.echo("START Initializing shop database...")
    db.create_all()

    settings = settings_service.get_settings()
    db.session.commit()
    click.echo(f"PASS Settings ready (data version {settings.data_version})")

    if no_demo:
        click.echo("SKIP Demo data")
        return

    if db.session.query(Bale).count():
        click.echo("WARN  Bales already exist, skipping demo data...")
        return

    bales = []
    for spec in DEMO_BALES:
        bale = Bale(**spec)
        db.session.add(bale)
        bales.append(bale)
    db.session.flush()
    click.echo(f"PASS Created {len(bales)} bales")

    for sku, name, brand, bale_idx, cost, price, stock in DEMO_PRODUCTS:
        db.session.add(Product(
            sku=sku,
            name=name,
            brand=brand,
            bale_id=bales[bale_idx].id,
            cost_price_cents=cost,
            selling_price_cents=price,
            stock=stock,
        ))
    click.echo(f"PASS Created {len(DEMO_PRODUCTS)} products")

    for username, is_vip, tickets, blacklisted in DEMO_CUSTOMERS:
        if db.session.query(Customer).filter_by(username=username).first():
            click.echo(f"WARN  Customer '{username}' already exists, skipping...")
            continue
        db.session.add(Customer(
            username=username,
            is_vip=is_vip,
            vip_tickets=tickets,
            is_blacklisted=blacklisted,
        ))
    db.session.commit()
    click.echo(f"PASS Created {len(DEMO_CUSTOMERS)} customers")
    click.echo("DONE Shop database initialized")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('mirror')
def mirror_group():
    """Remote table mirror (outbox) commands."""


@mirror_group.command('status')
@with_appcontext
def mirror_status():
    status = mirror_service.outbox_status()
    click.echo(f"Enabled: {'yes' if status['enabled'] else 'no'}")
    click.echo(f"Pending: {status['pending']}  Failing: {status['failing']}")
    oldest = status["oldest_pending"]
    if oldest:
        click.echo(
            f"Oldest: #{oldest['id']} {oldest['operation']} {oldest['table_name']}/{oldest['record_key']}"
            f" attempts={oldest['attempts']} error={oldest['last_error'] or '-'}"
        )


@mirror_group.command('flush')
@click.option('--limit', default=200, show_default=True, help='Max events to deliver')
@with_appcontext
def mirror_flush(limit):
    if not mirror_service.mirror_enabled():
        click.echo("WARN  MIRROR_URL is not set; nothing delivered")
        return
    result = mirror_service.flush_outbox(limit=limit)
    click.echo(f"PASS Synced {result['synced']}, failed {result['failed']}, pending {result['pending']}")


@mirror_group.command('pull')
@with_appcontext
def mirror_pull():
    try:
        result = mirror_service.pull_remote()
    except MirrorError as e:
        raise click.ClickException(str(e))
    for table, count in result["merged"].items():
        click.echo(f"PASS {table}: {count} rows")
    for table in result["skipped"]:
        click.echo(f"FAIL {table}: skipped")


@click.group('devices')
def devices_group():
    """Device approval commands."""


@devices_group.command('list')
@with_appcontext
def list_devices():
    devices = device_service.list_devices()
    if not devices:
        click.echo("No devices registered")
        return
    click.echo(f"{'ID':<5} {'Status':<10} {'Name':<24} {'IP':<16} {'Location':<24} Last active")
    click.echo("-" * 100)
    for d in devices:
        click.echo(
            f"{d['id']:<5} {d['status']:<10} {d['name'][:24]:<24} {(d['ip_address'] or '-')[:16]:<16}"
            f" {(d['location'] or '-')[:24]:<24} {d['last_active'] or '-'}"
        )


def _set_device_status(device_pk: int, status: str) -> None:
    try:
        device = device_service.set_status(device_pk, status)
    except DeviceError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Device {device.id} ({device.name}) is now {device.status}")


@devices_group.command('approve')
@click.argument('device_pk', type=int)
@with_appcontext
def approve_device(device_pk):
    _set_device_status(device_pk, DeviceStatus.APPROVED)


@devices_group.command('block')
@click.argument('device_pk', type=int)
@with_appcontext
def block_device(device_pk):
    _set_device_status(device_pk, DeviceStatus.BLOCKED)


@click.group('sessions')
def sessions_group():
    """Live session inspection commands."""


@sessions_group.command('list')
@click.option('--open', 'only_open', is_flag=True, help='Only open sessions')
@with_appcontext
def list_sessions(only_open):
    query = db.session.query(LiveSession)
    if only_open:
        query = query.filter_by(is_open=True)
    sessions = query.order_by(LiveSession.id.desc()).all()
    if not sessions:
        click.echo("No sessions found")
        return
    for s in sessions:
        state = "OPEN" if s.is_open else "closed"
        click.echo(
            f"{s.id:<5} {s.date:<11} {state:<7} {s.name[:40]:<40}"
            f" orders={s.total_orders} sales={s.total_sales_cents / 100:,.2f}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(mirror_group)
    app.cli.add_command(devices_group)
    app.cli.add_command(sessions_group)
