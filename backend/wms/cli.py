# Overview: Flask CLI commands for database bootstrap and ledger maintenance.

# backend/wms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "wms:create_app".
# - Use: python -m flask stock <command> [options]
#
# Bootstrap:
# - python -m flask stock init-db [--reset --yes]
#   Create all tables (optionally dropping them first; deletes all data).
# - python -m flask stock seed-demo
#   Insert a few demo products with received units. Idempotent.
#
# Ledger maintenance:
# - python -m flask stock recalculate [--product-id PMI001]
#   Rebuild stock_today caches from the log (one product or all).
# - python -m flask stock recalculate --interval 15
#   Keep re-projecting every N seconds until interrupted.
# - python -m flask stock check-drift
#   List products whose cache disagrees with the log; exits 1 when any do.
#
# Reporting:
# - python -m flask stock recap --start 2026-10-01 --end 2026-10-31
#   Print the opening / in / out / closing recap for a window.

import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .actor import Actor, ROLE_ADMIN
from .errors import InventoryError
from .extensions import db
from .models import Product
from .services import balance_service, inbound_service, product_service, registration_service, report_service
from .time_utils import parse_iso_date, utcnow


SEED_ACTOR = Actor(username="system", role=ROLE_ADMIN)

DEMO_PRODUCTS = [
    # (name, category, unit, initial_stock, safety_stock, [(supplier, qty_per_label, labels)])
    ("Carton Box 40x30", "Packaging", "Pcs", 120, 50, [("PT Kemas Jaya", 25, 4)]),
    ("Wheat Flour", "Ingredients", "Kg", 0, 100, [("CV Sumber Pangan", 50, 3), ("CV Sumber Pangan", 25, 2)]),
    ("Food Grade Sanitizer", "Chemical", "Liter", 10, 5, []),
]


@click.group('stock')
def stock_group():
    """Stock ledger bootstrap and maintenance commands."""


@stock_group.command('init-db')
@click.option('--reset', is_flag=True, help='Drop all tables first')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def init_db(reset, yes):
    """Create the schema directly from the models (no migrations)."""
    if reset:
        if not yes:
            click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
        click.echo("DELETE  Dropping all tables...")
        db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@stock_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Insert demo products and receive their units. Skips products that already exist."""
    today = utcnow().date()
    created = 0
    for name, category, unit, initial, safety, batches in DEMO_PRODUCTS:
        exists = db.session.query(Product).filter(Product.name == name).first()
        if exists:
            click.echo(f"SKIP {exists.id} {name} already exists")
            continue

        product = product_service.create_product(
            name=name,
            category=category,
            unit=unit,
            initial_stock=initial,
            safety_stock=safety,
        )
        codes = []
        for supplier, per_label, labels in batches:
            unit_row, _label = registration_service.register_units(
                product_id=product.id,
                supplier=supplier,
                arrival_date=today,
                quantity_per_label=per_label,
                label_count=labels,
            )
            codes.append(unit_row.unique_id)
        if codes:
            inbound_service.process_inbound(codes=codes, actor=SEED_ACTOR, note="Demo receipt")

        product = product_service.get_product(product.id)
        click.echo(f"PASS {product.id} {name}: stock {product.stock_today} {unit}")
        created += 1

    click.echo(f"\nPASS Seeded {created} products.")


@stock_group.command('recalculate')
@click.option('--product-id', default=None, help='Only this product')
@click.option('--interval', type=int, default=None,
              help='Repeat every N seconds (0 uses WMS_RECALC_INTERVAL_SECONDS)')
@with_appcontext
def recalculate(product_id, interval):
    """Rebuild stock_today caches from the log."""
    if product_id:
        product_service.get_product(product_id)
        balance_service.recalculate_products([product_id])
        db.session.commit()
        product = product_service.get_product(product_id)
        click.echo(f"PASS {product.id}: stock_today = {product.stock_today}")
        return

    if interval is None:
        changed = balance_service.refresh_projections()
        click.echo(f"PASS Recalculated all products ({len(changed)} changed)")
        for pid in changed:
            click.echo(f"  - {pid}")
        return

    seconds = interval or current_app.config["WMS_RECALC_INTERVAL_SECONDS"]
    click.echo(f"START Re-projecting every {seconds}s (Ctrl+C to stop)")
    try:
        while True:
            try:
                changed = balance_service.refresh_projections()
            except InventoryError as exc:
                current_app.logger.error("Projection refresh failed: %s", exc.message)
            else:
                if changed:
                    current_app.logger.info("Projection refresh corrected %s", ", ".join(changed))
            db.session.remove()
            time.sleep(seconds)
    except KeyboardInterrupt:
        click.echo("\nSTOP Interrupted.")


@stock_group.command('check-drift')
@with_appcontext
def check_drift():
    """Report cache drift without fixing it."""
    rows = balance_service.find_drift()
    if not rows:
        click.echo("PASS No drift: every cache matches the log.")
        return

    click.echo(f"FAIL {len(rows)} products drifted:")
    for row in rows:
        click.echo(f"  - {row['product_id']} {row['name']}: cached {row['cached']}, log says {row['computed']}")
    click.echo("Run 'python -m flask stock recalculate' to repair.")
    raise SystemExit(1)


@stock_group.command('recap')
@click.option('--start', required=True, help='YYYY-MM-DD')
@click.option('--end', required=True, help='YYYY-MM-DD')
@with_appcontext
def recap(start, end):
    """Print the per-product recap for a date window."""
    try:
        start_date = parse_iso_date(start)
        end_date = parse_iso_date(end)
    except ValueError:
        raise click.BadParameter("dates must be YYYY-MM-DD") from None

    rows = report_service.recap(start_date, end_date)
    click.echo(f"{'CODE':<10} {'NAME':<28} {'UOM':<6} {'OPEN':>8} {'IN':>8} {'OUT':>8} {'END':>8}")
    for row in rows:
        click.echo(
            f"{row['code']:<10} {row['name'][:28]:<28} {row['uom'] or '':<6} "
            f"{row['opening_stock']:>8} {row['in_range']:>8} {row['out_range']:>8} {row['stock_end']:>8}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
