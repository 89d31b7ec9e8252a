# Overview: Flask CLI command groups for operating the PoS core from a terminal.

# backend/autocrm/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog seeding:
# - python -m flask catalog add-category --name "Engine"
# - python -m flask catalog add-subcategory --category-id 1 --name "Pistons"
# - python -m flask catalog add-product --subcategory-id 1 --name "Piston 82mm" --sku P-82 --min-stock 2
# - python -m flask catalog search "piston"
#
# Inventory:
# - python -m flask inventory receive --product-id 1 --quantity 5 --unit-cost-cents 1000 [--source dismantled]
# - python -m flask inventory stock 1 [--lots]
# - python -m flask inventory low-stock
#
# Shifts:
# - python -m flask shifts open --operator-id 7
# - python -m flask shifts close --operator-id 7
# - python -m flask shifts active --operator-id 7
# - python -m flask shifts stats 3
#
# Receipts:
# - python -m flask receipts sell --operator-id 7 --item 1:2:4500 [--item 3:1:990] [--currency GEL]
# - python -m flask receipts list --shift-id 3 | --operator-id 7
# - python -m flask receipts show 12
# - python -m flask receipts cancel 12 --operator-id 7
#
# Analytics:
# - python -m flask analytics report --start 2024-01-01 --end 2024-01-31 [--category-id 1] [--subcategory-id 2]

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .services import analytics_service, catalog_service, inventory_service, sales_service, shift_service


def _money(cents, currency=""):
    if cents is None:
        return "-"
    sign = "-" if cents < 0 else ""
    cents = abs(int(cents))
    text = f"{sign}{cents // 100}.{cents % 100:02d}"
    return f"{text} {currency}".rstrip()


def _fail(exc: PosError):
    click.echo(f"FAIL {exc.message}")
    for key, value in exc.details.items():
        click.echo(f"   {key}: {value}")


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """Schema bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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


# =============================================================================
# CATALOG
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Catalog seeding commands."""


@catalog_group.command('add-category')
@click.option('--name', required=True, help='Category name')
@click.option('--description', help='Optional description')
@click.option('--icon', help='Optional icon')
@with_appcontext
def add_category_cli(name, description, icon):
    try:
        category = catalog_service.create_category(name, description=description, icon=icon)
    except PosError as e:
        _fail(e)
        return
    click.echo(f"PASS Created category: {category.name} (ID: {category.id})")


@catalog_group.command('add-subcategory')
@click.option('--category-id', type=int, required=True, help='Parent category ID')
@click.option('--name', required=True, help='Subcategory name')
@click.option('--description', help='Optional description')
@with_appcontext
def add_subcategory_cli(category_id, name, description):
    try:
        subcategory = catalog_service.create_subcategory(category_id, name, description=description)
    except PosError as e:
        _fail(e)
        return
    click.echo(f"PASS Created subcategory: {subcategory.name} (ID: {subcategory.id})")


@catalog_group.command('add-product')
@click.option('--subcategory-id', type=int, required=True, help='Subcategory ID')
@click.option('--name', required=True, help='Product name')
@click.option('--sku', help='Optional SKU')
@click.option('--description', help='Optional description')
@click.option('--min-stock', type=int, default=0, show_default=True, help='Low-stock threshold')
@with_appcontext
def add_product_cli(subcategory_id, name, sku, description, min_stock):
    try:
        product = catalog_service.create_product(
            subcategory_id,
            name,
            sku=sku,
            description=description,
            min_stock_level=min_stock,
        )
    except PosError as e:
        _fail(e)
        return
    click.echo(f"PASS Created product: {product.name} (ID: {product.id})")


@catalog_group.command('search')
@click.argument('query')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def search_products_cli(query, limit):
    """Find products by name or SKU."""
    products = catalog_service.search_products(query, limit=limit)
    if not products:
        click.echo("No products found.")
        return

    for product in products:
        sku = f" [{product.sku}]" if product.sku else ""
        click.echo(f"{product.id:<6} {product.name}{sku}")


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Lot receiving and stock inspection commands."""


@inventory_group.command('receive')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--quantity', type=int, required=True, help='Units received')
@click.option('--unit-cost-cents', type=int, help='Unit cost (omit when unknown)')
@click.option('--sale-price-cents', type=int, help='Suggested sale price')
@click.option('--currency', help='Currency code (defaults to POS_DEFAULT_CURRENCY)')
@click.option('--source', 'source_type', type=click.Choice(['purchased', 'dismantled', 'returned']),
              default='purchased', show_default=True)
@click.option('--source-id', type=int, help='Procurement batch or car ID')
@click.option('--location', help='Storage location')
@click.option('--operator-id', type=int, help='Receiving operator')
@with_appcontext
def receive_cli(product_id, quantity, unit_cost_cents, sale_price_cents, currency,
                source_type, source_id, location, operator_id):
    """Receive a new lot of a product."""
    try:
        lot = inventory_service.receive_lot(
            product_id=product_id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            sale_price_cents=sale_price_cents,
            currency=currency,
            source_type=source_type,
            source_id=source_id,
            location=location,
            operator_id=operator_id,
        )
    except PosError as e:
        _fail(e)
        return
    click.echo(f"PASS Received lot {lot.id}: {lot.quantity} x product {lot.product_id}")
    click.echo(f"   Unit cost: {_money(lot.unit_cost_cents, lot.currency)}")


@inventory_group.command('stock')
@click.argument('product_id', type=int)
@click.option('--lots', 'show_lots', is_flag=True, help='List remaining lots too')
@with_appcontext
def stock_cli(product_id, show_lots):
    """Show on-hand quantity for a product."""
    try:
        level = inventory_service.get_stock_level(product_id)
    except PosError as e:
        _fail(e)
        return

    low = " (LOW)" if level["is_low_stock"] else ""
    click.echo(f"{level['name']}: {level['quantity_on_hand']} on hand in {level['lot_count']} lot(s){low}")

    if not show_lots:
        return

    lots = inventory_service.list_lots(product_id)
    click.echo("\n" + "="*80)
    click.echo(f"{'Lot':<6} {'Qty':<6} {'Initial':<8} {'Unit cost':<14} {'Source':<12} {'Days'}")
    click.echo("="*80)
    for lot in lots:
        cost = _money(lot["unit_cost_cents"], lot["currency"])
        click.echo(
            f"{lot['id']:<6} {lot['quantity']:<6} {lot['initial_quantity']:<8} {cost:<14} "
            f"{lot['source_type']:<12} {lot['days_in_storage']}"
        )
    click.echo("="*80 + "\n")


@inventory_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    """List products at or below their low-stock threshold."""
    rows = inventory_service.list_low_stock()
    if not rows:
        click.echo("No low-stock products.")
        return

    for row in rows:
        click.echo(f"WARN {row['name']} (ID: {row['product_id']}): {row['quantity_on_hand']} / min {row['min_stock_level']}")


# =============================================================================
# SHIFTS
# =============================================================================

@click.group('shifts')
def shifts_group():
    """Operator shift commands."""


@shifts_group.command('open')
@click.option('--operator-id', type=int, required=True)
@with_appcontext
def open_shift_cli(operator_id):
    try:
        shift = shift_service.open_shift(operator_id)
    except PosError as e:
        _fail(e)
        return
    click.echo(f"PASS Opened shift {shift.id} for operator {operator_id}")


@shifts_group.command('close')
@click.option('--operator-id', type=int, help='Close this operator\'s open shift')
@click.option('--shift-id', type=int, help='Close a shift by ID')
@with_appcontext
def close_shift_cli(operator_id, shift_id):
    if (operator_id is None) == (shift_id is None):
        click.echo("FAIL Pass exactly one of --operator-id or --shift-id")
        return
    try:
        if shift_id is not None:
            shift = shift_service.close_shift(shift_id)
        else:
            shift = shift_service.end_active_shift(operator_id)
    except PosError as e:
        _fail(e)
        return
    click.echo(f"PASS Closed shift {shift.id}")


@shifts_group.command('active')
@click.option('--operator-id', type=int, required=True)
@with_appcontext
def active_shift_cli(operator_id):
    summary = shift_service.get_active_shift_summary(operator_id)
    if summary is None:
        click.echo(f"No active shift for operator {operator_id}.")
        return

    click.echo(f"Shift {summary['id']} open since {summary['started_at']}")
    click.echo(f"   Receipts: {summary['receipts_count']}")
    for currency, total in sorted(summary["total_sales_cents_by_currency"].items()):
        click.echo(f"   Sales: {_money(total, currency)}")


@shifts_group.command('stats')
@click.argument('shift_id', type=int)
@with_appcontext
def shift_stats_cli(shift_id):
    try:
        stats = shift_service.get_shift_stats(shift_id)
    except PosError as e:
        _fail(e)
        return

    click.echo(f"Shift {shift_id}: {stats['total_receipts']} receipt(s), {stats['cancelled_receipts']} cancelled")
    click.echo(f"   Items sold: {stats['total_items_sold']}")
    for currency, totals in sorted(stats["totals_by_currency"].items()):
        click.echo(
            f"   {currency}: sales {_money(totals['total_sales_cents'])}, "
            f"cost {_money(totals['cost_cents'])}, profit {_money(totals['profit_cents'])}"
        )


# =============================================================================
# RECEIPTS
# =============================================================================

@click.group('receipts')
def receipts_group():
    """Sale, receipt inspection and cancellation commands."""


def _parse_item(raw):
    parts = raw.split(":")
    if len(parts) != 3:
        raise click.BadParameter(f"expected PRODUCT_ID:QTY:PRICE_CENTS, got {raw!r}")
    try:
        product_id, quantity, price = (int(p) for p in parts)
    except ValueError:
        raise click.BadParameter(f"expected integers in {raw!r}")
    return {"product_id": product_id, "quantity": quantity, "sale_price_cents": price}


@receipts_group.command('sell')
@click.option('--operator-id', type=int, required=True)
@click.option('--currency', help='Currency code (defaults to POS_DEFAULT_CURRENCY)')
@click.option('--item', 'items', multiple=True, required=True, help='PRODUCT_ID:QTY:PRICE_CENTS')
@click.option('--no-implicit-shift', is_flag=True, help='Fail instead of opening a shift')
@with_appcontext
def sell_cli(operator_id, currency, items, no_implicit_shift):
    """Complete a sale from the given cart lines."""
    try:
        cart = [_parse_item(raw) for raw in items]
    except click.BadParameter as e:
        click.echo(f"FAIL Invalid --item: {e.message}")
        return

    try:
        receipt = sales_service.complete_sale(
            operator_id,
            currency or current_app.config["POS_DEFAULT_CURRENCY"],
            cart,
            allow_implicit_shift=False if no_implicit_shift else None,
        )
    except PosError as e:
        _fail(e)
        return
    click.echo(f"PASS Sold receipt {receipt.id}: {_money(receipt.total_amount_cents, receipt.currency)}")
    click.echo(f"   Shift: {receipt.shift_id}")


@receipts_group.command('list')
@click.option('--shift-id', type=int, help='Receipts of a shift')
@click.option('--operator-id', type=int, help='Recent receipts of an operator')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_receipts_cli(shift_id, operator_id, limit):
    try:
        if shift_id is not None:
            receipts = sales_service.get_shift_receipts(shift_id)
        elif operator_id is not None:
            receipts = sales_service.list_operator_receipts(operator_id, limit=limit)
        else:
            click.echo("FAIL Pass --shift-id or --operator-id")
            return
    except PosError as e:
        _fail(e)
        return

    if not receipts:
        click.echo("No receipts found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Shift':<6} {'Sold at':<22} {'Items':<6} {'Total':<16} {'Status'}")
    click.echo("="*80)
    for r in receipts:
        status = "CANCELLED" if r["is_cancelled"] else "OK"
        total = _money(r["total_amount_cents"], r["currency"])
        click.echo(f"{r['id']:<6} {r['shift_id']:<6} {r['sold_at']:<22} {r['items_count']:<6} {total:<16} {status}")
    click.echo("="*80 + "\n")


@receipts_group.command('show')
@click.argument('receipt_id', type=int)
@with_appcontext
def show_receipt_cli(receipt_id):
    try:
        details = sales_service.get_receipt_details(receipt_id)
    except PosError as e:
        _fail(e)
        return

    receipt = details["receipt"]
    status = " CANCELLED" if receipt["is_cancelled"] else ""
    click.echo(f"Receipt {receipt['id']} ({receipt['sold_at']}){status}")
    for line in details["lines"]:
        click.echo(
            f"   {line['product_name']} x{line['quantity']} @ {_money(line['sale_price_cents'])}"
            f" = {_money(line['line_total_cents'])} (cost {_money(line['cost_price_cents'])})"
        )
    click.echo(f"   Total: {_money(receipt['total_amount_cents'], receipt['currency'])}")


@receipts_group.command('cancel')
@click.argument('receipt_id', type=int)
@click.option('--operator-id', type=int, help='Operator performing the cancellation')
@with_appcontext
def cancel_receipt_cli(receipt_id, operator_id):
    try:
        receipt = sales_service.cancel_receipt(receipt_id, operator_id=operator_id)
    except PosError as e:
        _fail(e)
        return
    click.echo(f"PASS Cancelled receipt {receipt.id}; stock restored.")


# =============================================================================
# ANALYTICS
# =============================================================================

@click.group('analytics')
def analytics_group():
    """Sales analytics commands."""


@analytics_group.command('report')
@click.option('--start', help='Start date/time (ISO-8601, inclusive)')
@click.option('--end', help='End date/time (ISO-8601, inclusive)')
@click.option('--category-id', type=int)
@click.option('--subcategory-id', type=int)
@click.option('--operator-id', type=int)
@with_appcontext
def analytics_report_cli(start, end, category_id, subcategory_id, operator_id):
    """Revenue, cost and margin per product and per currency."""
    try:
        report = analytics_service.aggregate(
            start,
            end,
            category_id=category_id,
            subcategory_id=subcategory_id,
            operator_id=operator_id,
        )
    except PosError as e:
        _fail(e)
        return

    if not report["per_product"]:
        click.echo("No sales in range.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Product':<30} {'Cur':<4} {'Sold':<6} {'Revenue':<14} {'Cost':<14} {'Profit':<14} {'Margin %'}")
    click.echo("="*100)
    for row in report["per_product"]:
        flag = "*" if row["has_unknown_cost"] else ""
        click.echo(
            f"{row['product_name'][:30]:<30} {row['currency']:<4} {row['total_sold']:<6} "
            f"{_money(row['total_revenue_cents']):<14} {_money(row['total_cost_cents']) + flag:<14} "
            f"{_money(row['net_profit_cents']):<14} {row['profit_margin_percent']:.2f}"
        )
    click.echo("="*100)
    for totals in report["per_currency"]:
        click.echo(
            f"TOTAL {totals['currency']}: revenue {_money(totals['total_revenue_cents'])}, "
            f"cost {_money(totals['total_cost_cents'])}, profit {_money(totals['net_profit_cents'])}, "
            f"margin {totals['profit_margin_percent']:.2f}%"
        )
    click.echo("")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(receipts_group)
    app.cli.add_command(analytics_group)
