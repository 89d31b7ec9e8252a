# Overview: Revenue, cost and margin rollups over completed (non-cancelled) sales.

from __future__ import annotations

from datetime import date, datetime, time

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Category, Product, Receipt, SaleLine, Subcategory
from autocrm.time_utils import coerce_datetime, to_utc_z


def _parse_bound(value, field: str, *, end_of_day: bool) -> datetime | None:
    """A bare YYYY-MM-DD end bound covers the whole day."""
    if value is None or value == "":
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.max if end_of_day else time.min)
    try:
        dt = coerce_datetime(value)
    except ValueError:
        raise ValidationError(f"invalid {field}", details={"field": field, "value": str(value)})
    if end_of_day and isinstance(value, str) and len(value.strip()) == 10:
        dt = datetime.combine(dt.date(), time.max)
    return dt


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    start_dt = _parse_bound(start, "start", end_of_day=False)
    end_dt = _parse_bound(end, "end", end_of_day=True)
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError(
            "start must not be after end",
            details={"start": to_utc_z(start_dt), "end": to_utc_z(end_dt)},
        )
    return start_dt, end_dt


def margin_percent(net_profit_cents: int, total_cost_cents: int) -> float:
    """Markup over cost in percent, 2 places; 0 when there is no known cost."""
    if total_cost_cents <= 0:
        return 0.0
    return round(net_profit_cents / total_cost_cents * 100.0, 2)


def aggregate(
    start=None,
    end=None,
    *,
    category_id: int | None = None,
    subcategory_id: int | None = None,
    operator_id: int | None = None,
) -> dict:
    """
    Per-product and per-currency sales metrics for a date range.

    Only lines of non-cancelled receipts count. Lines with unknown cost add 0
    to cost and set has_unknown_cost. Currencies are never summed together.
    """
    start_dt, end_dt = _parse_range(start, end)

    line_cost = func.coalesce(SaleLine.cost_price_cents, 0) * SaleLine.quantity

    query = db.session.query(
        Product.id.label("product_id"),
        Product.name.label("product_name"),
        Category.name.label("category_name"),
        Subcategory.name.label("subcategory_name"),
        SaleLine.currency.label("currency"),
        func.coalesce(func.sum(SaleLine.quantity), 0).label("total_sold"),
        func.coalesce(func.sum(SaleLine.line_total_cents), 0).label("total_revenue"),
        func.coalesce(func.sum(line_cost), 0).label("total_cost"),
        func.count(SaleLine.id).label("line_count"),
        func.count(SaleLine.cost_price_cents).label("costed_line_count"),
    ).select_from(SaleLine).join(
        Receipt, SaleLine.receipt_id == Receipt.id
    ).join(
        Product, SaleLine.product_id == Product.id
    ).join(
        Subcategory, Product.subcategory_id == Subcategory.id
    ).join(
        Category, Subcategory.category_id == Category.id
    ).filter(
        Receipt.is_cancelled.is_(False),
    )

    if start_dt:
        query = query.filter(Receipt.sold_at >= start_dt)
    if end_dt:
        query = query.filter(Receipt.sold_at <= end_dt)
    if category_id is not None:
        query = query.filter(Category.id == category_id)
    if subcategory_id is not None:
        query = query.filter(Subcategory.id == subcategory_id)
    if operator_id is not None:
        query = query.filter(Receipt.operator_id == operator_id)

    rows = query.group_by(
        Product.id, Product.name, Category.name, Subcategory.name, SaleLine.currency,
    ).all()

    per_product = []
    per_currency: dict[str, dict] = {}
    for row in rows:
        revenue = int(row.total_revenue or 0)
        cost = int(row.total_cost or 0)
        net = revenue - cost
        has_unknown = int(row.costed_line_count or 0) < int(row.line_count or 0)

        per_product.append({
            "product_id": row.product_id,
            "product_name": row.product_name,
            "category_name": row.category_name,
            "subcategory_name": row.subcategory_name,
            "currency": row.currency,
            "total_sold": int(row.total_sold or 0),
            "total_revenue_cents": revenue,
            "total_cost_cents": cost,
            "net_profit_cents": net,
            "profit_margin_percent": margin_percent(net, cost),
            "has_unknown_cost": has_unknown,
        })

        totals = per_currency.setdefault(row.currency, {
            "currency": row.currency,
            "total_sold": 0,
            "total_revenue_cents": 0,
            "total_cost_cents": 0,
            "net_profit_cents": 0,
            "has_unknown_cost": False,
        })
        totals["total_sold"] += int(row.total_sold or 0)
        totals["total_revenue_cents"] += revenue
        totals["total_cost_cents"] += cost
        totals["net_profit_cents"] += net
        totals["has_unknown_cost"] = totals["has_unknown_cost"] or has_unknown

    per_product.sort(key=lambda r: (-r["total_revenue_cents"], r["product_id"], r["currency"]))

    currency_rows = []
    for currency in sorted(per_currency):
        totals = per_currency[currency]
        totals["profit_margin_percent"] = margin_percent(
            totals["net_profit_cents"], totals["total_cost_cents"]
        )
        currency_rows.append(totals)

    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "per_product": per_product,
        "per_currency": currency_rows,
    }
