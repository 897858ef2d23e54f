# Overview: Service-layer operations for reporting; analytics, dashboard figures and CSV exports.

from __future__ import annotations

import calendar
import csv
import io
from datetime import datetime, timedelta

from ..extensions import db
from ..models import (
    Bale,
    Customer,
    Order,
    PaymentStatus,
    Product,
    ShippingStatus,
    Transaction,
    TransactionType,
)
from balepos.time_utils import session_date, utcnow
from .audit_log import format_amount
from .bale_service import compute_bale_stats, bale_orders


RANGES = ("Week", "Month", "Year", "All")
CHART_PERIODS = ("Today", "Month", "Year")
EXPORT_KINDS = ("Sales", "Financial", "Inventory", "Customers")

MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

CSV_HEADERS = {
    "Sales": ["Order ID", "Date", "Session", "Customer", "Item", "Batch", "Quantity", "Price", "Total", "Payment Status", "Shipping Status"],
    "Financial": ["Transaction ID", "Date", "Type", "Category", "Wallet", "Amount", "Note"],
    "Inventory": ["Batch ID", "Batch Name", "Status", "Cost", "Items (Initial)", "Items (Sold)", "Revenue", "Net Profit", "ROI %"],
    "Customers": ["Username", "Is VIP", "Total Orders", "Total Spent", "Average Order Value", "Status"],
}


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _months_ago(now: datetime, months: int) -> datetime:
    month_index = now.month - 1 - months
    year = now.year + month_index // 12
    month = month_index % 12 + 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def range_start(date_range: str, now: datetime | None = None) -> datetime | None:
    """Start of a Week/Month/Year lookback; None for All."""
    if date_range not in RANGES:
        raise ReportError(f"range must be one of: {', '.join(RANGES)}")
    now = now or utcnow()
    if date_range == "Week":
        return now - timedelta(days=7)
    if date_range == "Month":
        return _months_ago(now, 1)
    if date_range == "Year":
        return _months_ago(now, 12)
    return None


def _orders_since(start: datetime | None) -> list[Order]:
    query = db.session.query(Order)
    if start is not None:
        query = query.filter(Order.created_at >= start)
    return query.order_by(Order.created_at.asc(), Order.id.asc()).all()


def _transactions_since(start: datetime | None) -> list[Transaction]:
    query = db.session.query(Transaction)
    if start is not None:
        query = query.filter(Transaction.created_at >= start)
    return query.order_by(Transaction.created_at.asc(), Transaction.id.asc()).all()


def _bale_names_by_product(missing: str = "Unknown Batch") -> dict[int, str]:
    names = {b.id: b.name for b in db.session.query(Bale).all()}
    return {p.id: names.get(p.bale_id, missing) for p in db.session.query(Product).all()}


def _day_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d")


def analytics(date_range: str = "Month", now: datetime | None = None) -> dict:
    """
    Figures for the reports page.

    Sales and financial sections cover the selected range; inventory and
    customers describe the current state.
    """
    start = range_start(date_range, now)
    orders = _orders_since(start)
    txs = _transactions_since(start)
    batch_of = _bale_names_by_product()

    # Sales
    sales_total = sum(o.total_price_cents for o in orders)
    items_sold = sum(o.quantity for o in orders)
    order_count = len(orders)
    trend: dict[str, int] = {}
    by_batch: dict[str, int] = {}
    for o in orders:
        day = _day_key(o.created_at)
        trend[day] = trend.get(day, 0) + o.total_price_cents
        batch = batch_of.get(o.product_id, "Unknown Batch")
        by_batch[batch] = by_batch.get(batch, 0) + o.total_price_cents

    # Financial
    expenses_list = [t for t in txs if t.type == TransactionType.EXPENSE]
    expenses = sum(t.amount_cents for t in expenses_list)
    breakdown: dict[str, int] = {}
    cash_flow: dict[str, dict] = {d: {"income_cents": v, "expense_cents": 0} for d, v in trend.items()}
    for t in expenses_list:
        breakdown[t.category] = breakdown.get(t.category, 0) + t.amount_cents
        day = cash_flow.setdefault(_day_key(t.created_at), {"income_cents": 0, "expense_cents": 0})
        day["expense_cents"] += t.amount_cents

    # Inventory (all time)
    bales = db.session.query(Bale).order_by(Bale.id.asc()).all()
    all_orders = db.session.query(Order).all()
    total_items = sum(b.item_count or 0 for b in bales)
    total_sold = sum(o.quantity for o in all_orders)
    investment = sum(b.cost_cents or 0 for b in bales)
    revenue_all = sum(o.total_price_cents for o in all_orders)
    performance = []
    for b in bales:
        revenue = sum(o.total_price_cents for o in bale_orders(b.id))
        performance.append({"name": b.name, "revenue_cents": revenue, "cost_cents": b.cost_cents, "profit_cents": revenue - b.cost_cents})
    performance.sort(key=lambda r: r["revenue_cents"], reverse=True)

    # Customers (stored aggregates)
    customers = db.session.query(Customer).all()
    total_customers = len(customers)
    top = sorted(customers, key=lambda c: c.total_spent_cents, reverse=True)[:10]

    return {
        "range": date_range,
        "sales": {
            "total_cents": sales_total,
            "items": items_sold,
            "count": order_count,
            "aov_cents": round(sales_total / order_count) if order_count else 0,
            "trend": [{"date": d, "amount_cents": v} for d, v in sorted(trend.items())],
            "by_batch": [
                {"name": n, "value_cents": v}
                for n, v in sorted(by_batch.items(), key=lambda kv: kv[1], reverse=True)[:6]
            ],
        },
        "financial": {
            "income_cents": sales_total,
            "expenses_cents": expenses,
            "profit_cents": sales_total - expenses,
            "expense_breakdown": [
                {"name": n, "value_cents": v}
                for n, v in sorted(breakdown.items(), key=lambda kv: kv[1], reverse=True)
            ],
            "cash_flow": [{"date": d, **v} for d, v in sorted(cash_flow.items())],
        },
        "inventory": {
            "sell_through_pct": round(total_sold / total_items * 100, 2) if total_items else 0.0,
            "investment_cents": investment,
            "revenue_cents": revenue_all,
            "profit_cents": revenue_all - investment,
            "performance": performance,
        },
        "customers": {
            "total": total_customers,
            "vips": sum(1 for c in customers if c.is_vip),
            "avg_spend_cents": round(sum(c.total_spent_cents for c in customers) / total_customers) if total_customers else 0,
            "top_spenders": [{"name": c.username, "spent_cents": c.total_spent_cents} for c in top],
        },
    }


def _unit_costs() -> dict[int, float]:
    """Per-product share of its bale's cost (bale cost / item count)."""
    bale_cost = {
        b.id: b.cost_cents / b.item_count
        for b in db.session.query(Bale).all()
        if (b.item_count or 0) > 0
    }
    return {p.id: bale_cost.get(p.bale_id, 0.0) for p in db.session.query(Product).all()}


def _cogs(order: Order, unit_costs: dict[int, float]) -> float:
    return unit_costs.get(order.product_id, 0.0) * order.quantity


def dashboard_stats(now: datetime | None = None) -> dict:
    """Today's sales, cost of goods sold and net profit, plus open work counts."""
    now = now or utcnow()
    unit_costs = _unit_costs()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)

    today_orders = (
        db.session.query(Order)
        .filter(Order.created_at >= day_start, Order.created_at < day_end)
        .filter(Order.shipping_status != ShippingStatus.CANCELLED)
        .all()
    )
    today_expenses = (
        db.session.query(db.func.coalesce(db.func.sum(Transaction.amount_cents), 0))
        .filter(Transaction.type == TransactionType.EXPENSE)
        .filter(Transaction.created_at >= day_start, Transaction.created_at < day_end)
        .scalar()
    )
    sales = sum(o.total_price_cents for o in today_orders)
    cogs = round(sum(_cogs(o, unit_costs) for o in today_orders))

    pending_payments = (
        db.session.query(Order)
        .filter(Order.payment_status != PaymentStatus.PAID)
        .filter(Order.shipping_status != ShippingStatus.CANCELLED)
        .count()
    )
    to_ship = db.session.query(Order).filter(Order.shipping_status == ShippingStatus.PENDING).count()

    return {
        "sales_today_cents": sales,
        "cogs_today_cents": cogs,
        "expenses_today_cents": int(today_expenses),
        "profit_today_cents": sales - cogs - int(today_expenses),
        "orders_today": len(today_orders),
        "pending_payments": pending_payments,
        "to_ship": to_ship,
    }


def _hour_label(hour: int) -> str:
    if hour == 0:
        return "12MN"
    if hour == 12:
        return "12NN"
    return f"{hour - 12}PM" if hour > 12 else f"{hour}AM"


def chart_data(period: str = "Month", now: datetime | None = None) -> list[dict]:
    """
    Sales and profit buckets: hourly for Today, daily for Month, monthly for Year.

    Profit is sales less cost of goods sold less expenses in the bucket.
    """
    if period not in CHART_PERIODS:
        raise ReportError(f"period must be one of: {', '.join(CHART_PERIODS)}")
    now = now or utcnow()

    if period == "Today":
        points = [{"name": _hour_label(h), "sales_cents": 0.0, "profit_cents": 0.0} for h in range(24)]
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=1)
        bucket = lambda dt: dt.hour
    elif period == "Month":
        days = calendar.monthrange(now.year, now.month)[1]
        points = [{"name": str(d + 1), "sales_cents": 0.0, "profit_cents": 0.0} for d in range(days)]
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=days)
        bucket = lambda dt: dt.day - 1
    else:
        points = [{"name": m, "sales_cents": 0.0, "profit_cents": 0.0} for m in MONTH_LABELS]
        start = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
        end = start.replace(year=start.year + 1)
        bucket = lambda dt: dt.month - 1

    unit_costs = _unit_costs()
    orders = (
        db.session.query(Order)
        .filter(Order.created_at >= start, Order.created_at < end)
        .filter(Order.shipping_status != ShippingStatus.CANCELLED)
        .all()
    )
    for o in orders:
        point = points[bucket(o.created_at)]
        point["sales_cents"] += o.total_price_cents
        point["profit_cents"] += o.total_price_cents - _cogs(o, unit_costs)

    expenses = (
        db.session.query(Transaction)
        .filter(Transaction.type == TransactionType.EXPENSE)
        .filter(Transaction.created_at >= start, Transaction.created_at < end)
        .all()
    )
    for t in expenses:
        points[bucket(t.created_at)]["profit_cents"] -= t.amount_cents

    for point in points:
        point["sales_cents"] = round(point["sales_cents"])
        point["profit_cents"] = round(point["profit_cents"])
    return points


def active_bales() -> list[dict]:
    """Bales not yet Sold Out with sell-through, fewest pieces left first."""
    rows = []
    for bale in db.session.query(Bale).filter(Bale.status != "Sold Out").all():
        stats = compute_bale_stats(bale, bale_orders(bale.id))
        percent = stats.sold_count / bale.item_count * 100 if bale.item_count else 0.0
        rows.append({
            **bale.to_dict(),
            "sold_count": stats.sold_count,
            "remaining": stats.remaining,
            "percent_sold": round(percent, 2),
        })
    return sorted(rows, key=lambda r: r["remaining"])


def _clean(value) -> str:
    """CSV cells never contain commas; they are replaced by spaces."""
    if value is None:
        return ""
    return str(value).replace(",", " ")


def _sales_rows(orders: list[Order]) -> list[list]:
    batch_of = _bale_names_by_product(missing="N/A")
    rows = []
    for o in orders:
        unit = o.total_price_cents / o.quantity if o.quantity else 0
        rows.append([
            o.id,
            session_date(o.created_at),
            o.session_key,
            o.customer_username,
            o.product_name,
            batch_of.get(o.product_id, "N/A"),
            o.quantity,
            format_amount(round(unit)),
            format_amount(o.total_price_cents),
            o.payment_status,
            o.shipping_status,
        ])
    return rows


def _financial_rows(txs: list[Transaction], orders: list[Order]) -> list[list]:
    rows = [
        [t.id, session_date(t.created_at), t.type, t.category, t.wallet, format_amount(t.amount_cents), t.note or ""]
        for t in txs
    ]
    for o in orders:
        rows.append([
            o.id,
            session_date(o.created_at),
            "Income",
            "Sales",
            o.payment_method or "N/A",
            format_amount(o.amount_paid_cents),
            f"Order for {o.customer_username}",
        ])
    return rows


def _inventory_rows() -> list[list]:
    rows = []
    for b in db.session.query(Bale).order_by(Bale.id.asc()).all():
        orders = bale_orders(b.id)
        sold = sum(o.quantity for o in orders)
        revenue = sum(o.total_price_cents for o in orders)
        roi = revenue / b.cost_cents * 100 if b.cost_cents else 0.0
        rows.append([
            b.id,
            b.name,
            b.status,
            format_amount(b.cost_cents),
            b.item_count,
            sold,
            format_amount(revenue),
            format_amount(revenue - b.cost_cents),
            f"{roi:.2f}%",
        ])
    return rows


def _customer_rows() -> list[list]:
    rows = []
    for c in db.session.query(Customer).order_by(Customer.username.asc()).all():
        aov = f"{c.total_spent_cents / c.order_count / 100:.2f}" if c.order_count else "0"
        rows.append([
            c.username,
            "Yes" if c.is_vip else "No",
            c.order_count,
            format_amount(c.total_spent_cents),
            aov,
            "Blacklisted" if c.is_blacklisted else "Active",
        ])
    return rows


def export_csv(kind: str, date_range: str = "All", now: datetime | None = None) -> tuple[str, str]:
    """
    Returns (filename, csv_text) for one report kind.

    Sales and Financial honor the date range; Inventory and Customers are
    current snapshots.
    """
    if kind not in EXPORT_KINDS:
        raise ReportError(f"kind must be one of: {', '.join(EXPORT_KINDS)}")
    now = now or utcnow()
    start = range_start(date_range, now)

    if kind == "Sales":
        rows = _sales_rows(_orders_since(start))
    elif kind == "Financial":
        rows = _financial_rows(_transactions_since(start), _orders_since(start))
    elif kind == "Inventory":
        rows = _inventory_rows()
    else:
        rows = _customer_rows()

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS[kind])
    for row in rows:
        writer.writerow([_clean(v) for v in row])

    filename = f"balepos_{kind.lower()}_report_{now.strftime('%Y-%m-%d')}.csv"
    return filename, buf.getvalue()
