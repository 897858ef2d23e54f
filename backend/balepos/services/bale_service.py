# Overview: Bale lifecycle calculator: sold/revenue/ROI figures and automatic status changes.

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Iterable

from ..extensions import db
from ..models import Bale, BaleStatus, Order, PaymentStatus, Product, ShippingStatus, LiveSession, OFF_LIVE_SESSION_NAME, cart_line_total
from ..validation import (
    BALE_POLICY,
    ValidationError,
    enforce_rules_bale,
    validate_payload,
)
from . import mirror_service

"""
Status policy

- Sold Out as soon as sold >= item_count (item_count > 0).
- Back to On Sale when a Sold Out bale drops below item_count (deletion,
  cancellation), or when an Ordered/Arrived bale records its first sales.
- Ordered and Arrived are only ever set by a person; On Sale is never
  overridden except by Sold Out.
"""

# Statuses the calculator may move to On Sale
_DEMOTABLE = (BaleStatus.ORDERED, BaleStatus.ARRIVED, BaleStatus.SOLD_OUT)

FILTER_ACTIVE = "Active"
FILTER_COMPLETED = "Completed"


class BaleError(Exception):
    """Raised for bale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class BaleStats:
    item_count: int
    cost_cents: int
    sold_count: int
    revenue_cents: int
    freebies_count: int
    remaining: int
    progress_pct: float
    is_profitable: bool
    profit_cents: int
    target_price_cents: int
    roi_pct: float

    def to_dict(self) -> dict:
        return asdict(self)


def _counts(order: Order) -> bool:
    return order.shipping_status != ShippingStatus.CANCELLED


def compute_bale_stats(bale: Bale, orders: Iterable[Order], cart_lines: Iterable[dict] = ()) -> BaleStats:
    """
    Pure figures for one bale from its orders (and optionally pending cart lines).

    Cancelled orders are ignored. target_price_cents is the per-piece price
    the remaining pieces need to fetch to recover the full bale cost.
    """
    counted = [o for o in orders if _counts(o)]
    sold = sum(o.quantity for o in counted)
    revenue = sum(o.total_price_cents for o in counted)
    freebies = sum(o.quantity for o in counted if o.is_freebie)

    for line in cart_lines:
        if line.get("bale_id") != bale.id:
            continue
        sold += int(line["quantity"])
        revenue += cart_line_total(line)

    cost = bale.cost_cents or 0
    remaining = max(0, (bale.item_count or 0) - sold)
    to_recover = max(0, cost - revenue)
    target = round(to_recover / remaining) if remaining > 0 else 0
    progress = min(100.0, revenue / cost * 100) if cost > 0 else 100.0
    roi = revenue / cost * 100 if cost > 0 else 0.0

    return BaleStats(
        item_count=bale.item_count or 0,
        cost_cents=cost,
        sold_count=sold,
        revenue_cents=revenue,
        freebies_count=freebies,
        remaining=remaining,
        progress_pct=round(progress, 2),
        is_profitable=revenue >= cost,
        profit_cents=revenue - cost,
        target_price_cents=target,
        roi_pct=round(roi, 2),
    )


def next_bale_status(current: str, sold_count: int, item_count: int) -> str:
    if item_count > 0 and sold_count >= item_count:
        return BaleStatus.SOLD_OUT
    if current == BaleStatus.SOLD_OUT and sold_count < item_count:
        return BaleStatus.ON_SALE
    if current in _DEMOTABLE and 0 < sold_count < item_count:
        return BaleStatus.ON_SALE
    return current


def bale_orders(bale_id: int) -> list[Order]:
    """All orders (any status) on the bale's products."""
    return (
        db.session.query(Order)
        .join(Product, Order.product_id == Product.id)
        .filter(Product.bale_id == bale_id)
        .order_by(Order.id.asc())
        .all()
    )


def get_bale(bale_id: int) -> Bale:
    bale = db.session.get(Bale, bale_id)
    if not bale:
        raise BaleError("Bale not found")
    return bale


def refresh_bale_status(bale_id: int | None) -> Bale | None:
    """
    Recompute and store the bale's status after an order mutation.

    Does not commit; callers own the transaction.
    """
    if bale_id is None:
        return None
    bale = db.session.get(Bale, bale_id)
    if bale is None:
        return None

    db.session.flush()
    stats = compute_bale_stats(bale, bale_orders(bale_id))
    new_status = next_bale_status(bale.status, stats.sold_count, bale.item_count or 0)
    if new_status != bale.status:
        bale.status = new_status
        mirror_service.record_upsert(bale)
    return bale


def get_bale_stats(bale_id: int, cart_lines: Iterable[dict] = ()) -> BaleStats:
    bale = get_bale(bale_id)
    return compute_bale_stats(bale, bale_orders(bale_id), cart_lines)


def is_fully_paid(orders: Iterable[Order]) -> bool:
    counted = [o for o in orders if _counts(o)]
    return all(o.payment_status == PaymentStatus.PAID for o in counted)


def list_bales(*, filter_status: str | None = None, search: str | None = None) -> list[dict]:
    """
    Bales with their stats.

    Active: not Sold Out, or Sold Out with money still owed.
    Completed: Sold Out and every counted order paid.
    """
    if filter_status not in (None, FILTER_ACTIVE, FILTER_COMPLETED):
        raise ValidationError("filter must be Active or Completed")

    needle = (search or "").strip().lower()
    rows = []
    for bale in db.session.query(Bale).order_by(Bale.id.asc()).all():
        if needle and needle not in bale.name.lower() and needle not in str(bale.id):
            continue
        orders = bale_orders(bale.id)
        fully_paid = is_fully_paid(orders)
        completed = bale.status == BaleStatus.SOLD_OUT and fully_paid
        if filter_status == FILTER_ACTIVE and completed:
            continue
        if filter_status == FILTER_COMPLETED and not completed:
            continue
        rows.append({
            **bale.to_dict(),
            "stats": compute_bale_stats(bale, orders).to_dict(),
            "is_fully_paid": fully_paid,
        })
    return rows


def bale_availability(cart_lines: Iterable[dict] = ()) -> list[dict]:
    """On Sale bales with pieces left after DB sales and the pending cart."""
    cart_lines = list(cart_lines)
    rows = []
    bales = db.session.query(Bale).filter_by(status=BaleStatus.ON_SALE).order_by(Bale.id.asc()).all()
    for bale in bales:
        stats = compute_bale_stats(bale, bale_orders(bale.id), cart_lines)
        rows.append({**bale.to_dict(), "remaining": stats.remaining, "target_price_cents": stats.target_price_cents})
    return rows


def bale_customer_breakdown(bale_id: int, search: str | None = None) -> list[dict]:
    """Who bought from this bale, biggest spenders first."""
    get_bale(bale_id)
    session_names = {s.id: s.name for s in db.session.query(LiveSession).all()}
    needle = (search or "").strip().lower()

    groups: dict[str, dict] = {}
    for order in bale_orders(bale_id):
        group = groups.setdefault(order.customer_username, {
            "username": order.customer_username,
            "total_quantity": 0,
            "total_spent_cents": 0,
            "paid_count": 0,
            "transactions": [],
        })
        is_paid = order.payment_status == PaymentStatus.PAID
        group["total_quantity"] += order.quantity
        group["total_spent_cents"] += order.total_price_cents
        if is_paid:
            group["paid_count"] += 1
        if order.session_id is None:
            session_name = OFF_LIVE_SESSION_NAME
        else:
            session_name = session_names.get(order.session_id, "Unknown Session")
        group["transactions"].append({
            "order_id": order.id,
            "session_name": session_name,
            "total_price_cents": order.total_price_cents,
            "quantity": order.quantity,
            "created_at": order.to_dict()["created_at"],
            "is_paid": is_paid,
            "is_freebie": order.is_freebie,
        })

    rows = [g for g in groups.values() if needle in g["username"].lower()]
    return sorted(rows, key=lambda g: g["total_spent_cents"], reverse=True)


def create_bale(payload: dict) -> Bale:
    patch = validate_payload(model=Bale, payload=payload, policy=BALE_POLICY, partial=False)
    enforce_rules_bale(patch)
    bale = Bale(**patch)
    db.session.add(bale)
    mirror_service.record_upsert(bale)
    db.session.commit()
    return bale


def update_bale(bale_id: int, payload: dict) -> Bale:
    bale = get_bale(bale_id)
    patch = validate_payload(model=Bale, payload=payload, policy=BALE_POLICY, partial=True)
    enforce_rules_bale(patch)
    for key, value in patch.items():
        setattr(bale, key, value)
    mirror_service.record_upsert(bale)
    db.session.commit()
    return bale


def delete_bale(bale_id: int) -> None:
    """Delete a bale and its products. Bales with recorded orders are kept."""
    bale = get_bale(bale_id)
    orders = bale_orders(bale_id)
    if orders:
        raise BaleError("Cannot delete a bale with orders", details={"order_count": len(orders)})
    for product in db.session.query(Product).filter_by(bale_id=bale_id).all():
        mirror_service.record_delete(product)
        db.session.delete(product)
    mirror_service.record_delete(bale)
    db.session.delete(bale)
    db.session.commit()
