# Overview: Order rows, their per-customer grouping, and group-wide status updates.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..extensions import db
from ..models import (
    Customer,
    Order,
    PaymentMethod,
    PaymentStatus,
    Product,
    ShippingStatus,
)
from ..validation import ValidationError, parse_cents, require_choice
from . import audit_log, mirror_service
from .bale_service import refresh_bale_status
from .concurrency import lock_for_update
from .customer_service import refresh_totals, return_vip_ticket
from .session_service import parse_session_key, refresh_session_totals
from .settings_service import bump_data_version

"""
Payment amounts are integer cents. "Paid" tolerates a 1 cent shortfall so
proportional splits that round down still settle.
"""

PAID_TOLERANCE_CENTS = 1

FILTER_ALL = "All"
FILTER_UNPAID = "Unpaid"
FILTER_PAID = "Paid"
FILTERS = (FILTER_ALL, FILTER_UNPAID, FILTER_PAID)

GROUP_FIELDS = {"payment_status", "amount_paid_cents", "shipping_status", "payment_method", "reference_number"}


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def derive_payment_status(paid_cents: int, total_cents: int) -> str:
    if paid_cents >= total_cents - PAID_TOLERANCE_CENTS:
        return PaymentStatus.PAID
    if paid_cents > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


@dataclass
class OrderGroup:
    """
    All orders of one customer in one session, shown and edited as one row.

    base is the first constituent; status fields shown for the group come
    from it, money fields are sums.
    """
    base: Order
    items: list[Order] = field(default_factory=list)
    is_customer_vip: bool = False

    @property
    def ids(self) -> list[int]:
        return [o.id for o in self.items]

    @property
    def quantity(self) -> int:
        return sum(o.quantity for o in self.items)

    @property
    def total_price_cents(self) -> int:
        return sum(o.total_price_cents for o in self.items)

    @property
    def amount_paid_cents(self) -> int:
        return sum(o.amount_paid_cents for o in self.items)

    @property
    def payment_status(self) -> str:
        return derive_payment_status(self.amount_paid_cents, self.total_price_cents)

    @property
    def shipping_status(self) -> str:
        return self.base.shipping_status

    @property
    def logs(self) -> list:
        return [entry for o in self.items for entry in (o.logs or [])]

    @property
    def rank(self) -> int:
        if self.payment_status != PaymentStatus.PAID:
            return 0
        if self.shipping_status == ShippingStatus.SHIPPED:
            return 2
        return 1

    def to_dict(self) -> dict:
        return {
            **self.base.to_dict(),
            "ids": self.ids,
            "items": [o.to_dict() for o in self.items],
            "quantity": self.quantity,
            "total_price_cents": self.total_price_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "payment_status": self.payment_status,
            "logs": audit_log.collect_log_lines(self.items),
            "is_customer_vip": self.is_customer_vip,
        }


def group_orders(
    orders: Iterable[Order],
    *,
    vip_usernames: Iterable[str] = (),
    filter_status: str = FILTER_ALL,
) -> list[OrderGroup]:
    """
    Group by customer username, then filter and sort.

    Sort: Unpaid/Partial first, then Paid, then Paid and Shipped; newest
    first within a rank.
    """
    require_choice(filter_status, FILTERS, "filter")
    vip = set(vip_usernames)

    groups: dict[str, OrderGroup] = {}
    for o in orders:
        group = groups.get(o.customer_username)
        if group is None:
            group = groups[o.customer_username] = OrderGroup(
                base=o,
                is_customer_vip=o.customer_username in vip,
            )
        group.items.append(o)

    rows = list(groups.values())
    if filter_status == FILTER_UNPAID:
        rows = [g for g in rows if g.payment_status != PaymentStatus.PAID]
    elif filter_status == FILTER_PAID:
        rows = [g for g in rows if g.payment_status == PaymentStatus.PAID]

    # Two stable passes: newest first, then by rank
    rows.sort(key=lambda g: (g.base.created_at, g.base.id), reverse=True)
    rows.sort(key=lambda g: g.rank)
    return rows


def session_orders(session_key, username: str | None = None) -> list[Order]:
    session_id = parse_session_key(session_key)
    query = db.session.query(Order)
    if session_id is None:
        query = query.filter(Order.session_id.is_(None))
    else:
        query = query.filter(Order.session_id == session_id)
    if username is not None:
        query = query.filter(Order.customer_username == username)
    return query.order_by(Order.id.asc()).all()


def session_order_groups(session_key, *, filter_status: str = FILTER_ALL, search: str | None = None) -> list[dict]:
    orders = session_orders(session_key)
    needle = (search or "").strip().lower()
    if needle:
        orders = [o for o in orders if needle in o.customer_username.lower()]
    vip = [c.username for c in db.session.query(Customer).filter_by(is_vip=True).all()]
    return [g.to_dict() for g in group_orders(orders, vip_usernames=vip, filter_status=filter_status)]


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise OrderError("Order not found")
    return order


def _load_orders(ids: Iterable[int]) -> list[Order]:
    ids = list(dict.fromkeys(int(i) for i in ids))
    if not ids:
        raise OrderError("No orders selected")
    orders = lock_for_update(db.session.query(Order).filter(Order.id.in_(ids))).order_by(Order.id.asc()).all()
    missing = sorted(set(ids) - {o.id for o in orders})
    if missing:
        raise OrderError("Order not found", details={"missing_ids": missing})
    return orders


def _bale_id_of(order: Order) -> int | None:
    product = db.session.get(Product, order.product_id)
    return product.bale_id if product else None


def _refresh_derived(orders: Iterable[Order]) -> None:
    """Recompute customer totals, session totals and bale status touched by orders."""
    customers, sessions, bales = set(), set(), set()
    for o in orders:
        customers.add(o.customer_id)
        sessions.add(o.session_id)
        bales.add(_bale_id_of(o))
    for customer_id in customers:
        refresh_totals(customer_id)
    for session_id in sessions:
        refresh_session_totals(session_id)
    for bale_id in bales:
        refresh_bale_status(bale_id)


def add_order(
    *,
    session_id: int | None,
    customer: Customer,
    product: Product,
    quantity: int,
    total_price_cents: int,
    is_freebie: bool = False,
    payment_status: str = PaymentStatus.UNPAID,
    amount_paid_cents: int = 0,
    payment_method: str | None = None,
    reference_number: str | None = None,
    used_vip_ticket: bool = False,
    checkout_ref: str | None = None,
) -> Order:
    """
    Insert one order row and apply its side effects. Does not commit.

    Stock goes down by quantity unless the line is a freebie.
    """
    if quantity <= 0:
        raise OrderError("quantity must be > 0")
    db.session.flush()
    order = Order(
        session_id=session_id,
        customer_id=customer.id,
        customer_username=customer.username,
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        total_price_cents=total_price_cents,
        is_freebie=is_freebie,
        payment_status=payment_status,
        shipping_status=ShippingStatus.PENDING,
        payment_method=payment_method,
        reference_number=reference_number,
        amount_paid_cents=amount_paid_cents,
        used_vip_ticket=used_vip_ticket,
        checkout_ref=checkout_ref,
        logs=[],
    )
    db.session.add(order)
    if not is_freebie:
        product.stock = (product.stock or 0) - quantity
        mirror_service.record_upsert(product)
    mirror_service.record_upsert(order)
    _refresh_derived([order])
    return order


def _set_shipping(order: Order, new_status: str) -> None:
    """Entering Cancelled/RTS from an active state returns the stock."""
    old = order.shipping_status
    entering = new_status in ShippingStatus.STOCK_RETURNING and old not in ShippingStatus.STOCK_RETURNING
    order.shipping_status = new_status
    if entering and not order.is_freebie:
        product = db.session.get(Product, order.product_id)
        if product is not None:
            product.stock = (product.stock or 0) + order.quantity
            mirror_service.record_upsert(product)


def _clean_changes(changes: dict) -> dict:
    if not isinstance(changes, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(changes) - GROUP_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    clean: dict = {}
    if "payment_status" in changes:
        clean["payment_status"] = require_choice(changes["payment_status"], PaymentStatus.ALL, "payment_status")
    if "amount_paid_cents" in changes:
        clean["amount_paid_cents"] = parse_cents(changes["amount_paid_cents"], "amount_paid_cents")
    if "shipping_status" in changes:
        clean["shipping_status"] = require_choice(changes["shipping_status"], ShippingStatus.ALL, "shipping_status")
    if "payment_method" in changes:
        method = changes["payment_method"] or None
        if method is not None:
            require_choice(method, PaymentMethod.ALL, "payment_method")
        clean["payment_method"] = method
    if "reference_number" in changes:
        ref = changes["reference_number"]
        if ref is not None:
            ref = str(ref).strip() or None
        clean["reference_number"] = ref
    return clean


def apply_group_update(ids: Iterable[int], changes: dict) -> OrderGroup:
    """
    Apply aggregate edits to every order of a group.

    - payment_status Paid: each item is paid its own total.
    - payment_status Unpaid: each item is paid 0.
    - payment_status Partial: the aggregate amount is split pro rata over
      item totals; each item's status is derived from its own share.
    - amount_paid_cents alone: the aggregate status is derived from it first.

    One audit entry holding every changed field is appended to each order.
    """
    clean = _clean_changes(changes)
    orders = _load_orders(ids)
    group = OrderGroup(base=orders[0], items=orders)

    old_status = group.payment_status
    old_paid = group.amount_paid_cents
    old_shipping = group.shipping_status
    old_method = group.base.payment_method
    old_ref = group.base.reference_number
    group_total = group.total_price_cents

    new_status = clean.get("payment_status")
    new_amount = clean.get("amount_paid_cents")
    if new_status is None and new_amount is not None:
        new_status = derive_payment_status(new_amount, group_total)

    if new_status is not None:
        if new_status == PaymentStatus.PARTIAL and new_amount is None:
            new_amount = old_paid
        ratio = (new_amount / group_total) if (new_amount is not None and group_total > 0) else 0
        for o in orders:
            if new_status == PaymentStatus.PAID:
                o.amount_paid_cents = o.total_price_cents
                o.payment_status = PaymentStatus.PAID
            elif new_status == PaymentStatus.UNPAID:
                o.amount_paid_cents = 0
                o.payment_status = PaymentStatus.UNPAID
            else:
                o.amount_paid_cents = round(o.total_price_cents * ratio)
                o.payment_status = derive_payment_status(o.amount_paid_cents, o.total_price_cents)

    for o in orders:
        if "shipping_status" in clean:
            _set_shipping(o, clean["shipping_status"])
        if "payment_method" in clean:
            o.payment_method = clean["payment_method"]
        if "reference_number" in clean:
            o.reference_number = clean["reference_number"]

    rows = []
    if group.payment_status != old_status:
        rows.append(audit_log.change(audit_log.STATUS, old_status, group.payment_status))
    if group.amount_paid_cents != old_paid:
        rows.append(audit_log.change(
            audit_log.PAID,
            audit_log.format_amount(old_paid),
            audit_log.format_amount(group.amount_paid_cents),
        ))
    if "shipping_status" in clean and clean["shipping_status"] != old_shipping:
        rows.append(audit_log.change(audit_log.SHIPPING, old_shipping, clean["shipping_status"]))
    if "payment_method" in clean and clean["payment_method"] != old_method:
        rows.append(audit_log.change(audit_log.METHOD, old_method, clean["payment_method"]))
    if "reference_number" in clean and clean["reference_number"] != old_ref:
        rows.append(audit_log.change(audit_log.REF, old_ref, clean["reference_number"]))

    if rows:
        entry = audit_log.make_entry(rows)
        for o in orders:
            audit_log.append_entry(o, entry)

    for o in orders:
        mirror_service.record_upsert(o)
    _refresh_derived(orders)
    bump_data_version()
    db.session.commit()
    return group


def update_order(order_id: int, changes: dict) -> Order:
    """Single-order edit; same rules as a group of one."""
    apply_group_update([order_id], changes)
    return get_order(order_id)


def _ticket_key(order: Order) -> str:
    return order.checkout_ref or f"order-{order.id}"


def delete_orders(ids: Iterable[int], *, commit: bool = True) -> dict:
    """
    Delete orders, reversing their effects.

    - Stock is returned for non-freebie orders not already Cancelled/RTS
      (those returned their stock on the status change).
    - A checkout that consumed a VIP ticket gets it back once, when its
      last ticket-bearing order is deleted.
    """
    orders = _load_orders(ids)
    deleting = {o.id for o in orders}

    stock_returned = 0
    for o in orders:
        if o.is_freebie or o.shipping_status in ShippingStatus.STOCK_RETURNING:
            continue
        product = db.session.get(Product, o.product_id)
        if product is not None:
            product.stock = (product.stock or 0) + o.quantity
            mirror_service.record_upsert(product)
            stock_returned += o.quantity

    tickets_returned = 0
    seen_keys: set[str] = set()
    for o in orders:
        if not o.used_vip_ticket:
            continue
        key = _ticket_key(o)
        if key in seen_keys:
            continue
        seen_keys.add(key)
        if o.checkout_ref:
            remaining = (
                db.session.query(Order)
                .filter(Order.checkout_ref == o.checkout_ref)
                .filter(Order.used_vip_ticket.is_(True))
                .filter(Order.id.notin_(list(deleting)))
                .count()
            )
            if remaining:
                continue
        customer = db.session.get(Customer, o.customer_id)
        if customer is not None:
            return_vip_ticket(customer)
            tickets_returned += 1

    touched = [(o.customer_id, o.session_id, _bale_id_of(o)) for o in orders]
    for o in orders:
        mirror_service.record_delete(o)
        db.session.delete(o)
    db.session.flush()

    for customer_id, session_id, bale_id in touched:
        refresh_totals(customer_id)
        refresh_session_totals(session_id)
        refresh_bale_status(bale_id)
    bump_data_version()

    if commit:
        db.session.commit()
    return {
        "deleted": len(orders),
        "stock_returned": stock_returned,
        "tickets_returned": tickets_returned,
    }


def delete_group(session_key, username: str) -> dict:
    orders = session_orders(session_key, username=username)
    if not orders:
        raise OrderError("No orders for customer in session", details={"username": username})
    return delete_orders([o.id for o in orders])


def group_log_rows(ids: Iterable[int]) -> list[dict]:
    """Deduplicated audit lines, newest first, each with its parsed change rows."""
    orders = _load_orders(ids)
    rows = []
    for line in audit_log.collect_log_lines(orders):
        parsed = audit_log.parse_log_line(line)
        rows.append({
            "line": line,
            "stamp": parsed.stamp,
            "changes": [{"field": c.field, "old": c.old, "new": c.new} for c in parsed.changes],
        })
    return rows
