# Overview: Customer records, VIP tickets, and the single reducer for spend totals.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, LiveSession, Order, ShippingStatus, OFF_LIVE_SESSION_NAME
from ..validation import (
    CUSTOMER_POLICY,
    ConflictError,
    ValidationError,
    enforce_rules_customer,
    validate_payload,
)
from balepos.time_utils import to_utc_z
from . import mirror_service


class CustomerError(Exception):
    """Raised for customer operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def normalize_username(username: str | None) -> str:
    name = (username or "").strip()
    if not name:
        raise ValidationError("username is required")
    return name


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise CustomerError("Customer not found")
    return customer


def find_customer(username: str) -> Customer | None:
    """Exact (case-sensitive) username lookup."""
    return db.session.query(Customer).filter_by(username=normalize_username(username)).first()


def get_or_create_customer(username: str) -> Customer:
    """Does not commit."""
    name = normalize_username(username)
    customer = db.session.query(Customer).filter_by(username=name).first()
    if customer is None:
        customer = Customer(username=name, is_vip=False, vip_tickets=0, is_blacklisted=False)
        db.session.add(customer)
        mirror_service.record_upsert(customer)
    return customer


def refresh_totals(customer_id: int | None) -> Customer | None:
    """
    Rewrite total_spent_cents/order_count from the customer's non-cancelled orders.

    This is the only writer of the two aggregates. Does not commit.
    """
    if customer_id is None:
        return None
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return None

    db.session.flush()
    total, count = (
        db.session.query(func.coalesce(func.sum(Order.total_price_cents), 0), func.count(Order.id))
        .filter(Order.customer_id == customer_id)
        .filter(Order.shipping_status != ShippingStatus.CANCELLED)
        .one()
    )
    if customer.total_spent_cents != int(total) or customer.order_count != int(count):
        customer.total_spent_cents = int(total)
        customer.order_count = int(count)
        mirror_service.record_upsert(customer)
    return customer


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_rules_customer(patch)
    if db.session.query(Customer).filter_by(username=patch["username"]).first():
        raise ConflictError(f"Customer {patch['username']} already exists")
    customer = Customer(**patch)
    db.session.add(customer)
    mirror_service.record_upsert(customer)
    db.session.commit()
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    customer = get_customer(customer_id)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_rules_customer(patch)
    if "username" in patch and patch["username"] != customer.username:
        raise ValidationError("username cannot be changed")
    for key, value in patch.items():
        setattr(customer, key, value)
    mirror_service.record_upsert(customer)
    db.session.commit()
    return customer


def toggle_vip(customer_id: int) -> Customer:
    customer = get_customer(customer_id)
    customer.is_vip = not customer.is_vip
    mirror_service.record_upsert(customer)
    db.session.commit()
    return customer


def toggle_blacklist(customer_id: int) -> Customer:
    customer = get_customer(customer_id)
    customer.is_blacklisted = not customer.is_blacklisted
    mirror_service.record_upsert(customer)
    db.session.commit()
    return customer


def grant_vip_ticket(username: str) -> Customer:
    """'Make VIP': flag the customer and add one ticket."""
    customer = get_or_create_customer(username)
    customer.is_vip = True
    customer.vip_tickets = (customer.vip_tickets or 0) + 1
    mirror_service.record_upsert(customer)
    db.session.commit()
    return customer


def return_vip_ticket(customer: Customer) -> None:
    """Does not commit."""
    customer.vip_tickets = (customer.vip_tickets or 0) + 1
    mirror_service.record_upsert(customer)


def list_customers(search: str | None = None) -> list[dict]:
    """
    Customers with figures recomputed from orders, biggest spenders first.
    """
    needle = (search or "").strip().lower()
    stats: dict[str, dict] = {}
    for order in db.session.query(Order).filter(Order.shipping_status != ShippingStatus.CANCELLED).all():
        row = stats.setdefault(order.customer_username, {"total_spent_cents": 0, "order_count": 0, "last_order_at": None})
        row["total_spent_cents"] += order.total_price_cents
        row["order_count"] += 1
        if row["last_order_at"] is None or order.created_at > row["last_order_at"]:
            row["last_order_at"] = order.created_at

    rows = []
    for customer in db.session.query(Customer).order_by(Customer.username.asc()).all():
        if needle and needle not in customer.username.lower():
            continue
        figures = stats.get(customer.username, {"total_spent_cents": 0, "order_count": 0, "last_order_at": None})
        data = customer.to_dict()
        data["total_spent_cents"] = figures["total_spent_cents"]
        data["order_count"] = figures["order_count"]
        data["last_order_at"] = to_utc_z(figures["last_order_at"])
        rows.append(data)
    return sorted(rows, key=lambda r: r["total_spent_cents"], reverse=True)


def customer_order_history(customer_id: int) -> list[dict]:
    customer = get_customer(customer_id)
    session_names = {s.id: s.name for s in db.session.query(LiveSession).all()}
    orders = (
        db.session.query(Order)
        .filter(Order.customer_id == customer.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    history = []
    for order in orders:
        data = order.to_dict()
        if order.session_id is None:
            data["session_name"] = OFF_LIVE_SESSION_NAME
        else:
            data["session_name"] = session_names.get(order.session_id, "Unknown Session")
        history.append(data)
    return history
