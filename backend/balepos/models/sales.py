from __future__ import annotations

from ..extensions import db
from balepos.time_utils import to_utc_z


# Sentinel key for manual encoding outside of a live; never stored as a row.
OFF_LIVE_SESSION = "OFF_LIVE"
OFF_LIVE_SESSION_NAME = "Manual Encoding"


class PaymentStatus:
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"

    ALL = (UNPAID, PARTIAL, PAID)


class ShippingStatus:
    PENDING = "Pending"
    SHIPPED = "Shipped"
    RTS = "RTS"
    CANCELLED = "Cancelled"

    ALL = (PENDING, SHIPPED, RTS, CANCELLED)
    # Transitions into these return stock
    STOCK_RETURNING = (RTS, CANCELLED)


class PaymentMethod:
    GCASH = "GCash"
    MAYA = "Maya"
    TIKTOK = "TikTok Checkout"
    GOTYME = "GoTyme"
    SEABANK = "SeaBank"
    BPI = "BPI"
    CASH = "Cash"

    ALL = (GCASH, MAYA, TIKTOK, GOTYME, SEABANK, BPI, CASH)


class LiveSession(db.Model):
    """A livestream selling event; orders are attributed to it for reporting."""
    __tablename__ = "live_sessions"
    __table_args__ = (
        db.Index("ix_live_sessions_open", "is_open"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    # en-US calendar label (M/D/YYYY) the session belongs to
    date = db.Column(db.String(16), nullable=False)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    is_open = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "date": self.date,
            "total_sales_cents": self.total_sales_cents,
            "total_orders": self.total_orders,
            "is_open": self.is_open,
            "created_at": to_utc_z(self.created_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
        }


class Order(db.Model):
    """
    One consolidated cart line committed at checkout.

    WHY: A customer typically claims several items during a live; the UI
    shows them as one group per username, but each distinct (bale, price,
    freebie) line is stored separately so stock and bale revenue stay exact.

    session_id NULL means the order was encoded manually (OFF_LIVE).
    checkout_ref ties together the rows written by one checkout; the VIP
    ticket consumed by that checkout is returned once per checkout_ref.
    logs is an append-only list of {"at", "changes": [{"field","old","new"}]}.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_session_username", "session_id", "customer_username"),
        db.Index("ix_orders_product_id", "product_id"),
        db.Index("ix_orders_customer_id", "customer_id"),
        db.Index("ix_orders_checkout_ref", "checkout_ref"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("live_sessions.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    customer_username = db.Column(db.String(128), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    is_freebie = db.Column(db.Boolean, nullable=False, default=False)

    payment_status = db.Column(db.String(16), nullable=False, default=PaymentStatus.UNPAID)
    shipping_status = db.Column(db.String(16), nullable=False, default=ShippingStatus.PENDING)
    payment_method = db.Column(db.String(32), nullable=True)
    reference_number = db.Column(db.String(128), nullable=True)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    used_vip_ticket = db.Column(db.Boolean, nullable=False, default=False)
    checkout_ref = db.Column(db.String(64), nullable=True)
    logs = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    session = db.relationship("LiveSession", backref=db.backref("orders", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    product = db.relationship("Product", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def session_key(self) -> str:
        return str(self.session_id) if self.session_id is not None else OFF_LIVE_SESSION

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_key,
            "customer_id": self.customer_id,
            "customer_username": self.customer_username,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "total_price_cents": self.total_price_cents,
            "is_freebie": self.is_freebie,
            "payment_status": self.payment_status,
            "shipping_status": self.shipping_status,
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "amount_paid_cents": self.amount_paid_cents,
            "used_vip_ticket": self.used_vip_ticket,
            "checkout_ref": self.checkout_ref,
            "logs": list(self.logs or []),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
