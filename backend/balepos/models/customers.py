from __future__ import annotations

from ..extensions import db
from balepos.time_utils import to_utc_z


class Customer(db.Model):
    """
    Live buyer, identified by their platform username.

    total_spent_cents / order_count are denormalized and always rewritten
    from the customer's non-cancelled orders (customer_service.refresh_totals).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_customers_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(128), nullable=False)

    is_vip = db.Column(db.Boolean, nullable=False, default=False)
    vip_tickets = db.Column(db.Integer, nullable=False, default=0)
    is_blacklisted = db.Column(db.Boolean, nullable=False, default=False)

    # Denormalized aggregates
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    order_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "is_vip": self.is_vip,
            "vip_tickets": self.vip_tickets,
            "is_blacklisted": self.is_blacklisted,
            "total_spent_cents": self.total_spent_cents,
            "order_count": self.order_count,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
