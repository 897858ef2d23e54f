from __future__ import annotations

from ..extensions import db
from balepos.time_utils import to_utc_z


class BaleStatus:
    ORDERED = "Ordered"
    ARRIVED = "Arrived"
    ON_SALE = "On Sale"
    SOLD_OUT = "Sold Out"

    ALL = (ORDERED, ARRIVED, ON_SALE, SOLD_OUT)


class Bale(db.Model):
    """
    A wholesale batch bought as one capital investment.

    WHY: Every live item is attributed to a bale so the shop can see how much
    of the bale's cost has been recovered and how many pieces are left.
    Status is maintained by the lifecycle calculator after order mutations;
    Ordered/Arrived are only ever set by a human.
    """
    __tablename__ = "bales"
    __table_args__ = (
        db.Index("ix_bales_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=BaleStatus.ORDERED)

    # Capital spent on the bale (cents) and number of pieces inside
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    item_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "cost_cents": self.cost_cents,
            "item_count": self.item_count,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class Product(db.Model):
    """
    Sellable item belonging to a bale.

    Live items are synthetic: one row per (bale, price, freebie) signature,
    reused across every sale at that price. See LiveProductKey.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_bale_id", "bale_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(128), nullable=True)
    bale_id = db.Column(db.Integer, db.ForeignKey("bales.id"), nullable=True)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Synthetic live products start at 0 and go negative as they sell
    stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    bale = db.relationship("Bale", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "brand": self.brand,
            "bale_id": self.bale_id,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock": self.stock,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
