from __future__ import annotations

from ..extensions import db
from balepos.time_utils import to_utc_z


# Pesos; stored in cents on the settings row
DEFAULT_PRESET_PRICES_CENTS = [p * 100 for p in (10, 50, 80, 130, 150, 160, 170, 180, 190, 200)]

DEFAULT_EXPENSE_CATEGORIES = [
    "Capital",
    "Inventory Restock",
    "Loan",
    "Miscellaneous",
    "Packaging",
    "Personal Withdrawal",
    "Rent",
    "Salary",
    "Shipping Fee",
    "Utilities",
]

SHOP_SETTINGS_ID = 1


class ShopSettings(db.Model):
    """
    Single-row shop configuration (id is always 1).

    data_version is a refresh counter bumped on checkout and order edits so
    clients can poll it and re-read bale availability only when it moves.
    """
    __tablename__ = "shop_settings"

    id = db.Column(db.Integer, primary_key=True)
    logo_url = db.Column(db.String(512), nullable=True)
    is_dark_mode = db.Column(db.Boolean, nullable=False, default=False)
    preset_prices = db.Column(db.JSON, nullable=False, default=lambda: list(DEFAULT_PRESET_PRICES_CENTS))
    expense_categories = db.Column(db.JSON, nullable=False, default=lambda: list(DEFAULT_EXPENSE_CATEGORIES))
    data_version = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "logo_url": self.logo_url,
            "is_dark_mode": self.is_dark_mode,
            "preset_prices": list(self.preset_prices or []),
            "expense_categories": list(self.expense_categories or []),
            "data_version": self.data_version,
            "updated_at": to_utc_z(self.updated_at),
        }


class CartDraft(db.Model):
    """
    In-progress live cart for one client, persisted so a page reload or a
    second tab continues where the seller left off.

    lines: [{"line_id", "price_cents", "quantity", "is_freebie", "bale_id"}],
    newest line first. A line restored from orders whose total does not
    divide by its quantity also carries "total_cents", the exact line total.
    """
    __tablename__ = "cart_drafts"
    __table_args__ = (
        db.UniqueConstraint("client_key", name="uq_cart_drafts_client"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_key = db.Column(db.String(64), nullable=False)

    # str(LiveSession.id) or OFF_LIVE
    session_key = db.Column(db.String(32), nullable=True)
    username = db.Column(db.String(128), nullable=True)
    transaction_no = db.Column(db.String(128), nullable=True)
    selected_bale_id = db.Column(db.Integer, nullable=True)
    lines = db.Column(db.JSON, nullable=False, default=list)

    use_vip_ticket = db.Column(db.Boolean, nullable=False, default=False)
    vip_discount_type = db.Column(db.String(16), nullable=False, default="NONE")
    # cents for FIXED, percent for PERCENTAGE
    vip_discount = db.Column(db.Float, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=True)
    amount_tendered_cents = db.Column(db.Integer, nullable=True)
    # checkout_ref of the orders unwound into this cart for editing
    amends_checkout_ref = db.Column(db.String(64), nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "client_key": self.client_key,
            "session_key": self.session_key,
            "username": self.username,
            "transaction_no": self.transaction_no,
            "selected_bale_id": self.selected_bale_id,
            "lines": list(self.lines or []),
            "use_vip_ticket": self.use_vip_ticket,
            "vip_discount_type": self.vip_discount_type,
            "vip_discount": self.vip_discount,
            "payment_method": self.payment_method,
            "amount_tendered_cents": self.amount_tendered_cents,
            "amends_checkout_ref": self.amends_checkout_ref,
            "updated_at": to_utc_z(self.updated_at),
        }


def cart_line_total(line: dict) -> int:
    """Undiscounted line amount in cents."""
    if line.get("total_cents") is not None:
        return int(line["total_cents"])
    return int(line["price_cents"]) * int(line["quantity"])
