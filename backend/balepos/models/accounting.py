from __future__ import annotations

from ..extensions import db
from balepos.time_utils import to_utc_z


class TransactionType:
    EXPENSE = "Expense"
    WITHDRAWAL = "Withdrawal"
    LOAN = "Loan"

    ALL = (EXPENSE, WITHDRAWAL, LOAN)
    # Types that take money out of a wallet
    OUTFLOWS = (EXPENSE, WITHDRAWAL)


class Transaction(db.Model):
    """
    Cash ledger entry outside of sales (expenses, owner withdrawals, loans).

    IMMUTABLE: entries are only ever appended.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_created", "created_at"),
        db.Index("ix_transactions_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    wallet = db.Column(db.String(32), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "wallet": self.wallet,
            "category": self.category,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
