# Overview: Cash ledger entries, wallet balances, and collected-profit figures.

from __future__ import annotations

from ..extensions import db
from ..models import Order, PaymentMethod, Transaction, TransactionType
from ..validation import (
    TRANSACTION_POLICY,
    enforce_rules_transaction,
    validate_payload,
)
from balepos.time_utils import utcnow
from . import mirror_service
from .settings_service import add_expense_category


class AccountingError(Exception):
    """Raised for ledger errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def add_transaction(payload: dict) -> Transaction:
    """Record a ledger entry; an unseen category is added to the category list."""
    patch = validate_payload(model=Transaction, payload=payload, policy=TRANSACTION_POLICY, partial=False)
    enforce_rules_transaction(patch)
    patch.setdefault("created_at", utcnow())

    tx = Transaction(**patch)
    db.session.add(tx)
    add_expense_category(tx.category)
    mirror_service.record_upsert(tx)
    db.session.commit()
    return tx


def get_transaction(tx_id: int) -> Transaction:
    tx = db.session.get(Transaction, tx_id)
    if not tx:
        raise AccountingError("Transaction not found")
    return tx


def list_transactions(category: str | None = None) -> list[dict]:
    """Newest first; 'All' or empty means no category filter."""
    query = db.session.query(Transaction)
    if category and category != "All":
        query = query.filter(Transaction.category == category)
    rows = query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()
    return [t.to_dict() for t in rows]


def signed_amount(tx: Transaction) -> int:
    """Effect on the wallet: expenses and withdrawals leave, loans come in."""
    if tx.type in TransactionType.OUTFLOWS:
        return -tx.amount_cents
    return tx.amount_cents


def wallet_balances() -> dict:
    balances = {method: 0 for method in PaymentMethod.ALL}
    for method, paid in (
        db.session.query(Order.payment_method, db.func.coalesce(db.func.sum(Order.amount_paid_cents), 0))
        .filter(Order.payment_method.isnot(None))
        .group_by(Order.payment_method)
        .all()
    ):
        if method in balances:
            balances[method] += int(paid)

    for tx in db.session.query(Transaction).all():
        if tx.wallet in balances:
            balances[tx.wallet] += signed_amount(tx)

    return {"wallets": balances, "total_cents": sum(balances.values())}


def profit_stats() -> dict:
    """Collected revenue (amount paid on all orders) less recorded expenses."""
    revenue = db.session.query(db.func.coalesce(db.func.sum(Order.amount_paid_cents), 0)).scalar()
    expenses = (
        db.session.query(db.func.coalesce(db.func.sum(Transaction.amount_cents), 0))
        .filter(Transaction.type == TransactionType.EXPENSE)
        .scalar()
    )
    return {
        "revenue_cents": int(revenue),
        "expenses_cents": int(expenses),
        "net_cents": int(revenue) - int(expenses),
    }
