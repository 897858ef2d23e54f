# Overview: Live cart drafts and checkout into orders.

from __future__ import annotations

import uuid
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Bale, CartDraft, LiveSession, PaymentMethod, PaymentStatus, Product, OFF_LIVE_SESSION, cart_line_total
from ..validation import ValidationError, parse_cents, require_choice
from .bale_service import compute_bale_stats, bale_orders
from .concurrency import run_with_retry
from .customer_service import find_customer, get_or_create_customer
from .order_service import add_order, delete_orders, derive_payment_status, session_orders
from .products_service import LiveProductKey, upsert_live_product
from .session_service import parse_session_key
from .settings_service import bump_data_version
from . import mirror_service


DISCOUNT_NONE = "NONE"
DISCOUNT_FIXED = "FIXED"
DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_TYPES = (DISCOUNT_NONE, DISCOUNT_FIXED, DISCOUNT_PERCENTAGE)

DRAFT_FIELDS = {
    "session_key",
    "username",
    "transaction_no",
    "selected_bale_id",
    "use_vip_ticket",
    "vip_discount_type",
    "vip_discount",
    "payment_method",
    "amount_tendered_cents",
}


class CheckoutError(Exception):
    """Raised for cart and checkout errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OutOfStockError(CheckoutError):
    pass


class CustomerBlockedError(CheckoutError):
    pass


class NoVipTicketError(CheckoutError):
    pass


@dataclass(frozen=True)
class CartTotals:
    cart_total_cents: int
    discount_cents: int
    final_total_cents: int
    total_items: int

    def to_dict(self) -> dict:
        return {
            "cart_total_cents": self.cart_total_cents,
            "discount_cents": self.discount_cents,
            "final_total_cents": self.final_total_cents,
            "total_items": self.total_items,
        }


def compute_discount(cart_total_cents: int, use_ticket: bool, discount_type: str, value: float) -> int:
    """Fixed amounts are capped at the cart total, percentages at 100."""
    if not use_ticket or discount_type == DISCOUNT_NONE:
        return 0
    value = max(0.0, float(value or 0))
    if discount_type == DISCOUNT_FIXED:
        return min(int(round(value)), cart_total_cents)
    if discount_type == DISCOUNT_PERCENTAGE:
        return int(round(cart_total_cents * min(value, 100.0) / 100))
    return 0


def cart_total(lines: list[dict]) -> int:
    return sum(cart_line_total(l) for l in lines)


def spread_cents(amount: int, weights: list[int]) -> list[int]:
    """
    Split amount over weights in whole cents. The shares always sum to amount.

    Each share is floored, then the leftover cents go one each to the largest
    remainders (earlier lines win ties). Zero weights get nothing.
    """
    base = sum(weights)
    if base <= 0 or amount <= 0:
        return [0] * len(weights)
    shares = [w * amount // base for w in weights]
    leftover = amount - sum(shares)
    by_remainder = sorted(range(len(weights)), key=lambda i: (-(weights[i] * amount % base), i))
    for i in by_remainder[:leftover]:
        shares[i] += 1
    return shares


def cart_totals(draft: CartDraft) -> CartTotals:
    lines = list(draft.lines or [])
    total = cart_total(lines)
    discount = compute_discount(total, draft.use_vip_ticket, draft.vip_discount_type, draft.vip_discount)
    return CartTotals(
        cart_total_cents=total,
        discount_cents=discount,
        final_total_cents=max(0, total - discount),
        total_items=sum(int(l["quantity"]) for l in lines),
    )


def merge_line(lines: list[dict], *, price_cents: int, is_freebie: bool, bale_id: int, line_id: str | None = None) -> list[dict]:
    """
    Add one piece to the cart.

    A line with the same price, freebie flag and bale is incremented and
    moved to the front; otherwise a new line is put in front. Restored lines
    with an exact total_cents are never merged into.
    """
    for idx, line in enumerate(lines):
        if line.get("total_cents") is not None:
            continue
        if line["price_cents"] == price_cents and line["is_freebie"] == is_freebie and line["bale_id"] == bale_id:
            bumped = {**line, "quantity": int(line["quantity"]) + 1}
            return [bumped, *lines[:idx], *lines[idx + 1:]]
    new_line = {
        "line_id": line_id or uuid.uuid4().hex,
        "price_cents": price_cents,
        "quantity": 1,
        "is_freebie": is_freebie,
        "bale_id": bale_id,
    }
    return [new_line, *lines]


def get_draft(client_key: str) -> CartDraft:
    """The client's draft, created empty on first use. Does not commit."""
    client_key = (client_key or "").strip()
    if not client_key:
        raise ValidationError("client key is required")
    draft = db.session.query(CartDraft).filter_by(client_key=client_key).first()
    if draft is None:
        draft = CartDraft(
            client_key=client_key,
            lines=[],
            use_vip_ticket=False,
            vip_discount_type=DISCOUNT_NONE,
            vip_discount=0,
        )
        db.session.add(draft)
        db.session.flush()
    return draft


def draft_view(draft: CartDraft) -> dict:
    customer = find_customer(draft.username) if (draft.username or "").strip() else None
    return {
        **draft.to_dict(),
        "totals": cart_totals(draft).to_dict(),
        "customer": customer.to_dict() if customer else None,
    }


def update_draft(client_key: str, payload: dict) -> CartDraft:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - DRAFT_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    draft = get_draft(client_key)
    if "session_key" in payload:
        session_id = parse_session_key(payload["session_key"])
        draft.session_key = OFF_LIVE_SESSION if session_id is None else str(session_id)
    if "username" in payload:
        draft.username = (payload["username"] or "").strip() or None
    if "transaction_no" in payload:
        draft.transaction_no = (payload["transaction_no"] or "").strip() or None
    if "selected_bale_id" in payload:
        bale_id = payload["selected_bale_id"]
        if bale_id is not None and db.session.get(Bale, bale_id) is None:
            raise ValidationError("selected_bale_id does not exist")
        draft.selected_bale_id = bale_id
    if "use_vip_ticket" in payload:
        draft.use_vip_ticket = bool(payload["use_vip_ticket"])
    if "vip_discount_type" in payload:
        draft.vip_discount_type = require_choice(payload["vip_discount_type"], DISCOUNT_TYPES, "vip_discount_type")
    if "vip_discount" in payload:
        try:
            value = float(payload["vip_discount"] or 0)
        except (TypeError, ValueError):
            raise ValidationError("vip_discount must be a number")
        if value < 0:
            raise ValidationError("vip_discount must be >= 0")
        draft.vip_discount = value
    if "payment_method" in payload:
        method = payload["payment_method"] or None
        if method is not None:
            require_choice(method, PaymentMethod.ALL, "payment_method")
        draft.payment_method = method
    if "amount_tendered_cents" in payload:
        draft.amount_tendered_cents = parse_cents(payload["amount_tendered_cents"], "amount_tendered_cents", allow_none=True)

    db.session.commit()
    return draft


def _check_customer_allowed(username: str | None) -> None:
    if not (username or "").strip():
        return
    customer = find_customer(username)
    if customer is not None and customer.is_blacklisted:
        raise CustomerBlockedError("Customer is blacklisted", details={"username": customer.username})


def _bale_capacity(bale: Bale, lines: list[dict]):
    return compute_bale_stats(bale, bale_orders(bale.id), lines)


def _raise_out_of_stock(bale: Bale, stats) -> None:
    raise OutOfStockError(
        f"{bale.name} is sold out",
        details={"name": bale.name, "total": stats.item_count, "sold": stats.sold_count},
    )


def add_to_cart(client_key: str, price_cents, *, is_freebie: bool = False) -> CartDraft:
    """Add one piece at price_cents from the selected bale. Rejections leave the cart as is."""
    draft = get_draft(client_key)
    _check_customer_allowed(draft.username)

    if draft.selected_bale_id is None:
        raise CheckoutError("Select a bale first")
    bale = db.session.get(Bale, draft.selected_bale_id)
    if bale is None:
        raise CheckoutError("Selected bale no longer exists")

    price = 0 if is_freebie else parse_cents(price_cents, "price_cents")
    lines = list(draft.lines or [])
    stats = _bale_capacity(bale, lines)
    if stats.remaining <= 0:
        _raise_out_of_stock(bale, stats)

    draft.lines = merge_line(lines, price_cents=price, is_freebie=is_freebie, bale_id=bale.id)
    db.session.commit()
    return draft


def remove_line(client_key: str, line_id: str) -> CartDraft:
    draft = get_draft(client_key)
    lines = list(draft.lines or [])
    kept = [l for l in lines if l["line_id"] != line_id]
    if len(kept) == len(lines):
        raise CheckoutError("Cart line not found", details={"line_id": line_id})
    draft.lines = kept
    db.session.commit()
    return draft


def _with_quantity(line: dict, quantity: int) -> dict:
    """A new quantity re-prices a restored line at its unit price."""
    if quantity == int(line["quantity"]):
        return line
    updated = {**line, "quantity": quantity}
    updated.pop("total_cents", None)
    return updated


def set_line_quantity(client_key: str, line_id: str, quantity: int) -> CartDraft:
    """Change a line's quantity; 0 removes it. Increases are checked against the bale."""
    draft = get_draft(client_key)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer")
    lines = list(draft.lines or [])
    match = next((l for l in lines if l["line_id"] == line_id), None)
    if match is None:
        raise CheckoutError("Cart line not found", details={"line_id": line_id})
    if quantity == 0:
        return remove_line(client_key, line_id)

    added = quantity - int(match["quantity"])
    if added > 0:
        bale = db.session.get(Bale, match["bale_id"])
        if bale is not None:
            stats = _bale_capacity(bale, lines)
            if stats.remaining < added:
                _raise_out_of_stock(bale, stats)

    draft.lines = [_with_quantity(l, quantity) if l["line_id"] == line_id else l for l in lines]
    db.session.commit()
    return draft


def clear_cart(client_key: str) -> CartDraft:
    draft = get_draft(client_key)
    draft.lines = []
    draft.amount_tendered_cents = None
    draft.use_vip_ticket = False
    db.session.commit()
    return draft


def _reset_after_checkout(draft: CartDraft) -> None:
    draft.lines = []
    draft.username = None
    draft.transaction_no = None
    draft.use_vip_ticket = False
    draft.vip_discount = 0
    draft.vip_discount_type = DISCOUNT_NONE
    draft.payment_method = None
    draft.amount_tendered_cents = None
    draft.amends_checkout_ref = None


def _line_payments(line_totals: list[int], freebies: list[bool], method: str | None, tendered: int | None) -> list[tuple[str, int]]:
    """
    (payment_status, amount_paid_cents) per line.

    A tendered amount is spread over the lines in whole cents, capped at
    the grand total, so the amounts paid add up to what was collected.
    """
    if method is None:
        paid = [0] * len(line_totals)
    elif tendered is None:
        paid = list(line_totals)
    else:
        paid = spread_cents(min(tendered, sum(line_totals)), line_totals)

    result = []
    for line_total, is_freebie, amount in zip(line_totals, freebies, paid):
        if is_freebie:
            result.append((PaymentStatus.PAID, 0))
        elif method is None:
            result.append((PaymentStatus.UNPAID, 0))
        else:
            result.append((derive_payment_status(amount, line_total), amount))
    return result


def _resolve_session(draft: CartDraft) -> int | None:
    if not draft.session_key:
        raise CheckoutError("No live session selected")
    session_id = parse_session_key(draft.session_key)
    if session_id is not None and not db.session.get(LiveSession, session_id).is_open:
        raise CheckoutError("Live session is closed", details={"session_id": session_id})
    return session_id


def checkout(client_key: str) -> dict:
    """
    Commit the cart as orders, one per cart line, in one transaction.

    A VIP ticket is consumed when the toggle is on; with none left the
    checkout aborts and the toggle is switched off.
    """
    draft = get_draft(client_key)
    username = (draft.username or "").strip()
    if not username:
        raise CheckoutError("Username required")
    if not draft.lines:
        raise CheckoutError("Cart is empty")

    def _op():
        draft = get_draft(client_key)
        session_id = _resolve_session(draft)
        lines = list(draft.lines or [])

        customer = get_or_create_customer(username)
        if customer.is_blacklisted:
            raise CustomerBlockedError("Customer is blacklisted", details={"username": username})

        total = cart_total(lines)
        if draft.use_vip_ticket and draft.vip_discount_type == DISCOUNT_FIXED and (draft.vip_discount or 0) > total:
            raise CheckoutError(
                "Discount cannot be larger than the total amount",
                details={"discount_cents": int(round(draft.vip_discount)), "cart_total_cents": total},
            )

        use_ticket = bool(draft.use_vip_ticket)
        if use_ticket:
            if (customer.vip_tickets or 0) <= 0:
                raise NoVipTicketError("Customer has no VIP tickets left", details={"username": username})
            customer.vip_tickets -= 1
            mirror_service.record_upsert(customer)

        discount = compute_discount(total, use_ticket, draft.vip_discount_type, draft.vip_discount)

        # Discount cents are spread over the paying lines so the orders add
        # up to exactly total - discount.
        bases = [0 if line["is_freebie"] else cart_line_total(line) for line in lines]
        line_totals = [base - cut for base, cut in zip(bases, spread_cents(discount, bases))]
        grand_total = sum(line_totals)
        payments = _line_payments(
            line_totals,
            [bool(line["is_freebie"]) for line in lines],
            draft.payment_method,
            draft.amount_tendered_cents,
        )

        checkout_ref = uuid.uuid4().hex
        orders = []
        for line, line_total, (status, paid) in zip(lines, line_totals, payments):
            qty = int(line["quantity"])
            key = LiveProductKey(
                bale_id=int(line["bale_id"]),
                price_cents=int(line["price_cents"]),
                is_freebie=bool(line["is_freebie"]),
            )
            unit = round(line_total / qty) if qty > 0 else 0
            product = upsert_live_product(key, unit)
            orders.append(add_order(
                session_id=session_id,
                customer=customer,
                product=product,
                quantity=int(line["quantity"]),
                total_price_cents=line_total,
                is_freebie=key.is_freebie,
                payment_status=status,
                amount_paid_cents=paid,
                payment_method=draft.payment_method,
                reference_number=draft.transaction_no,
                used_vip_ticket=use_ticket,
                checkout_ref=checkout_ref,
            ))

        _reset_after_checkout(draft)
        bump_data_version()
        db.session.commit()
        return checkout_ref, customer, orders, grand_total

    try:
        checkout_ref, customer, orders, grand_total = run_with_retry(_op)
    except NoVipTicketError:
        db.session.rollback()
        draft = get_draft(client_key)
        draft.use_vip_ticket = False
        db.session.commit()
        raise
    except CheckoutError:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Checkout %s: %s order(s) for %s, total %s",
        checkout_ref, len(orders), customer.username, grand_total,
    )
    return {
        "checkout_ref": checkout_ref,
        "customer": customer.to_dict(),
        "orders": [o.to_dict() for o in orders],
        "final_total_cents": grand_total,
    }


def edit_customer_order(client_key: str, session_key, username: str, *, replace: bool = False) -> CartDraft:
    """
    Unwind a customer's session orders back into the client's cart.

    The orders are deleted (stock and VIP ticket returned) in the same
    transaction that rebuilds the draft; payment fields start blank.
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    session_id = parse_session_key(session_key)
    if session_id is not None:
        session = db.session.get(LiveSession, session_id)
        if session is None or not session.is_open:
            # Edited orders are checked out again into the same session
            raise CheckoutError("Live session is closed", details={"session_id": session_id})
    orders = session_orders(session_key, username=username)
    if not orders:
        raise CheckoutError("No orders to edit", details={"username": username})

    draft = get_draft(client_key)
    if draft.lines and draft.username != username and not replace:
        raise CheckoutError(
            "Cart is not empty",
            details={"username": draft.username, "line_count": len(draft.lines)},
        )

    lines = []
    for o in orders:
        product = db.session.get(Product, o.product_id)
        unit = o.total_price_cents // o.quantity if o.quantity > 0 else 0
        line = {
            "line_id": f"restored-{o.id}",
            "price_cents": 0 if o.is_freebie else unit,
            "quantity": o.quantity,
            "is_freebie": o.is_freebie,
            "bale_id": product.bale_id if product else None,
        }
        if not o.is_freebie and unit * o.quantity != o.total_price_cents:
            line["total_cents"] = o.total_price_cents
        lines.append(line)
    ticket_used = any(o.used_vip_ticket for o in orders)
    first = orders[0]

    delete_orders([o.id for o in orders], commit=False)

    draft.session_key = OFF_LIVE_SESSION if session_id is None else str(session_id)
    draft.lines = lines
    draft.username = username
    draft.transaction_no = first.reference_number
    draft.use_vip_ticket = ticket_used
    draft.vip_discount = 0
    draft.vip_discount_type = DISCOUNT_NONE
    draft.payment_method = None
    draft.amount_tendered_cents = None
    draft.amends_checkout_ref = first.checkout_ref
    db.session.commit()
    return draft
