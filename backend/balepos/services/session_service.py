# Overview: Live selling sessions: open/close, recap summaries, and history lookups.

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import LiveSession, Order, ShippingStatus, OFF_LIVE_SESSION, OFF_LIVE_SESSION_NAME
from balepos.time_utils import parse_session_date, session_date, utcnow
from ..validation import ValidationError
from . import mirror_service


DATE_FILTERS = ("All", "Today", "Week", "Month", "Custom")


class SessionError(Exception):
    """Raised for live session errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def parse_session_key(key) -> int | None:
    """'OFF_LIVE' (or empty) -> None, '12' -> 12. Unknown ids raise."""
    if key is None or key == "" or key == OFF_LIVE_SESSION:
        return None
    try:
        session_id = int(key)
    except (TypeError, ValueError):
        raise SessionError(f"Invalid session: {key}")
    if db.session.get(LiveSession, session_id) is None:
        raise SessionError("Session not found", details={"session_id": session_id})
    return session_id


def get_session(session_id: int) -> LiveSession:
    session = db.session.get(LiveSession, session_id)
    if not session:
        raise SessionError("Session not found")
    return session


def get_open_session() -> LiveSession | None:
    return (
        db.session.query(LiveSession)
        .filter_by(is_open=True)
        .order_by(LiveSession.id.desc())
        .first()
    )


def start_session(name: str | None = None, *, now: datetime | None = None) -> LiveSession:
    """Open a live session. Only one session may be open at a time."""
    now = now or utcnow()
    existing = get_open_session()
    if existing is not None:
        raise SessionError("A live session is already open", details={"session_id": existing.id})

    title = (name or "").strip() or f"Live @ {now.strftime('%I:%M %p')}"
    session = LiveSession(
        name=title,
        date=session_date(now),
        total_sales_cents=0,
        total_orders=0,
        is_open=True,
        created_at=now,
    )
    db.session.add(session)
    mirror_service.record_upsert(session)
    db.session.commit()
    current_app.logger.info("Live session %s opened: %s", session.id, session.name)
    return session


def refresh_session_totals(session_id: int | None) -> LiveSession | None:
    """Rewrite total_sales_cents/total_orders from non-cancelled orders. Does not commit."""
    if session_id is None:
        return None
    session = db.session.get(LiveSession, session_id)
    if session is None:
        return None
    db.session.flush()
    total, count = (
        db.session.query(func.coalesce(func.sum(Order.total_price_cents), 0), func.count(Order.id))
        .filter(Order.session_id == session_id)
        .filter(Order.shipping_status != ShippingStatus.CANCELLED)
        .one()
    )
    if session.total_sales_cents != int(total) or session.total_orders != int(count):
        session.total_sales_cents = int(total)
        session.total_orders = int(count)
        mirror_service.record_upsert(session)
    return session


def summarize_orders(orders: list[Order]) -> dict:
    """Recap figures: sales, items, distinct customers and the top spender."""
    totals: dict[str, int] = {}
    for o in orders:
        totals[o.customer_username] = totals.get(o.customer_username, 0) + o.total_price_cents

    top = None
    for username, spent in totals.items():
        # Ties keep the first customer seen
        if spent > 0 and (top is None or spent > top["total_cents"]):
            top = {"username": username, "total_cents": spent}

    return {
        "total_sales_cents": sum(o.total_price_cents for o in orders),
        "total_items": sum(o.quantity for o in orders),
        "customer_count": len(totals),
        "top_customer": top,
    }


def _session_orders(session_id: int | None) -> list[Order]:
    query = db.session.query(Order)
    if session_id is None:
        query = query.filter(Order.session_id.is_(None))
    else:
        query = query.filter(Order.session_id == session_id)
    return query.order_by(Order.id.asc()).all()


def end_session(session_key) -> dict:
    """
    Close a live session and return its recap.

    OFF_LIVE has no row to close; its recap covers today's manual orders.
    """
    session_id = parse_session_key(session_key)
    if session_id is None:
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        orders = [o for o in _session_orders(None) if o.created_at and o.created_at >= today]
        return {
            "name": OFF_LIVE_SESSION_NAME,
            "date": session_date(today),
            **summarize_orders(orders),
        }

    session = get_session(session_id)
    if not session.is_open:
        raise SessionError("Session is already closed", details={"session_id": session_id})

    orders = _session_orders(session_id)
    refresh_session_totals(session_id)
    session.is_open = False
    session.closed_at = utcnow()
    mirror_service.record_upsert(session)
    db.session.commit()
    current_app.logger.info("Live session %s closed with %s orders", session.id, len(orders))
    return {"name": session.name, "date": session.date, **summarize_orders(orders)}


def _matches_date(session: LiveSession, date_filter: str, custom: datetime | None, today: datetime) -> bool:
    day = parse_session_date(session.date)
    if day is None:
        return date_filter == "All"
    if date_filter == "Today":
        return day.date() == today.date()
    if date_filter == "Week":
        return day >= today - timedelta(days=7)
    if date_filter == "Month":
        return day.month == today.month and day.year == today.year
    if date_filter == "Custom":
        return custom is not None and day.date() == custom.date()
    return True


def list_sessions(
    *,
    search: str | None = None,
    date_filter: str = "All",
    custom_date: str | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Sessions newest first, by name search and calendar filter."""
    if date_filter not in DATE_FILTERS:
        raise ValidationError(f"date_filter must be one of: {', '.join(DATE_FILTERS)}")
    custom = None
    if date_filter == "Custom":
        try:
            custom = datetime.strptime((custom_date or "").strip(), "%Y-%m-%d")
        except ValueError:
            raise ValidationError("custom_date must be YYYY-MM-DD")

    today = (now or utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
    needle = (search or "").strip().lower()
    rows = []
    for s in db.session.query(LiveSession).all():
        if needle and needle not in s.name.lower():
            continue
        if not _matches_date(s, date_filter, custom, today):
            continue
        rows.append(s)

    rows.sort(key=lambda s: (parse_session_date(s.date) or datetime.min, s.id), reverse=True)
    return [s.to_dict() for s in rows]


def todays_history(now: datetime | None = None) -> list[dict]:
    """Finished sessions dated today, newest first."""
    label = session_date(now or utcnow())
    sessions = (
        db.session.query(LiveSession)
        .filter_by(date=label, is_open=False)
        .order_by(LiveSession.id.desc())
        .all()
    )
    return [s.to_dict() for s in sessions]


def session_review(session_key) -> dict:
    """Stored session (or the manual pseudo-session) with its orders."""
    session_id = parse_session_key(session_key)
    orders = _session_orders(session_id)
    if session_id is None:
        head = {"id": OFF_LIVE_SESSION, "name": OFF_LIVE_SESSION_NAME, "is_open": True}
    else:
        head = get_session(session_id).to_dict()
    return {**head, "summary": summarize_orders(orders), "orders": [o.to_dict() for o in orders]}
