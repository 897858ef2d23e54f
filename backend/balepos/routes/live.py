# Overview: Flask API routes for live selling; sessions, the cart draft and checkout.

"""
Live selling routes.

The cart draft belongs to the calling device (X-Device-Id); without one,
the `client_key` query parameter or a shared default draft is used.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import bale_service, cart_service, customer_service, session_service
from ..services.cart_service import CheckoutError
from ..services.order_service import OrderError
from ..services.session_service import SessionError
from ..validation import ValidationError
from ..decorators import require_approved_device


live_bp = Blueprint("live", __name__, url_prefix="/api/live")

DEFAULT_CLIENT_KEY = "default"


def _client_key() -> str:
    return getattr(g, "device_id", None) or request.args.get("client_key") or DEFAULT_CLIENT_KEY


def _error(e, status: int = 400):
    return jsonify({"error": str(e), "details": getattr(e, "details", {})}), status


def _draft_response(draft, status: int = 200):
    view = cart_service.draft_view(draft)
    db.session.commit()
    return jsonify({"cart": view}), status


# --- Sessions ---

@live_bp.get("/sessions")
@require_approved_device
def list_sessions_route():
    """
    Query params:
    - search: session name fragment
    - date_filter: All | Today | Week | Month | Custom
    - custom_date: YYYY-MM-DD (with Custom)
    """
    try:
        rows = session_service.list_sessions(
            search=request.args.get("search"),
            date_filter=request.args.get("date_filter", "All"),
            custom_date=request.args.get("custom_date"),
        )
        return jsonify({"items": rows, "count": len(rows)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@live_bp.get("/sessions/open")
@require_approved_device
def open_session_route():
    session = session_service.get_open_session()
    return jsonify({"session": session.to_dict() if session else None}), 200


@live_bp.get("/sessions/today")
@require_approved_device
def todays_history_route():
    return jsonify({"items": session_service.todays_history()}), 200


@live_bp.post("/sessions")
@require_approved_device
def start_session_route():
    data = request.get_json(silent=True) or {}
    try:
        session = session_service.start_session(data.get("name"))
        return jsonify({"session": session.to_dict()}), 201
    except SessionError as e:
        return _error(e, 409)
    except Exception:
        current_app.logger.exception("Failed to start live session")
        return jsonify({"error": "Internal server error"}), 500


@live_bp.get("/sessions/<session_key>")
@require_approved_device
def session_review_route(session_key: str):
    try:
        return jsonify(session_service.session_review(session_key)), 200
    except SessionError as e:
        return _error(e, 404)


@live_bp.post("/sessions/<session_key>/end")
@require_approved_device
def end_session_route(session_key: str):
    try:
        summary = session_service.end_session(session_key)
        return jsonify({"summary": summary}), 200
    except SessionError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to end live session")
        return jsonify({"error": "Internal server error"}), 500


# --- Cart ---

@live_bp.get("/cart")
@require_approved_device
def get_cart_route():
    try:
        return _draft_response(cart_service.get_draft(_client_key()))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@live_bp.patch("/cart")
@require_approved_device
def update_cart_route():
    """Draft fields: username, transaction_no, selected_bale_id, VIP toggle/discount, payment."""
    payload = request.get_json(silent=True) or {}
    try:
        return _draft_response(cart_service.update_draft(_client_key(), payload))
    except (ValidationError, SessionError) as e:
        return _error(e)


@live_bp.delete("/cart")
@require_approved_device
def clear_cart_route():
    return _draft_response(cart_service.clear_cart(_client_key()))


@live_bp.post("/cart/items")
@require_approved_device
def add_to_cart_route():
    """Body: {"price_cents": int, "is_freebie": bool}."""
    data = request.get_json(silent=True) or {}
    try:
        draft = cart_service.add_to_cart(
            _client_key(),
            data.get("price_cents"),
            is_freebie=bool(data.get("is_freebie", False)),
        )
        return _draft_response(draft, 201)
    except cart_service.OutOfStockError as e:
        return _error(e, 409)
    except cart_service.CustomerBlockedError as e:
        return _error(e, 403)
    except (CheckoutError, ValidationError) as e:
        return _error(e)


@live_bp.patch("/cart/items/<line_id>")
@require_approved_device
def update_cart_line_route(line_id: str):
    data = request.get_json(silent=True) or {}
    try:
        draft = cart_service.set_line_quantity(_client_key(), line_id, data.get("quantity"))
        return _draft_response(draft)
    except cart_service.OutOfStockError as e:
        return _error(e, 409)
    except (CheckoutError, ValidationError) as e:
        return _error(e)


@live_bp.delete("/cart/items/<line_id>")
@require_approved_device
def remove_cart_line_route(line_id: str):
    try:
        return _draft_response(cart_service.remove_line(_client_key(), line_id))
    except CheckoutError as e:
        return _error(e, 404)


@live_bp.get("/availability")
@require_approved_device
def availability_route():
    """On Sale bales with pieces left after recorded sales and this cart."""
    draft = cart_service.get_draft(_client_key())
    rows = bale_service.bale_availability(draft.lines or [])
    db.session.commit()
    return jsonify({"items": rows}), 200


@live_bp.post("/checkout")
@require_approved_device
def checkout_route():
    try:
        result = cart_service.checkout(_client_key())
        return jsonify(result), 201
    except cart_service.CustomerBlockedError as e:
        return _error(e, 403)
    except (CheckoutError, SessionError, ValidationError) as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@live_bp.post("/sessions/<session_key>/customers/<username>/edit")
@require_approved_device
def edit_customer_order_route(session_key: str, username: str):
    """Unwind a customer's orders into this device's cart. Body: {"replace": bool}."""
    data = request.get_json(silent=True) or {}
    try:
        draft = cart_service.edit_customer_order(
            _client_key(), session_key, username, replace=bool(data.get("replace", False)),
        )
        return _draft_response(draft)
    except (CheckoutError, OrderError, SessionError, ValidationError) as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to unwind customer order")
        return jsonify({"error": "Internal server error"}), 500


@live_bp.post("/vip-ticket")
@require_approved_device
def grant_vip_ticket_route():
    """'Make VIP' for the username in the body (or the cart's username)."""
    data = request.get_json(silent=True) or {}
    username = data.get("username") or cart_service.get_draft(_client_key()).username
    try:
        customer = customer_service.grant_vip_ticket(username)
        return jsonify({"customer": customer.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
