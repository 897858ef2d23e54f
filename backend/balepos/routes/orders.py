# Overview: Flask API routes for order operations; parses input and returns JSON responses.

"""
Order routes.

Orders are shown grouped per customer within a session; edits to a group
apply to every order in it.
"""
from flask import Blueprint, request, jsonify, current_app

from ..services import order_service
from ..services.order_service import OrderError
from ..services.session_service import SessionError
from ..validation import ValidationError
from ..decorators import require_approved_device


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _ids_from(data: dict) -> list[int]:
    ids = data.get("ids")
    if not isinstance(ids, list) or not ids:
        raise ValidationError("ids must be a non-empty list")
    try:
        return [int(i) for i in ids]
    except (TypeError, ValueError):
        raise ValidationError("ids must be integers")


def _order_error(e: OrderError):
    status = 404 if str(e) == "Order not found" else 400
    return jsonify({"error": str(e), "details": e.details}), status


@orders_bp.get("/sessions/<session_key>/groups")
@require_approved_device
def session_groups_route(session_key: str):
    """
    Query params:
    - filter: All | Unpaid | Paid
    - search: username fragment
    """
    try:
        groups = order_service.session_order_groups(
            session_key,
            filter_status=request.args.get("filter", "All"),
            search=request.args.get("search"),
        )
        return jsonify({"items": groups, "count": len(groups)}), 200
    except SessionError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@orders_bp.patch("/groups")
@require_approved_device
def update_group_route():
    """
    Body: {"ids": [...], "changes": {payment_status, amount_paid_cents,
    shipping_status, payment_method, reference_number}}
    """
    data = request.get_json(silent=True) or {}
    try:
        group = order_service.apply_group_update(_ids_from(data), data.get("changes") or {})
        return jsonify({"group": group.to_dict()}), 200
    except OrderError as e:
        return _order_error(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update order group")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/groups/logs")
@require_approved_device
def group_logs_route():
    data = request.get_json(silent=True) or {}
    try:
        rows = order_service.group_log_rows(_ids_from(data))
        return jsonify({"items": rows}), 200
    except OrderError as e:
        return _order_error(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@orders_bp.post("/delete")
@require_approved_device
def delete_orders_route():
    data = request.get_json(silent=True) or {}
    try:
        result = order_service.delete_orders(_ids_from(data))
        return jsonify(result), 200
    except OrderError as e:
        return _order_error(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to delete orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/sessions/<session_key>/customers/<username>")
@require_approved_device
def delete_group_route(session_key: str, username: str):
    try:
        result = order_service.delete_group(session_key, username)
        return jsonify(result), 200
    except (OrderError, SessionError) as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except Exception:
        current_app.logger.exception("Failed to delete order group")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_approved_device
def get_order_route(order_id: int):
    try:
        return jsonify({"order": order_service.get_order(order_id).to_dict()}), 200
    except OrderError as e:
        return _order_error(e)


@orders_bp.patch("/<int:order_id>")
@require_approved_device
def update_order_route(order_id: int):
    changes = request.get_json(silent=True) or {}
    try:
        order = order_service.update_order(order_id, changes)
        return jsonify({"order": order.to_dict()}), 200
    except OrderError as e:
        return _order_error(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_approved_device
def delete_order_route(order_id: int):
    try:
        result = order_service.delete_orders([order_id])
        return jsonify(result), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500
