# Overview: Flask API routes for bale operations; parses input and returns JSON responses.

"""
Bale routes: CRUD, lifecycle figures, and per-customer dispersal.

All routes require an approved device.
"""
from flask import Blueprint, request, jsonify, current_app

from ..services import bale_service
from ..services.bale_service import BaleError
from ..validation import ValidationError
from ..decorators import require_approved_device


bales_bp = Blueprint("bales", __name__, url_prefix="/api/bales")


@bales_bp.get("")
@require_approved_device
def list_bales_route():
    """
    Query params:
    - filter: Active | Completed (optional)
    - search: name or id fragment (optional)
    """
    try:
        rows = bale_service.list_bales(
            filter_status=request.args.get("filter") or None,
            search=request.args.get("search"),
        )
        return jsonify({"items": rows, "count": len(rows)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@bales_bp.get("/availability")
@require_approved_device
def availability_route():
    """On Sale bales with pieces left after recorded sales."""
    return jsonify({"items": bale_service.bale_availability()}), 200


@bales_bp.post("")
@require_approved_device
def create_bale_route():
    payload = request.get_json(silent=True) or {}
    try:
        bale = bale_service.create_bale(payload)
        return jsonify({"bale": bale.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create bale")
        return jsonify({"error": "Internal server error"}), 500


@bales_bp.get("/<int:bale_id>")
@require_approved_device
def get_bale_route(bale_id: int):
    try:
        bale = bale_service.get_bale(bale_id)
        stats = bale_service.get_bale_stats(bale_id)
        return jsonify({"bale": bale.to_dict(), "stats": stats.to_dict()}), 200
    except BaleError as e:
        return jsonify({"error": str(e)}), 404


@bales_bp.patch("/<int:bale_id>")
@require_approved_device
def update_bale_route(bale_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        bale = bale_service.update_bale(bale_id, payload)
        return jsonify({"bale": bale.to_dict()}), 200
    except BaleError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update bale")
        return jsonify({"error": "Internal server error"}), 500


@bales_bp.delete("/<int:bale_id>")
@require_approved_device
def delete_bale_route(bale_id: int):
    try:
        bale_service.delete_bale(bale_id)
        return jsonify({"ok": True}), 200
    except BaleError as e:
        status = 404 if str(e) == "Bale not found" else 409
        return jsonify({"error": str(e), "details": e.details}), status
    except Exception:
        current_app.logger.exception("Failed to delete bale")
        return jsonify({"error": "Internal server error"}), 500


@bales_bp.get("/<int:bale_id>/customers")
@require_approved_device
def bale_customers_route(bale_id: int):
    try:
        rows = bale_service.bale_customer_breakdown(bale_id, request.args.get("search"))
        return jsonify({"items": rows, "count": len(rows)}), 200
    except BaleError as e:
        return jsonify({"error": str(e)}), 404
