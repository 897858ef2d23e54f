# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..services import customer_service
from ..services.customer_service import CustomerError
from ..validation import ValidationError, ConflictError
from ..decorators import require_approved_device


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_approved_device
def list_customers_route():
    rows = customer_service.list_customers(request.args.get("search"))
    return jsonify({"items": rows, "count": len(rows)}), 200


@customers_bp.post("")
@require_approved_device
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.create_customer(payload)
        return jsonify({"customer": customer.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409


@customers_bp.patch("/<int:customer_id>")
@require_approved_device
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.update_customer(customer_id, payload)
        return jsonify({"customer": customer.to_dict()}), 200
    except CustomerError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@customers_bp.post("/<int:customer_id>/toggle-vip")
@require_approved_device
def toggle_vip_route(customer_id: int):
    try:
        return jsonify({"customer": customer_service.toggle_vip(customer_id).to_dict()}), 200
    except CustomerError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.post("/<int:customer_id>/toggle-blacklist")
@require_approved_device
def toggle_blacklist_route(customer_id: int):
    try:
        return jsonify({"customer": customer_service.toggle_blacklist(customer_id).to_dict()}), 200
    except CustomerError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.get("/<int:customer_id>/orders")
@require_approved_device
def order_history_route(customer_id: int):
    try:
        rows = customer_service.customer_order_history(customer_id)
        return jsonify({"items": rows, "count": len(rows)}), 200
    except CustomerError as e:
        return jsonify({"error": str(e)}), 404
