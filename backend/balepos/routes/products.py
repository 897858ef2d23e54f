# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

Live items are created by checkout; these routes cover seeded/catalog
products and explicit admin removal.
"""
from flask import Blueprint, request, jsonify, current_app
from ..services import products_service
from ..services.products_service import ProductError
from ..validation import ValidationError, ConflictError
from ..decorators import require_approved_device


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_approved_device
def list_products():
    """
    List products with optional pagination.

    Query params:
    - bale_id: int (optional) - filter by bale
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return products_service.list_products(
        bale_id=request.args.get("bale_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.post("")
@require_approved_device
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        created = products_service.create_product(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_approved_device
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        updated = products_service.update_product(product_id, payload)
    except ProductError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_approved_device
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
    except ProductError as e:
        if e.details:
            return jsonify({"error": str(e), "details": e.details}), 409
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
    return {"ok": True}, 200
