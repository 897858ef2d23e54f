# Overview: Flask API routes for the cash ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import accounting_service, settings_service
from ..services.settings_service import SettingsValidationError
from ..validation import ValidationError
from ..decorators import require_approved_device


accounting_bp = Blueprint("accounting", __name__, url_prefix="/api/accounting")


@accounting_bp.get("/transactions")
@require_approved_device
def list_transactions_route():
    """Query params: category (optional, 'All' for every category)."""
    rows = accounting_service.list_transactions(request.args.get("category"))
    return jsonify({"items": rows, "count": len(rows)}), 200


@accounting_bp.post("/transactions")
@require_approved_device
def add_transaction_route():
    payload = request.get_json(silent=True) or {}
    try:
        tx = accounting_service.add_transaction(payload)
        return jsonify({"transaction": tx.to_dict()}), 201
    except (ValidationError, SettingsValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500


@accounting_bp.get("/transactions/<int:tx_id>")
@require_approved_device
def get_transaction_route(tx_id: int):
    try:
        tx = accounting_service.get_transaction(tx_id)
        return jsonify({"transaction": tx.to_dict()}), 200
    except accounting_service.AccountingError as e:
        return jsonify({"error": str(e)}), 404


@accounting_bp.get("/summary")
@require_approved_device
def summary_route():
    return jsonify({
        **accounting_service.wallet_balances(),
        "profit": accounting_service.profit_stats(),
    }), 200


@accounting_bp.get("/categories")
@require_approved_device
def categories_route():
    categories = settings_service.get_expense_categories()
    db.session.commit()
    return jsonify({"items": categories}), 200


@accounting_bp.post("/categories")
@require_approved_device
def add_category_route():
    data = request.get_json(silent=True) or {}
    try:
        categories = settings_service.add_expense_category(data.get("name"))
        db.session.commit()
        return jsonify({"items": categories}), 201
    except SettingsValidationError as e:
        return jsonify({"error": str(e)}), 400


@accounting_bp.put("/categories")
@require_approved_device
def set_categories_route():
    data = request.get_json(silent=True) or {}
    try:
        categories = settings_service.set_expense_categories(data.get("items"))
        return jsonify({"items": categories}), 200
    except SettingsValidationError as e:
        return jsonify({"error": str(e)}), 400
