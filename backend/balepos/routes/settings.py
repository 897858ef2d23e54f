# Overview: Flask API routes for shop settings.

from flask import Blueprint, request, jsonify

from ..extensions import db
from ..services import settings_service
from ..services.settings_service import SettingsError
from ..decorators import require_approved_device


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_approved_device
def get_settings_route():
    settings = settings_service.get_settings()
    db.session.commit()
    return jsonify({"settings": settings.to_dict()}), 200


@settings_bp.patch("")
@require_approved_device
def update_settings_route():
    """Body: any of logo_url, is_dark_mode, preset_prices (list of cents)."""
    payload = request.get_json(silent=True)
    try:
        settings = settings_service.update_settings(payload)
        return jsonify({"settings": settings.to_dict()}), 200
    except SettingsError as e:
        return jsonify({"error": str(e)}), 400
