# Overview: Flask API routes for device registration and approval.

"""
Device routes.

POST /register is open so a new browser can ask for access; everything
else requires an already-approved device.
"""
from flask import Blueprint, request, jsonify

from ..services import device_service
from ..services.device_service import DeviceError
from ..validation import ValidationError
from ..decorators import require_approved_device, DEVICE_HEADER


devices_bp = Blueprint("devices", __name__, url_prefix="/api/devices")


@devices_bp.post("/register")
def register_route():
    """Body (or X-Device-Id header): {"device_id": "<client uuid>"}."""
    data = request.get_json(silent=True) or {}
    device_id = data.get("device_id") or request.headers.get(DEVICE_HEADER)
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    try:
        device = device_service.register_or_check(
            device_id,
            user_agent=request.headers.get("User-Agent"),
            ip=forwarded or request.remote_addr,
        )
        return jsonify({"device": device.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DeviceError as e:
        return jsonify({"error": str(e), "details": e.details}), 503


@devices_bp.get("")
@require_approved_device
def list_devices_route():
    rows = device_service.list_devices()
    return jsonify({"items": rows, "count": len(rows)}), 200


@devices_bp.patch("/<int:device_pk>")
@require_approved_device
def update_device_route(device_pk: int):
    """Body: {"status": "approved|blocked|pending"} and/or {"name": "..."}."""
    data = request.get_json(silent=True) or {}
    try:
        device = device_service.get_device(device_pk)
        if "status" in data:
            device = device_service.set_status(device_pk, data["status"])
        if "name" in data:
            device = device_service.rename_device(device_pk, data["name"])
        return jsonify({"device": device.to_dict()}), 200
    except DeviceError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@devices_bp.delete("/<int:device_pk>")
@require_approved_device
def delete_device_route(device_pk: int):
    try:
        device_service.delete_device(device_pk)
        return jsonify({"ok": True}), 200
    except DeviceError as e:
        return jsonify({"error": str(e)}), 404
