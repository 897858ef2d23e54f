# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .models import DeviceStatus
from .services import device_service

DEVICE_HEADER = "X-Device-Id"


def require_approved_device(f):
    """
    Require the calling browser to be an approved device.

    Sets g.device_id from the X-Device-Id header. Returns 403 when the device
    is unknown, pending or blocked. Skipped when DEVICE_GATE_ENABLED is off.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        device_id = (request.headers.get(DEVICE_HEADER) or "").strip() or None
        g.device_id = device_id

        if not current_app.config.get("DEVICE_GATE_ENABLED", True):
            return f(*args, **kwargs)

        if not device_id:
            return jsonify({"error": "Device id required"}), 403

        device = device_service.find_by_device_id(device_id)
        if device is None:
            return jsonify({"error": "Device not registered"}), 403
        if device.status != DeviceStatus.APPROVED:
            return jsonify({"error": "Device not approved", "status": device.status}), 403

        return f(*args, **kwargs)

    return decorated_function
