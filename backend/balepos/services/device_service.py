# Overview: Device registration, approval status, and the IP/location lookup.

from __future__ import annotations

import re
import time

import httpx
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Device, DeviceStatus
from balepos.time_utils import utcnow
from ..validation import ValidationError, require_choice
from .concurrency import retry_linear


REGISTER_ATTEMPTS = 3
REGISTER_BACKOFF_SECONDS = 1.0
UNKNOWN = "Unknown"

_TABLET_RE = re.compile(r"(tablet|ipad|playbook|silk)|(android(?!.*mobi))", re.IGNORECASE)
_MOBILE_RE = re.compile(
    r"Mobile|Android|iP(hone|od)|IEMobile|BlackBerry|Kindle|Silk-Accelerated|(hpw|web)OS|Opera M(obi|ini)"
)


class DeviceError(Exception):
    """Raised for device registration and management errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def parse_user_agent(ua: str | None) -> dict:
    """Coarse type/os/browser from a User-Agent string."""
    ua = ua or ""
    device_type = "Desktop"
    if _TABLET_RE.search(ua):
        device_type = "Tablet"
    elif _MOBILE_RE.search(ua):
        device_type = "Mobile"

    # Order matters: Android UAs contain "Linux", iOS UAs contain "like Mac"
    if "Win" in ua:
        os_name = "Windows"
    elif "Android" in ua:
        os_name = "Android"
    elif "like Mac" in ua:
        os_name = "iOS"
    elif "Mac" in ua:
        os_name = "MacOS"
    elif "Linux" in ua:
        os_name = "Linux"
    else:
        os_name = "Unknown OS"

    if "Edg" in ua:
        browser = "Edge"
    elif "Chrome" in ua:
        browser = "Chrome"
    elif "Firefox" in ua:
        browser = "Firefox"
    elif "Safari" in ua:
        browser = "Safari"
    else:
        browser = "Unknown Browser"

    return {"type": device_type, "os": os_name, "browser": browser}


def lookup_ip(ip: str | None, *, client: httpx.Client | None = None) -> dict:
    """
    Public IP and 'City, Country' for ip via the lookup service.

    Any failure (timeout, HTTP error, success=false) degrades to Unknown.
    """
    cfg = current_app.config
    base = cfg.get("IP_LOOKUP_URL") or ""
    if not base:
        return {"ip": ip or UNKNOWN, "location": UNKNOWN}

    url = base.rstrip("/") + "/" + (ip or "")
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=cfg.get("IP_LOOKUP_TIMEOUT_SECONDS", 4))
    try:
        resp = client.get(url)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        current_app.logger.warning("IP lookup failed for %s: %s", ip, exc)
        return {"ip": ip or UNKNOWN, "location": UNKNOWN}
    finally:
        if owns_client:
            client.close()

    if not data.get("success"):
        return {"ip": ip or UNKNOWN, "location": UNKNOWN}
    return {
        "ip": data.get("ip") or UNKNOWN,
        "location": f"{data.get('city') or UNKNOWN}, {data.get('country') or UNKNOWN}",
    }


def _check_or_create(device_id: str, user_agent: str | None, ip: str | None, ip_client) -> Device:
    existing = db.session.query(Device).filter_by(device_id=device_id).first()
    if existing is not None:
        existing.last_active = utcnow()
        db.session.commit()
        return existing

    details = parse_user_agent(user_agent)
    ip_info = lookup_ip(ip, client=ip_client)
    device = Device(
        device_id=device_id,
        name=f"{details['os']} {details['type']}",
        type=details["type"],
        os=details["os"],
        browser=details["browser"],
        ip_address=ip_info["ip"],
        location=ip_info["location"],
        status=DeviceStatus.PENDING,
        last_active=utcnow(),
    )
    db.session.add(device)
    db.session.commit()
    return device


def register_or_check(
    device_id: str,
    *,
    user_agent: str | None = None,
    ip: str | None = None,
    ip_client: httpx.Client | None = None,
    sleep=time.sleep,
) -> Device:
    """
    Return the device record for device_id, registering it as pending if new.

    Database failures are retried 3 times with linear backoff (1s, 2s);
    after that a DeviceError is raised.
    """
    device_id = (device_id or "").strip()
    if not device_id:
        raise ValidationError("device_id is required")

    def _on_failure(attempt: int, exc: Exception) -> None:
        db.session.rollback()
        current_app.logger.warning("Device check attempt %s failed: %s", attempt, exc)

    try:
        return retry_linear(
            lambda: _check_or_create(device_id, user_agent, ip, ip_client),
            attempts=REGISTER_ATTEMPTS,
            delay=REGISTER_BACKOFF_SECONDS,
            retry_on=(SQLAlchemyError,),
            on_failure=_on_failure,
            sleep=sleep,
        )
    except SQLAlchemyError as exc:
        raise DeviceError("System Error: device registration failed", details={"device_id": device_id}) from exc


def get_device(device_pk: int) -> Device:
    device = db.session.get(Device, device_pk)
    if not device:
        raise DeviceError("Device not found")
    return device


def find_by_device_id(device_id: str | None) -> Device | None:
    if not device_id:
        return None
    return db.session.query(Device).filter_by(device_id=device_id).first()


def is_approved(device_id: str | None) -> bool:
    device = find_by_device_id(device_id)
    return device is not None and device.status == DeviceStatus.APPROVED


def list_devices() -> list[dict]:
    devices = db.session.query(Device).order_by(Device.last_active.desc(), Device.id.desc()).all()
    return [d.to_dict() for d in devices]


def set_status(device_pk: int, status: str) -> Device:
    require_choice(status, DeviceStatus.ALL, "status")
    device = get_device(device_pk)
    device.status = status
    db.session.commit()
    return device


def rename_device(device_pk: int, name: str) -> Device:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name cannot be blank")
    if len(name) > 128:
        raise ValidationError("name exceeds max length 128")
    device = get_device(device_pk)
    device.name = name
    db.session.commit()
    return device


def delete_device(device_pk: int) -> None:
    device = get_device(device_pk)
    db.session.delete(device)
    db.session.commit()
