from __future__ import annotations

from ..extensions import db
from balepos.time_utils import to_utc_z


class DeviceStatus:
    PENDING = "pending"
    APPROVED = "approved"
    BLOCKED = "blocked"

    ALL = (PENDING, APPROVED, BLOCKED)


class Device(db.Model):
    """
    Browser/device that asked to use the dashboard.

    Independent access-control record: new devices start pending and must be
    approved from an already-approved device (or the CLI).
    """
    __tablename__ = "devices"
    __table_args__ = (
        db.UniqueConstraint("device_id", name="uq_devices_device_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Client-generated UUID
    device_id = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    type = db.Column(db.String(32), nullable=True)
    os = db.Column(db.String(32), nullable=True)
    browser = db.Column(db.String(32), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    location = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=DeviceStatus.PENDING)
    last_active = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "name": self.name,
            "type": self.type,
            "os": self.os,
            "browser": self.browser,
            "ip_address": self.ip_address,
            "location": self.location,
            "status": self.status,
            "last_active": to_utc_z(self.last_active) if self.last_active else None,
            "created_at": to_utc_z(self.created_at),
        }
