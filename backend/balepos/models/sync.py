from __future__ import annotations

from ..extensions import db
from balepos.time_utils import to_utc_z


class MirrorEvent(db.Model):
    """
    Outbox of writes waiting to be mirrored to the remote table service.

    WHY: Local state is authoritative. Each local mutation records the
    remote write it implies in the same DB transaction. Undelivered rows
    stay PENDING until a flush succeeds.

    OPERATIONS:
    - UPSERT: payload is the full row
    - DELETE: record_key identifies the row, payload is empty
    """
    __tablename__ = "mirror_events"
    __table_args__ = (
        db.Index("ix_mirror_events_status_id", "status", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_name = db.Column(db.String(64), nullable=False)
    operation = db.Column(db.String(16), nullable=False)  # UPSERT, DELETE
    record_key = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, SYNCED
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_name": self.table_name,
            "operation": self.operation,
            "record_key": self.record_key,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "synced_at": to_utc_z(self.synced_at) if self.synced_at else None,
        }
