# Overview: Outbox for mirroring local writes to the remote table service.

from __future__ import annotations

from typing import Any

import httpx
from sqlalchemy import DateTime
from flask import current_app

from ..extensions import db
from ..models import (
    Bale,
    Customer,
    LiveSession,
    MirrorEvent,
    Order,
    Product,
    ShopSettings,
    Transaction,
)
from balepos.time_utils import utcnow, parse_iso_datetime

"""
Mirror contract

- Local tables are authoritative; reads never go to the remote.
- Every local mutation calls record_upsert / record_delete inside the same
  DB transaction, so the outbox row commits (or rolls back) with the change.
- flush_outbox delivers PENDING events in id order. A failed delivery is
  logged, its attempts counter bumped, and it stays PENDING for the next
  flush. Later events for other rows are still attempted.
- The remote's own upsert semantics decide the final remote state.
"""

UPSERT = "UPSERT"
DELETE = "DELETE"

STATUS_PENDING = "PENDING"
STATUS_SYNCED = "SYNCED"

# Remote table name per local model
MIRRORED_TABLES: dict[type, str] = {
    Product: "products",
    Bale: "bales",
    Customer: "customers",
    Order: "orders",
    LiveSession: "live_sessions",
    Transaction: "transactions",
    ShopSettings: "settings",
}


class MirrorError(Exception):
    """Raised when the remote table service cannot be reached or rejects a call."""


def mirror_enabled() -> bool:
    return bool(current_app.config.get("MIRROR_URL"))


def _table_for(obj) -> str:
    try:
        return MIRRORED_TABLES[type(obj)]
    except KeyError:
        raise MirrorError(f"{type(obj).__name__} is not mirrored")


def record_upsert(obj) -> MirrorEvent | None:
    """Queue an upsert of obj's current row. Flushes so obj.id is assigned."""
    if not mirror_enabled():
        return None
    db.session.flush()
    ev = MirrorEvent(
        table_name=_table_for(obj),
        operation=UPSERT,
        record_key=str(obj.id),
        payload=obj.to_dict(),
        status=STATUS_PENDING,
    )
    db.session.add(ev)
    return ev


def record_delete(obj) -> MirrorEvent | None:
    if not mirror_enabled():
        return None
    ev = MirrorEvent(
        table_name=_table_for(obj),
        operation=DELETE,
        record_key=str(obj.id),
        payload=None,
        status=STATUS_PENDING,
    )
    db.session.add(ev)
    return ev


def _client() -> httpx.Client:
    cfg = current_app.config
    key = cfg.get("MIRROR_API_KEY") or ""
    headers = {"Content-Type": "application/json"}
    if key:
        headers["apikey"] = key
        headers["Authorization"] = f"Bearer {key}"
    return httpx.Client(
        base_url=cfg["MIRROR_URL"].rstrip("/"),
        headers=headers,
        timeout=cfg.get("MIRROR_TIMEOUT_SECONDS", 10),
    )


def _deliver(client: httpx.Client, ev: MirrorEvent) -> None:
    if ev.operation == UPSERT:
        response = client.post(
            f"/{ev.table_name}",
            json=ev.payload,
            headers={"Prefer": "resolution=merge-duplicates"},
        )
    elif ev.operation == DELETE:
        response = client.delete(f"/{ev.table_name}", params={"id": f"eq.{ev.record_key}"})
    else:
        raise MirrorError(f"Unknown mirror operation {ev.operation}")

    if response.status_code >= 400:
        raise MirrorError(f"{ev.table_name} {ev.operation} rejected: HTTP {response.status_code} {response.text[:200]}")


def flush_outbox(*, limit: int = 200, client: httpx.Client | None = None) -> dict:
    """
    Deliver pending mirror events. Returns counts of synced / failed events.

    Pass `client` to reuse a configured httpx.Client (tests inject one backed
    by httpx.MockTransport).
    """
    events = (
        db.session.query(MirrorEvent)
        .filter_by(status=STATUS_PENDING)
        .order_by(MirrorEvent.id.asc())
        .limit(limit)
        .all()
    )
    if not events:
        return {"synced": 0, "failed": 0, "pending": 0}

    own_client = client is None
    if own_client:
        if not mirror_enabled():
            return {"synced": 0, "failed": 0, "pending": len(events)}
        client = _client()

    synced = failed = 0
    try:
        for ev in events:
            ev.attempts += 1
            try:
                _deliver(client, ev)
            except (httpx.HTTPError, MirrorError) as exc:
                failed += 1
                ev.last_error = str(exc)[:512]
                current_app.logger.warning(
                    "Mirror delivery failed for %s %s #%s: %s",
                    ev.table_name, ev.operation, ev.record_key, exc,
                )
                continue
            ev.status = STATUS_SYNCED
            ev.synced_at = utcnow()
            ev.last_error = None
            synced += 1
    finally:
        if own_client:
            client.close()

    db.session.commit()
    pending = db.session.query(MirrorEvent).filter_by(status=STATUS_PENDING).count()
    current_app.logger.info("Mirror flush: %s synced, %s failed, %s pending", synced, failed, pending)
    return {"synced": synced, "failed": failed, "pending": pending}


def outbox_status() -> dict:
    pending = db.session.query(MirrorEvent).filter_by(status=STATUS_PENDING)
    failing = pending.filter(MirrorEvent.attempts > 0)
    return {
        "enabled": mirror_enabled(),
        "pending": pending.count(),
        "failing": failing.count(),
        "oldest_pending": (
            pending.order_by(MirrorEvent.id.asc()).first().to_dict()
            if pending.count() else None
        ),
    }


def _row_to_model_kwargs(model, row: dict) -> dict[str, Any]:
    cols = {c.key: c for c in model.__mapper__.columns}
    kwargs: dict[str, Any] = {}
    for key, value in row.items():
        col = cols.get(key)
        if col is None:
            continue
        if isinstance(col.type, DateTime) and isinstance(value, str):
            value = parse_iso_datetime(value)
        kwargs[key] = value
    return kwargs


def pull_remote(*, client: httpx.Client | None = None) -> dict:
    """
    Refresh local tables from the remote copy (startup sync).

    Rows are merged by primary key; local rows missing from the remote are
    kept. A table whose fetch fails is skipped and reported.
    """
    own_client = client is None
    if own_client:
        if not mirror_enabled():
            raise MirrorError("Mirror is not configured")
        client = _client()

    merged: dict[str, int] = {}
    skipped: list[str] = []
    try:
        for model, table in MIRRORED_TABLES.items():
            try:
                response = client.get(f"/{table}", params={"select": "*"})
                if response.status_code >= 400:
                    raise MirrorError(f"HTTP {response.status_code}")
                rows = response.json() or []
            except (httpx.HTTPError, MirrorError, ValueError) as exc:
                current_app.logger.warning("Mirror pull skipped table %s: %s", table, exc)
                skipped.append(table)
                continue

            count = 0
            for row in rows:
                if model is Order and row.get("session_id") == "OFF_LIVE":
                    row = {**row, "session_id": None}
                db.session.merge(model(**_row_to_model_kwargs(model, row)))
                count += 1
            merged[table] = count
    finally:
        if own_client:
            client.close()

    db.session.commit()
    return {"merged": merged, "skipped": skipped}
