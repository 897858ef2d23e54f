# Overview: Order audit trail entries and their one-line rendering.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from flask import current_app, has_app_context

from balepos.time_utils import (
    format_local_stamp,
    local_to_utc,
    parse_iso_datetime,
    parse_local_stamp,
    to_utc_z,
    utcnow,
)

"""
Entries are stored structured on Order.logs:

    {"at": "2026-03-07T10:15:00Z",
     "changes": [{"field": "Status", "old": "Unpaid", "new": "Paid"}, ...]}

and rendered for display as

    [03/07/2026 10:15 AM] Status: Unpaid -> Paid, Paid: 0 -> 500

Stamps show the wall clock in SHOP_TIMEZONE (UTC outside an app context).

Rendered lines can be parsed back (older data stored only the string form).
Parsing splits on ", " followed by a known field label, so it is exact only
while values never contain ", <Label>:" themselves; the structured form has
no such limit.
"""

STATUS = "Status"
PAID = "Paid"
SHIPPING = "Shipping"
REF = "Ref"
METHOD = "Method"

KNOWN_FIELDS = (STATUS, PAID, SHIPPING, REF, METHOD)

_LINE_RE = re.compile(r"^\[(.*?)\] (.*)$")
_SPLIT_RE = re.compile(r", (?=(?:%s):)" % "|".join(KNOWN_FIELDS))


@dataclass(frozen=True)
class ChangeRow:
    field: str
    old: str
    new: str

    def render(self) -> str:
        return f"{self.field}: {self.old} -> {self.new}"


@dataclass
class LogLine:
    stamp: str
    changes: list[ChangeRow] = field(default_factory=list)
    at: datetime | None = None

    @property
    def labels(self) -> list[str]:
        return [c.field for c in self.changes]


def shop_timezone() -> str:
    if has_app_context():
        return current_app.config.get("SHOP_TIMEZONE") or "UTC"
    return "UTC"


def _text(value) -> str:
    if value is None or value == "":
        return "None"
    return str(value)


def format_amount(cents: int | None) -> str:
    """500 -> '5', 50050 -> '500.50' (pesos, trailing .00 dropped)."""
    if cents is None:
        return "None"
    whole, frac = divmod(int(cents), 100)
    return f"{whole}" if frac == 0 else f"{whole}.{frac:02d}"


def change(field_name: str, old, new) -> ChangeRow:
    return ChangeRow(field=field_name, old=_text(old), new=_text(new))


def make_entry(changes: Iterable[ChangeRow], at: datetime | None = None) -> dict:
    return {
        "at": to_utc_z(at or utcnow()),
        "changes": [{"field": c.field, "old": c.old, "new": c.new} for c in changes],
    }


def append_entry(order, entry: dict) -> None:
    """Append to order.logs (reassigned so the JSON column is marked dirty)."""
    order.logs = [*(order.logs or []), entry]


def format_log_line(entry, tz_name: str | None = None) -> str:
    if isinstance(entry, str):
        return entry
    at = parse_iso_datetime(entry.get("at"))
    stamp = format_local_stamp(at, tz_name or shop_timezone()) if at else ""
    body = ", ".join(
        ChangeRow(c["field"], c["old"], c["new"]).render() for c in entry.get("changes", [])
    )
    return f"[{stamp}] {body}"


def parse_change(text: str) -> ChangeRow:
    parts = text.split(": ")
    if len(parts) < 2:
        return ChangeRow(field="", old="", new=text)
    label = parts[0]
    values = ": ".join(parts[1:])
    old, _, new = values.partition(" -> ")
    return ChangeRow(field=label, old=old, new=new)


def _stamp_to_utc(stamp: str, tz_name: str) -> datetime | None:
    local = parse_local_stamp(stamp)
    return local_to_utc(local, tz_name) if local else None


def parse_log_line(line: str, tz_name: str | None = None) -> LogLine:
    """at is converted back to UTC-naive."""
    match = _LINE_RE.match(line)
    if not match:
        return LogLine(stamp="", changes=[ChangeRow(field="", old="", new=line)])
    stamp, content = match.group(1), match.group(2)
    return LogLine(
        stamp=stamp,
        changes=[parse_change(part) for part in _SPLIT_RE.split(content)],
        at=_stamp_to_utc(stamp, tz_name or shop_timezone()),
    )


def _entry_time(entry) -> datetime:
    if isinstance(entry, str):
        return parse_log_line(entry).at or datetime.min
    return parse_iso_datetime(entry.get("at")) or datetime.min


def collect_log_lines(orders) -> list[str]:
    """
    Rendered audit lines for a group of orders, newest first.

    A group update writes the same entry to every constituent order; those
    duplicates collapse here by exact rendered text.
    """
    seen: dict[str, datetime] = {}
    for order in orders:
        for entry in order.logs or []:
            line = format_log_line(entry)
            if line not in seen:
                seen[line] = _entry_time(entry)
    return [line for line, _ in sorted(seen.items(), key=lambda kv: kv[1], reverse=True)]
