# Overview: Service-layer operations for the edition event log.

from __future__ import annotations

import json
from typing import Any, Optional

from ..extensions import db
from ..models import EditionEvent
from edition_ledger.time_utils import utcnow
"""
Edition Event Log Invariants

- Append-only: events are never updated or deleted.
- Events are flushed inside the same transaction as the change they record;
  a rolled-back reconciliation leaves no events behind.
- History reads are ordered by occurred_at, then id.
"""

EVENT_EDITION_ASSIGNED = "edition_assigned"
EVENT_EDITION_RENUMBERED = "edition_renumbered"
EVENT_STATUS_CHANGED = "status_changed"


def append_edition_event(
    *,
    line_item_id: int,
    event_type: str,
    product_id: str | None = None,
    edition_number: int | None = None,
    source: str = "system",
    note: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> EditionEvent:
    ev = EditionEvent(
        line_item_id=line_item_id,
        product_id=product_id,
        edition_number=edition_number,
        event_type=event_type,
        source=source,
        occurred_at=utcnow(),
        note=note,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def get_edition_history(line_item_id: int, event_type: str | None = None) -> list[EditionEvent]:
    q = db.session.query(EditionEvent).filter_by(line_item_id=line_item_id)
    if event_type:
        q = q.filter(EditionEvent.event_type == event_type)
    return q.order_by(EditionEvent.occurred_at.asc(), EditionEvent.id.asc()).all()
