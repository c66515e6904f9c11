# Overview: Change feed for tenant tables; the mutation event log and the client merge reducer.

"""
Change Feed

WHY: List screens stay current by polling /api/changes and merging events
into the rows they already hold. Events are appended inside the same
transaction as the mutation they describe, so a rolled-back write never
shows up in the feed.

REDUCER CONTRACT (merge_change):
- rows is an insertion-ordered mapping keyed by entity id
- INSERT / UPDATE: upsert; an INSERT for a key already present replaces
  the row in place, so the same entity never appears twice
- DELETE: remove the key; no-op when absent
- Deterministic: replaying the same events yields the same mapping
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Iterable, Mapping

from ..extensions import db
from ..models import BusinessSettings, ChangeEvent, Customer, Invoice, InvoiceItem, Payment, Product
from ..time_utils import utcnow


EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
EVENT_TYPES = (EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE)

FEED_TABLES = (
    "products",
    "customers",
    "invoices",
    "invoice_items",
    "payments",
    "business_settings",
)

_FEED_MODELS = {
    "products": Product,
    "customers": Customer,
    "invoices": Invoice,
    "payments": Payment,
    "business_settings": BusinessSettings,
}

MAX_FEED_PAGE = 500


class ChangeFeedError(Exception):
    pass


def append_change(org_id: int, table: str, event_type: str, entity_id: int, row: dict | None = None) -> ChangeEvent:
    """
    Stage a change event in the current session (caller commits).

    row is the post-change snapshot; it is dropped for DELETE events.
    """
    if table not in FEED_TABLES:
        raise ChangeFeedError(f"Unknown table: {table}")
    if event_type not in EVENT_TYPES:
        raise ChangeFeedError(f"Invalid event type: {event_type}")

    payload = None
    if event_type != EVENT_DELETE and row is not None:
        payload = json.dumps(row, default=str)

    event = ChangeEvent(
        org_id=org_id,
        table_name=table,
        event_type=event_type,
        entity_id=entity_id,
        payload=payload,
    )
    db.session.add(event)
    return event


def record_row(org_id: int, table: str, event_type: str, obj) -> ChangeEvent:
    """append_change for an ORM row exposing id and to_dict()."""
    row = obj.to_dict() if event_type != EVENT_DELETE else None
    return append_change(org_id, table, event_type, obj.id, row)


def list_changes(org_id: int, since_id: int = 0, table: str | None = None, limit: int = MAX_FEED_PAGE) -> dict:
    """Events after since_id in id order, plus the cursor to poll from next."""
    if table is not None and table not in FEED_TABLES:
        raise ChangeFeedError(f"Unknown table: {table}")

    limit = max(1, min(limit or MAX_FEED_PAGE, MAX_FEED_PAGE))

    query = db.session.query(ChangeEvent).filter(
        ChangeEvent.org_id == org_id,
        ChangeEvent.id > (since_id or 0),
    )
    if table:
        query = query.filter(ChangeEvent.table_name == table)

    events = query.order_by(ChangeEvent.id.asc()).limit(limit).all()
    next_since = events[-1].id if events else (since_id or 0)

    return {
        "events": [e.to_dict() for e in events],
        "count": len(events),
        "next_since_id": next_since,
        "has_more": len(events) == limit,
    }


def _event_fields(event) -> tuple[str, int, dict | None]:
    if isinstance(event, ChangeEvent):
        new = json.loads(event.payload) if event.payload else None
        return event.event_type, event.entity_id, new

    event_type = event.get("event_type") or event.get("eventType")
    new = event.get("new")
    entity_id = event.get("entity_id")
    if entity_id is None:
        source = new if event_type != EVENT_DELETE else event.get("old")
        entity_id = (source or {}).get("id")
    return event_type, entity_id, new


def merge_change(rows: dict, event) -> dict:
    """
    Apply one change event to rows (mutated and returned).

    Accepts ChangeEvent instances or their to_dict() form.
    """
    event_type, entity_id, new = _event_fields(event)

    if event_type not in EVENT_TYPES:
        raise ChangeFeedError(f"Invalid event type: {event_type}")
    if entity_id is None:
        raise ChangeFeedError("Change event has no entity id")

    if event_type == EVENT_DELETE:
        rows.pop(entity_id, None)
    else:
        # Existing keys keep their position
        rows[entity_id] = dict(new or {"id": entity_id})

    return rows


def replay(events: Iterable, rows: Mapping | None = None) -> dict:
    """Fold events over a copy of rows (empty by default)."""
    state = dict(rows or {})
    for event in events:
        merge_change(state, event)
    return state


def _live_rows_query(org_id: int, table: str):
    if table == "invoice_items":
        return (
            db.session.query(InvoiceItem)
            .join(Invoice, InvoiceItem.invoice_id == Invoice.id)
            .filter(Invoice.org_id == org_id)
            .order_by(InvoiceItem.id.desc())
        )
    model = _FEED_MODELS[table]
    return db.session.query(model).filter(model.org_id == org_id).order_by(model.id.desc())


def snapshot(org_id: int, table: str) -> list[dict]:
    """
    Current rows of a feed table, newest first.

    Read from the table itself: the event log is pruned by
    cleanup_change_events, so it cannot rebuild rows older than the
    retention window. Clients seed with this and merge events after it.
    """
    if table not in FEED_TABLES:
        raise ChangeFeedError(f"Unknown table: {table}")

    return [row.to_dict() for row in _live_rows_query(org_id, table).all()]


def cleanup_change_events(retention_days: int) -> int:
    """Delete change events older than the retention window."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(ChangeEvent).filter(ChangeEvent.occurred_at < cutoff).delete()
    db.session.commit()
    return deleted
