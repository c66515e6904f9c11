from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class ChangeEvent(db.Model):
    """
    Append-only change feed for tenant tables.

    Written in the same transaction as the mutation it records. Clients poll
    with since_id and merge rows by entity id.

    IMMUTABLE: Never update or delete.
    """
    __tablename__ = "change_events"
    __table_args__ = (
        db.Index("ix_change_events_org_table_id", "org_id", "table_name", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    table_name = db.Column(db.String(64), nullable=False)
    event_type = db.Column(db.String(16), nullable=False)  # INSERT, UPDATE, DELETE
    entity_id = db.Column(db.Integer, nullable=False)

    # JSON row snapshot (null for DELETE)
    payload = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "table": self.table_name,
            "event_type": self.event_type,
            "entity_id": self.entity_id,
            "new": json.loads(self.payload) if self.payload else None,
            "old": {"id": self.entity_id},
            "occurred_at": to_utc_z(self.occurred_at),
        }
