from __future__ import annotations

from ..extensions import db
from edition_ledger.time_utils import to_utc_z


class EditionEvent(db.Model):
    """Append-only audit record of a numbering or status change on a line item."""
    __tablename__ = "edition_events"
    __table_args__ = (
        db.Index("ix_edition_events_line_item_occurred", "line_item_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    line_item_id = db.Column(db.Integer, db.ForeignKey("line_items.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=True, index=True)
    edition_number = db.Column(db.Integer, nullable=True)

    event_type = db.Column(db.String(32), nullable=False, index=True)  # edition_assigned, edition_renumbered, status_changed
    source = db.Column(db.String(32), nullable=False, default="system")  # api, cli, order_sync, system

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_item_id": self.line_item_id,
            "product_id": self.product_id,
            "edition_number": self.edition_number,
            "event_type": self.event_type,
            "source": self.source,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
