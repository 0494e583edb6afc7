# Overview: Narrow data-access layer over the line_items table used by reconciliation.

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import LineItem, LINE_ITEM_STATUS_ACTIVE
from .concurrency import lock_for_update
from edition_ledger.time_utils import utcnow


@dataclass(frozen=True)
class EditionUpdate:
    """Target numbering for one active line item."""
    line_item_id: int
    edition_number: int
    edition_total: int
    previous_number: int | None = None


class LineItemRepository:
    """
    Everything the edition services read or write on line_items goes
    through here; nothing in this class commits.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, line_item_id: int) -> LineItem | None:
        return self.session.query(LineItem).filter_by(id=line_item_id).first()

    def active_items_for_product(self, product_id: str, *, lock: bool = False) -> list[LineItem]:
        """Active units of a product in purchase order (created_at, then id)."""
        q = self.session.query(LineItem).filter(
            LineItem.product_id == product_id,
            LineItem.status == LINE_ITEM_STATUS_ACTIVE,
        ).order_by(LineItem.created_at.asc(), LineItem.id.asc())
        if lock:
            q = lock_for_update(q)
        return q.all()

    def items_for_product(self, product_id: str) -> list[LineItem]:
        return self.session.query(LineItem).filter(
            LineItem.product_id == product_id,
        ).order_by(LineItem.created_at.asc(), LineItem.id.asc()).all()

    def items_for_order(self, order_id: str) -> list[LineItem]:
        return self.session.query(LineItem).filter(
            LineItem.order_id == order_id,
        ).order_by(LineItem.id.asc()).all()

    def product_ids(self) -> list[str]:
        rows = self.session.query(LineItem.product_id).filter(
            LineItem.product_id.isnot(None),
        ).distinct().order_by(LineItem.product_id).all()
        return [row[0] for row in rows]

    def apply_edition_updates(self, updates: list[EditionUpdate]) -> int:
        """
        Write edition_number / edition_total for each update and flush.

        Returns the number of rows written. Each write bumps version_id.
        """
        if not updates:
            return 0
        now = utcnow()
        for update in updates:
            item = self.get(update.line_item_id)
            item.edition_number = update.edition_number
            item.edition_total = update.edition_total
            item.updated_at = now
        self.session.flush()
        return len(updates)
