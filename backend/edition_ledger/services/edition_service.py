# Overview: Service-layer operations for edition numbering; encapsulates business logic and database work.

"""
Edition Assigner

WHY: Limited-edition prints carry a sequential number per product. The
number a collector holds must reflect purchase order among the units that
are still active, so every status change re-derives the whole sequence
instead of patching individual numbers.

RULES:
- Active units of a product are ordered by created_at, ties by id.
- The i-th unit in that order holds edition i; every active unit holds
  edition_total = N (count of active units).
- Only rows whose number or total differs are written, so a rerun with no
  interleaving change performs zero writes (version_id stays put).
- A unit numbered for the first time gets its certificate of authenticity.

FAILURE: any data-store error rolls back the pass and raises
EditionStoreError. The pass is a full recompute, so a retry converges.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LineItem
from .concurrency import run_with_retry
from .event_service import append_edition_event, EVENT_EDITION_ASSIGNED, EVENT_EDITION_RENUMBERED
from .line_item_repository import EditionUpdate, LineItemRepository
from edition_ledger.time_utils import utcnow


class EditionError(Exception):
    """Raised for edition numbering errors."""
    pass


class EditionStoreError(EditionError):
    """The data store failed mid-operation; nothing was committed and a retry is safe."""
    pass


@dataclass
class AssignmentResult:
    product_id: str
    edition_total: int
    writes: int
    changes: list[EditionUpdate] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "edition_total": self.edition_total,
            "writes": self.writes,
            "changes": [
                {
                    "line_item_id": c.line_item_id,
                    "previous_number": c.previous_number,
                    "edition_number": c.edition_number,
                }
                for c in self.changes
            ],
        }


def plan_edition_numbers(items: list[LineItem]) -> list[EditionUpdate]:
    """
    Compute the writes that bring `items` (the active units of one product)
    to contiguous numbering. Pure: reads attributes, writes nothing.

    `items` must already be in purchase order (created_at, then id), as
    LineItemRepository.active_items_for_product returns them. Ordering is
    left to the database: units created in this session carry naive
    timestamps, units loaded from a timezone-aware column come back aware,
    and the two do not compare in Python.
    """
    total = len(items)
    updates = []
    for number, item in enumerate(items, start=1):
        if item.edition_number == number and item.edition_total == total:
            continue
        updates.append(EditionUpdate(
            line_item_id=item.id,
            edition_number=number,
            edition_total=total,
            previous_number=item.edition_number,
        ))
    return updates


def issue_certificate(item: LineItem) -> None:
    """Attach certificate-of-authenticity fields if the unit has none yet."""
    if item.certificate_token:
        return
    base_url = (current_app.config.get("CERTIFICATE_BASE_URL") or "").rstrip("/")
    item.certificate_token = uuid.uuid4().hex
    item.certificate_url = f"{base_url}/certificate/{item.id}"
    item.certificate_generated_at = utcnow()


def reconcile_product(
    product_id: str,
    *,
    repository: LineItemRepository | None = None,
    source: str = "system",
) -> AssignmentResult:
    """
    Renumber the active units of one product inside the caller's transaction.

    Flushes but never commits; callers that combine a status change with
    renumbering (revocation, order sync) commit both together.
    """
    repo = repository or LineItemRepository()
    items = repo.active_items_for_product(product_id, lock=True)
    updates = plan_edition_numbers(items)

    by_id = {item.id: item for item in items}
    for update in updates:
        if update.previous_number is None:
            issue_certificate(by_id[update.line_item_id])
    writes = repo.apply_edition_updates(updates)

    for update in updates:
        if update.previous_number == update.edition_number:
            # total-only change
            continue
        if update.previous_number is None:
            event_type = EVENT_EDITION_ASSIGNED
        else:
            event_type = EVENT_EDITION_RENUMBERED
        append_edition_event(
            line_item_id=update.line_item_id,
            product_id=product_id,
            edition_number=update.edition_number,
            event_type=event_type,
            source=source,
            payload={
                "previous_number": update.previous_number,
                "edition_total": update.edition_total,
            },
        )

    return AssignmentResult(
        product_id=product_id,
        edition_total=len(items),
        writes=writes,
        changes=[u for u in updates if u.previous_number != u.edition_number],
    )


def assign_edition_numbers(product_id: str, *, source: str = "system") -> AssignmentResult:
    """
    Assign contiguous edition numbers to a product's active units and commit.

    Unknown products and products with no active units yield N=0 and zero
    writes.

    Raises:
        EditionStoreError: the data store failed; the pass was rolled back
    """
    def _op():
        result = reconcile_product(product_id, source=source)
        db.session.commit()
        return result

    try:
        result = run_with_retry(_op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Edition assignment failed for product %s: %s", product_id, exc)
        raise EditionStoreError(f"Edition assignment failed for product {product_id}: {exc}") from exc

    if result.writes:
        current_app.logger.info(
            "Assigned editions for product %s: total=%d writes=%d",
            product_id, result.edition_total, result.writes,
        )
    return result


def assign_all_products(*, source: str = "system") -> list[AssignmentResult]:
    """
    Run the assigner for every product that has line items.

    Each product commits independently; the first failure stops the sweep
    and surfaces, leaving earlier products reconciled.
    """
    product_ids = LineItemRepository().product_ids()
    return [assign_edition_numbers(pid, source=source) for pid in product_ids]


def get_product_editions(product_id: str) -> list[LineItem]:
    """Active units of a product in edition order (read-only)."""
    items = LineItemRepository().active_items_for_product(product_id)
    return sorted(items, key=lambda i: (i.edition_number is None, i.edition_number or 0, i.id))
