# Overview: Service-layer operations for revoking and reactivating numbered line items.

"""
Revocation / Resequencer

WHY: When an order is cancelled or refunded its units stop counting toward
the edition. Their numbers are released and the remaining active units are
renumbered so the sequence stays 1..N.

ORDERING: renumbering follows purchase order, so revoking a later buyer
never touches earlier buyers' numbers, while revoking an earlier buyer
shifts every later buyer down by one.

LIFECYCLE:
    active --revoke--> removed   (edition_number cleared, reason recorded)
    removed --reactivate--> active   (slotted back by created_at)

Both transitions commit together with the renumbering pass. Repeating a
transition on an item already in the target state is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LINE_ITEM_STATUS_ACTIVE, LINE_ITEM_STATUS_REMOVED
from ..validation import REVOCATION_REASONS, ValidationError
from .concurrency import run_with_retry
from .edition_service import AssignmentResult, EditionStoreError, reconcile_product
from .event_service import append_edition_event, EVENT_STATUS_CHANGED
from .line_item_repository import LineItemRepository
from edition_ledger.time_utils import utcnow


@dataclass
class StatusChangeResult:
    line_item_id: int
    found: bool
    changed: bool
    status: str | None = None
    previous_edition_number: int | None = None
    assignment: AssignmentResult | None = None

    def to_dict(self) -> dict:
        return {
            "line_item_id": self.line_item_id,
            "found": self.found,
            "changed": self.changed,
            "status": self.status,
            "previous_edition_number": self.previous_edition_number,
            "edition_total": self.assignment.edition_total if self.assignment else None,
            "assignment": self.assignment.to_dict() if self.assignment else None,
        }


def mark_removed(item, *, reason: str, notes: str | None = None, source: str = "system") -> int | None:
    """
    Move an active unit to removed within the current transaction.

    Returns the edition number it released. Does not renumber; callers run
    reconcile_product for the unit's product afterwards.
    """
    released = item.edition_number
    item.status = LINE_ITEM_STATUS_REMOVED
    item.removed_reason = reason
    item.edition_number = None
    item.updated_at = utcnow()
    db.session.flush()

    append_edition_event(
        line_item_id=item.id,
        product_id=item.product_id,
        edition_number=released,
        event_type=EVENT_STATUS_CHANGED,
        source=source,
        note=notes,
        payload={
            "before_status": LINE_ITEM_STATUS_ACTIVE,
            "after_status": LINE_ITEM_STATUS_REMOVED,
            "reason": reason,
        },
    )
    return released


def mark_active(item, *, source: str = "system", notes: str | None = None) -> None:
    """Move a removed unit back to active within the current transaction."""
    previous_reason = item.removed_reason
    item.status = LINE_ITEM_STATUS_ACTIVE
    item.removed_reason = None
    item.updated_at = utcnow()
    db.session.flush()

    append_edition_event(
        line_item_id=item.id,
        product_id=item.product_id,
        edition_number=None,
        event_type=EVENT_STATUS_CHANGED,
        source=source,
        note=notes,
        payload={
            "before_status": LINE_ITEM_STATUS_REMOVED,
            "after_status": LINE_ITEM_STATUS_ACTIVE,
            "previous_reason": previous_reason,
        },
    )


def _run(op, line_item_id: int):
    try:
        return run_with_retry(op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Status change failed for line item %s: %s", line_item_id, exc)
        raise EditionStoreError(f"Status change failed for line item {line_item_id}: {exc}") from exc


def revoke_line_item(
    line_item_id: int,
    *,
    reason: str = "manual",
    notes: str | None = None,
    source: str = "system",
) -> StatusChangeResult:
    """
    Revoke a unit's edition and close the gap it leaves.

    Args:
        line_item_id: Unit being revoked
        reason: One of refunded, restocked, removed, cancelled, manual
        notes: Optional operator note stored on the status event
        source: Who triggered the change (api, cli, order_sync, system)

    Returns:
        StatusChangeResult; found=False for an unknown id, changed=False if
        the unit was already removed

    Raises:
        ValidationError: unknown reason
        EditionStoreError: data-store failure (rolled back, safe to retry)
    """
    if reason not in REVOCATION_REASONS:
        raise ValidationError(f"reason must be one of: {', '.join(REVOCATION_REASONS)}")

    def _op():
        repo = LineItemRepository()
        item = repo.get(line_item_id)
        if not item:
            return StatusChangeResult(line_item_id=line_item_id, found=False, changed=False)

        if item.status == LINE_ITEM_STATUS_REMOVED:
            return StatusChangeResult(
                line_item_id=line_item_id, found=True, changed=False, status=item.status,
            )

        released = mark_removed(item, reason=reason, notes=notes, source=source)
        assignment = None
        if item.product_id:
            assignment = reconcile_product(item.product_id, repository=repo, source=source)
        db.session.commit()

        return StatusChangeResult(
            line_item_id=line_item_id,
            found=True,
            changed=True,
            status=LINE_ITEM_STATUS_REMOVED,
            previous_edition_number=released,
            assignment=assignment,
        )

    result = _run(_op, line_item_id)
    if result.changed:
        current_app.logger.info(
            "Revoked line item %s (reason=%s, released edition=%s)",
            line_item_id, reason, result.previous_edition_number,
        )
    return result


def reactivate_line_item(
    line_item_id: int,
    *,
    notes: str | None = None,
    source: str = "system",
) -> StatusChangeResult:
    """
    Return a removed unit to the edition; it is slotted back by created_at,
    shifting later buyers up by one.
    """
    def _op():
        repo = LineItemRepository()
        item = repo.get(line_item_id)
        if not item:
            return StatusChangeResult(line_item_id=line_item_id, found=False, changed=False)

        if item.status == LINE_ITEM_STATUS_ACTIVE:
            return StatusChangeResult(
                line_item_id=line_item_id,
                found=True,
                changed=False,
                status=item.status,
                previous_edition_number=item.edition_number,
            )

        mark_active(item, source=source, notes=notes)
        assignment = None
        if item.product_id:
            assignment = reconcile_product(item.product_id, repository=repo, source=source)
        db.session.commit()

        return StatusChangeResult(
            line_item_id=line_item_id,
            found=True,
            changed=True,
            status=LINE_ITEM_STATUS_ACTIVE,
            assignment=assignment,
        )

    result = _run(_op, line_item_id)
    if result.changed:
        current_app.logger.info("Reactivated line item %s", line_item_id)
    return result
