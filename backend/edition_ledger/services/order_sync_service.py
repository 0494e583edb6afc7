# Overview: Shopify order ingestion and cancellation; derives unit status and triggers renumbering.

"""
Order Ingestion

WHY: Edition numbers follow what Shopify says happened to an order. A
re-synced payload may carry refunds, restocks, removed lines or a
cancellation, each of which takes units out of the edition.

STATUS RULES (per line, then per unit):
- Whole line removed: order cancelled (voided / cancelled_at / canceled),
  line flagged with a `removed` property, nothing left to fulfil on an
  unfulfilled line, line restocked, order fully refunded, or order not paid
  and line not fulfilled.
- Partially removed: refund lines remove that many units, taken from the
  highest unit_index so earlier units keep their lower numbers.
- Units beyond a reduced quantity are removed.

A unit an operator revoked by hand (reason "manual") is never reactivated by
a sync; only an explicit reactivate brings it back.

Every transition and the renumbering of each touched product commit in one
transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LineItem, Order, LINE_ITEM_STATUS_ACTIVE, LINE_ITEM_STATUS_REMOVED, order_is_cancelled
from ..validation import REVOCATION_REASONS, ValidationError
from .concurrency import run_with_retry
from .edition_service import AssignmentResult, EditionStoreError, reconcile_product
from .line_item_repository import LineItemRepository
from .revocation_service import mark_active, mark_removed
from edition_ledger.time_utils import parse_iso_datetime, utcnow


PAID_FINANCIAL_STATUSES = ("paid", "authorized", "pending", "partially_paid")
# Units left after a partial refund are still paid for
PARTIALLY_REFUNDED = "partially_refunded"
FULLY_REFUNDED = "refunded"

SOURCE_ORDER_SYNC = "order_sync"


@dataclass(frozen=True)
class StatusDecision:
    quantity: int
    active_units: int
    reason: str | None = None  # why the remaining units are removed
    is_refunded: bool = False
    is_restocked: bool = False

    @property
    def status(self) -> str:
        return LINE_ITEM_STATUS_ACTIVE if self.active_units > 0 else LINE_ITEM_STATUS_REMOVED

    def unit_status(self, unit_index: int) -> str:
        return LINE_ITEM_STATUS_ACTIVE if unit_index < self.active_units else LINE_ITEM_STATUS_REMOVED


@dataclass
class OrderSyncResult:
    order_id: str
    order_name: str | None
    line_items_synced: int
    line_items: list[LineItem] = field(default_factory=list)
    assignments: list[AssignmentResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "order_name": self.order_name,
            "line_items_synced": self.line_items_synced,
            "line_items": [
                {
                    "id": li.id,
                    "shopify_line_item_id": li.shopify_line_item_id,
                    "unit_index": li.unit_index,
                    "product_id": li.product_id,
                    "status": li.status,
                    "removed_reason": li.removed_reason,
                    "edition_number": li.edition_number,
                    "edition_total": li.edition_total,
                }
                for li in self.line_items
            ],
            "assignments": [a.to_dict() for a in self.assignments],
        }


@dataclass
class OrderCancelResult:
    order_id: str
    found: bool
    revoked_line_item_ids: list[int] = field(default_factory=list)
    assignments: list[AssignmentResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "found": self.found,
            "revoked_line_item_ids": self.revoked_line_item_ids,
            "assignments": [a.to_dict() for a in self.assignments],
        }


# =============================================================================
# PAYLOAD HELPERS
# =============================================================================

def _str_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _to_int(value: Any, *, field_name: str, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")


def _price_cents(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int((Decimal(str(value)) * 100).quantize(Decimal("1")))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid price: {value!r}")


def _timestamp(value: Any, *, field_name: str):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be an ISO-8601 string")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field_name} is not a valid ISO-8601 timestamp")


def _customer_name(order: dict) -> str | None:
    for source in (order.get("customer"), order.get("shipping_address"), order.get("billing_address")):
        if source and (source.get("first_name") or source.get("last_name")):
            return f"{source.get('first_name') or ''} {source.get('last_name') or ''}".strip()
    return None


def _customer_email(order: dict) -> str | None:
    email = order.get("email") or (order.get("customer") or {}).get("email")
    if not email:
        return None
    return str(email).strip().lower() or None


def _refund_entries(order: dict, line_item_id: str) -> list[dict]:
    entries = []
    for refund in order.get("refunds") or []:
        for ri in refund.get("refund_line_items") or []:
            if str(ri.get("line_item_id")) == line_item_id:
                entries.append(ri)
    return entries


def _has_removed_property(line_item: dict) -> bool:
    for prop in line_item.get("properties") or []:
        if (prop.get("name") == "removed" or prop.get("key") == "removed") and prop.get("value") in (True, "true"):
            return True
    return False


def _same_value(current: Any, new: Any) -> bool:
    # timestamps read back from a timezone-aware column are aware; payload values are naive UTC
    if isinstance(current, datetime) and isinstance(new, datetime):
        if current.tzinfo is not None:
            current = current.astimezone(timezone.utc).replace(tzinfo=None)
        if new.tzinfo is not None:
            new = new.astimezone(timezone.utc).replace(tzinfo=None)
    return current == new


def _assign_changed(obj, values: dict[str, Any]) -> bool:
    """Set only the attributes whose value differs; report whether any did."""
    changed = False
    for name, value in values.items():
        if not _same_value(getattr(obj, name), value):
            setattr(obj, name, value)
            changed = True
    return changed


# =============================================================================
# STATUS DETERMINATION
# =============================================================================

def determine_line_item_status(order: dict, line_item: dict) -> StatusDecision:
    """
    Decide how many units of a Shopify line stay in the edition.

    Returns:
        StatusDecision; units with unit_index < active_units are active
    """
    line_id = str(line_item.get("id"))
    quantity = max(_to_int(line_item.get("quantity"), field_name="quantity", default=1), 0)

    refund_entries = _refund_entries(order, line_id)
    refunded_qty = sum(_to_int(ri.get("quantity"), field_name="refund quantity") for ri in refund_entries)
    if not refunded_qty:
        refunded_qty = _to_int(line_item.get("refunded_quantity"), field_name="refunded_quantity")
    is_refunded = bool(refund_entries) or refunded_qty > 0 or line_item.get("refund_status") == "refunded"
    if is_refunded and refunded_qty <= 0:
        refunded_qty = quantity

    restocked_by_refund = any(ri.get("restock_type") not in (None, "no_restock") for ri in refund_entries)
    restocked_line = (
        line_item.get("restocked") is True
        or bool(line_item.get("restock_type"))
        or line_item.get("fulfillment_status") == "restocked"
    )
    is_restocked = restocked_line or restocked_by_refund

    is_fulfilled = line_item.get("fulfillment_status") == "fulfilled"
    fulfillable = line_item.get("fulfillable_quantity")
    removed_by_qty = fulfillable is not None and str(fulfillable) == "0" and not is_fulfilled and not is_refunded
    financial_status = order.get("financial_status")
    is_paid = financial_status in PAID_FINANCIAL_STATUSES or financial_status == PARTIALLY_REFUNDED

    def _all_removed(reason: str) -> StatusDecision:
        return StatusDecision(
            quantity=quantity, active_units=0, reason=reason,
            is_refunded=is_refunded, is_restocked=is_restocked,
        )

    if order_is_cancelled(
        financial_status=order.get("financial_status"),
        fulfillment_status=order.get("fulfillment_status"),
        cancelled_at=order.get("cancelled_at"),
    ):
        return _all_removed("cancelled")
    if _has_removed_property(line_item) or removed_by_qty:
        return _all_removed("removed")
    if restocked_line:
        return _all_removed("restocked")
    if financial_status == FULLY_REFUNDED:
        return StatusDecision(
            quantity=quantity, active_units=0, reason="refunded",
            is_refunded=True, is_restocked=is_restocked,
        )
    if not (is_paid or is_fulfilled):
        return _all_removed("unpaid")

    if is_refunded:
        active_units = max(quantity - min(refunded_qty, quantity), 0)
        return StatusDecision(
            quantity=quantity,
            active_units=active_units,
            reason="restocked" if restocked_by_refund else "refunded",
            is_refunded=True,
            is_restocked=is_restocked,
        )

    return StatusDecision(quantity=quantity, active_units=quantity, is_restocked=is_restocked)


# =============================================================================
# INGESTION
# =============================================================================

def _upsert_order(payload: dict, order_id: str) -> Order:
    order = db.session.query(Order).filter_by(id=order_id).first()
    if not order:
        order = Order(id=order_id)
        db.session.add(order)

    changed = _assign_changed(order, {
        "order_name": _str_or_none(payload.get("name")),
        "financial_status": payload.get("financial_status"),
        "fulfillment_status": payload.get("fulfillment_status"),
        "cancelled_at": _timestamp(payload.get("cancelled_at"), field_name="cancelled_at"),
        "customer_email": _customer_email(payload),
        "customer_name": _customer_name(payload),
        "processed_at": _timestamp(payload.get("processed_at"), field_name="processed_at"),
        "created_at": (
            _timestamp(payload.get("created_at"), field_name="created_at") or order.created_at or utcnow()
        ),
    })
    if changed:
        order.updated_at = utcnow()
        db.session.flush()
    return order


def _apply_unit(
    order: Order,
    line_item: dict,
    unit_index: int,
    target_status: str,
    decision: StatusDecision,
    existing: LineItem | None,
) -> LineItem:
    removed_reason = decision.reason or "removed"
    if unit_index >= decision.quantity:
        removed_reason = "removed"

    if existing is None:
        unit = LineItem(
            shopify_line_item_id=str(line_item.get("id")),
            unit_index=unit_index,
            order_id=order.id,
            product_id=_str_or_none(line_item.get("product_id")),
            status=target_status,
            removed_reason=removed_reason if target_status == LINE_ITEM_STATUS_REMOVED else None,
            created_at=order.created_at,
        )
        db.session.add(unit)
    else:
        unit = existing

    is_removed = target_status == LINE_ITEM_STATUS_REMOVED
    changed = _assign_changed(unit, {
        "variant_id": _str_or_none(line_item.get("variant_id")),
        "title": line_item.get("title") or line_item.get("name"),
        "vendor_name": line_item.get("vendor"),
        "price_cents": _price_cents(line_item.get("price")),
        "owner_email": order.customer_email,
        "owner_name": order.customer_name,
        "refund_status": "refunded" if decision.is_refunded and is_removed else "none",
        "restocked": decision.is_restocked and is_removed,
    })

    if existing is None:
        unit.updated_at = utcnow()
        db.session.flush()
        return unit

    if existing.status == LINE_ITEM_STATUS_ACTIVE and is_removed:
        mark_removed(unit, reason=removed_reason, source=SOURCE_ORDER_SYNC)
        changed = False
    elif existing.status == LINE_ITEM_STATUS_REMOVED and not is_removed:
        if unit.removed_reason != "manual":
            mark_active(unit, source=SOURCE_ORDER_SYNC)
            changed = False
    elif is_removed and unit.removed_reason not in ("manual", removed_reason):
        unit.removed_reason = removed_reason
        changed = True

    # mark_removed / mark_active stamp updated_at and flush themselves
    if changed:
        unit.updated_at = utcnow()
        db.session.flush()
    return unit


def sync_shopify_order(payload: dict, *, skip_editions: bool = False) -> OrderSyncResult:
    """
    Ingest a Shopify order payload and renumber every product it touches.

    Args:
        payload: Shopify order object (including refunds)
        skip_editions: Store statuses but leave numbering to a later pass

    Raises:
        ValidationError: malformed payload
        EditionStoreError: data-store failure (rolled back, safe to retry)
    """
    if not isinstance(payload, dict) or payload.get("id") in (None, ""):
        raise ValidationError("order.id is required")
    line_items = payload.get("line_items")
    if not isinstance(line_items, list):
        raise ValidationError("order.line_items must be a list")
    for li in line_items:
        if not isinstance(li, dict) or li.get("id") in (None, ""):
            raise ValidationError("every line item needs an id")

    order_id = str(payload["id"])
    decisions = [(li, determine_line_item_status(payload, li)) for li in line_items]

    def _op():
        repo = LineItemRepository()
        order = _upsert_order(payload, order_id)

        existing_units: dict[tuple[str, int], LineItem] = {
            (u.shopify_line_item_id, u.unit_index): u for u in repo.items_for_order(order_id)
        }

        synced: list[LineItem] = []
        touched_products: set[str] = set()
        for li, decision in decisions:
            line_id = str(li.get("id"))
            known_indexes = [idx for (lid, idx) in existing_units if lid == line_id]
            unit_count = max([decision.quantity] + [idx + 1 for idx in known_indexes])
            for unit_index in range(unit_count):
                unit = _apply_unit(
                    order,
                    li,
                    unit_index,
                    decision.unit_status(unit_index),
                    decision,
                    existing_units.get((line_id, unit_index)),
                )
                synced.append(unit)
                if unit.product_id:
                    touched_products.add(unit.product_id)

        assignments = []
        if not skip_editions:
            for product_id in sorted(touched_products):
                assignments.append(reconcile_product(product_id, repository=repo, source=SOURCE_ORDER_SYNC))

        db.session.commit()
        return OrderSyncResult(
            order_id=order_id,
            order_name=order.order_name,
            line_items_synced=len(synced),
            line_items=synced,
            assignments=assignments,
        )

    try:
        result = run_with_retry(_op)
    except ValidationError:
        # bad timestamps/prices surface mid-upsert
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Order sync failed for %s: %s", order_id, exc)
        raise EditionStoreError(f"Order sync failed for {order_id}: {exc}") from exc

    current_app.logger.info(
        "Synced order %s: %d units, %d products renumbered",
        order_id, result.line_items_synced, len(result.assignments),
    )
    return result


def cancel_order(order_id: str, *, reason: str = "cancelled", source: str = "system") -> OrderCancelResult:
    """
    Cancel an order: revoke every active unit and renumber each affected
    product once. Unknown orders report found=False.
    """
    if reason not in REVOCATION_REASONS:
        raise ValidationError(f"reason must be one of: {', '.join(REVOCATION_REASONS)}")

    def _op():
        repo = LineItemRepository()
        order = db.session.query(Order).filter_by(id=order_id).first()
        if not order:
            return OrderCancelResult(order_id=order_id, found=False)

        if order.cancelled_at is None:
            order.cancelled_at = utcnow()
        order.updated_at = utcnow()

        revoked = []
        products: set[str] = set()
        for unit in repo.items_for_order(order_id):
            if unit.status != LINE_ITEM_STATUS_ACTIVE:
                continue
            mark_removed(unit, reason=reason, source=source)
            revoked.append(unit.id)
            if unit.product_id:
                products.add(unit.product_id)

        assignments = [
            reconcile_product(product_id, repository=repo, source=source)
            for product_id in sorted(products)
        ]
        db.session.commit()
        return OrderCancelResult(
            order_id=order_id, found=True, revoked_line_item_ids=revoked, assignments=assignments,
        )

    try:
        result = run_with_retry(_op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Order cancellation failed for %s: %s", order_id, exc)
        raise EditionStoreError(f"Order cancellation failed for {order_id}: {exc}") from exc

    if result.revoked_line_item_ids:
        current_app.logger.info(
            "Cancelled order %s: revoked %d units", order_id, len(result.revoked_line_item_ids),
        )
    return result
