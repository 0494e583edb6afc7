# Overview: Read-only drift detection for edition numbering and line item status.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from ..extensions import db
from ..models import LineItem, Order, LINE_ITEM_STATUS_ACTIVE, LINE_ITEM_STATUS_REMOVED
from .line_item_repository import LineItemRepository


ISSUE_EDITION_MISMATCH = "edition_mismatch"
ISSUE_MISSING_EDITION = "missing_edition"
ISSUE_DUPLICATE_EDITION = "duplicate_edition"
ISSUE_TOTAL_MISMATCH = "total_mismatch"
ISSUE_REMOVED_WITH_EDITION = "removed_with_edition"

ISSUE_REFUNDED_BUT_ACTIVE = "refunded_but_active"
ISSUE_RESTOCKED_BUT_ACTIVE = "restocked_but_active"
ISSUE_ORDER_CANCELLED_BUT_ACTIVE = "order_cancelled_but_active"


@dataclass(frozen=True)
class EditionIssue:
    type: str
    product_id: str | None
    description: str
    line_item_id: int | None = None
    expected: int | None = None
    actual: int | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "product_id": self.product_id,
            "line_item_id": self.line_item_id,
            "expected": self.expected,
            "actual": self.actual,
            "description": self.description,
        }


@dataclass
class ProductVerification:
    product_id: str
    active_count: int
    issues: list[EditionIssue] = field(default_factory=list)
    missing_numbers: list[int] = field(default_factory=list)
    unexpected_numbers: list[int] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "active_count": self.active_count,
            "is_consistent": self.is_consistent,
            "missing_numbers": self.missing_numbers,
            "unexpected_numbers": self.unexpected_numbers,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass
class VerificationSummary:
    products_checked: int
    inconsistent: list[ProductVerification] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.inconsistent

    def to_dict(self) -> dict:
        return {
            "products_checked": self.products_checked,
            "inconsistent_count": len(self.inconsistent),
            "is_consistent": self.is_consistent,
            "inconsistent": [p.to_dict() for p in self.inconsistent],
        }


def _duplicates(items: list[LineItem]) -> dict[int, list[int]]:
    holders: dict[int, list[int]] = defaultdict(list)
    for item in items:
        if item.edition_number is not None:
            holders[item.edition_number].append(item.id)
    return {num: ids for num, ids in sorted(holders.items()) if len(ids) > 1}


def find_duplicate_editions(product_id: str) -> dict[int, list[int]]:
    """Edition numbers held by more than one active unit: {number: [line_item_ids]}."""
    return _duplicates(LineItemRepository().active_items_for_product(product_id))


def verify_product(product_id: str) -> ProductVerification:
    """
    Compare stored numbering against the numbering a fresh assignment would
    produce. Read-only; never repairs.
    """
    items = LineItemRepository().items_for_product(product_id)
    active = [i for i in items if i.status == LINE_ITEM_STATUS_ACTIVE]
    removed = [i for i in items if i.status == LINE_ITEM_STATUS_REMOVED]

    total = len(active)
    report = ProductVerification(product_id=product_id, active_count=total)

    # items_for_product is already in (created_at, id) order
    for expected, item in enumerate(active, start=1):
        if item.edition_number is None:
            report.issues.append(EditionIssue(
                type=ISSUE_MISSING_EDITION,
                product_id=product_id,
                line_item_id=item.id,
                expected=expected,
                description=f"Line item {item.id} is active but has no edition number (expected #{expected})",
            ))
        elif item.edition_number != expected:
            report.issues.append(EditionIssue(
                type=ISSUE_EDITION_MISMATCH,
                product_id=product_id,
                line_item_id=item.id,
                expected=expected,
                actual=item.edition_number,
                description=f"Line item {item.id} holds edition #{item.edition_number}, expected #{expected}",
            ))
        if item.edition_total != total:
            report.issues.append(EditionIssue(
                type=ISSUE_TOTAL_MISMATCH,
                product_id=product_id,
                line_item_id=item.id,
                expected=total,
                actual=item.edition_total,
                description=f"Line item {item.id} has edition_total={item.edition_total}, expected {total}",
            ))

    for number, ids in _duplicates(active).items():
        report.issues.append(EditionIssue(
            type=ISSUE_DUPLICATE_EDITION,
            product_id=product_id,
            actual=number,
            description=f"Edition #{number} assigned to {len(ids)} line items: {', '.join(str(i) for i in ids)}",
        ))

    for item in removed:
        if item.edition_number is not None:
            report.issues.append(EditionIssue(
                type=ISSUE_REMOVED_WITH_EDITION,
                product_id=product_id,
                line_item_id=item.id,
                actual=item.edition_number,
                description=f"Line item {item.id} is removed but still holds edition #{item.edition_number}",
            ))

    stored = {i.edition_number for i in active if i.edition_number is not None}
    expected_set = set(range(1, total + 1))
    report.missing_numbers = sorted(expected_set - stored)
    report.unexpected_numbers = sorted(stored - expected_set)
    return report


def verify_all_products() -> VerificationSummary:
    product_ids = LineItemRepository().product_ids()
    summary = VerificationSummary(products_checked=len(product_ids))
    for product_id in product_ids:
        report = verify_product(product_id)
        if not report.is_consistent:
            summary.inconsistent.append(report)
    return summary


def audit_line_item_status(product_id: str | None = None) -> list[EditionIssue]:
    """
    Find active units whose ingestion facts say they should have been
    removed (refunded, restocked, or on a cancelled/refunded order).
    """
    q = db.session.query(LineItem, Order).join(Order, LineItem.order_id == Order.id).filter(
        LineItem.status == LINE_ITEM_STATUS_ACTIVE,
    )
    if product_id:
        q = q.filter(LineItem.product_id == product_id)

    issues = []
    for item, order in q.order_by(LineItem.id.asc()).all():
        if item.refund_status == "refunded":
            issues.append(EditionIssue(
                type=ISSUE_REFUNDED_BUT_ACTIVE,
                product_id=item.product_id,
                line_item_id=item.id,
                description=f"Line item {item.id} is active but has refund_status='refunded'",
            ))
        if item.restocked:
            issues.append(EditionIssue(
                type=ISSUE_RESTOCKED_BUT_ACTIVE,
                product_id=item.product_id,
                line_item_id=item.id,
                description=f"Line item {item.id} is active but restocked=true",
            ))
        if order.is_cancelled or order.financial_status == "refunded":
            issues.append(EditionIssue(
                type=ISSUE_ORDER_CANCELLED_BUT_ACTIVE,
                product_id=item.product_id,
                line_item_id=item.id,
                description=f"Line item {item.id} is active but order {order.id} is {order.financial_status or 'cancelled'}",
            ))
    return issues
