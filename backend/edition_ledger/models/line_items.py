from __future__ import annotations

from ..extensions import db
from edition_ledger.time_utils import to_utc_z


LINE_ITEM_STATUS_ACTIVE = "active"
LINE_ITEM_STATUS_REMOVED = "removed"


class LineItem(db.Model):
    """
    One purchased unit of a product within an order.

    A Shopify line with quantity 3 is stored as three rows sharing
    shopify_line_item_id, distinguished by unit_index.

    EDITION INVARIANT: for a product, active rows hold exactly 1..N with no
    gaps or duplicates; removed rows hold no number. Only the edition service
    writes edition_number / edition_total.
    """
    __tablename__ = "line_items"
    __table_args__ = (
        db.UniqueConstraint("shopify_line_item_id", "unit_index", name="uq_line_items_shopify_unit"),
        # Reconciliation scans active units of one product in purchase order
        db.Index("ix_line_items_product_status_created", "product_id", "status", "created_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    shopify_line_item_id = db.Column(db.String(64), nullable=False)
    unit_index = db.Column(db.Integer, nullable=False, default=0)

    order_id = db.Column(db.String(64), db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=True, index=True)  # null for custom items
    variant_id = db.Column(db.String(64), nullable=True)
    title = db.Column(db.String(255), nullable=True)
    vendor_name = db.Column(db.String(255), nullable=True, index=True)
    price_cents = db.Column(db.Integer, nullable=True)

    # Lifecycle
    status = db.Column(db.String(16), nullable=False, default=LINE_ITEM_STATUS_ACTIVE, index=True)
    removed_reason = db.Column(db.String(32), nullable=True)

    # Edition numbering (denormalized total as of last assignment)
    edition_number = db.Column(db.Integer, nullable=True)
    edition_total = db.Column(db.Integer, nullable=True)

    # Ingestion facts kept for integrity audits
    refund_status = db.Column(db.String(16), nullable=False, default="none")
    restocked = db.Column(db.Boolean, nullable=False, default=False)

    # Collector
    owner_email = db.Column(db.String(255), nullable=True, index=True)
    owner_name = db.Column(db.String(255), nullable=True)

    # Certificate of authenticity (issued on first numbering, never rotated)
    certificate_url = db.Column(db.String(512), nullable=True)
    certificate_token = db.Column(db.String(64), nullable=True, unique=True)
    certificate_generated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("line_items", lazy=True, order_by="LineItem.id"))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == LINE_ITEM_STATUS_ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shopify_line_item_id": self.shopify_line_item_id,
            "unit_index": self.unit_index,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "title": self.title,
            "vendor_name": self.vendor_name,
            "price_cents": self.price_cents,
            "status": self.status,
            "removed_reason": self.removed_reason,
            "edition_number": self.edition_number,
            "edition_total": self.edition_total,
            "refund_status": self.refund_status,
            "restocked": self.restocked,
            "owner": {
                "name": self.owner_name,
                "email": self.owner_email,
            },
            "certificate_url": self.certificate_url,
            "certificate_generated_at": to_utc_z(self.certificate_generated_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
