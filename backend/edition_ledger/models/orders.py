from __future__ import annotations

from ..extensions import db


def order_is_cancelled(*, financial_status, fulfillment_status, cancelled_at) -> bool:
    """Shopify marks cancellation three ways; any one of them counts."""
    return (
        cancelled_at is not None
        or financial_status == "voided"
        or fulfillment_status == "canceled"
    )


class Order(db.Model):
    """
    Shopify order header.

    Keyed by the Shopify order id so re-syncing the same payload updates
    the row in place.
    """
    __tablename__ = "orders"

    id = db.Column(db.String(64), primary_key=True)
    order_name = db.Column(db.String(64), nullable=True, index=True)  # e.g. "#1042"

    financial_status = db.Column(db.String(32), nullable=True, index=True)
    fulfillment_status = db.Column(db.String(32), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer_email = db.Column(db.String(255), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_cancelled(self) -> bool:
        return order_is_cancelled(
            financial_status=self.financial_status,
            fulfillment_status=self.fulfillment_status,
            cancelled_at=self.cancelled_at,
        )
