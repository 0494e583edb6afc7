# Overview: Flask API routes for order ingestion and cancellation.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_api_token
from ..services import order_sync_service
from ..services.edition_service import EditionStoreError
from ..validation import (
    ValidationError,
    optional_json_object,
    parse_bool,
    parse_revocation_reason,
    require_json_object,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/sync")
@require_api_token
def sync_order_route():
    """
    Ingest a Shopify order and renumber the products it touches.

    Request body:
    {
        "order": {...Shopify order, including refunds...},
        "skip_editions": false  (optional)
    }

    Returns:
        200: per-unit status and per-product assignment results
        400: malformed payload
        503: data-store failure (safe to retry)
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        order = data.get("order")
        if order is None:
            return jsonify({"error": "order required"}), 400

        result = order_sync_service.sync_shopify_order(
            order,
            skip_editions=parse_bool(data.get("skip_editions"), field="skip_editions"),
        )
        return jsonify({"success": True, **result.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except EditionStoreError as e:
        return jsonify({"error": str(e), "retryable": True}), 503
    except Exception:
        current_app.logger.exception("Failed to sync order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/cancel")
@require_api_token
def cancel_order_route(order_id: str):
    """
    Cancellation/refund handler: revoke every active unit of the order.

    Request body (optional):
    {
        "reason": "cancelled"
    }
    """
    try:
        data = optional_json_object(request.get_json(silent=True))
        result = order_sync_service.cancel_order(
            order_id,
            reason=parse_revocation_reason(data.get("reason"), default="cancelled"),
            source="api",
        )
        return jsonify(result.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except EditionStoreError as e:
        return jsonify({"error": str(e), "retryable": True}), 503
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500
