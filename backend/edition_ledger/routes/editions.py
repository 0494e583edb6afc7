# Overview: Flask API routes for edition numbering; parses input and returns JSON responses.

# backend/edition_ledger/routes/editions.py
"""
Edition API Routes

DESIGN:
- Reads (editions, verification, history) are open to internal callers
- Writes (assign, revoke, reactivate) require the API token
- Not-found products/line items are zero-length input: 200 with N=0 or
  found=false, never 404
- Data-store failures return 503 and are safe to retry
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_api_token
from ..services import edition_service, event_service, revocation_service, verification_service
from ..services.edition_service import EditionStoreError
from ..services.line_item_repository import LineItemRepository
from ..validation import (
    ValidationError,
    normalize_product_id,
    optional_json_object,
    optional_note,
    optional_product_id,
    parse_revocation_reason,
)


editions_bp = Blueprint("editions", __name__, url_prefix="/api/editions")


def _store_error(e: EditionStoreError):
    return jsonify({"error": str(e), "retryable": True}), 503


# =============================================================================
# PRODUCT EDITIONS
# =============================================================================

@editions_bp.get("/products/<product_id>")
def get_product_editions_route(product_id: str):
    """
    List active editions of a product in edition order.

    Returns:
        200: {"product_id", "edition_total", "editions": [...]}
    """
    try:
        product_id = normalize_product_id(product_id)
        items = edition_service.get_product_editions(product_id)
        return jsonify({
            "product_id": product_id,
            "edition_total": len(items),
            "editions": [i.to_dict() for i in items],
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to load product editions")
        return jsonify({"error": "Internal server error"}), 500


@editions_bp.post("/products/<product_id>/assign")
@require_api_token
def assign_product_editions_route(product_id: str):
    """
    Recompute contiguous edition numbers for a product (operator action,
    cron or post-ingestion hook).

    Returns:
        200: {"success": true, "edition_total": N, "writes": k, ...}
        503: data-store failure
    """
    try:
        product_id = normalize_product_id(product_id)
        result = edition_service.assign_edition_numbers(product_id, source="api")
        return jsonify({"success": True, **result.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except EditionStoreError as e:
        return _store_error(e)
    except Exception:
        current_app.logger.exception("Failed to assign edition numbers")
        return jsonify({"error": "Internal server error"}), 500


@editions_bp.post("/assign-all")
@require_api_token
def assign_all_editions_route():
    try:
        results = edition_service.assign_all_products(source="api")
        return jsonify({
            "success": True,
            "products": len(results),
            "writes": sum(r.writes for r in results),
            "results": [r.to_dict() for r in results],
        }), 200
    except EditionStoreError as e:
        return _store_error(e)
    except Exception:
        current_app.logger.exception("Failed to assign edition numbers for all products")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# VERIFICATION (READ-ONLY)
# =============================================================================

@editions_bp.get("/products/<product_id>/verify")
def verify_product_route(product_id: str):
    try:
        report = verification_service.verify_product(normalize_product_id(product_id))
        return jsonify(report.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to verify product editions")
        return jsonify({"error": "Internal server error"}), 500


@editions_bp.get("/products/<product_id>/duplicates")
def product_duplicates_route(product_id: str):
    try:
        product_id = normalize_product_id(product_id)
        duplicates = verification_service.find_duplicate_editions(product_id)
        return jsonify({
            "product_id": product_id,
            "has_duplicates": bool(duplicates),
            "duplicate_edition_numbers": sorted(duplicates),
            "duplicates": [
                {"edition_number": num, "line_item_ids": ids}
                for num, ids in duplicates.items()
            ],
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to check duplicate editions")
        return jsonify({"error": "Internal server error"}), 500


@editions_bp.get("/verify")
def verify_all_route():
    try:
        summary = verification_service.verify_all_products()
        return jsonify(summary.to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to verify editions")
        return jsonify({"error": "Internal server error"}), 500


@editions_bp.get("/integrity")
def integrity_route():
    """
    Audit active units against their ingestion facts.

    Query params:
        product_id: optional scope
    """
    try:
        product_id = optional_product_id(request.args.get("product_id"))
        issues = verification_service.audit_line_item_status(product_id)
        return jsonify({
            "scope": {"product_id": product_id or "all"},
            "issues_found": len(issues),
            "issues": [i.to_dict() for i in issues],
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to audit line item status")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LINE ITEMS
# =============================================================================

@editions_bp.get("/line-items/<int:line_item_id>")
def verify_line_item_route(line_item_id: int):
    """Current edition state of one unit; found=false when unknown."""
    try:
        item = LineItemRepository().get(line_item_id)
        if not item:
            return jsonify({"line_item_id": line_item_id, "found": False}), 200
        return jsonify({
            "line_item_id": line_item_id,
            "found": True,
            "verified": item.is_active and item.edition_number is not None,
            "line_item": item.to_dict(),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to load line item")
        return jsonify({"error": "Internal server error"}), 500


@editions_bp.get("/line-items/<int:line_item_id>/history")
def line_item_history_route(line_item_id: int):
    try:
        events = event_service.get_edition_history(line_item_id, request.args.get("event_type"))
        return jsonify({
            "line_item_id": line_item_id,
            "event_count": len(events),
            "events": [e.to_dict() for e in events],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to load edition history")
        return jsonify({"error": "Internal server error"}), 500


@editions_bp.post("/line-items/<int:line_item_id>/revoke")
@require_api_token
def revoke_line_item_route(line_item_id: int):
    """
    Revoke a unit's edition (order cancelled/refunded, or manual).

    Request body:
    {
        "reason": "refunded",  (refunded|restocked|removed|cancelled|manual, default manual)
        "notes": "Customer refund #1234"  (optional)
    }

    Returns:
        200: {"found", "changed", "edition_total", ...}
    """
    try:
        data = optional_json_object(request.get_json(silent=True))
        result = revocation_service.revoke_line_item(
            line_item_id,
            reason=parse_revocation_reason(data.get("reason")),
            notes=optional_note(data.get("notes")),
            source="api",
        )
        return jsonify(result.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except EditionStoreError as e:
        return _store_error(e)
    except Exception:
        current_app.logger.exception("Failed to revoke line item")
        return jsonify({"error": "Internal server error"}), 500


@editions_bp.post("/line-items/<int:line_item_id>/reactivate")
@require_api_token
def reactivate_line_item_route(line_item_id: int):
    try:
        data = optional_json_object(request.get_json(silent=True))
        result = revocation_service.reactivate_line_item(
            line_item_id,
            notes=optional_note(data.get("notes")),
            source="api",
        )
        return jsonify(result.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except EditionStoreError as e:
        return _store_error(e)
    except Exception:
        current_app.logger.exception("Failed to reactivate line item")
        return jsonify({"error": "Internal server error"}), 500
