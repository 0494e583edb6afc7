from __future__ import annotations

from typing import Any


REVOCATION_REASONS = ("refunded", "restocked", "removed", "cancelled", "manual")


class ValidationError(ValueError):
    """400-level input problem."""


def require_json_object(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def optional_json_object(data: Any) -> dict:
    """An absent body means no options; anything other than an object is rejected."""
    if data is None:
        return {}
    return require_json_object(data)


def normalize_product_id(value: Any) -> str:
    """
    Product ids are stored as strings (Shopify ids exceed 32-bit range and
    arrive as either numbers or strings).
    """
    if value is None or isinstance(value, bool):
        raise ValidationError("product_id is required")
    if isinstance(value, float):
        raise ValidationError("product_id must be an integer or string, not a decimal")
    s = str(value).strip()
    if not s:
        raise ValidationError("product_id is required")
    return s


def optional_product_id(value: Any) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return normalize_product_id(value)


def parse_revocation_reason(value: Any, default: str = "manual") -> str:
    if value is None:
        return default
    if not isinstance(value, str) or value.strip().lower() not in REVOCATION_REASONS:
        raise ValidationError(
            f"reason must be one of: {', '.join(REVOCATION_REASONS)}"
        )
    return value.strip().lower()


def optional_note(value: Any, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("notes must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"notes must be at most {max_length} characters")
    return value or None


def parse_bool(value: Any, *, field: str, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ValidationError(f"{field} must be a boolean")
