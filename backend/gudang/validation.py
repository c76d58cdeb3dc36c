from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_date


# Largest quantity / stock figure accepted from clients
MAX_QUANTITY = 1_000_000_000

TX_TYPE_IN = "IN"
TX_TYPE_OUT = "OUT"
TX_TYPES = (TX_TYPE_IN, TX_TYPE_OUT)


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer:
    - fields: what clients are allowed to send, mapped to its kind
      ("int", "str", "date", "list")
    - required: fields that must be present
    - ignored: fields silently dropped (e.g. a client-supplied actor; the
      actor always comes from the authenticated session)
    """
    fields: dict[str, str]
    required: set[str] = field(default_factory=set)
    ignored: set[str] = field(default_factory=set)


def coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(key: str, kind: str, value: Any):
    if kind == "int":
        return coerce_int(key, value)

    if kind == "str":
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{key} must be a string")
        return str(value).strip()

    if kind == "date":
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            raise ValidationError(f"{key} must be an ISO-8601 date")
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 date")
        if parsed is None:
            raise ValidationError(f"{key} must be an ISO-8601 date")
        return parsed

    if kind == "list":
        if not isinstance(value, list):
            raise ValidationError(f"{key} must be a list")
        return value

    return value


def validate_payload(payload: Any, policy: PayloadPolicy) -> dict:
    """
    Validates + normalizes incoming JSON against the policy.
    Returns a cleaned dict holding only allowed, non-null fields.
    Blank strings count as missing.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for k in payload.keys():
        if k in policy.ignored:
            continue
        if k not in policy.fields:
            raise ValidationError(f"Field not allowed: {k}")

    cleaned: dict = {}
    for k, kind in policy.fields.items():
        raw = payload.get(k)
        if raw is None:
            continue
        val = _coerce_value(k, kind, raw)
        if isinstance(val, str) and val == "":
            continue
        cleaned[k] = val

    missing = sorted(f for f in policy.required if f not in cleaned)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return cleaned


def require_positive_int(key: str, value: int) -> int:
    if value <= 0:
        raise ValidationError(f"{key} must be > 0")
    if value > MAX_QUANTITY:
        raise ValidationError(f"{key} cannot exceed {MAX_QUANTITY}")
    return value


def require_non_negative_int(key: str, value: int) -> int:
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_QUANTITY:
        raise ValidationError(f"{key} cannot exceed {MAX_QUANTITY}")
    return value


def normalize_tx_type(value: str) -> str:
    tx_type = str(value).strip().upper()
    if tx_type not in TX_TYPES:
        raise ValidationError("type must be IN or OUT")
    return tx_type


TRANSACTION_POLICY = PayloadPolicy(
    fields={"product_code": "str", "type": "str", "quantity": "int", "department_id": "str"},
    required={"product_code", "type", "quantity"},
    ignored={"actor"},
)

OPNAME_SUBMIT_POLICY = PayloadPolicy(
    fields={"date": "date", "items": "list"},
    required={"items"},
    ignored={"actor"},
)

OPNAME_ITEM_POLICY = PayloadPolicy(
    fields={"product_code": "str", "system_stock": "int", "physical_stock": "int"},
    required={"product_code", "physical_stock"},
    ignored={"product_name", "variance", "label", "status"},
)

OPNAME_FIELD_POLICY = PayloadPolicy(
    fields={"product_code": "str", "system_stock": "int", "physical_stock": "int"},
    required={"product_code", "physical_stock"},
    ignored={"actor", "product_name"},
)

OPNAME_APPROVE_POLICY = PayloadPolicy(
    fields={"opname_id": "str", "product_code": "str", "new_stock": "int"},
    required={"opname_id", "product_code", "new_stock"},
)

OPNAME_REJECT_POLICY = PayloadPolicy(
    fields={"opname_id": "str", "product_code": "str"},
    required={"opname_id"},
)

PRODUCT_CREATE_POLICY = PayloadPolicy(
    fields={"name": "str", "department_id": "str", "unit": "str"},
    required={"name", "department_id"},
)

# Stock and code are deliberately absent: edits touch descriptive fields only
PRODUCT_UPDATE_POLICY = PayloadPolicy(
    fields={"name": "str", "department_id": "str", "unit": "str"},
    required={"name", "department_id"},
)


def validate_opname_items(raw_items: list) -> list[dict]:
    """Validate submission lines; a product may appear only once per batch."""
    if not raw_items:
        raise ValidationError("items must contain at least one line")

    items = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_items):
        try:
            item = validate_payload(raw, OPNAME_ITEM_POLICY)
        except ValidationError as e:
            raise ValidationError(f"items[{index}]: {e.message}")
        require_non_negative_int("physical_stock", item["physical_stock"])
        if "system_stock" in item:
            require_non_negative_int("system_stock", item["system_stock"])
        if item["product_code"] in seen:
            raise ValidationError(f"items[{index}]: duplicate product_code {item['product_code']}")
        seen.add(item["product_code"])
        items.append(item)
    return items
