# backend/gudang/routes/transactions.py
"""
Ledger routes.

SECURITY: All routes require authentication. The actor recorded on a
posted movement is the authenticated user; an "actor" field in the body is
ignored.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_auth
from ..errors import LedgerError, ValidationError
from ..models.inventory import serialize_row
from ..services import transaction_service
from ..time_utils import parse_iso_date
from ..validation import TRANSACTION_POLICY, coerce_int, validate_payload


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("")
@require_auth
def post_transaction_route():
    """
    Post an IN/OUT movement.

    Request body:
    {
        "product_code": str,
        "type": "IN" | "OUT",
        "quantity": int (> 0),
        "department_id": str (optional; for IN must own the product)
    }

    Returns:
        201: {"new_balance": int, "transaction": {...}}
        400: Invalid request
        404: Unknown product code
        409: Insufficient stock / wrong department / balance conflict
        503: Backing store unavailable (nothing was changed)
    """
    payload = request.get_json(silent=True) or {}

    try:
        data = validate_payload(payload, TRANSACTION_POLICY)
        result = transaction_service.post_transaction(
            product_code=data["product_code"],
            tx_type=data["type"],
            quantity=data["quantity"],
            actor=current_actor(),
            department_id=data.get("department_id"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to post transaction")
        return jsonify({"error": "Unexpected error while posting transaction"}), 500

    return jsonify({
        "new_balance": result.new_balance,
        "previous_balance": result.previous_balance,
        "transaction": serialize_row(result.transaction),
    }), 201


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    List ledger rows.

    Query parameters:
        product_code: only this product
        type: IN or OUT
        department_id: only rows recorded against this department
        start, end: inclusive YYYY-MM-DD bounds
        order: newest (default) or oldest
        limit: max rows
    """
    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        return jsonify(ValidationError("start and end must be YYYY-MM-DD").to_dict()), 400

    try:
        limit = request.args.get("limit")
        rows = transaction_service.list_transactions(
            product_code=request.args.get("product_code"),
            tx_type=request.args.get("type"),
            department_id=request.args.get("department_id"),
            start=start,
            end=end,
            order=request.args.get("order", transaction_service.ORDER_NEWEST),
            limit=coerce_int("limit", limit) if limit else None,
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify([serialize_row(r) for r in rows]), 200
