# backend/gudang/routes/opname.py
"""
Physical count (opname) routes.

- submit / field: any authenticated user
- approve / reject: SUPERVISOR or ADMIN
- reject DELETES the pending line(s); it cannot be undone
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_auth, require_role
from ..errors import LedgerError, StoreUnavailable, ValidationError
from ..models.auth import ROLE_ADMIN, ROLE_SUPERVISOR
from ..models.inventory import serialize_row
from ..services import opname_service
from ..time_utils import parse_iso_date
from ..validation import (
    OPNAME_APPROVE_POLICY,
    OPNAME_FIELD_POLICY,
    OPNAME_REJECT_POLICY,
    OPNAME_SUBMIT_POLICY,
    validate_payload,
)


opname_bp = Blueprint("opname", __name__, url_prefix="/api/opname")


@opname_bp.post("/submit")
@require_auth
def submit_opname_route():
    """
    Submit a batch of counted lines.

    Request body:
    {
        "date": "YYYY-MM-DD" (optional, defaults to today),
        "items": [{"product_code": str, "physical_stock": int, "system_stock": int (optional)}]
    }

    Returns:
        201: {"opname_id": str, "lines": [...]}
    """
    payload = request.get_json(silent=True) or {}

    try:
        data = validate_payload(payload, OPNAME_SUBMIT_POLICY)
        opname_id, rows = opname_service.submit_opname(
            items=data["items"],
            opname_date=data.get("date"),
            submitted_by=current_actor(),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit opname")
        return jsonify({"error": "Unexpected error while submitting opname"}), 500

    return jsonify({"opname_id": opname_id, "lines": [serialize_row(r) for r in rows]}), 201


@opname_bp.post("/field")
@require_auth
def field_opname_route():
    """
    Single-line count from a field officer (scan, count, send).

    Request body:
    {
        "product_code": str,
        "physical_stock": int,
        "system_stock": int (optional, defaults to current stock)
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        item = validate_payload(payload, OPNAME_FIELD_POLICY)
        opname_id, rows = opname_service.submit_opname(items=[item], submitted_by=current_actor())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit field opname")
        return jsonify({"error": "Unexpected error while submitting opname"}), 500

    return jsonify({"opname_id": opname_id, "line": serialize_row(rows[0])}), 201


@opname_bp.post("/approve")
@require_auth
@require_role(ROLE_SUPERVISOR, ROLE_ADMIN)
def approve_opname_route():
    """
    Approve a pending line and overwrite product stock with new_stock.

    Request body:
    {
        "opname_id": str,
        "product_code": str,
        "new_stock": int (>= 0)
    }

    Returns:
        200: {"ok": true, "line": {...}}
        404: Line not found
        409: ALREADY_APPROVED (nothing was changed)
    """
    payload = request.get_json(silent=True) or {}

    try:
        data = validate_payload(payload, OPNAME_APPROVE_POLICY)
        line = opname_service.approve_opname(
            opname_id=data["opname_id"],
            product_code=data["product_code"],
            new_stock=data["new_stock"],
            approved_by=current_actor(),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve opname")
        return jsonify({"error": "Unexpected error while approving opname"}), 500

    return jsonify({"ok": True, "line": serialize_row(line)}), 200


@opname_bp.post("/reject")
@require_auth
@require_role(ROLE_SUPERVISOR, ROLE_ADMIN)
def reject_opname_route():
    """
    Reject an opname: permanently delete its pending line(s).

    Request body:
    {
        "opname_id": str,
        "product_code": str (optional; only this line)
    }

    Returns:
        200: {"ok": true, "deleted": int}
        404: Opname not found
        409: CANNOT_REJECT_APPROVED (nothing was deleted)
    """
    payload = request.get_json(silent=True) or {}

    try:
        data = validate_payload(payload, OPNAME_REJECT_POLICY)
        deleted = opname_service.reject_opname(
            opname_id=data["opname_id"],
            product_code=data.get("product_code"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject opname")
        return jsonify({"error": "Unexpected error while rejecting opname"}), 500

    return jsonify({"ok": True, "deleted": deleted}), 200


@opname_bp.get("/history")
@require_auth
def opname_history_route():
    """
    Opname lines, newest date first.

    Query parameters:
        start, end: inclusive YYYY-MM-DD bounds
        status: PENDING or APPROVED
        merged: "true" to merge lines sharing (date, product_code)
    """
    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        return jsonify(ValidationError("start and end must be YYYY-MM-DD").to_dict()), 400

    merged = request.args.get("merged", "false").lower() in ("1", "true", "yes")

    try:
        rows = opname_service.list_history(
            start=start,
            end=end,
            status=request.args.get("status") or None,
            merged=merged,
        )
    except StoreUnavailable:
        current_app.logger.warning("Opname history degraded to empty: backing store unavailable")
        rows = []
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify([serialize_row(r) for r in rows]), 200


@opname_bp.get("/pending")
@require_auth
@require_role(ROLE_SUPERVISOR, ROLE_ADMIN)
def pending_opname_route():
    """Approval queue."""
    try:
        rows = opname_service.list_pending()
    except StoreUnavailable:
        current_app.logger.warning("Opname queue degraded to empty: backing store unavailable")
        rows = []
    return jsonify([serialize_row(r) for r in rows]), 200
