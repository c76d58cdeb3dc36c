# backend/gudang/routes/products.py
"""
Product master data routes.

Stock is read-only here: it changes only through /api/transactions and
opname approval. The product code is generated on creation and immutable.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN, ROLE_SUPERVISOR
from ..services import product_service
from ..validation import PRODUCT_CREATE_POLICY, PRODUCT_UPDATE_POLICY, validate_payload


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    try:
        products = product_service.list_products(department_id=request.args.get("department_id"))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify([p.to_dict() for p in products]), 200


@products_bp.post("")
@require_auth
@require_role(ROLE_SUPERVISOR, ROLE_ADMIN)
def create_product_route():
    """
    Request body:
    {
        "name": str,
        "department_id": str,
        "unit": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        data = validate_payload(payload, PRODUCT_CREATE_POLICY)
        product = product_service.create_product(
            name=data["name"],
            department_id=data["department_id"],
            unit=data.get("unit"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Unexpected error while creating product"}), 500

    return jsonify(product.to_dict()), 201


@products_bp.put("/<product_id>")
@require_auth
@require_role(ROLE_SUPERVISOR, ROLE_ADMIN)
def update_product_route(product_id: str):
    """Edit name, department and unit. Sending stock or code is rejected."""
    payload = request.get_json(silent=True) or {}

    try:
        data = validate_payload(payload, PRODUCT_UPDATE_POLICY)
        product = product_service.update_product(
            product_id,
            name=data["name"],
            department_id=data["department_id"],
            unit=data.get("unit"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Unexpected error while updating product"}), 500

    return jsonify(product.to_dict()), 200


@products_bp.delete("/<product_id>")
@require_auth
@require_role(ROLE_SUPERVISOR, ROLE_ADMIN)
def delete_product_route(product_id: str):
    """Delete a product that has no ledger history (409 otherwise)."""
    try:
        product_service.delete_product(product_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Unexpected error while deleting product"}), 500

    return jsonify({"ok": True}), 200
