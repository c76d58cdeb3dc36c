# backend/gudang/routes/auth.py
"""Login / logout. Token issuance only; account management lives elsewhere."""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Request body:
    {
        "username": str,
        "password": str
    }

    Returns:
        200: {"token": str, "expires_at": str, "user": {...}}
        400: Missing credentials
        401: Invalid credentials
    """
    payload = request.get_json(silent=True) or {}
    username = payload.get("username")
    password = payload.get("password")
    if not username or not password:
        return jsonify({"error": "username and password are required"}), 400

    try:
        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401
        session, token = session_service.create_session(user.id)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Unexpected error during login"}), 500

    return jsonify({
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
        "user": user.to_dict(),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.token)
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify(g.current_user.to_dict()), 200
