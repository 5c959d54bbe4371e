"""
Auth Blueprint — sheet-backed login + JWT access token.

Endpoints:
  POST /api/v1/auth/login       — ID + password → profile + access token
  GET  /api/v1/auth/me          — identity decoded from the bearer token

Layer contract: validates input, calls auth_service, never touches the
sheet directly. SheetsNotConfiguredError propagates to the app handler (503).
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.services import auth_service, campaign_service
from app.services.jwt_service import generate_access_token
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with influencer ID + dashboard password.

    Body: { "id": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    user_id = str(data.get("id") or "").strip()
    password = str(data.get("password") or "")

    if not user_id or not password:
        return jsonify({"error": "ID and password are required"}), 400

    user = auth_service.authenticate(user_id, password)
    if user is None:
        return api_error(E.UNAUTHORIZED, "Invalid credentials")

    if user["role"] == auth_service.ROLE_INFLUENCER:
        touched = campaign_service.touch_on_login(user["id"])
        if touched:
            logger.info("Stamped %d untouched campaign(s) on login", touched,
                        extra={"influencer_id": user["id"]})

    token = generate_access_token(user["id"], user["role"], user["name"])
    return jsonify({**user, "access_token": token, "token_type": "Bearer"}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    if not getattr(g, "jwt_user_id", None):
        return api_error(E.UNAUTHORIZED, "Authentication required")
    return jsonify({
        "id": g.jwt_user_id,
        "role": g.jwt_role,
        "name": g.jwt_name or "",
    }), 200
