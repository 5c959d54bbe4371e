"""
Users Blueprint.

Endpoints:
    GET /api/v1/users   — influencers derived from campaign rows, with roles
"""

from flask import Blueprint, jsonify

from app.middleware.jwt_auth import admin_required
from app.services import auth_service

users_bp = Blueprint("users", __name__, url_prefix="/api/v1")


@users_bp.route("/users", methods=["GET"])
@admin_required
def list_users():
    return jsonify(auth_service.list_users())
