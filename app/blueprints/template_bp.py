"""
Templates Blueprint — outreach message template rules.

Endpoints:
    GET  /api/v1/templates                       — current rule set
    POST /api/v1/templates {action: "save", templates: [...]}
"""

from flask import Blueprint, jsonify, request

from app.middleware.jwt_auth import admin_required
from app.services import template_service

templates_bp = Blueprint("templates", __name__, url_prefix="/api/v1")


@templates_bp.route("/templates", methods=["GET"])
def get_templates():
    return jsonify({"success": True, "templates": template_service.load_templates()})


@templates_bp.route("/templates", methods=["POST"])
@admin_required
def save_templates():
    data = request.get_json(silent=True) or {}
    if data.get("action") != "save":
        return jsonify({"error": "Invalid action"}), 400

    result = template_service.save_templates(data.get("templates"))
    return jsonify({
        "success": True,
        "message": "Templates saved successfully",
        **result,
    })
