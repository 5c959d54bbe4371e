"""
Admin Blueprint — review actions on submitted plans and drafts.

Endpoints:
    POST /api/v1/admin/actions   — approve_plan | revise_plan | approve_draft | revise_draft

Layer contract: required-field check here; action validation, the status
write and the revision webhook effect live in campaign_service.
"""

from flask import Blueprint, jsonify, request

from app.blueprints import run_effects
from app.middleware.jwt_auth import admin_required
from app.services import campaign_service

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


@admin_bp.route("/actions", methods=["POST"])
@admin_required
def admin_action():
    """
    Apply an admin review action.

    Body: { "campaignId", "influencerId", "action", "feedbackMessage"? }
    """
    data = request.get_json(silent=True) or {}
    campaign_id = str(data.get("campaignId") or "").strip()
    influencer_id = str(data.get("influencerId") or "").strip()
    action = str(data.get("action") or "").strip()
    if not campaign_id or not influencer_id or not action:
        return jsonify({"error": "campaignId, influencerId, and action are required"}), 400

    result = campaign_service.apply_admin_action(
        campaign_id, influencer_id, action, data.get("feedbackMessage") or None,
    )
    run_effects(result)
    return jsonify({"success": True, **result})
