"""
Campaign Blueprint — campaign reads and influencer-side workflow.

Endpoints:
    GET  /api/v1/campaigns              — all campaigns (?refresh=1 skips the cache)
    POST /api/v1/campaigns              — one influencer's campaigns {userId}
    POST /api/v1/campaigns/update       — direct status update
    POST /api/v1/campaigns/submit       — plan/draft/content URL submission
    POST /api/v1/campaigns/reminder     — admin reminder (log + webhook)
    POST /api/v1/campaigns/onboarding   — contract info survey

Layer contract: request parsing and required-field checks here, workflow
in campaign_service, webhooks dispatched after the write via run_effects().
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import bool_arg, run_effects
from app.middleware.jwt_auth import admin_required, login_required
from app.services import campaign_service

logger = logging.getLogger(__name__)

campaign_bp = Blueprint("campaign", __name__, url_prefix="/api/v1")


# ── Reads ────────────────────────────────────────────────────────────────


@campaign_bp.route("/campaigns", methods=["GET"])
def list_campaigns():
    campaigns = campaign_service.list_campaigns(force_refresh=bool_arg("refresh"))
    return jsonify([c.to_dict() for c in campaigns])


@campaign_bp.route("/campaigns", methods=["POST"])
def user_campaigns():
    data = request.get_json(silent=True) or {}
    user_id = str(data.get("userId") or "").strip()
    if not user_id:
        return jsonify({"error": "userId is required"}), 400
    campaigns = campaign_service.list_campaigns(user_id, force_refresh=bool(data.get("refresh")))
    return jsonify([c.to_dict() for c in campaigns])


# ── Workflow ─────────────────────────────────────────────────────────────


@campaign_bp.route("/campaigns/update", methods=["POST"])
@login_required
def update_campaign():
    """Set any enumerated status on a campaign row."""
    data = request.get_json(silent=True) or {}
    campaign_id = str(data.get("campaignId") or "").strip()
    influencer_id = str(data.get("influencerId") or "").strip()
    new_status = str(data.get("newStatus") or "").strip()
    if not campaign_id or not influencer_id or not new_status:
        return jsonify({"error": "campaignId, influencerId, and newStatus are required"}), 400

    result = campaign_service.update_status(
        campaign_id,
        influencer_id,
        new_status,
        submitted_url=data.get("submittedUrl") or None,
        url_type=data.get("urlType") or None,
    )
    run_effects(result)
    return jsonify({
        "success": True,
        "message": "Campaign updated successfully",
        "status": result["status"],
        "updatedAt": result["updatedAt"],
    })


@campaign_bp.route("/campaigns/submit", methods=["POST"])
@login_required
def submit_content():
    data = request.get_json(silent=True) or {}
    campaign_id = str(data.get("campaignId") or "").strip()
    influencer_id = str(data.get("influencerId") or "").strip()
    submitted_url = str(data.get("submittedUrl") or "").strip()
    if not campaign_id or not influencer_id or not submitted_url:
        return jsonify({"error": "campaignId, influencerId, and submittedUrl are required"}), 400

    result = run_effects(campaign_service.submit_content(campaign_id, influencer_id, submitted_url))
    return jsonify({"success": True, **result})


@campaign_bp.route("/campaigns/reminder", methods=["POST"])
@admin_required
def send_reminder():
    data = request.get_json(silent=True) or {}
    campaign_id = str(data.get("campaignId") or "").strip()
    influencer_id = str(data.get("influencerId") or "").strip()
    content = str(data.get("content") or data.get("message") or "").strip()
    if not campaign_id or not influencer_id or not content:
        return jsonify({"error": "campaignId, influencerId, and content are required"}), 400

    result = campaign_service.send_reminder(
        campaign_id,
        influencer_id,
        content,
        item_type=data.get("itemType") or None,
        due_date=data.get("dueDate") or None,
        due_time=data.get("dueTime") or None,
    )
    run_effects(result)
    return jsonify({"success": True, "message": "リマインドを送信しました", **result})


@campaign_bp.route("/campaigns/onboarding", methods=["POST"])
@login_required
def submit_onboarding():
    data = request.get_json(silent=True) or {}
    result = run_effects(campaign_service.submit_onboarding(data))
    return jsonify({"success": True, **result})
