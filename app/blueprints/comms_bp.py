"""
Comms Blueprint — outreach to selected influencers.

Endpoints:
    GET  /api/v1/comms?action=getSelectedInfluencers
    POST /api/v1/comms {action: "generateMessages", influencerIds, teamMemberName, templateType?, customMessage?}
    POST /api/v1/comms {action: "markAsSent", influencerId}
    POST /api/v1/comms {action: "sendEmails", messages: [...]}

Layer contract: action dispatch here, sheet reads/writes in comms_service,
delivery in email_service.
"""

import logging

from flask import Blueprint, jsonify, request

from app.middleware.jwt_auth import admin_required
from app.services import comms_service
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

comms_bp = Blueprint("comms", __name__, url_prefix="/api/v1")


@comms_bp.route("/comms", methods=["GET"])
@admin_required
def comms_get():
    action = request.args.get("action")
    if action != "getSelectedInfluencers":
        return jsonify({"error": "Invalid action parameter"}), 400
    influencers = comms_service.selected_influencers()
    return jsonify({"success": True, "influencers": influencers})


@comms_bp.route("/comms", methods=["POST"])
@admin_required
def comms_post():
    data = request.get_json(silent=True) or {}
    action = data.get("action")

    if action == "generateMessages":
        influencer_ids = data.get("influencerIds")
        if not influencer_ids:
            return jsonify({"error": "influencerIds is required"}), 400
        messages = comms_service.generate_messages(
            influencer_ids,
            data.get("teamMemberName") or "",
            template_type=data.get("templateType") or None,
            custom_message=data.get("customMessage") or None,
        )
        return jsonify({"success": True, "messages": messages})

    if action == "markAsSent":
        influencer_id = str(data.get("influencerId") or "").strip()
        if not influencer_id:
            return jsonify({"error": "Influencer ID is required"}), 400
        result = comms_service.mark_as_sent(influencer_id)
        return jsonify({"success": True, "message": "Successfully marked as sent", **result})

    if action == "sendEmails":
        outcome = comms_service.send_emails(data.get("messages"))
        if not outcome["success"]:
            logger.error("Every email in the batch failed (%d)", outcome["failureCount"])
            return api_error(E.INTERNAL, "Failed to send emails", details={"results": outcome["results"]})
        return jsonify({
            **outcome,
            "message": f"Successfully sent {outcome['successCount']} emails",
        })

    return jsonify({"error": "Invalid action"}), 400
