"""
Change Requests Blueprint — schedule change requests and admin responses.

Endpoints:
    GET   /api/v1/requests   — list (?campaignId, ?influencerId, ?status)
    POST  /api/v1/requests   — create a pending request
    PATCH /api/v1/requests   — approve / reject {requestId, status, adminId, adminName?, comment?}

Requests are folded from the campaign row's log_events; see
change_request_service for the event model.
"""

import logging

from flask import Blueprint, jsonify, request

from app.middleware.jwt_auth import admin_required, login_required
from app.services import change_request_service

logger = logging.getLogger(__name__)

requests_bp = Blueprint("requests", __name__, url_prefix="/api/v1")


@requests_bp.route("/requests", methods=["GET"])
def list_requests():
    items = change_request_service.list_requests(
        campaign_id=request.args.get("campaignId") or None,
        influencer_id=request.args.get("influencerId") or None,
        status=request.args.get("status") or None,
    )
    return jsonify({"requests": items, "count": len(items)})


@requests_bp.route("/requests", methods=["POST"])
@login_required
def create_request():
    data = request.get_json(silent=True) or {}
    result = change_request_service.create_request(data)
    return jsonify({"success": True, **result}), 201


@requests_bp.route("/requests", methods=["PATCH"])
@admin_required
def respond_to_request():
    data = request.get_json(silent=True) or {}
    result = change_request_service.respond_to_request(
        str(data.get("requestId") or "").strip(),
        str(data.get("status") or "").strip(),
        str(data.get("adminId") or "").strip(),
        admin_name=data.get("adminName") or "",
        comment=data.get("comment") or "",
    )
    return jsonify({"success": True, **result})
