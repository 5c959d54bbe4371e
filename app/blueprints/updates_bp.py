"""
Updates Blueprint — activity feed derived from campaign rows.

Endpoints:
    GET  /api/v1/updates    — latest updates (?influencerId= narrows to one influencer)
    POST /api/v1/updates    — echo a client-created update (not persisted)
"""

import logging

from flask import Blueprint, jsonify, request

from app.core.exceptions import SheetsNotConfiguredError
from app.services import campaign_service

logger = logging.getLogger(__name__)

updates_bp = Blueprint("updates", __name__, url_prefix="/api/v1")


@updates_bp.route("/updates", methods=["GET"])
def list_updates():
    influencer_id = (request.args.get("influencerId") or "").strip() or None
    try:
        items = campaign_service.build_updates_feed(influencer_id)
    except SheetsNotConfiguredError:
        logger.warning("Updates feed requested without Sheets credentials")
        items = []
    return jsonify(items)


@updates_bp.route("/updates", methods=["POST"])
def create_update():
    data = request.get_json(silent=True) or {}
    return jsonify(campaign_service.create_update(data)), 201
