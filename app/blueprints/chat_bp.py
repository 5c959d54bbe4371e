"""
Chat Blueprint — dashboard assistant.

Endpoints:
    POST /api/v1/chat               — {message, userId?, userRole?, userName?, history?, source?}
    GET  /api/v1/chat/history       — ?campaignId= → stored chat_history messages

A typed message with no LLM available returns 503 so the client can show
its own offline notice; quick-reply chips get a canned answer instead.
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.ai import assistant
from app.ai.gateway import LLMUnavailableError
from app.services import campaign_service

logger = logging.getLogger(__name__)

chat_bp = Blueprint("chat", __name__, url_prefix="/api/v1")


@chat_bp.route("/chat", methods=["POST"])
def chat():
    data = request.get_json(silent=True) or {}
    message = str(data.get("message") or "").strip()
    if not message:
        return jsonify({"error": "Message is required"}), 400

    user_id = data.get("userId") or getattr(g, "jwt_user_id", None)
    user_role = data.get("userRole") or getattr(g, "jwt_role", None)
    user_name = data.get("userName") or getattr(g, "jwt_name", None)

    try:
        result = assistant.answer(
            message,
            user_id=user_id,
            user_role=user_role,
            user_name=user_name,
            history=data.get("history") if isinstance(data.get("history"), list) else None,
            source=data.get("source"),
        )
    except LLMUnavailableError:
        return jsonify({"error": "LLM unavailable", "response": ""}), 503
    except Exception:
        # Never leak internals to the chat window
        logger.exception("Chat request failed")
        return jsonify({"error": "Chat failed", "response": assistant.SERVICE_DOWN_MESSAGE}), 500

    return jsonify(result)


@chat_bp.route("/chat/history", methods=["GET"])
def chat_history():
    campaign_id = (request.args.get("campaignId") or "").strip()
    if not campaign_id:
        return jsonify({"error": "campaignId is required"}), 400
    return jsonify({"messages": campaign_service.get_chat_history(campaign_id)})
