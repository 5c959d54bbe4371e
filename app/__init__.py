"""
Musubime — Influencer Campaign Workflow
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from app.config import config
from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    RowStoreError,
    SheetsNotConfiguredError,
    TransitionError,
    ValidationError,
    WritePermissionError,
)
from app.ai.gateway import LLMUnavailableError
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.security_headers import init_security_headers
from app.middleware.timing import init_request_timing
from app.services.registry import init_services
from app.utils.errors import E, WRITE_ACCESS_MESSAGE, api_error

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL") or "memory://",
)


def _validate_sheet_headers(app, services):
    """Log missing columns once at startup. Never blocks the boot."""
    if not services.store.configured:
        app.logger.warning("Google Sheets not configured — API will answer 503 until credentials are set")
        return
    with app.app_context():
        try:
            report = services.store.validate_headers()
        except (RowStoreError, SheetsNotConfiguredError) as exc:
            app.logger.warning("Header validation skipped: %s", exc)
            return
    if not report.ok:
        app.logger.error("Campaign sheet is missing required columns: %s",
                         ", ".join(report.missing_required))


def _register_error_handlers(app):
    """Map service-layer exceptions to HTTP responses, once for every blueprint."""

    @app.errorhandler(NotFoundError)
    def _not_found_error(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @app.errorhandler(ValidationError)
    def _validation_error(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details or None)

    @app.errorhandler(ConflictError)
    def _conflict_error(exc):
        return api_error(E.CONFLICT_STATE, str(exc))

    @app.errorhandler(TransitionError)
    def _transition_error(exc):
        return api_error(E.CONFLICT_STATE, str(exc),
                         details={"currentStatus": exc.current_status, "allowedFrom": exc.allowed})

    @app.errorhandler(SheetsNotConfiguredError)
    def _sheets_not_configured(exc):
        return api_error(E.SHEETS_NOT_CONFIGURED, str(exc))

    @app.errorhandler(WritePermissionError)
    def _write_not_permitted(exc):
        logger.warning("Write rejected: %s", exc)
        return api_error(E.WRITE_NOT_PERMITTED, WRITE_ACCESS_MESSAGE, details=str(exc))

    @app.errorhandler(RowStoreError)
    def _row_store_error(exc):
        logger.error("Sheets API failure: %s", exc)
        return api_error(E.UPSTREAM, "Google Sheets request failed", details=str(exc))

    @app.errorhandler(LLMUnavailableError)
    def _llm_unavailable(exc):
        return api_error(E.LLM_UNAVAILABLE, "LLM unavailable")

    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    # ProductionConfig validates required env vars on construction
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    limiter.init_app(app)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware ───────────────────────────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        from flask import request as _req
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            if _req.data and "json" not in ct:
                return api_error(E.VALIDATION_INVALID, "Content-Type must be application/json", status=415)
        return None

    # ── Services (Sheets gateway, row store, cache, webhooks) ────────────
    services = init_services(app)
    if app.config.get("SHEETS_VALIDATE_HEADERS"):
        _validate_sheet_headers(app, services)

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.auth_bp import auth_bp
    from app.blueprints.campaign_bp import campaign_bp
    from app.blueprints.admin_bp import admin_bp
    from app.blueprints.requests_bp import requests_bp
    from app.blueprints.template_bp import templates_bp
    from app.blueprints.comms_bp import comms_bp
    from app.blueprints.updates_bp import updates_bp
    from app.blueprints.users_bp import users_bp
    from app.blueprints.chat_bp import chat_bp
    from app.blueprints.health_bp import health_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(campaign_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(templates_bp)
    app.register_blueprint(comms_bp)
    app.register_blueprint(updates_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(chat_bp)
    app.register_blueprint(health_bp)

    @app.route("/api/v1/health")
    def health():
        return jsonify({"status": "ok", "app": "Musubime"})

    # ── Error handlers ───────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
