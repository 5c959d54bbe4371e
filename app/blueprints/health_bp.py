"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — Sheets credentials, header validation, cache, LLM providers
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from app.core.exceptions import RowStoreError, SheetsNotConfiguredError
from app.services.registry import get_services
from app.services.sheet_schema import CAMPAIGNS_SHEET

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    services = get_services()
    checks = {}
    overall = True

    # ── Google Sheets ────────────────────────────────────────────────
    sheets = {
        "credential_mode": services.sheets.credential_mode,
        "configured": services.store.configured,
        "can_write": services.store.can_write,
    }
    if services.store.configured:
        try:
            t0 = time.perf_counter()
            report = services.store.validate_headers(CAMPAIGNS_SHEET)
            sheets["latency_ms"] = round((time.perf_counter() - t0) * 1000, 1)
            sheets["headers"] = report.to_dict()
            sheets["status"] = "ok" if report.ok else "degraded"
            overall = overall and report.ok
        except (RowStoreError, SheetsNotConfiguredError) as exc:
            sheets["status"] = "error"
            sheets["detail"] = str(exc)
            overall = False
            logger.error("Health check — sheets failed: %s", exc)
    else:
        sheets["status"] = "not_configured"
        overall = False
    checks["sheets"] = sheets

    # ── Cache ────────────────────────────────────────────────────────
    checks["cache"] = services.cache.health_check()

    # ── LLM ──────────────────────────────────────────────────────────
    checks["llm"] = {
        "providers": services.llm.providers,
        "real_provider": services.llm.has_real_provider,
    }

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "Musubime",
        "debug": current_app.debug,
        "testing": current_app.testing,
        "strict_transitions": services.strict_transitions,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
