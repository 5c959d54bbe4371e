"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_*.

The middleware never blocks on its own: it only populates the request
context. Route protection is opt-in through the decorators below and is
enforced only when API_AUTH_ENABLED is true, so the dashboard keeps
working in development without a login round-trip.

    g.jwt_user_id   → "sub" claim (influencer id or admin id), or None
    g.jwt_role      → "admin" | "influencer" | None
    g.jwt_name      → display name from the token

Usage:
    @bp.route("/admin/actions", methods=["POST"])
    @admin_required
    def admin_action():
        ...
"""

import functools
import logging

import jwt as pyjwt
from flask import current_app, g, request

from app.services.jwt_service import decode_access_token
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_role = None
        g.jwt_name = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
            g.jwt_user_id = payload.get("sub")
            g.jwt_role = payload.get("role")
            g.jwt_name = payload.get("name")
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired JWT on %s", path)
        except pyjwt.InvalidTokenError:
            logger.debug("Invalid JWT on %s", path)


def _auth_enforced() -> bool:
    return bool(current_app.config.get("API_AUTH_ENABLED"))


def login_required(f):
    """Decorator: require a valid bearer token when auth is enforced."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if _auth_enforced() and not getattr(g, "jwt_user_id", None):
            return api_error(E.UNAUTHORIZED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    """Decorator: require an admin bearer token when auth is enforced."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not _auth_enforced():
            return f(*args, **kwargs)
        if not getattr(g, "jwt_user_id", None):
            return api_error(E.UNAUTHORIZED, "Authentication required")
        if getattr(g, "jwt_role", None) != "admin":
            logger.warning("User %s denied admin route %s", g.jwt_user_id, f.__name__)
            return api_error(E.FORBIDDEN, "Admin role required")
        return f(*args, **kwargs)
    return decorated
