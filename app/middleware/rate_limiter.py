"""
Rate limiting configuration.

The Limiter instance is created in app/__init__.py with no default
limits; this module attaches one limit per blueprint category.

    category  blueprints                                      default
    login     auth                                            10/minute
    chat      chat                                            20/minute
    write     campaign, admin, requests, comms, templates     60/minute
    read      updates, users                                  200/minute

Every write endpoint costs at least one Sheets read and one batchUpdate,
and the Sheets API quota is per project, so the write budget is the one
that matters. Override any category with RATELIMIT_<CATEGORY>, e.g.
RATELIMIT_WRITE="30/minute". Health checks are exempt.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

LIMIT_CATEGORIES = {
    "login": (("auth",), "10/minute"),
    "chat": (("chat",), "20/minute"),
    "write": (("campaign", "admin", "requests", "comms", "templates"), "60/minute"),
    "read": (("updates", "users"), "200/minute"),
}

EXEMPT_BLUEPRINTS = ("health",)


def init_rate_limits(app, limiter):
    """Attach category limits to registered blueprints (no-op when testing)."""
    if app.config.get("TESTING"):
        logger.debug("Rate limiter disabled (TESTING=True)")
        return

    applied = {}
    for category, (blueprints, default) in LIMIT_CATEGORIES.items():
        limit = app.config.get(f"RATELIMIT_{category.upper()}") or default
        for name in blueprints:
            bp = app.blueprints.get(name)
            if bp is not None:
                limiter.limit(limit)(bp)
        applied[category] = limit

    for name in EXEMPT_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.exempt(bp)

    logger.info("Rate limits: %s", ", ".join(f"{k}={v}" for k, v in applied.items()))
