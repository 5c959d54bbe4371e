"""
Security headers middleware.

The backend only serves JSON to the dashboard, so one strict policy
covers every route: nothing may frame it, nothing is sniffed, and API
responses that carry influencer contact data are never cached.

Usage:
    from app.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""

SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    # Ignored over plain HTTP (local dev)
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}


def init_security_headers(app):
    """Register an after_request hook that adds SECURITY_HEADERS."""

    @app.after_request
    def _add_security_headers(response):
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if response.is_json:
            response.headers.setdefault("Cache-Control", "no-store")
        response.headers.pop("Server", None)
        return response
