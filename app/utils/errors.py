"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Campaign not found")
    return api_error(E.VALIDATION_REQUIRED, "campaignId is required")
    return api_error(E.WRITE_NOT_PERMITTED, WRITE_ACCESS_MESSAGE, details={"reason": "..."})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / state – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Upstream / configuration – HTTP 502 / 503
    SHEETS_NOT_CONFIGURED = "ERR_SHEETS_NOT_CONFIGURED"
    WRITE_NOT_PERMITTED = "ERR_WRITE_NOT_PERMITTED"
    UPSTREAM = "ERR_UPSTREAM"
    LLM_UNAVAILABLE = "ERR_LLM_UNAVAILABLE"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.SHEETS_NOT_CONFIGURED: 503,
    E.WRITE_NOT_PERMITTED: 503,
    E.UPSTREAM: 502,
    E.LLM_UNAVAILABLE: 503,
    E.INTERNAL: 500,
}

# Shown to admins whenever a write is attempted with read-only credentials
WRITE_ACCESS_MESSAGE = (
    "Google Sheets write access not configured. Please contact the "
    "administrator to set up Service Account credentials."
)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | str | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict | str, optional
        Extra structured payload (upstream message, field errors, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
