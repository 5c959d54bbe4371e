"""
JWT Service — dashboard access tokens.

Tokens are HS256, signed with JWT_SECRET_KEY (SECRET_KEY when unset) and
valid for JWT_ACCESS_EXPIRES seconds (12 hours by default).

Claims:
    sub   influencer id, or the admin login id
    role  "admin" | "influencer"
    name  display name shown in the dashboard header
    iss   "musubime"
    iat / exp / jti

There is no refresh token: the login endpoint costs one cached sheet
read, so the dashboard simply logs in again when a token expires.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

ALGORITHM = "HS256"
ISSUER = "musubime"
DEFAULT_ACCESS_EXPIRES = 43200
# Dashboard clocks drift; tolerate small skew on iat/exp
LEEWAY_SECONDS = 30


def _secret() -> str:
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def generate_access_token(user_id: str, role: str, name: str = "") -> str:
    now = datetime.now(timezone.utc)
    lifetime = current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)
    claims = {
        "sub": str(user_id),
        "role": role,
        "name": name or "",
        "iss": ISSUER,
        "iat": now,
        "exp": now + timedelta(seconds=lifetime),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and issuer; return the claims.

    Raises:
        jwt.ExpiredSignatureError: token past ``exp``.
        jwt.InvalidTokenError: anything else wrong with the token.
    """
    claims = jwt.decode(
        token,
        _secret(),
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        leeway=LEEWAY_SECONDS,
        options={"require": ["sub", "exp", "iss"]},
    )
    if claims.get("role") not in ("admin", "influencer"):
        raise jwt.InvalidTokenError(f"Unknown role {claims.get('role')!r}")
    return claims
