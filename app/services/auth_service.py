"""
Auth Service — users derived from the campaigns sheet.

There is no user table. Each campaign row carries the influencer's id,
name, contact email and dashboard password, so the user list is the
set of distinct influencer ids in the sheet.

Role is decided by heuristic, not stored:
    admin       email contains ADMIN_EMAIL_DOMAIN ("@usespeak.com"),
                or the login id equals ADMIN_LOGIN_ID ("admin")
    influencer  everyone else
"""

import logging

from flask import current_app

from app.services.platform import normalize_platform
from app.services.registry import get_services
from app.services.sheet_schema import CAMPAIGNS_SHEET
from app.utils.crypto import verify_password

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_INFLUENCER = "influencer"

_ID_KEYS = ("id_influencer", "influencer_id", "ID", "id")
_PASSWORD_KEYS = ("password_dashboard", "dashboard_password", "password", "Password", "パスワード")
_NAME_KEYS = ("インフルエンサー名", "name", "Name", "influencer_name")
_EMAIL_KEYS = ("email", "Email", "contact_email")


def _first(row: dict, keys: tuple) -> str:
    for key in keys:
        value = (row.get(key) or "").strip()
        if value:
            return value
    return ""


def derive_role(user_id: str, email: str, *, at_login: bool = False) -> str:
    domain = current_app.config.get("ADMIN_EMAIL_DOMAIN", "@usespeak.com")
    admin_id = current_app.config.get("ADMIN_LOGIN_ID", "admin")
    if domain and domain.lower() in (email or "").lower():
        return ROLE_ADMIN
    if at_login and user_id == admin_id:
        return ROLE_ADMIN
    return ROLE_INFLUENCER


def _user_from_row(row: dict, user_id: str) -> dict:
    email = _first(row, _EMAIL_KEYS)
    return {
        "id": user_id,
        "name": _first(row, _NAME_KEYS) or "Unknown",
        "email": email,
        "platform": normalize_platform(row.get("platform")),
        "channelUrl": _first(row, ("channel_url", "チャンネルURL", "url_channel")),
        "statusDashboard": _first(row, ("status_dashboard", "status")) or "pending",
        "password": _first(row, _PASSWORD_KEYS),
    }


def _load_users() -> list[dict]:
    rows = get_services().store.fetch_columns(None, sheet=CAMPAIGNS_SHEET)
    users: dict[str, dict] = {}
    for row in rows:
        user_id = _first(row, _ID_KEYS)
        # Rows without an influencer id are not accounts
        if not user_id:
            continue
        user = _user_from_row(row, user_id)
        existing = users.get(user["id"])
        # Keep the first row that carries a password
        if existing is None or (not existing["password"] and user["password"]):
            users[user["id"]] = user
    return list(users.values())


def list_users() -> list[dict]:
    """Public user list (no password material)."""
    result = []
    for user in _load_users():
        public = {k: v for k, v in user.items() if k != "password"}
        public["role"] = derive_role(user["id"], user["email"])
        result.append(public)
    return result


def authenticate(user_id: str, password: str) -> dict | None:
    """Return the login profile, or None when the id/password pair is wrong.

    Raises:
        SheetsNotConfiguredError: no credentials configured.
    """
    user_id = (user_id or "").strip()
    for user in _load_users():
        if user["id"] != user_id:
            continue
        if not verify_password(password or "", user["password"]):
            break
        role = derive_role(user["id"], user["email"], at_login=True)
        logger.info("Login ok id=%s role=%s", user_id, role, extra={"influencer_id": user_id})
        return {
            "id": user["id"],
            "name": user["name"],
            "email": user["email"],
            "role": role,
            "platform": user["platform"],
            "channelUrl": user["channelUrl"],
            "statusDashboard": user["statusDashboard"],
        }
    logger.info("Login failed id=%s", user_id)
    return None
