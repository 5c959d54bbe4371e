"""
Crypto utilities — dashboard password checks.

Dashboard passwords live in the campaigns sheet (password_dashboard).
Sheet owners may store either a bcrypt hash ($2b$/$2a$), a werkzeug
hash (scrypt/pbkdf2, as produced by ``hash_password(..., scheme="werkzeug")``)
or, for legacy rows, the plain password.
"""

import hmac

import bcrypt
from werkzeug.security import check_password_hash, generate_password_hash

_WERKZEUG_PREFIXES = ("scrypt:", "pbkdf2:")


def hash_password(plain_password: str, scheme: str = "bcrypt") -> str:
    """Hash a password for pasting into the sheet (bcrypt, 12 rounds, by default)."""
    if scheme == "werkzeug":
        return generate_password_hash(plain_password)
    return bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def is_hashed(stored: str) -> bool:
    return bool(stored) and stored.startswith(("$2b$", "$2a$") + _WERKZEUG_PREFIXES)


def verify_password(plain_password: str, stored: str) -> bool:
    """Verify a password against the stored cell value.

    Handles bcrypt ($2b$/$2a$), werkzeug (scrypt/pbkdf2) and plain cells.
    """
    if not stored or plain_password is None:
        return False

    if stored.startswith(("$2b$", "$2a$")):
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), stored.encode("utf-8"))
        except ValueError:
            return False

    if stored.startswith(_WERKZEUG_PREFIXES):
        return check_password_hash(stored, plain_password)

    return hmac.compare_digest(plain_password.encode("utf-8"), stored.encode("utf-8"))
