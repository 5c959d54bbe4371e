"""
Musubime — Influencer Campaign Workflow
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # Google Sheets (the only persistent store)
    GOOGLE_SERVICE_ACCOUNT_EMAIL = os.getenv("GOOGLE_SERVICE_ACCOUNT_EMAIL", "")
    GOOGLE_PRIVATE_KEY = os.getenv("GOOGLE_PRIVATE_KEY", "")
    GOOGLE_SHEETS_API_KEY = os.getenv("GOOGLE_SHEETS_API_KEY", "")
    GOOGLE_SHEETS_SPREADSHEET_ID = os.getenv("GOOGLE_SHEETS_SPREADSHEET_ID", "")
    GOOGLE_SHEETS_RANGE = os.getenv("GOOGLE_SHEETS_RANGE", "campaigns!A:BT")
    SHEETS_CACHE_TTL = int(os.getenv("SHEETS_CACHE_TTL", "30"))
    SHEETS_VALIDATE_HEADERS = _env_bool("SHEETS_VALIDATE_HEADERS", "true")

    # Workflow
    STRICT_TRANSITIONS = _env_bool("STRICT_TRANSITIONS")
    ADMIN_EMAIL_DOMAIN = os.getenv("ADMIN_EMAIL_DOMAIN", "@usespeak.com")
    ADMIN_LOGIN_ID = os.getenv("ADMIN_LOGIN_ID", "admin")

    # Outbound webhooks (Zapier)
    ZAPIER_WEBHOOK_REVISION = os.getenv("ZAPIER_WEBHOOK_REVISION", "")
    ZAPIER_WEBHOOK_REMINDER = os.getenv("ZAPIER_WEBHOOK_REMINDER", "")
    ZAPIER_CONTRACT_WEBHOOK_URL = os.getenv("ZAPIER_CONTRACT_WEBHOOK_URL", "")
    ZAPIER_WEBHOOK_SECRET = os.getenv("ZAPIER_WEBHOOK_SECRET", "")
    DASHBOARD_URL = os.getenv("DASHBOARD_URL", "https://musubime.app")
    SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "partnerships_jp@usespeak.com")

    # LLM
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    LLM_DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gpt-4o-mini")
    LLM_DEFAULT_EMBED_MODEL = os.getenv("LLM_DEFAULT_EMBED_MODEL", "text-embedding-3-small")
    KNOWLEDGE_FILE = os.getenv("KNOWLEDGE_FILE", os.path.join(basedir, "docs", "info.txt"))

    # JWT
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", "43200"))  # 12 hours
    API_AUTH_ENABLED = _env_bool("API_AUTH_ENABLED")

    # Redis (optional read cache backend)
    REDIS_URL = os.getenv("REDIS_URL", "")

    # Rate limits per blueprint category (empty = built-in default)
    RATELIMIT_LOGIN = os.getenv("RATELIMIT_LOGIN", "")
    RATELIMIT_CHAT = os.getenv("RATELIMIT_CHAT", "")
    RATELIMIT_WRITE = os.getenv("RATELIMIT_WRITE", "")
    RATELIMIT_READ = os.getenv("RATELIMIT_READ", "")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Email / SMTP (optional; without MAIL_SERVER messages are only logged)
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() == "true"
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "partnerships_jp@usespeak.com")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    RATELIMIT_ENABLED = False
    API_AUTH_ENABLED = False
    STRICT_TRANSITIONS = False
    SHEETS_VALIDATE_HEADERS = False

    # Tests inject a fake Sheets service; never talk to real endpoints
    GOOGLE_SERVICE_ACCOUNT_EMAIL = ""
    GOOGLE_PRIVATE_KEY = ""
    GOOGLE_SHEETS_API_KEY = ""
    GOOGLE_SHEETS_SPREADSHEET_ID = "test-spreadsheet"
    REDIS_URL = ""
    OPENAI_API_KEY = ""
    MAIL_SERVER = None
    ZAPIER_WEBHOOK_REVISION = ""
    ZAPIER_WEBHOOK_REMINDER = ""
    ZAPIER_CONTRACT_WEBHOOK_URL = ""


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production
    API_AUTH_ENABLED = _env_bool("API_AUTH_ENABLED", "true")

    def __init__(self):
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if not self.GOOGLE_SHEETS_SPREADSHEET_ID:
            raise RuntimeError("GOOGLE_SHEETS_SPREADSHEET_ID environment variable is required in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
