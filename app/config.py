"""
Clearance Workflow Service
Environment-specific settings, selected by create_app() via APP_ENV.

Every value can be overridden from the environment; the defaults suit a
local SQLite run.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _flag(name, default="true"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _database_url(default=None):
    url = os.getenv("DATABASE_URL", "")
    if url.startswith("postgres://"):
        # Heroku-style scheme; SQLAlchemy 2 only accepts postgresql://
        url = "postgresql://" + url[len("postgres://"):]
    return url or default


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL")
    MAX_CONTENT_LENGTH = 1024 * 1024

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Flask-Limiter; the RATELIMIT_* strings are applied per blueprint
    RATELIMIT_ENABLED = _flag("RATELIMIT_ENABLED")
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_ESCALATION = os.getenv("RATELIMIT_ESCALATION", "10/minute")
    RATELIMIT_WRITE = os.getenv("RATELIMIT_WRITE", "60/minute")
    RATELIMIT_READ = os.getenv("RATELIMIT_READ", "200/minute")

    # SMTP; without MAIL_SERVER mails are only logged
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _flag("MAIL_USE_TLS")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@clearance.local")
    NOTIFICATION_EMAILS_ENABLED = _flag("NOTIFICATION_EMAILS_ENABLED")

    ESCALATION_THRESHOLD_DAYS = int(os.getenv("ESCALATION_THRESHOLD_DAYS", "3"))
    ESCALATION_ITEM_TIMEOUT_SECONDS = float(os.getenv("ESCALATION_ITEM_TIMEOUT_SECONDS", "10"))
    ESCALATION_SWEEP_BATCH_SIZE = int(os.getenv("ESCALATION_SWEEP_BATCH_SIZE", "500"))
    ESCALATION_ALERT_EMAIL = os.getenv("ESCALATION_ALERT_EMAIL")

    # role → stages it may decide; roles missing here decide nothing
    STAGE_AUTHORITIES = {
        "library_admin": ["library"],
        "cashier_admin": ["cashier"],
        "registrar_admin": ["registrar"],
    }
    SUPER_AUTHORITY_ROLES = ["super_admin"]
    REQUESTER_ROLES = ["student"]


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'clearance_dev.db')}"
    )


class TestingConfig(Config):
    TESTING = True
    # Flask-SQLAlchemy shares one connection (StaticPool) for :memory:
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    MAIL_SERVER = None
    ESCALATION_ALERT_EMAIL = "escalations@clearance.test"


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        missing = [name for name, value in (
            ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
            ("SECRET_KEY", os.getenv("SECRET_KEY")),
        ) if not value]
        if missing:
            raise RuntimeError(f"Production requires: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
