"""
Clearance Workflow Service
Flask application factory.

    from app import create_app
    app = create_app()            # APP_ENV, else "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from app.config import config
from app.middleware.diagnostics import run_startup_diagnostics
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)

_MODEL_MODULES = ("auth", "clearance", "escalation", "certificate", "notification", "scheduling")


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # stage rows and escalation history rely on ON DELETE CASCADE
    if "sqlite" not in type(dbapi_conn).__module__:
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _cors_origins(raw):
    if not raw or raw == "*":
        return "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _register_blueprints(app):
    from app.blueprints.certificate_bp import certificate_bp
    from app.blueprints.clearance_bp import clearance_bp
    from app.blueprints.escalation_bp import escalation_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.notification_bp import notification_bp

    for blueprint in (clearance_bp, escalation_bp, certificate_bp, notification_bp, health_bp):
        app.register_blueprint(blueprint)


def _register_app_errors(app):
    """JSON bodies for errors raised outside any blueprint."""

    @app.errorhandler(404)
    def _not_found(_error):
        return jsonify({"error": "Not found", "path": request.path}), 404

    @app.errorhandler(405)
    def _bad_method(_error):
        return jsonify({"error": "Method not allowed", "method": request.method}), 405

    @app.errorhandler(429)
    def _throttled(error):
        return jsonify({"error": "Too many requests", "retry_after": error.description}), 429

    @app.errorhandler(500)
    def _internal(error):
        logger.error("Unhandled 500 on %s: %s", request.path, error, exc_info=True)
        return jsonify({"error": "Internal server error"}), 500


def create_app(config_name=None):
    """Build an app for ``config_name`` (development, testing or production)."""
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    CORS(app, origins=_cors_origins(app.config.get("CORS_ORIGINS")))
    init_request_timing(app)

    for module in _MODEL_MODULES:
        __import__(f"app.models.{module}")

    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            logger.warning("create_all skipped: %s", exc)

    from app.services.workflow import build_workflow
    app.extensions["clearance"] = build_workflow(app)

    _register_blueprints(app)
    _register_app_errors(app)
    init_rate_limits(app, limiter)

    from app.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    run_startup_diagnostics(app)
    return app
