"""
One-shot startup report: database reachability, schema, mail mode and the
escalation threshold. Skipped under TESTING.
"""

import logging
import platform

from flask import Flask
from sqlalchemy import inspect as sa_inspect

from app.models import db

logger = logging.getLogger(__name__)


def _database_kind(uri: str) -> str:
    for marker, label in (("postgresql", "PostgreSQL"), ("sqlite", "SQLite")):
        if marker in uri:
            return label
    return "unknown"


def run_startup_diagnostics(app: Flask):
    if app.config.get("TESTING"):
        return

    warnings: list[str] = []
    report: list[tuple[str, str]] = [("python", platform.python_version()), ("debug", str(app.debug))]

    with app.app_context():
        kind = _database_kind(str(app.config.get("SQLALCHEMY_DATABASE_URI") or ""))
        try:
            db.session.execute(db.text("SELECT 1"))
            tables = sa_inspect(db.engine).get_table_names()
        except Exception as exc:
            report.append(("database", f"{kind} unreachable"))
            warnings.append(f"database check failed: {exc}")
        else:
            report.append(("database", f"{kind}, {len(tables)} tables"))
            if not tables:
                warnings.append("schema missing; run 'flask db upgrade'")

    report.append(("mail", "smtp" if app.config.get("MAIL_SERVER") else "log-only"))
    if not app.config.get("ESCALATION_ALERT_EMAIL"):
        warnings.append("ESCALATION_ALERT_EMAIL unset; escalations reach the in-app desk only")

    workflow = app.extensions.get("clearance")
    if workflow is not None:
        report.append(("escalation threshold", f"{workflow.policy.threshold_days} days"))

    width = max(len(label) for label, _ in report)
    logger.info("Startup diagnostics\n%s", "\n".join(f"  {label:<{width}} : {value}" for label, value in report))
    for warning in warnings:
        logger.warning("Startup: %s", warning)
