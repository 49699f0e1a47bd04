"""
Clearance Workflow Service
Shared SQLAlchemy handle.

Usage:
    from app.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def enum_values(enum_cls):
    """Persist Enum members by value (``"on_hold"``) rather than by name."""
    return [member.value for member in enum_cls]
