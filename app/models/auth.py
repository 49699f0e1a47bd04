"""
Auth Models — user profiles and their authority role.

Account administration (sign-up, passwords, verification) is handled by the
identity provider in front of this service. These rows are read-only here:
the workflow only needs to resolve an acting user id to a role.
"""

import enum
from datetime import datetime, timezone

from app.models import db, enum_values


class Role(str, enum.Enum):
    """Closed set of roles known to the clearance workflow."""

    STUDENT = "student"
    LIBRARY_ADMIN = "library_admin"
    CASHIER_ADMIN = "cashier_admin"
    REGISTRAR_ADMIN = "registrar_admin"
    SUPER_ADMIN = "super_admin"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(200), nullable=False)
    role = db.Column(
        db.Enum(Role, native_enum=False, length=30, values_callable=enum_values,
                validate_strings=True),
        nullable=False,
        default=Role.STUDENT,
    )
    student_number = db.Column(db.String(50), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role.value if self.role else None,
            "student_number": self.student_number,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id} {self.email} [{self.role.value if self.role else '?'}]>"
