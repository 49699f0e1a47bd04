"""
Seed Clearance Data — document types and one user per role.

Usage:
    python scripts/seed_clearance.py                  # Uses development DB
    python scripts/seed_clearance.py --env production

This script is idempotent — safe to run multiple times.
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from app.models import db
from app.models.auth import Role, User
from app.models.clearance import DocumentType
from app.services.scheduler_service import SchedulerService


# ═══════════════════════════════════════════════════════════════
# DOCUMENT TYPES — (name, description, ordered stages)
# ═══════════════════════════════════════════════════════════════
DOCUMENT_TYPES = [
    ("Graduation Clearance", "Final clearance before diploma release",
     ["library", "cashier", "registrar"]),
    ("Transfer Clearance", "Clearance for transferring to another institution",
     ["library", "cashier", "registrar"]),
    ("Transcript Request", "Official transcript of records",
     ["cashier", "registrar"]),
    ("Library Clearance", "Return of borrowed materials only",
     ["library"]),
]

# ═══════════════════════════════════════════════════════════════
# USERS — one account per role
# ═══════════════════════════════════════════════════════════════
USERS = [
    ("student@clearance.local", "Sample Student", Role.STUDENT, "2026-00001"),
    ("library@clearance.local", "Library Office", Role.LIBRARY_ADMIN, None),
    ("cashier@clearance.local", "Cashier Office", Role.CASHIER_ADMIN, None),
    ("registrar@clearance.local", "Registrar Office", Role.REGISTRAR_ADMIN, None),
    ("admin@clearance.local", "Clearance Super Admin", Role.SUPER_ADMIN, None),
]


def seed_document_types():
    created = 0
    for name, description, stages in DOCUMENT_TYPES:
        if DocumentType.query.filter_by(name=name).first():
            continue
        db.session.add(DocumentType(name=name, description=description, required_stages=stages))
        created += 1
    db.session.commit()
    print(f"  Document types: {created} created, {len(DOCUMENT_TYPES) - created} already existed")


def seed_users():
    created = 0
    for email, full_name, role, student_number in USERS:
        if User.query.filter_by(email=email).first():
            continue
        db.session.add(User(email=email, full_name=full_name, role=role, student_number=student_number))
        created += 1
    db.session.commit()
    print(f"  Users: {created} created, {len(USERS) - created} already existed")


def main():
    parser = argparse.ArgumentParser(description="Seed document types, users and scheduled jobs")
    parser.add_argument("--env", default="development", help="App environment")
    args = parser.parse_args()

    app = create_app(args.env)

    with app.app_context():
        print("=" * 60)
        print("  SEED: Document Types, Users & Scheduled Jobs")
        print("=" * 60)

        print("\n📄 Seeding document types...")
        seed_document_types()

        print("\n👥 Seeding users...")
        seed_users()

        print("\n⏱  Registering scheduled jobs...")
        created = SchedulerService.ensure_jobs_registered()
        print(f"  Scheduled jobs: {len(created)} created")

        print("\n📊 Authority table:")
        for role, cap in app.extensions["clearance"].authorities.to_dict().items():
            print(f"  {role:18s} stages={cap['stages']} super={cap['is_super_authority']} "
                  f"submit={cap['can_submit']}")

        print("\n✅ Seed complete!")


if __name__ == "__main__":
    main()
