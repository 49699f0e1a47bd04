"""
Service wiring for the clearance workflow.

``build_workflow(app)`` constructs every collaborator exactly once around a
single repository and returns them as a ``ClearanceWorkflow`` bundle, stored
by ``create_app()`` in ``app.extensions["clearance"]``.

Usage (blueprints):
    workflow = current_app.extensions["clearance"]
    workflow.transitions.approve(request_id, actor_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import Flask

from app.models import db
from app.services.certificate_service import CertificateIssuer
from app.services.clearance_service import TransitionHandler
from app.services.escalation import EscalationPolicy, EscalationSweep
from app.services.escalation_ledger import EscalationLedger
from app.services.escalation_stats import EscalationStats
from app.services.notification import NotificationGateway
from app.services.permission import AccessGuard, AuthorityTable
from app.services.repository import ClearanceRepository

logger = logging.getLogger(__name__)


@dataclass
class ClearanceWorkflow:
    repository: ClearanceRepository
    authorities: AuthorityTable
    guard: AccessGuard
    policy: EscalationPolicy
    ledger: EscalationLedger
    notifier: NotificationGateway
    certificates: CertificateIssuer
    transitions: TransitionHandler
    sweep: EscalationSweep
    stats: EscalationStats


def build_workflow(app: Flask) -> ClearanceWorkflow:
    cfg = app.config
    repository = ClearanceRepository(db.session)
    authorities = AuthorityTable.from_config(cfg)
    policy = EscalationPolicy(threshold_days=int(cfg.get("ESCALATION_THRESHOLD_DAYS", 3)))
    ledger = EscalationLedger(repository)
    notifier = NotificationGateway(repository, authorities,
                                   send_email=cfg.get("NOTIFICATION_EMAILS_ENABLED", True))
    certificates = CertificateIssuer(repository)
    transitions = TransitionHandler(
        repository,
        authorities,
        ledger,
        policy,
        notifier=notifier,
        certificate_issuer=certificates,
    )
    sweep = EscalationSweep(
        repository,
        transitions,
        policy,
        item_timeout_seconds=cfg.get("ESCALATION_ITEM_TIMEOUT_SECONDS"),
        batch_size=cfg.get("ESCALATION_SWEEP_BATCH_SIZE"),
    )
    stats = EscalationStats(repository)

    logger.info("Clearance workflow ready (threshold=%d days)", policy.threshold_days)
    return ClearanceWorkflow(
        repository=repository,
        authorities=authorities,
        guard=AccessGuard(repository, authorities),
        policy=policy,
        ledger=ledger,
        notifier=notifier,
        certificates=certificates,
        transitions=transitions,
        sweep=sweep,
        stats=stats,
    )
