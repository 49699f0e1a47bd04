"""
Per-blueprint request limits (Flask-Limiter).

The Limiter in app/__init__.py carries no global limit; each blueprint is
assigned to a tier here and the tier's RATELIMIT_* config string applies.
"""

import logging

logger = logging.getLogger(__name__)

# tier → (config key, fallback)
TIERS = {
    "escalation": ("RATELIMIT_ESCALATION", "10/minute"),
    "write": ("RATELIMIT_WRITE", "60/minute"),
    "read": ("RATELIMIT_READ", "200/minute"),
}

# blueprint name → tier; None means exempt
BLUEPRINT_TIERS = {
    "escalation": "escalation",
    "clearance": "write",
    "certificate": "read",
    "notification": "read",
    "health": None,
}


def init_rate_limits(app, limiter):
    """Attach limits to registered blueprints. Must run after registration."""
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        logger.info("Rate limiting off")
        return

    applied = {}
    for bp_name, tier in BLUEPRINT_TIERS.items():
        blueprint = app.blueprints.get(bp_name)
        if blueprint is None:
            continue
        if tier is None:
            limiter.exempt(blueprint)
            applied[bp_name] = "exempt"
            continue
        key, fallback = TIERS[tier]
        rule = app.config.get(key) or fallback
        limiter.limit(rule)(blueprint)
        applied[bp_name] = rule

    logger.info("Rate limits: %s", ", ".join(f"{k}={v}" for k, v in applied.items()))
