"""
Rate limiting configuration.

The Limiter instance is created in specforge/__init__.py with no default
limits; this module applies per-blueprint limits after registration.

Usage:
    from specforge.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

# Blueprints whose POST routes call the LLM
GENERATION_BLUEPRINTS = ("requirement", "estimate", "tech_stack", "user_flow", "wireframe")
WRITE_BLUEPRINTS = ("project", "organization")


def user_or_ip_key():
    """Rate-limit key: authenticated user id, else remote IP."""
    user = getattr(g, "current_user", None)
    if user is not None:
        return f"user:{user.id}"
    return request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per user, else per IP):
        - Generation blueprints (POST): GENERATION_RATE_LIMIT, default 10/minute
        - Project / organization: 60/minute
        - Health check: exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    generation_limit = app.config.get("GENERATION_RATE_LIMIT", "10/minute")
    for bp_name in GENERATION_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(generation_limit, key_func=user_or_ip_key, methods=["POST"])(bp)

    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("60/minute", key_func=user_or_ip_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: generation=%s, write=60/minute", generation_limit)
