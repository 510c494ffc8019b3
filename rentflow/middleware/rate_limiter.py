"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in rentflow/__init__.py with no default limits.

Usage:
    from rentflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

# Blueprints that mutate workflow state
WRITE_BLUEPRINTS = ("role_request", "certification", "mandate")
READ_BLUEPRINTS = ("review_queue", "alert")


def init_rate_limits(app, limiter):
    """
    Apply rate limits (per remote IP) to API blueprints.

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in READ_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    app.logger.info("Rate limiter configured: write=%s read=%s", WRITE_LIMIT, READ_LIMIT)
