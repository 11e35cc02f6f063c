"""
Per-blueprint rate limits (Flask-Limiter).

The Limiter in ``app/__init__.py`` has no default limits. Here every API
blueprint gets two: one for reads (GET) and a tighter one for writes,
keyed on the remote address. Health probes are exempt.
"""

import logging

logger = logging.getLogger(__name__)

API_BLUEPRINTS = (
    "users",
    "projects",
    "roadmap",
    "campaigns",
    "customers",
    "deals",
    "sales_activities",
    "ideas",
    "insights",
    "activities",
    "notification_bp",
    "dashboard",
)
WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]


def init_rate_limits(app, limiter):
    """Attach read/write limits; a no-op under TESTING or RATELIMIT_ENABLED=false."""
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    write_limit = app.config.get("WRITE_RATE_LIMIT", "60/minute")
    read_limit = app.config.get("READ_RATE_LIMIT", "200/minute")

    for name in API_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is None:
            logger.warning("Rate limit target blueprint %r is not registered", name)
            continue
        limiter.limit(write_limit, methods=WRITE_METHODS)(bp)
        limiter.limit(read_limit, methods=["GET"])(bp)

    limiter.exempt(app.blueprints["health_bp"])
    app.logger.info("Rate limiter configured: write=%s read=%s", write_limit, read_limit)
