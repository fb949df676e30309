"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Blueprints that mutate the relationship graph get the tighter write limit
WRITE_HEAVY_BLUEPRINTS = ("relationships",)
READ_WRITE_BLUEPRINTS = ("epics", "slices", "tickets")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP, overridable via config):
        - Relationship endpoints:  RATELIMIT_RELATIONSHIPS (default 60/minute)
        - Epic/slice/ticket CRUD:  RATELIMIT_API           (default 120/minute)
        - Health check:            exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    graph_limit = app.config.get("RATELIMIT_RELATIONSHIPS", "60/minute")
    api_limit = app.config.get("RATELIMIT_API", "120/minute")

    for bp_name in WRITE_HEAVY_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(graph_limit)(bp)

    for bp_name in READ_WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(api_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — relationships: %s, api: %s", graph_limit, api_limit)
