"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in wifidesk/__init__.py with no default limits; this module applies
the limits per route category.

Usage:
    from wifidesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Public guest endpoints: intake + tracker comments
GUEST_WRITE_LIMIT = "30/minute"
GUEST_READ_LIMIT = "120/minute"
STAFF_LIMIT = "300/minute"

# Staff views that live in request_bp next to the public guest routes
STAFF_REQUEST_VIEWS = (
    "list_requests",
    "request_stats",
    "get_request",
    "change_status",
    "escalate_request",
    "add_staff_comment",
)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Guest writes:  30/minute  (public intake, guest comments)
        - Guest reads:   120/minute (tracker lookups)
        - Staff routes:  300/minute (staff request views, escalation, scheduler)
        - Health check:  exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    from wifidesk.blueprints import request_bp as request_views

    limiter.limit(GUEST_WRITE_LIMIT)(request_views.create_request)
    limiter.limit(GUEST_WRITE_LIMIT)(request_views.add_guest_comment)
    limiter.limit(GUEST_READ_LIMIT)(request_views.track_request)
    for view in STAFF_REQUEST_VIEWS:
        limiter.limit(STAFF_LIMIT)(getattr(request_views, view))

    for bp_name in ("escalation_bp", "scheduler_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(STAFF_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: guest writes: %s, guest reads: %s, staff: %s",
        GUEST_WRITE_LIMIT, GUEST_READ_LIMIT, STAFF_LIMIT,
    )
