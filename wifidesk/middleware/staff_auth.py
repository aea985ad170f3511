"""HTTP Basic guard for staff routes.

Enabled when STAFF_USERNAME and STAFF_PASSWORD are configured. Guest routes
(intake and tracker) and health probes stay public.
"""

import hmac

from flask import Response, request

# Paths that require staff credentials
STAFF_PREFIXES = ("/api/v1/staff/", "/api/v1/scheduler/", "/api/v1/email-logs", "/escalate-requests")


def init_staff_auth(app):
    """Add basic auth on staff routes if credentials are configured."""
    username = app.config.get("STAFF_USERNAME")
    password = app.config.get("STAFF_PASSWORD")

    if not username or not password:
        app.logger.info("Staff auth: disabled (no STAFF_USERNAME/STAFF_PASSWORD)")
        return

    app.logger.info("Staff auth: enabled")

    @app.before_request
    def require_staff_auth():
        if request.method == "OPTIONS" or not request.path.startswith(STAFF_PREFIXES):
            return None

        auth = request.authorization
        if (
            not auth
            or not hmac.compare_digest(auth.username or "", username)
            or not hmac.compare_digest(auth.password or "", password)
        ):
            return Response(
                "Staff login required.", 401,
                {"WWW-Authenticate": 'Basic realm="WifiDesk Staff"'},
            )
        return None
