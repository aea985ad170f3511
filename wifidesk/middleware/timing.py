"""
Per-request id and duration.

Every response carries ``X-Request-ID`` (echoed from the caller or minted
here) and ``X-Request-Duration-Ms``. One access line is logged per request;
probe traffic is not logged.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})
SLOW_REQUEST_MS = 1000


def _access_level(status_code: int, duration_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Attach the request id / duration hooks to ``app``."""

    @app.before_request
    def _stamp_request():
        g.started_at = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _access_log(response):
        started = g.get("started_at")
        if started is None:
            return response

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"
        if request.path in QUIET_PATHS:
            return response

        args = request.view_args or {}
        logger.log(
            _access_level(response.status_code, elapsed),
            "%s %s -> %d",
            request.method, request.path, response.status_code,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed,
                "remote_addr": request.remote_addr,
                "tracking_id": args.get("tracking_id") or args.get("request_id"),
            },
        )
        return response
