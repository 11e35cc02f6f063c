"""
Request timing middleware.

Stamps every response with ``X-Request-ID`` and ``X-Request-Duration-Ms``
and writes one access-log record per API request, tagged with the acting
user and whatever entity ids the route carries.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

from app.middleware.logging_config import SCOPE_FIELDS

logger = logging.getLogger(__name__)

# Probes hit these every few seconds
_SKIP_LOG = frozenset({"/health", "/api/v1/health/ready", "/api/v1/health/live"})


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id

        if request.path in _SKIP_LOG:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "request_id": g.request_id,
            **_extract_scope(),
        }
        summary = (request.method, request.path, response.status_code, duration_ms)
        if duration_ms > current_app.config.get("SLOW_REQUEST_MS", 1000):
            logger.warning("Slow request: %s %s %d (%.0fms)", *summary, extra=extra)
        elif response.status_code >= 500:
            logger.error("Server error: %s %s %d (%.0fms)", *summary, extra=extra)
        else:
            logger.debug("%s %s %d (%.0fms)", *summary, extra=extra)
        return response


def _to_int(value) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _extract_scope() -> dict:
    """Acting user plus any ``*_id`` route args that the log formatters know."""
    scope = {"user_id": _to_int(request.headers.get("X-User-Id") or request.args.get("user_id"))}
    for key, value in (request.view_args or {}).items():
        if key in SCOPE_FIELDS and key != "user_id":
            scope[key] = _to_int(value)
    return scope
