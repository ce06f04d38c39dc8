"""
Request id and timing.

Every response carries ``X-Request-ID`` (echoed from the client when sent)
and ``X-Request-Duration-Ms``.  Requests slower than ``SLOW_REQUEST_MS`` are
logged as warnings; health probes are never logged.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

_PROBE_PATHS = frozenset({"/api/v1/health/live", "/api/v1/health/ready"})


def init_request_timing(app: Flask):
    slow_ms = app.config.get("SLOW_REQUEST_MS", 1000)

    @app.before_request
    def _stamp_request():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_request(response):
        started = getattr(g, "request_started", None)
        if started is None:
            return response

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        if request.path in _PROBE_PATHS:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": round(elapsed, 1),
            "remote_addr": request.remote_addr,
        }
        summary = "%s %s -> %d in %.0fms"
        args = (request.method, request.path, response.status_code, elapsed)
        if response.status_code >= 500:
            logger.error(summary, *args, extra=extra)
        elif elapsed > slow_ms:
            logger.warning("Slow request: " + summary, *args, extra=extra)
        else:
            logger.debug(summary, *args, extra=extra)
        return response
