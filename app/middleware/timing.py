"""
Per-request correlation id and access logging.

The caller's X-Request-ID is echoed back, or a 12-hex-char one is minted.
Log records carry it as ``http_request_id``; ``request_id`` in log extras
always means a clearance request.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000
QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/health/live"})


def _level_for(status_code: int, elapsed_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if elapsed_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    @app.before_request
    def _stamp():
        g.http_request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.started_at = time.perf_counter()

    @app.after_request
    def _access_log(response):
        started = g.get("started_at")
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.http_request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"
        if request.path in QUIET_PATHS:
            return response

        logger.log(
            _level_for(response.status_code, elapsed_ms),
            "%s %s -> %d",
            request.method, request.full_path.rstrip("?"), response.status_code,
            extra={
                "http_request_id": g.http_request_id,
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
                "remote_addr": request.remote_addr,
            },
        )
        return response
