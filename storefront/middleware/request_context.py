import logging
import time
import uuid

from fastapi import Request

logger = logging.getLogger("storefront.request")


def add_request_context(app):
    """
    Tag every request with an X-Request-ID (reusing the caller's if sent),
    log method/path/status/duration and set the basic security headers.
    """
    @app.middleware("http")
    async def request_context_mw(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s (%.1f ms) [%s]", request.method, request.url.path,
                    response.status_code, elapsed_ms, request_id)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer-when-downgrade"
        return response
