"""
Request logging middleware.
Logs method, path, status and duration of every request; for patient
endpoints it also records the authenticated subject when one was resolved.
"""
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

PATIENT_PATH_PREFIX = "/api/patients"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs each request once it has been answered."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        path = request.url.path
        if not path.startswith(PATIENT_PATH_PREFIX):
            logger.info("%s %s -> %s (%.1f ms)", request.method, path, response.status_code, elapsed_ms)
            return response

        user = getattr(request.state, "user", None)
        subject = user.sub if user is not None else "anonymous"
        logger.info(
            "%s %s -> %s (%.1f ms, user=%s)",
            request.method, path, response.status_code, elapsed_ms, subject,
        )
        return response
