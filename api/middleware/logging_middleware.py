"""
Request logging for the design API.

Each request gets a short id. The id, and the design session id when the path
is under /design/sessions/{id}/, are bound into structlog's context for the
duration of the request, so service logs written meanwhile carry both.
"""
import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

SESSION_PATH_MARKER = "/design/sessions/"

# Generation requests legitimately take tens of seconds; anything longer is worth a look
SLOW_REQUEST_SECONDS = 60.0

logger = structlog.get_logger(__name__)


def get_request_id() -> str:
    return structlog.contextvars.get_contextvars().get("request_id", "")


def get_session_id() -> str:
    """Design session the current request addresses, or an empty string."""
    return structlog.contextvars.get_contextvars().get("session_id", "")


def session_id_from_path(path: str) -> str:
    """Design session ID embedded in a request path, or an empty string"""
    if SESSION_PATH_MARKER not in path:
        return ""
    return path.split(SESSION_PATH_MARKER, 1)[1].split("/")[0]


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds request and session ids, logs each request and sets X-Request-ID / X-Process-Time."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        structlog.contextvars.clear_contextvars()
        request_id = uuid.uuid4().hex[:8]
        session_id = session_id_from_path(request.url.path)
        structlog.contextvars.bind_contextvars(request_id=request_id)
        if session_id:
            structlog.contextvars.bind_contextvars(session_id=session_id)

        start_time = time.time()
        logger.info("request_started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", duration_ms=round((time.time() - start_time) * 1000))
            raise

        elapsed = time.time() - start_time
        fields = {"status_code": response.status_code, "duration_ms": round(elapsed * 1000)}
        if response.status_code >= 500:
            logger.error("request_finished", **fields)
        elif response.status_code >= 400 or elapsed > SLOW_REQUEST_SECONDS:
            logger.warning("request_finished", slow=elapsed > SLOW_REQUEST_SECONDS, **fields)
        else:
            logger.info("request_finished", **fields)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.3f}"
        return response
