"""
Middleware package for the API.
"""
from middleware.logging_middleware import (
    RequestLoggingMiddleware,
    get_request_id,
    get_session_id,
    session_id_from_path,
)

__all__ = [
    "RequestLoggingMiddleware",
    "get_request_id",
    "get_session_id",
    "session_id_from_path",
]
