"""
Application error taxonomy.

Each error carries the HTTP status and machine-readable error code used by
the AppError handler in main.py to build a normalized error_response.
"""
from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    error_code = "server_error"
    default_message = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None, detail: Optional[dict[str, Any]] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.detail = detail or {}


class Unauthenticated(AppError):
    status_code = 401
    error_code = "unauthenticated"
    default_message = "Authentication required."


class AccessDenied(AppError):
    status_code = 402
    error_code = "trials_exhausted"
    default_message = "Your free trials are over. Please subscribe to continue."


class NotFound(AppError):
    status_code = 404
    error_code = "not_found"
    default_message = "Resource not found."


class MalformedInput(AppError):
    status_code = 400
    error_code = "malformed_payload"
    default_message = "Request payload could not be parsed."


class StoreFailure(AppError):
    status_code = 500
    error_code = "store_failure"
    default_message = "A persistence error occurred."
