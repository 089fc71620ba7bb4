"""
VFurniture — core/errors.py
─────────────────────────────────────────────────────────────────
Error taxonomy shared by every router.

    ValidationError  → 400   missing / malformed input
    Unauthorized     → 401   bad credentials or token
    Forbidden        → 403   authenticated, not the owner
    NotFound         → 404
    Conflict         → 409   duplicate unique field
    Internal         → 500   anything unexpected

Routes raise these; register_exception_handlers() turns them into
{"error": "..."} JSON so nothing reaches the transport unhandled.
─────────────────────────────────────────────────────────────────
"""

import logging
import sqlite3

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("vfurniture.errors")


# ─────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────
class AppError(Exception):
    """Base API exception."""
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"

    def __init__(self, message: str = None, clear_session: bool = False):
        super().__init__(message)
        # Refresh / verify failures wipe the cookies instead of leaving stale ones
        self.clear_session = clear_session


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Already exists"


class Internal(AppError):
    status_code = 500


# ─────────────────────────────────────────────
# Handlers
# ─────────────────────────────────────────────
def _error_response(request: Request, exc: AppError) -> JSONResponse:
    response = JSONResponse({"error": exc.message}, status_code=exc.status_code)
    if isinstance(exc, Unauthorized) and exc.clear_session:
        from vfurniture.core.security import clear_auth_cookies, get_config
        clear_auth_cookies(response, get_config(request))
    return response


def register_exception_handlers(app: FastAPI):
    """Install the boundary handlers on an app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} → {exc.message}")
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
            message = f"{field}: {first.get('msg')}" if field else first.get("msg")
        else:
            message = "Invalid request body"
        return JSONResponse({"error": message}, status_code=400)

    @app.exception_handler(sqlite3.IntegrityError)
    async def integrity_error_handler(request: Request, exc: sqlite3.IntegrityError):
        logger.warning(f"Unique constraint hit on {request.url.path}: {exc}")
        return JSONResponse({"error": "Duplicate value for a unique field"}, status_code=409)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error: {exc}", exc_info=True)
        return JSONResponse({"error": "Internal server error"}, status_code=500)
