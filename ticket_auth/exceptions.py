import logging
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    INVALID_REQUEST = "invalid_request"
    INVALID_CREDENTIAL = "invalid_credential"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    INTERNAL = "internal"


class AuthError(Exception):
    """Base of every failure surfaced by the auth core.

    ``kind`` is the taxonomy tag the HTTP layer maps to a status code,
    ``context`` carries structured, client-safe details.
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "Authentication failed"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)


class ValidationFailed(AuthError):
    kind = ErrorKind.INVALID_REQUEST
    default_message = "Invalid request"


class InvalidCredential(AuthError):
    kind = ErrorKind.INVALID_CREDENTIAL
    default_message = "Invalid credentials"


class InvalidFederatedToken(InvalidCredential):
    default_message = "Invalid federated identity token"


class InvalidToken(InvalidCredential):
    default_message = "Token is invalid or expired"


class Unauthorized(InvalidCredential):
    default_message = "Unauthorized"


class Conflict(AuthError):
    kind = ErrorKind.CONFLICT
    default_message = "Resource already exists"


class NotFound(AuthError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class RateLimited(AuthError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "Too many OTP requests. Please try again later."

    def __init__(self, retry_after: int, reset_time: str, max_attempts: int, message: Optional[str] = None):
        super().__init__(message, maxAttempts=max_attempts, resetTime=reset_time)
        self.retry_after = retry_after
        self.reset_time = reset_time
        self.max_attempts = max_attempts


class ProviderUnavailable(AuthError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE
    default_message = "Upstream provider unavailable"


class DeliveryFailed(ProviderUnavailable):
    default_message = "Failed to send OTP"


class InternalError(AuthError):
    kind = ErrorKind.INTERNAL
    default_message = "Internal server error"


STATUS_BY_KIND = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.INVALID_CREDENTIAL: 401,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.PROVIDER_UNAVAILABLE: 503,
    ErrorKind.INTERNAL: 500,
}


def create_error_response(error_message: str, data: Optional[dict] = None) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": data,
        "error": error_message
    }


def create_success_response(data: dict, message: Optional[str] = None) -> dict:
    """Create a standardized success response"""
    body = {
        "success": True,
        "data": data,
        "error": None
    }
    if message:
        body["message"] = message
    return body


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind.value}: {exc.message}")
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(exc.message, exc.context or None),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=400, content=create_error_response(message))
