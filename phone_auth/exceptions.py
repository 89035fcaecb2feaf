import logging
from typing import Any, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

GENERIC_OTP_MESSAGE = "Invalid or expired code"
GENERIC_SESSION_MESSAGE = "Session invalid"


class AuthError(Exception):
    """Base class for every failure the auth core reports to its callers.

    ``code`` and ``message`` are safe to show to end users. The concrete
    subclass name is the precise reason and only goes to logs.
    """

    status_code: int = 400
    code: str = "AUTH_ERROR"
    message: str = "Authentication failed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.message
        super().__init__(self.detail)

    @property
    def kind(self) -> str:
        return type(self).__name__


# Validation errors, recoverable client-side

class InvalidPhoneFormat(AuthError):
    code = "INVALID_PHONE_NUMBER"
    message = "Invalid phone number format"


class RegistrationDetailsRequired(AuthError):
    code = "MISSING_REGISTRATION_DATA"
    message = "Business name and owner name are required for new registration"


# Account state

class AccountNotFound(AuthError):
    status_code = 404
    code = "ACCOUNT_NOT_FOUND"
    message = "Account not found"


class AccountAlreadyExists(AuthError):
    status_code = 409
    code = "ACCOUNT_ALREADY_EXISTS"
    message = "An account already exists for this phone number"


class AccountDisabled(AuthError):
    status_code = 403
    code = "ACCOUNT_DEACTIVATED"
    message = "Account is deactivated"


# Transient errors, retried by the user

class RateLimited(AuthError):
    status_code = 429
    code = "OTP_RATE_LIMITED"
    message = "Too many OTP requests. Please try again later."


class SendFailed(AuthError):
    status_code = 503
    code = "OTP_SEND_FAILED"
    message = "Failed to send OTP. Please request a new code."


# OTP verification, all reported as the same generic failure

class OtpError(AuthError):
    code = "INVALID_OTP"
    message = GENERIC_OTP_MESSAGE


class NoChallenge(OtpError):
    pass


class OtpExpired(OtpError):
    pass


class CodeMismatch(OtpError):
    pass


class AttemptsExhausted(CodeMismatch):
    pass


class TypeMismatch(OtpError):
    pass


# Token errors, all reported as the same generic failure

class TokenError(AuthError):
    status_code = 401
    code = "INVALID_SESSION"
    message = GENERIC_SESSION_MESSAGE


class TokenExpired(TokenError):
    pass


class TokenMalformed(TokenError):
    pass


class WrongTokenType(TokenError):
    pass


class TokenRevoked(TokenError):
    pass


class TokenReused(TokenError):
    pass


def create_error_response(error_message: str, code: Optional[str] = None) -> dict:
    """Create a standardized error response"""
    body = {
        "success": False,
        "data": None,
        "error": error_message
    }
    if code:
        body["code"] = code
    return body


def create_success_response(data: Any, message: Optional[str] = None) -> dict:
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
    """Map core failures onto status codes without leaking the precise reason"""
    logger.info(f"{request.method} {request.url.path} failed: {exc.kind} ({exc.detail})")
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.message, exc.code)
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    # Convert 403 from HTTPBearer to 401 for missing authentication
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(
            status_code=401,
            content=create_error_response("Authentication required", "AUTHENTICATION_REQUIRED")
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail)
    )
