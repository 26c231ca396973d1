"""
Application exceptions with stable, machine-readable error codes.

Every AppError is rendered by the handler registered in main.py as:

    {"success": false, "error": "<CODE>", "message": "<text>", ...extra}
"""

from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AppError(Exception):
    """Base application error carrying an HTTP status and an error code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred. Please try again."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        self.extra = extra or {}
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "message": self.message,
            **self.extra,
        }


# =============================================================================
# Request / identity errors
# =============================================================================

class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_message = "The request is invalid."


class UnauthenticatedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHENTICATED"
    default_message = "You must be logged in to do that."

    def __init__(self, message: Optional[str] = None, **kwargs):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "Forbidden: Not an admin"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "The requested resource does not exist."


# =============================================================================
# Dependency errors
# =============================================================================

class ServiceUnavailableError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "SERVICE_UNAVAILABLE"
    default_message = "Database not connected. Please try again later."


class AnswerServiceNotConfiguredError(AppError):
    code = "AI_NOT_CONFIGURED"
    default_message = (
        "The OpenAI API key is missing. Please add OPENAI_API_KEY to the backend .env file."
    )


class UpstreamError(AppError):
    """Failure of the answer-generation dependency."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "AI_SERVICE_ERROR"
    default_message = "Failed to generate AI response. Please try again later."


class UpstreamFailureError(UpstreamError):
    pass


class UpstreamQuotaExceededError(UpstreamError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "QUOTA_EXCEEDED"
    default_message = (
        "The AI service quota has been exceeded. Please check the OpenAI "
        "account billing and usage limits."
    )


class UpstreamRateLimitedError(UpstreamError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, retry_after: int = 60, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            message or f"Too many requests to the AI service. Please wait {retry_after} seconds before trying again.",
            extra={"retryAfter": retry_after},
            headers={"Retry-After": str(retry_after)},
        )


class UpstreamAccessDeniedError(UpstreamError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "MODEL_ACCESS_DENIED"

    def __init__(self, model: str, message: Optional[str] = None):
        self.model = model
        super().__init__(
            message or f'The OpenAI project does not have access to the model "{model}". '
                       f"Update OPENAI_MODEL to a model the project can use.",
            extra={"attemptedModel": model},
        )


class UpstreamAuthenticationError(UpstreamError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "AI_KEY_INVALID"
    default_message = "The OpenAI API key is invalid or expired."


class UpstreamTimeoutError(UpstreamError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    code = "AI_TIMEOUT"
    default_message = "The AI service took too long to respond. Please try again."


# =============================================================================
# Handler
# =============================================================================

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as the standard JSON error envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers,
    )
