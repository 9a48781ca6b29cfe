"""
Structured error handling and response formatting.
Provides consistent error responses with error codes and context.

Taxonomy (HTTP status in brackets):
    validation [400], authentication [401], authorization / quota [403],
    not found [404], version conflict [409], expired [410],
    pipeline failures [500], upstream dependency unavailable [503].
"""

from typing import Optional, Dict, Any
import logging

from shared_utils.constants import ErrorCode, LogScope
from shared_utils.logging_utils import get_scoped_logger


class AppException(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        error_code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        http_status: int = 500
    ):
        self.error_code = error_code
        self.message = message
        self.context = context or {}
        self.http_status = http_status
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to response dictionary."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "context": self.context
            }
        }


class ValidationError(AppException):
    """Validation/input error."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.INVALID_INPUT.value,
            message=message,
            context=context,
            http_status=400
        )


class AuthenticationError(AppException):
    """No (valid) identity or credential on the request."""

    def __init__(self, message: str = "Unauthorized", context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.UNAUTHENTICATED.value,
            message=message,
            context=context,
            http_status=401
        )


class AuthorizationError(AppException):
    """Identity is known but not allowed to perform the action."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.FORBIDDEN.value,
            message=message,
            context=context,
            http_status=403
        )


class QuotaExceededError(AppException):
    """Plan quota used up for the current period."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.QUOTA_EXCEEDED.value,
            message=message,
            context=context,
            http_status=403
        )


class NotFoundError(AppException):
    """Requested resource does not exist."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.NOT_FOUND.value,
            message=message,
            context=context,
            http_status=404
        )


class ConflictError(AppException):
    """Write rejected because the stored version moved on."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.CONFLICT.value,
            message=message,
            context=context,
            http_status=409
        )


class GoneError(AppException):
    """Resource existed but has expired."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.EXPIRED.value,
            message=message,
            context=context,
            http_status=410
        )


class ConfigurationError(AppException):
    """Configuration error."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.INVALID_CONFIG.value,
            message=message,
            context=context,
            http_status=500
        )


class TranscriptionError(AppException):
    """Speech-to-text pipeline error."""

    def __init__(
        self,
        message: str,
        chunk_index: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = {**(context or {})}
        if chunk_index is not None:
            ctx["chunk_index"] = chunk_index
        super().__init__(
            error_code=ErrorCode.TRANSCRIPTION_FAILED.value,
            message=message,
            context=ctx,
            http_status=500
        )


class ExtractionError(AppException):
    """Action item extraction error (LLM call or response parsing)."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.EXTRACTION_FAILED.value,
            message=message,
            context=context,
            http_status=500
        )


class MediaProcessingError(AppException):
    """Audio extraction / compression error."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.MEDIA_PROCESSING_FAILED.value,
            message=message,
            context=context,
            http_status=500
        )


class ExternalServiceError(AppException):
    """External service unavailable error."""

    def __init__(self, service: str, message: str, context: Optional[Dict[str, Any]] = None):
        full_message = f"{service} unavailable: {message}"
        super().__init__(
            error_code=ErrorCode.EXTERNAL_SERVICE_ERROR.value,
            message=full_message,
            context={**(context or {}), "service": service},
            http_status=503
        )


def log_exception(
    exc: Exception,
    scope: str = LogScope.ERROR_HANDLER,
    logger: Optional[logging.Logger] = None
) -> None:
    """Log exception with structured context.

    Args:
        exc: Exception to log
        scope: Log scope identifier
        logger: Optional custom logger (uses structlog if not provided)
    """
    if logger is None:
        logger = get_scoped_logger(scope)

    if isinstance(exc, AppException):
        logger.error(
            "app_exception",
            error_code=exc.error_code,
            message=exc.message,
            http_status=exc.http_status,
            context=exc.context
        )
    else:
        logger.error(
            "unexpected_exception",
            error_type=type(exc).__name__,
            message=str(exc),
            exc_info=exc
        )


def handle_error(
    exc: Exception,
    scope: str = LogScope.ERROR_HANDLER,
    default_error_code: str = ErrorCode.EXTERNAL_SERVICE_ERROR.value
) -> Dict[str, Any]:
    """Handle exception and return structured error response.

    Details of unexpected exceptions stay in the server log; the response
    carries only the exception type.

    Args:
        exc: Exception to handle
        scope: Log scope
        default_error_code: Default error code for non-AppException errors

    Returns:
        Structured error response dictionary
    """
    log_exception(exc, scope)

    if isinstance(exc, AppException):
        return exc.to_dict()
    else:
        return {
            "error": {
                "code": default_error_code,
                "message": "An unexpected error occurred",
                "context": {"error_type": type(exc).__name__}
            }
        }
