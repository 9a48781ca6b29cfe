"""
Comprehensive tests for shared_utils.error_handler.

Covers every exception subclass, to_dict() serialisation, HTTP status codes,
log_exception(), and handle_error().
"""

from unittest.mock import MagicMock

import pytest

from shared_utils.constants import ErrorCode
from shared_utils.error_handler import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    ExternalServiceError,
    ExtractionError,
    GoneError,
    MediaProcessingError,
    NotFoundError,
    QuotaExceededError,
    TranscriptionError,
    ValidationError,
    handle_error,
    log_exception,
)


# ---------------------------------------------------------------------------
# AppException base
# ---------------------------------------------------------------------------


class TestAppException:
    def test_defaults(self) -> None:
        exc = AppException(error_code="TEST", message="boom")
        assert exc.error_code == "TEST"
        assert exc.message == "boom"
        assert exc.http_status == 500
        assert exc.context == {}
        assert str(exc) == "boom"

    def test_custom_context_and_status(self) -> None:
        ctx = {"key": "val"}
        exc = AppException("CODE", "msg", context=ctx, http_status=418)
        assert exc.context == ctx
        assert exc.http_status == 418

    def test_to_dict_structure(self) -> None:
        exc = AppException("CODE", "msg", context={"a": 1})
        err = exc.to_dict()["error"]
        assert err["code"] == "CODE"
        assert err["message"] == "msg"
        assert err["context"] == {"a": 1}

    def test_to_dict_empty_context(self) -> None:
        assert AppException("C", "m").to_dict()["error"]["context"] == {}


# ---------------------------------------------------------------------------
# Subclass-specific tests
# ---------------------------------------------------------------------------


class TestStatusMapping:
    @pytest.mark.parametrize(
        "exc, code, status",
        [
            (ValidationError("bad"), ErrorCode.INVALID_INPUT, 400),
            (AuthenticationError(), ErrorCode.UNAUTHENTICATED, 401),
            (AuthorizationError("no"), ErrorCode.FORBIDDEN, 403),
            (QuotaExceededError("limit"), ErrorCode.QUOTA_EXCEEDED, 403),
            (NotFoundError("gone"), ErrorCode.NOT_FOUND, 404),
            (ConflictError("stale"), ErrorCode.CONFLICT, 409),
            (GoneError("expired"), ErrorCode.EXPIRED, 410),
            (ConfigurationError("missing"), ErrorCode.INVALID_CONFIG, 500),
            (TranscriptionError("stt"), ErrorCode.TRANSCRIPTION_FAILED, 500),
            (ExtractionError("llm"), ErrorCode.EXTRACTION_FAILED, 500),
            (MediaProcessingError("ffmpeg"), ErrorCode.MEDIA_PROCESSING_FAILED, 500),
            (ExternalServiceError("S3", "timeout"), ErrorCode.EXTERNAL_SERVICE_ERROR, 503),
        ],
    )
    def test_code_and_status(self, exc, code, status) -> None:
        assert exc.error_code == code.value
        assert exc.http_status == status
        assert isinstance(exc, AppException)

    def test_authentication_default_message(self) -> None:
        assert AuthenticationError().message == "Unauthorized"


class TestTranscriptionError:
    def test_chunk_index_in_context(self) -> None:
        exc = TranscriptionError("Transcription failed on chunk 2", chunk_index=2)
        assert exc.context["chunk_index"] == 2

    def test_no_chunk_index(self) -> None:
        assert "chunk_index" not in TranscriptionError("fail").context

    def test_extra_context_preserved(self) -> None:
        exc = TranscriptionError("err", chunk_index=0, context={"file": "a.mp3"})
        assert exc.context == {"file": "a.mp3", "chunk_index": 0}


class TestExternalServiceError:
    def test_message_includes_service(self) -> None:
        exc = ExternalServiceError("DynamoDB", "throttled")
        assert "DynamoDB" in exc.message
        assert "throttled" in exc.message

    def test_context_includes_service_key(self) -> None:
        exc = ExternalServiceError("Stripe", "err", context={"extra": 1})
        assert exc.context["service"] == "Stripe"
        assert exc.context["extra"] == 1


# ---------------------------------------------------------------------------
# log_exception
# ---------------------------------------------------------------------------


class TestLogException:
    def test_app_exception_uses_error_level(self) -> None:
        mock_logger = MagicMock()
        log_exception(ValidationError("oops"), logger=mock_logger)
        mock_logger.error.assert_called_once()

    def test_generic_exception_uses_error_level(self) -> None:
        mock_logger = MagicMock()
        log_exception(RuntimeError("boom"), logger=mock_logger)
        mock_logger.error.assert_called_once()

    def test_default_logger_does_not_raise(self) -> None:
        log_exception(ValidationError("x"))
        log_exception(RuntimeError("y"))


# ---------------------------------------------------------------------------
# handle_error
# ---------------------------------------------------------------------------


class TestHandleError:
    def test_app_exception_returns_to_dict(self) -> None:
        result = handle_error(NotFoundError("Room not found", context={"room_code": "ABC"}))
        assert result["error"]["code"] == ErrorCode.NOT_FOUND.value
        assert result["error"]["context"]["room_code"] == "ABC"

    def test_generic_exception_hides_details(self) -> None:
        err = handle_error(RuntimeError("secret connection string"))["error"]
        assert err["code"] == ErrorCode.EXTERNAL_SERVICE_ERROR.value
        assert "secret" not in err["message"]
        assert err["context"]["error_type"] == "RuntimeError"

    def test_custom_default_error_code(self) -> None:
        result = handle_error(ValueError("bad"), default_error_code=ErrorCode.INVALID_INPUT.value)
        assert result["error"]["code"] == ErrorCode.INVALID_INPUT.value
