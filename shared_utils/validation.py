"""
Input validation and sanitization utilities.
Static helpers for validating and cleaning request input.
"""

from typing import Iterable, List
import re

from shared_utils.error_handler import ValidationError
from shared_utils.constants import MediaLimits


_EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
_STORAGE_UNSAFE = re.compile(r'[^a-zA-Z0-9.-]')


class InputValidator:
    """Utility class for input validation."""

    @staticmethod
    def validate_non_empty_string(value: str, field_name: str) -> str:
        """Validate non-empty string.

        Args:
            value: String to validate
            field_name: Name of field for error messages

        Returns:
            Validated string (stripped)

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string")

        if not value or not value.strip():
            raise ValidationError(f"{field_name} cannot be empty")

        return value.strip()

    @staticmethod
    def validate_positive_int(value: int, field_name: str, allow_zero: bool = False) -> int:
        """Validate positive integer.

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError(f"{field_name} must be an integer")

        min_val = 0 if allow_zero else 1
        if value < min_val:
            raise ValidationError(f"{field_name} must be >= {min_val}")

        return value

    @staticmethod
    def validate_email(value: str, field_name: str = "email") -> str:
        """Validate an e-mail address and return it lowercased."""
        email = InputValidator.validate_non_empty_string(value, field_name).lower()
        if not _EMAIL_PATTERN.match(email):
            raise ValidationError(f"Invalid {field_name} format", context={"field": field_name})
        return email

    @staticmethod
    def validate_file_extension(filename: str, allowed_extensions: Iterable[str]) -> str:
        """Validate file extension.

        Args:
            filename: Filename to validate
            allowed_extensions: Allowed extensions (without dots)

        Returns:
            Lowercased extension

        Raises:
            ValidationError: If validation fails
        """
        allowed = [e.lower() for e in allowed_extensions]
        if '.' not in filename:
            raise ValidationError("File must have an extension")

        ext = filename.rsplit('.', 1)[1].lower()
        if ext not in allowed:
            raise ValidationError(f"File extension .{ext} not allowed. Allowed: {allowed}")

        return ext

    @staticmethod
    def validate_content_type(content_type: str) -> str:
        """Validate a media MIME type against the upload allow-list."""
        if not content_type or content_type.lower() not in MediaLimits.ALLOWED_MIME_TYPES:
            raise ValidationError(
                f"Unsupported file type: {content_type}",
                context={"content_type": content_type},
            )
        return content_type.lower()

    @staticmethod
    def validate_size(size: int, max_bytes: int = MediaLimits.MAX_UPLOAD_BYTES) -> int:
        """Validate a payload size in bytes."""
        if size <= 0:
            raise ValidationError("File is empty")
        if size > max_bytes:
            raise ValidationError(
                f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB",
                context={"size": size, "max_bytes": max_bytes},
            )
        return size

    @staticmethod
    def sanitize_filename(filename: str, max_length: int = 255) -> str:
        """Sanitize filename to prevent path traversal and other issues.

        Raises:
            ValidationError: If validation fails
        """
        # Remove path separators and special characters
        filename = filename.replace('\\', '').replace('/', '')
        filename = re.sub(r'[<>:"|?*]', '', filename)

        # Prevent path traversal
        if '..' in filename or filename.startswith('.'):
            raise ValidationError("Invalid filename format")

        if len(filename) > max_length:
            raise ValidationError(f"Filename too long (max {max_length} characters)")

        return filename

    @staticmethod
    def sanitize_storage_name(filename: str) -> str:
        """Replace every character outside [A-Za-z0-9.-] with an underscore."""
        InputValidator.validate_non_empty_string(filename, "filename")
        return _STORAGE_UNSAFE.sub('_', filename)

    @staticmethod
    def normalize_code(value: str, field_name: str = "code") -> str:
        """Normalize room codes and organization tokens (trimmed, uppercase)."""
        return InputValidator.validate_non_empty_string(value, field_name).upper()


__all__: List[str] = ["InputValidator"]
