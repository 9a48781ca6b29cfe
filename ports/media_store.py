"""
Port interface for temporary media storage.

Implementations: S3MediaStoreAdapter, InMemoryMediaStoreAdapter (adapters/)

Objects live under ``{owner_id}/{timestamp_ms}-{sanitized_name}``. Nothing is
stored permanently: the transcription path deletes what it consumed and
``cleanup`` sweeps everything past the retention window.
"""

from __future__ import annotations

from typing import Protocol, Tuple, runtime_checkable


@runtime_checkable
class MediaStorePort(Protocol):
    """Abstract interface for the namespaced temporary object store."""

    def upload(self, content: bytes, owner_id: str, filename: str, content_type: str) -> str:
        """Store a media blob.

        Args:
            content: Raw bytes.
            owner_id: Namespace (the uploading user's id).
            filename: Original filename; sanitized into the path.
            content_type: MIME type; must be in the media allow-list.

        Returns:
            Storage path of the new object.

        Raises:
            ValidationError: Disallowed type or size.
            ExternalServiceError: If the store is unreachable.
        """
        ...

    def download(self, path: str) -> bytes:
        """Fetch an object's bytes.

        Raises:
            NotFoundError: If no object exists at ``path``.
            ExternalServiceError: If the store is unreachable.
        """
        ...

    def delete(self, path: str) -> None:
        """Delete one object. Deleting a missing object is not an error."""
        ...

    def get_signed_url(self, path: str, ttl_seconds: int) -> str:
        """Time-limited download URL for ``path``."""
        ...

    def create_upload_url(
        self, owner_id: str, filename: str, content_type: str, ttl_seconds: int
    ) -> Tuple[str, str]:
        """Reserve a path and return ``(path, signed_upload_url)``."""
        ...

    def cleanup(self, max_age_hours: int) -> int:
        """Delete every object last modified before ``now - max_age_hours``.

        Idempotent; never touches objects newer than the cutoff.

        Returns:
            Number of objects deleted.
        """
        ...
