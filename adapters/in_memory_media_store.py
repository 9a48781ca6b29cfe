"""
In-memory media store adapter for local development.

Implements MediaStorePort with a dict keyed by storage path. Used when
S3_MEDIA_BUCKET is empty (local dev, CI).

NOT for production - no persistence across restarts.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from domain.models import StoredObject
from adapters.s3_media_store import build_storage_path
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import NotFoundError
from shared_utils.validation import InputValidator


logger = get_scoped_logger(LogScope.ADAPTER)


class InMemoryMediaStoreAdapter:
    """Dict-backed implementation of MediaStorePort with an injectable clock."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        self._blobs: Dict[str, bytes] = {}
        self._objects: Dict[str, StoredObject] = {}

    def upload(self, content: bytes, owner_id: str, filename: str, content_type: str) -> str:
        InputValidator.validate_content_type(content_type)
        InputValidator.validate_size(len(content))
        now = self._clock()
        path = build_storage_path(owner_id, filename, now)
        self.put_object(path, content, now)
        logger.info("inmemory_media_uploaded", path=path, size_bytes=len(content))
        return path

    def put_object(self, path: str, content: bytes, last_modified: datetime) -> None:
        """Store bytes at an explicit path and timestamp (seeding, presigned uploads)."""
        with self._lock:
            self._blobs[path] = content
            self._objects[path] = StoredObject(path=path, size=len(content), last_modified=last_modified)

    def download(self, path: str) -> bytes:
        with self._lock:
            content = self._blobs.get(path)
        if content is None:
            raise NotFoundError("File not found", context={"path": path})
        return content

    def delete(self, path: str) -> None:
        with self._lock:
            self._blobs.pop(path, None)
            self._objects.pop(path, None)

    def get_signed_url(self, path: str, ttl_seconds: int = Defaults.SIGNED_URL_TTL_SECONDS) -> str:
        return f"memory://{path}?expires_in={ttl_seconds}"

    def create_upload_url(
        self,
        owner_id: str,
        filename: str,
        content_type: str,
        ttl_seconds: int = Defaults.SIGNED_URL_TTL_SECONDS,
    ) -> Tuple[str, str]:
        InputValidator.validate_content_type(content_type)
        path = build_storage_path(owner_id, filename, self._clock())
        return path, f"memory://{path}?upload=1&expires_in={ttl_seconds}"

    def list_objects(self) -> List[StoredObject]:
        with self._lock:
            return list(self._objects.values())

    def cleanup(self, max_age_hours: int = Defaults.STORAGE_RETENTION_HOURS) -> int:
        InputValidator.validate_positive_int(max_age_hours, "max_age_hours", allow_zero=True)
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        with self._lock:
            expired = [o.path for o in self._objects.values() if o.last_modified < cutoff]
            for path in expired:
                self.delete(path)
        logger.info("inmemory_media_cleanup_completed", deleted=len(expired))
        return len(expired)
