"""
S3-backed temporary media store adapter.

Implements MediaStorePort using boto3. Pair the bucket with a lifecycle rule
as a backstop; ``cleanup`` is the primary retention mechanism.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError, NotFoundError
from shared_utils.validation import InputValidator


logger = get_scoped_logger(LogScope.ADAPTER)

# S3 DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000


def build_storage_path(owner_id: str, filename: str, now: datetime) -> str:
    """``{owner_id}/{epoch_ms}-{sanitized_name}``."""
    owner = InputValidator.validate_non_empty_string(owner_id, "owner_id")
    timestamp_ms = int(now.timestamp() * 1000)
    return f"{owner}/{timestamp_ms}-{InputValidator.sanitize_storage_name(filename)}"


class S3MediaStoreAdapter:
    """Amazon S3 implementation of MediaStorePort.

    All objects live in one bucket, namespaced by owner id.
    """

    def __init__(
        self,
        bucket: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: Optional[str] = None,
        s3_client: Optional[object] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.bucket = bucket
        client_kwargs: dict = {"region_name": region}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        self._s3 = s3_client or boto3.client("s3", **client_kwargs)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # MediaStorePort implementation
    # ------------------------------------------------------------------

    def upload(self, content: bytes, owner_id: str, filename: str, content_type: str) -> str:
        """Upload a media blob under the owner's namespace."""
        content_type = InputValidator.validate_content_type(content_type)
        InputValidator.validate_size(len(content))
        path = build_storage_path(owner_id, filename, self._clock())
        try:
            self._s3.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=content,
                ContentType=content_type,
            )
        except ClientError as exc:
            logger.error("s3_media_upload_failed", owner_id=owner_id, error=str(exc))
            raise ExternalServiceError("S3", f"Failed to upload media: {exc}") from exc

        logger.info("media_uploaded", path=path, size_bytes=len(content), content_type=content_type)
        return path

    def download(self, path: str) -> bytes:
        try:
            response = self._s3.get_object(Bucket=self.bucket, Key=path)
            return response["Body"].read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in ("NoSuchKey", "404"):
                raise NotFoundError("File not found", context={"path": path}) from exc
            logger.error("s3_media_download_failed", path=path, error=str(exc))
            raise ExternalServiceError("S3", f"Failed to download media: {exc}") from exc

    def delete(self, path: str) -> None:
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=path)
            logger.info("media_deleted", path=path)
        except ClientError as exc:
            logger.error("s3_media_delete_failed", path=path, error=str(exc))
            raise ExternalServiceError("S3", f"Failed to delete media: {exc}") from exc

    def get_signed_url(self, path: str, ttl_seconds: int = Defaults.SIGNED_URL_TTL_SECONDS) -> str:
        try:
            return self._s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except ClientError as exc:
            logger.error("s3_presign_failed", path=path, error=str(exc))
            raise ExternalServiceError("S3", f"Failed to sign URL: {exc}") from exc

    def create_upload_url(
        self,
        owner_id: str,
        filename: str,
        content_type: str,
        ttl_seconds: int = Defaults.SIGNED_URL_TTL_SECONDS,
    ) -> Tuple[str, str]:
        """Presigned PUT so browsers can upload large media directly."""
        content_type = InputValidator.validate_content_type(content_type)
        path = build_storage_path(owner_id, filename, self._clock())
        try:
            url = self._s3.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": path, "ContentType": content_type},
                ExpiresIn=ttl_seconds,
            )
        except ClientError as exc:
            logger.error("s3_presign_upload_failed", owner_id=owner_id, error=str(exc))
            raise ExternalServiceError("S3", f"Failed to sign upload URL: {exc}") from exc
        return path, url

    def cleanup(self, max_age_hours: int = Defaults.STORAGE_RETENTION_HOURS) -> int:
        """Delete every object older than ``max_age_hours``."""
        InputValidator.validate_positive_int(max_age_hours, "max_age_hours", allow_zero=True)
        cutoff = self._clock() - timedelta(hours=max_age_hours)

        expired: List[str] = []
        try:
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket):
                for obj in page.get("Contents", []):
                    if obj["LastModified"] < cutoff:
                        expired.append(obj["Key"])
        except ClientError as exc:
            logger.error("s3_media_list_failed", error=str(exc))
            raise ExternalServiceError("S3", f"Failed to list media: {exc}") from exc

        deleted = 0
        for start in range(0, len(expired), DELETE_BATCH_SIZE):
            batch = expired[start:start + DELETE_BATCH_SIZE]
            try:
                response = self._s3.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except ClientError as exc:
                logger.error("s3_media_batch_delete_failed", batch_size=len(batch), error=str(exc))
                raise ExternalServiceError("S3", f"Failed to delete media: {exc}") from exc

            errors = response.get("Errors", [])
            for err in errors:
                logger.warning("s3_media_delete_error", key=err.get("Key"), code=err.get("Code"))
            deleted += len(batch) - len(errors)

        logger.info(
            "media_cleanup_completed",
            deleted=deleted,
            candidates=len(expired),
            cutoff=cutoff.isoformat(),
        )
        return deleted
