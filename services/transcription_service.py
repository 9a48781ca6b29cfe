"""
Transcription service - turns an uploaded recording into text.

Flow:  bytes or stored path → temp file → (optional ffmpeg preprocessing)
       → single-shot or chunked speech-to-text → merged transcript.

Chunks are transcribed strictly one after another to bound concurrent cost
and rate-limit exposure on the speech-to-text API. A failing chunk aborts
the run and nothing partial is returned.

Depends only on ports (protocol interfaces) - never on concrete adapters.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from typing import List, Optional, Tuple

from core_intelligence.engine.strategies.chunking import ChunkPlanner
from core_intelligence.media.preprocessor import MediaPreprocessor
from domain.models import TranscriptChunk, TranscriptResult
from ports.llm_provider import TranscriptionProviderPort
from ports.media_store import MediaStorePort
from shared_utils.constants import LogScope
from shared_utils.error_handler import (
    AppException,
    AuthorizationError,
    TranscriptionError,
    ValidationError,
)
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.validation import InputValidator

logger = get_scoped_logger(LogScope.TRANSCRIPTION)


def _extension(filename: str, default: str = "mp3") -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else default


class TranscriptionService:
    """Drives single-shot or chunked transcription of one media asset."""

    def __init__(
        self,
        transcriber: TranscriptionProviderPort,
        media_store: MediaStorePort,
        planner: ChunkPlanner,
        preprocessor: Optional[MediaPreprocessor] = None,
        temp_dir: Optional[str] = None,
    ) -> None:
        self._transcriber = transcriber
        self._media = media_store
        self._planner = planner
        self._preprocessor = preprocessor
        self._temp_dir = temp_dir

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def transcribe_bytes(
        self,
        content: bytes,
        filename: str,
        needs_chunking: bool = True,
    ) -> TranscriptResult:
        """Transcribe an in-memory upload.

        The working directory (whole-asset copy, preprocessed output, any
        chunk files) is removed whether transcription succeeds or fails.

        Raises:
            ValidationError: Empty or oversized payload.
            TranscriptionError: The speech-to-text call failed.
        """
        filename = InputValidator.validate_non_empty_string(filename, "filename")
        InputValidator.validate_size(len(content))

        work_dir = tempfile.mkdtemp(prefix="transcribe-", dir=self._temp_dir)
        try:
            source = os.path.join(work_dir, f"source.{_extension(filename)}")
            with open(source, "wb") as fh:
                fh.write(content)

            path, name = self._preprocess(source, filename, len(content), work_dir)
            return self._transcribe_path(path, name, needs_chunking, work_dir, filename)
        finally:
            self._remove_dir(work_dir)

    def transcribe_stored(
        self,
        path: str,
        owner_id: str,
        needs_chunking: bool = True,
    ) -> TranscriptResult:
        """Transcribe an object from temporary storage, then delete it.

        The stored object is deleted on success and on failure; a failed
        delete is logged and left to the retention sweep.

        Raises:
            AuthorizationError: ``path`` is outside the caller's namespace.
            NotFoundError: No object at ``path``.
        """
        path = InputValidator.validate_non_empty_string(path, "storagePath")
        if not path.startswith(f"{owner_id}/") or ".." in path:
            raise AuthorizationError("Storage path does not belong to caller")

        try:
            content = self._media.download(path)
            filename = path.rsplit("/", 1)[-1] or "recording"
            return self.transcribe_bytes(content, filename, needs_chunking)
        finally:
            self._delete_stored(path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _preprocess(self, source: str, filename: str, size: int, work_dir: str) -> Tuple[str, str]:
        if self._preprocessor is None or not self._preprocessor.is_available():
            return source, filename

        def report(fraction: float) -> None:
            logger.debug("media_preprocess_progress", fraction=round(fraction, 2))

        path, name = self._preprocessor.prepare(source, filename, size, work_dir, report)
        if path != source:
            logger.info(
                "media_preprocessed",
                original_bytes=size,
                processed_bytes=os.path.getsize(path),
                video=MediaPreprocessor.is_video(filename),
            )
        return path, name

    def _transcribe_path(
        self,
        path: str,
        filename: str,
        needs_chunking: bool,
        work_dir: str,
        original_filename: str,
    ) -> TranscriptResult:
        size = os.path.getsize(path)
        if size == 0:
            raise ValidationError("File is empty")
        plan = self._planner.plan(size)
        chunked = needs_chunking and plan.needs_chunking

        logger.info(
            "transcription_started",
            size_bytes=size,
            chunked=chunked,
            chunk_count=len(plan.chunks) if chunked else 1,
            estimate=self._planner.estimate_processing_time(size, chunked),
        )

        if chunked:
            text = self._transcribe_chunks(path, filename, plan.chunks, work_dir)
            chunk_count = len(plan.chunks)
        else:
            text = self._call_transcriber(path, chunk_index=None)
            chunk_count = 1

        logger.info("transcription_completed", chars=len(text), chunk_count=chunk_count)
        return TranscriptResult(
            text=text,
            chunk_count=chunk_count,
            was_chunked=chunked,
            byte_size=size,
            filename=original_filename,
        )

    def _transcribe_chunks(
        self,
        path: str,
        filename: str,
        chunks: List[TranscriptChunk],
        work_dir: str,
    ) -> str:
        ext = _extension(filename)
        parts: List[Tuple[int, str]] = []

        with open(path, "rb") as source:
            for chunk in chunks:
                chunk_path = os.path.join(work_dir, f"chunk-{chunk.index}.{ext}")
                try:
                    source.seek(chunk.start_byte)
                    with open(chunk_path, "wb") as fh:
                        fh.write(source.read(chunk.size))
                    text = self._call_transcriber(chunk_path, chunk_index=chunk.index)
                finally:
                    self._remove_file(chunk_path)

                parts.append((chunk.index, text))
                logger.info(
                    "chunk_transcribed",
                    chunk_index=chunk.index,
                    chunk_count=len(chunks),
                    size_bytes=chunk.size,
                )

        return self._planner.merge_transcripts(parts)

    def _call_transcriber(self, path: str, chunk_index: Optional[int]) -> str:
        try:
            return (self._transcriber.transcribe_file(path) or "").strip()
        except AppException:
            raise
        except Exception as exc:
            logger.error(
                "transcription_call_failed",
                chunk_index=chunk_index,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            message = "Transcription failed" if chunk_index is None else f"Transcription failed on chunk {chunk_index}"
            raise TranscriptionError(message, chunk_index=chunk_index) from exc

    def _delete_stored(self, path: str) -> None:
        try:
            self._media.delete(path)
        except Exception as exc:
            logger.warning("stored_media_delete_failed", path=path, error=str(exc))

    @staticmethod
    def _remove_file(path: str) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as exc:
            logger.warning("temp_file_delete_failed", path=os.path.basename(path), error=str(exc))

    @staticmethod
    def _remove_dir(path: str) -> None:
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("temp_dir_delete_failed", error=str(exc))
