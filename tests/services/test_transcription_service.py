"""
Unit tests for TranscriptionService. Small chunk sizes keep the fixtures
tiny; the speech-to-text provider is a MagicMock.
"""

import os
from unittest.mock import MagicMock

import pytest

from adapters.in_memory_media_store import InMemoryMediaStoreAdapter
from core_intelligence.engine.strategies.chunking import ChunkPlanner
from services.transcription_service import TranscriptionService
from shared_utils.error_handler import AuthorizationError, NotFoundError, TranscriptionError, ValidationError


CONTENT = b"hello big world"  # 15 bytes -> chunks of 6, 6, 3


@pytest.fixture()
def transcriber() -> MagicMock:
    chunk_text = {b"hello ": "hello", b"big wo": "big wo", b"rld": "rld"}

    def read_and_transcribe(path: str) -> str:
        with open(path, "rb") as fh:
            return chunk_text.get(fh.read(), "whole recording")

    mock = MagicMock()
    mock.transcribe_file.side_effect = read_and_transcribe
    return mock


@pytest.fixture()
def media(clock) -> InMemoryMediaStoreAdapter:
    return InMemoryMediaStoreAdapter(clock=clock)


@pytest.fixture()
def service(transcriber, media, tmp_path) -> TranscriptionService:
    return TranscriptionService(
        transcriber=transcriber,
        media_store=media,
        planner=ChunkPlanner(limit_bytes=10, chunk_bytes=6),
        temp_dir=str(tmp_path),
    )


class TestTranscribeBytes:
    def test_chunked_in_order(self, service, transcriber) -> None:
        result = service.transcribe_bytes(CONTENT, "call.mp3")

        assert result.text == "hello big wo rld"
        assert result.chunk_count == 3
        assert result.was_chunked is True
        assert result.byte_size == len(CONTENT)
        called = [os.path.basename(c[0][0]) for c in transcriber.transcribe_file.call_args_list]
        assert called == ["chunk-0.mp3", "chunk-1.mp3", "chunk-2.mp3"]

    def test_chunking_disabled(self, service, transcriber) -> None:
        result = service.transcribe_bytes(CONTENT, "call.mp3", needs_chunking=False)
        assert result.text == "whole recording"
        assert result.chunk_count == 1
        assert result.was_chunked is False

    def test_small_file_single_shot(self, service) -> None:
        result = service.transcribe_bytes(b"short", "call.m4a")
        assert result.was_chunked is False
        assert result.filename == "call.m4a"

    def test_temp_files_removed(self, service, tmp_path) -> None:
        service.transcribe_bytes(CONTENT, "call.mp3")
        assert os.listdir(tmp_path) == []

    def test_chunk_failure_aborts(self, service, transcriber, tmp_path) -> None:
        transcriber.transcribe_file.side_effect = ["hello", RuntimeError("429"), "never"]

        with pytest.raises(TranscriptionError, match="chunk 1") as exc_info:
            service.transcribe_bytes(CONTENT, "call.mp3")

        assert exc_info.value.context["chunk_index"] == 1
        assert transcriber.transcribe_file.call_count == 2
        assert os.listdir(tmp_path) == []

    def test_empty_payload(self, service) -> None:
        with pytest.raises(ValidationError):
            service.transcribe_bytes(b"", "call.mp3")

    def test_preprocessor_consulted(self, transcriber, media, tmp_path) -> None:
        preprocessor = MagicMock()
        preprocessor.is_available.return_value = True
        preprocessor.prepare.side_effect = lambda source, name, size, work_dir, report: (source, name)
        service = TranscriptionService(
            transcriber=transcriber,
            media_store=media,
            planner=ChunkPlanner(),
            preprocessor=preprocessor,
            temp_dir=str(tmp_path),
        )

        service.transcribe_bytes(CONTENT, "call.mp4")

        assert preprocessor.prepare.call_args[0][1:3] == ("call.mp4", len(CONTENT))


class TestTranscribeStored:
    def test_transcribes_and_deletes(self, service, media, clock) -> None:
        media.put_object("user-1/1700000000000-call.mp3", CONTENT, clock())

        result = service.transcribe_stored("user-1/1700000000000-call.mp3", "user-1")

        assert result.text == "hello big wo rld"
        assert media.list_objects() == []

    def test_deleted_even_on_failure(self, service, media, transcriber, clock) -> None:
        media.put_object("user-1/1-call.mp3", CONTENT, clock())
        transcriber.transcribe_file.side_effect = RuntimeError("down")

        with pytest.raises(TranscriptionError):
            service.transcribe_stored("user-1/1-call.mp3", "user-1")
        assert media.list_objects() == []

    @pytest.mark.parametrize("path", ["user-2/1-call.mp3", "user-1/../user-2/1-call.mp3"])
    def test_foreign_path_rejected(self, service, media, clock, path) -> None:
        media.put_object(path, CONTENT, clock())
        with pytest.raises(AuthorizationError):
            service.transcribe_stored(path, "user-1")
        assert len(media.list_objects()) == 1

    def test_missing_object(self, service) -> None:
        with pytest.raises(NotFoundError):
            service.transcribe_stored("user-1/missing.mp3", "user-1")
