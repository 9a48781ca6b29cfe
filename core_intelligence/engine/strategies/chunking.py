"""
Byte-range chunk planning for speech-to-text uploads.

The transcription service rejects files above a fixed size, so large media is
split into contiguous byte ranges and transcribed one range at a time. Time
offsets are estimated from a constant bytes-per-minute assumption and are for
display only.
"""

import math
import re
from typing import Iterable, List, Tuple

from domain.models import ChunkPlan, TranscriptChunk
from shared_utils.constants import MediaLimits
from shared_utils.error_handler import ValidationError

_MB = 1024 * 1024
_WHITESPACE = re.compile(r"\s+")


class ChunkPlanner:
    """Decides whether a file needs splitting and produces the byte ranges.

    Args:
        limit_bytes: Largest payload the transcription service accepts.
        chunk_bytes: Size of every chunk but the last.
        mb_per_minute: Assumed encoded size of one minute of audio.
    """

    def __init__(
        self,
        limit_bytes: int = MediaLimits.TRANSCRIPTION_MAX_BYTES,
        chunk_bytes: int = MediaLimits.CHUNK_BYTES,
        mb_per_minute: float = MediaLimits.ASSUMED_MB_PER_MINUTE,
    ):
        if chunk_bytes <= 0 or limit_bytes <= 0:
            raise ValidationError("chunk and limit sizes must be positive")
        if chunk_bytes > limit_bytes:
            raise ValidationError("chunk size cannot exceed the service limit")
        if mb_per_minute <= 0:
            raise ValidationError("mb_per_minute must be positive")
        self.limit_bytes = limit_bytes
        self.chunk_bytes = chunk_bytes
        self.mb_per_minute = mb_per_minute

    def needs_chunking(self, size: int) -> bool:
        self._check_size(size)
        return size > self.limit_bytes

    def estimated_minutes(self, size: int) -> float:
        return (size / _MB) / self.mb_per_minute

    def plan(self, size: int) -> ChunkPlan:
        """Partition ``[0, size)`` into contiguous, non-overlapping ranges.

        Files within the limit get a single chunk covering the whole file.
        """
        chunked = self.needs_chunking(size)
        total_minutes = self.estimated_minutes(size)

        if not chunked:
            chunks = [
                TranscriptChunk(
                    index=0,
                    start_byte=0,
                    end_byte=size,
                    start_seconds=0.0,
                    duration_seconds=total_minutes * 60,
                )
            ]
        else:
            count = math.ceil(size / self.chunk_bytes)
            seconds_per_chunk = total_minutes * 60 / count
            chunks = [
                TranscriptChunk(
                    index=i,
                    start_byte=i * self.chunk_bytes,
                    end_byte=min((i + 1) * self.chunk_bytes, size),
                    start_seconds=i * seconds_per_chunk,
                    duration_seconds=seconds_per_chunk,
                )
                for i in range(count)
            ]

        return ChunkPlan(
            total_bytes=size,
            needs_chunking=chunked,
            chunks=chunks,
            estimated_minutes=total_minutes,
        )

    def estimate_processing_time(self, size: int, chunked: bool) -> str:
        """User-facing range such as ``"1-3 minutes"``.

        Chunked: about 30 seconds per chunk, run back to back.
        Single file: about one minute per 10 MB.
        """
        self._check_size(size)
        if chunked:
            count = math.ceil(size / self.chunk_bytes)
            minutes = math.ceil(count * 0.5)
            return f"{minutes}-{minutes + 2} minutes"
        minutes = math.ceil((size / _MB) / 10)
        return f"{minutes}-{minutes + 1} minutes"

    @staticmethod
    def merge_transcripts(parts: Iterable[Tuple[int, str]]) -> str:
        """Join chunk texts in index order with single spaces.

        Arrival order does not matter; only the chunk index does.
        """
        ordered: List[Tuple[int, str]] = sorted(parts, key=lambda p: p[0])
        joined = " ".join((text or "").strip() for _, text in ordered)
        return _WHITESPACE.sub(" ", joined).strip()

    @staticmethod
    def _check_size(size: int) -> None:
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise ValidationError("size must be a non-negative integer", context={"size": size})
