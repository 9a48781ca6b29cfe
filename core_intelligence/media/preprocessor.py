"""
Server-side audio extraction and compression with ffmpeg.

The ffmpeg handle is constructed and initialized explicitly (``initialize()``
then ``is_available()``) and passed to whoever needs it. Every output uses
one target encoding: MP3, mono, 16 kHz, 32 kbps.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from shared_utils.constants import LogScope, MediaLimits
from shared_utils.error_handler import MediaProcessingError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.MEDIA)

ProgressCallback = Callable[[float], None]

TARGET_ARGS: List[str] = [
    "-acodec", MediaLimits.TARGET_CODEC,
    "-ar", str(MediaLimits.TARGET_SAMPLE_RATE),
    "-ac", str(MediaLimits.TARGET_CHANNELS),
    "-b:a", MediaLimits.TARGET_BITRATE,
]


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


class MediaPreprocessor:
    """ffmpeg wrapper producing speech-to-text friendly audio.

    Args:
        ffmpeg_path: Explicit binary; resolved from PATH when omitted.
        ffprobe_path: Explicit ffprobe binary; defaults to the one next to ffmpeg.
    """

    def __init__(self, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None):
        self._ffmpeg_path = ffmpeg_path
        self._ffprobe_path = ffprobe_path
        self._ffmpeg: Optional[str] = None
        self._ffprobe: Optional[str] = None

    def initialize(self) -> None:
        """Resolve and probe the ffmpeg binary.

        Raises:
            MediaProcessingError: ffmpeg is missing or does not run.
        """
        command = self._ffmpeg_path or shutil.which("ffmpeg")
        if not command:
            raise MediaProcessingError("ffmpeg not found", context={"path": self._ffmpeg_path})
        try:
            completed = subprocess.run(
                [command, "-version"],
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as exc:
            raise MediaProcessingError("ffmpeg is not usable", context={"command": command}) from exc

        self._ffmpeg = command
        sibling = str(Path(command).with_name("ffprobe")) if os.sep in command else None
        self._ffprobe = self._ffprobe_path or shutil.which(sibling or "ffprobe")
        version = completed.stdout.splitlines()[0] if completed.stdout else "unknown"
        logger.info("ffmpeg_initialized", command=command, version=version, ffprobe=bool(self._ffprobe))

    def is_available(self) -> bool:
        return self._ffmpeg is not None

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    @staticmethod
    def is_video(filename: str) -> bool:
        return _extension(filename) in MediaLimits.VIDEO_EXTENSIONS

    @staticmethod
    def needs_compression(filename: str, size: int) -> bool:
        """Anything over 10 MB, and anything not already MP3."""
        return size > MediaLimits.COMPRESSION_THRESHOLD_BYTES or not filename.lower().endswith(".mp3")

    # ------------------------------------------------------------------
    # Transcoding
    # ------------------------------------------------------------------

    def extract_audio(
        self, input_path: str, output_path: str, on_progress: Optional[ProgressCallback] = None
    ) -> str:
        """Drop the video stream and encode the audio track to the target format."""
        return self._transcode(
            input_path, output_path, ["-vn", *TARGET_ARGS],
            "Failed to extract audio from video", on_progress,
        )

    def compress_audio(
        self, input_path: str, output_path: str, on_progress: Optional[ProgressCallback] = None
    ) -> str:
        """Re-encode audio to the target format."""
        return self._transcode(
            input_path, output_path, TARGET_ARGS,
            "Failed to compress audio", on_progress,
        )

    def prepare(
        self,
        input_path: str,
        filename: str,
        size: int,
        work_dir: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Tuple[str, str]:
        """Extract or compress as needed.

        Returns:
            ``(path, filename)`` of the file to transcribe; the input itself
            when no processing is needed.
        """
        stem = Path(filename).stem or "audio"
        if self.is_video(filename):
            output = os.path.join(work_dir, f"{stem}-extracted.{MediaLimits.TARGET_EXTENSION}")
            return self.extract_audio(input_path, output, on_progress), os.path.basename(output)
        if self.needs_compression(filename, size):
            output = os.path.join(work_dir, f"{stem}-compressed.{MediaLimits.TARGET_EXTENSION}")
            return self.compress_audio(input_path, output, on_progress), os.path.basename(output)
        return input_path, filename

    def probe_duration(self, path: str) -> Optional[float]:
        """Duration in seconds via ffprobe, or None when it cannot be read."""
        if not self._ffprobe:
            return None
        try:
            completed = subprocess.run(
                [
                    self._ffprobe, "-v", "error",
                    "-show_entries", "format=duration",
                    "-of", "default=noprint_wrappers=1:nokey=1",
                    path,
                ],
                capture_output=True,
                text=True,
                check=True,
            )
            return float(completed.stdout.strip())
        except (OSError, subprocess.CalledProcessError, ValueError):
            logger.warning("ffprobe_duration_unavailable", path=os.path.basename(path))
            return None

    def _transcode(
        self,
        input_path: str,
        output_path: str,
        codec_args: List[str],
        failure_message: str,
        on_progress: Optional[ProgressCallback],
    ) -> str:
        if not self.is_available():
            raise MediaProcessingError(failure_message, context={"reason": "ffmpeg not initialized"})

        duration = self.probe_duration(input_path) if on_progress else None
        args = [
            self._ffmpeg, "-hide_banner", "-loglevel", "error", "-nostats", "-y",
            "-i", input_path,
            *codec_args,
            "-progress", "pipe:1",
            output_path,
        ]

        # stderr goes to a file so a chatty ffmpeg never blocks on a full pipe
        try:
            with tempfile.TemporaryFile(mode="w+") as errors:
                with subprocess.Popen(
                    args,
                    stdout=subprocess.PIPE,
                    stderr=errors,
                    text=True,
                ) as process:
                    for line in process.stdout:
                        fraction = self._parse_progress(line, duration)
                        if fraction is not None and on_progress:
                            on_progress(fraction)
                    returncode = process.wait()
                errors.seek(0)
                stderr = errors.read()
        except OSError as exc:
            logger.error("ffmpeg_spawn_failed", error=str(exc))
            raise MediaProcessingError(failure_message) from exc

        if returncode != 0:
            logger.error(
                "ffmpeg_failed",
                returncode=returncode,
                stderr=(stderr or "").strip()[-500:],
                input=os.path.basename(input_path),
            )
            raise MediaProcessingError(failure_message, context={"returncode": returncode})

        if on_progress:
            on_progress(1.0)
        logger.info(
            "media_transcoded",
            input=os.path.basename(input_path),
            output_bytes=os.path.getsize(output_path) if os.path.exists(output_path) else None,
        )
        return output_path

    @staticmethod
    def _parse_progress(line: str, duration: Optional[float]) -> Optional[float]:
        """Fraction done from an ffmpeg ``-progress`` line, clamped to [0, 1]."""
        key, _, value = line.strip().partition("=")
        if key == "progress" and value == "end":
            return 1.0
        if key not in ("out_time_us", "out_time_ms") or not duration:
            return None
        try:
            # out_time_ms is also microseconds
            seconds = int(value) / 1_000_000
        except ValueError:
            return None
        return max(0.0, min(1.0, seconds / duration))
