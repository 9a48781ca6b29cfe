"""
Tests for MediaPreprocessor. subprocess and PATH lookup are mocked; no
ffmpeg binary is needed.
"""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from core_intelligence.media.preprocessor import MediaPreprocessor
from shared_utils.error_handler import MediaProcessingError


MB = 1024 * 1024


def _ready(ffprobe: str = None) -> MediaPreprocessor:
    pre = MediaPreprocessor()
    pre._ffmpeg = "/usr/bin/ffmpeg"
    pre._ffprobe = ffprobe
    return pre


def _popen(lines, returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.__enter__.return_value = process
    process.stdout = iter(lines)
    process.wait.return_value = returncode
    return process


class TestInitialize:
    @patch("core_intelligence.media.preprocessor.shutil.which", return_value=None)
    def test_missing_binary(self, _which) -> None:
        with pytest.raises(MediaProcessingError, match="ffmpeg not found"):
            MediaPreprocessor().initialize()

    @patch("core_intelligence.media.preprocessor.subprocess.run")
    @patch("core_intelligence.media.preprocessor.shutil.which", side_effect=lambda name: f"/opt/{name}")
    def test_success(self, _which, mock_run) -> None:
        mock_run.return_value = MagicMock(stdout="ffmpeg version 6.1\n")
        pre = MediaPreprocessor()
        pre.initialize()
        assert pre.is_available()
        mock_run.assert_called_once()
        assert mock_run.call_args[0][0] == ["/opt/ffmpeg", "-version"]

    @patch(
        "core_intelligence.media.preprocessor.subprocess.run",
        side_effect=subprocess.CalledProcessError(1, "ffmpeg"),
    )
    def test_broken_binary(self, _run) -> None:
        pre = MediaPreprocessor(ffmpeg_path="/bad/ffmpeg")
        with pytest.raises(MediaProcessingError, match="not usable"):
            pre.initialize()
        assert not pre.is_available()


class TestPredicates:
    @pytest.mark.parametrize("name, expected", [("call.MP4", True), ("call.mkv", True), ("call.mp3", False)])
    def test_is_video(self, name: str, expected: bool) -> None:
        assert MediaPreprocessor.is_video(name) is expected

    def test_needs_compression(self) -> None:
        assert MediaPreprocessor.needs_compression("a.wav", 1 * MB)
        assert MediaPreprocessor.needs_compression("a.mp3", 11 * MB)
        assert not MediaPreprocessor.needs_compression("a.mp3", 5 * MB)


class TestPrepare:
    def test_small_mp3_untouched(self, tmp_path) -> None:
        source = str(tmp_path / "source.mp3")
        assert _ready().prepare(source, "call.mp3", 1 * MB, str(tmp_path)) == (source, "call.mp3")

    @patch("core_intelligence.media.preprocessor.subprocess.Popen")
    def test_video_extracts_audio(self, mock_popen, tmp_path) -> None:
        mock_popen.return_value = _popen(["progress=end\n"])
        path, name = _ready().prepare(str(tmp_path / "source.mp4"), "standup.mp4", 50 * MB, str(tmp_path))

        assert name == "standup-extracted.mp3"
        assert path.endswith("standup-extracted.mp3")
        args = mock_popen.call_args[0][0]
        assert "-vn" in args
        assert args[args.index("-ar") + 1] == "16000"
        assert args[args.index("-ac") + 1] == "1"
        assert args[args.index("-b:a") + 1] == "32k"

    @patch("core_intelligence.media.preprocessor.subprocess.Popen")
    def test_wav_compressed(self, mock_popen, tmp_path) -> None:
        mock_popen.return_value = _popen([])
        _, name = _ready().prepare(str(tmp_path / "source.wav"), "call.wav", 2 * MB, str(tmp_path))
        assert name == "call-compressed.mp3"
        assert "-vn" not in mock_popen.call_args[0][0]

    @patch("core_intelligence.media.preprocessor.subprocess.Popen")
    def test_ffmpeg_failure(self, mock_popen, tmp_path) -> None:
        mock_popen.return_value = _popen([], returncode=1)
        with pytest.raises(MediaProcessingError, match="Failed to compress audio"):
            _ready().prepare(str(tmp_path / "source.wav"), "call.wav", 2 * MB, str(tmp_path))

    def test_not_initialized(self, tmp_path) -> None:
        with pytest.raises(MediaProcessingError, match="Failed to extract audio"):
            MediaPreprocessor().extract_audio("in.mp4", str(tmp_path / "out.mp3"))


class TestProgress:
    @patch("core_intelligence.media.preprocessor.subprocess.Popen")
    @patch("core_intelligence.media.preprocessor.subprocess.run")
    def test_reports_fractions(self, mock_run, mock_popen, tmp_path) -> None:
        mock_run.return_value = MagicMock(stdout="100.0\n")
        mock_popen.return_value = _popen(["out_time_us=50000000\n", "progress=end\n"])
        seen = []

        _ready(ffprobe="/usr/bin/ffprobe").compress_audio("in.wav", str(tmp_path / "out.mp3"), seen.append)

        assert seen[0] == pytest.approx(0.5)
        assert seen[-1] == 1.0

    @patch("core_intelligence.media.preprocessor.subprocess.Popen")
    @patch("core_intelligence.media.preprocessor.subprocess.run")
    def test_callback_error_reaps_process(self, mock_run, mock_popen, tmp_path) -> None:
        mock_run.return_value = MagicMock(stdout="100.0\n")
        process = _popen(["out_time_us=50000000\n"])
        mock_popen.return_value = process

        def explode(_fraction):
            raise RuntimeError("listener gone")

        with pytest.raises(RuntimeError, match="listener gone"):
            _ready(ffprobe="/usr/bin/ffprobe").compress_audio("in.wav", str(tmp_path / "out.mp3"), explode)

        process.__exit__.assert_called_once()

    @pytest.mark.parametrize(
        "line, duration, expected",
        [
            ("out_time_us=200000000", 100.0, 1.0),
            ("out_time_ms=-5", 100.0, 0.0),
            ("out_time_us=N/A", 100.0, None),
            ("out_time_us=1000000", None, None),
            ("frame=10", 100.0, None),
        ],
    )
    def test_parse_progress(self, line, duration, expected) -> None:
        assert MediaPreprocessor._parse_progress(line, duration) == expected
