"""
Plain-text extraction from uploaded transcript files (TXT, DOCX).
"""

import io
from typing import Any, Dict, List

import docx

from shared_utils.logging_utils import ContextualLogger
from shared_utils.constants import LogScope, TranscriptLimits
from shared_utils.error_handler import ValidationError
from shared_utils.validation import InputValidator


logger = ContextualLogger(scope=LogScope.PARSER)


def read_transcript_file(filename: str, content: bytes) -> str:
    """Return the text of a transcript upload.

    Args:
        filename: Original filename; the extension picks the reader.
        content: Raw file bytes.

    Raises:
        ValidationError: PDF or any other unsupported type, unreadable or empty file.
    """
    name = (filename or "").lower()
    if name.endswith(".pdf"):
        raise ValidationError("PDF support is not available. Please use TXT or DOCX files.")

    ext = InputValidator.validate_file_extension(name, TranscriptLimits.ALLOWED_EXTENSIONS)
    if ext == "txt":
        text = _read_txt(content)
    else:
        text = _read_docx(content)

    if not text.strip():
        raise ValidationError("The file appears to be empty.")

    logger.info("transcript_file_read", extension=ext, size_bytes=len(content), chars=len(text))
    return text


def _read_txt(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError("Failed to read TXT file: not valid UTF-8") from exc


def _read_docx(content: bytes) -> str:
    try:
        document = docx.Document(io.BytesIO(content))
    except Exception as exc:
        # python-docx raises several unrelated types for corrupt archives
        logger.warning("docx_unreadable", error_type=type(exc).__name__)
        raise ValidationError("Failed to extract text from DOCX file") from exc
    return "\n".join(p.text for p in document.paragraphs)


def flatten_transcript(segments: List[Dict[str, Any]]) -> str:
    """Render speaker-segmented transcript JSON as ``Speaker: words`` lines."""
    lines = []
    for segment in segments or []:
        words = " ".join(w.get("text", "") for w in segment.get("words", [])).strip()
        if not words:
            continue
        speaker = segment.get("speaker") or "Speaker"
        lines.append(f"{speaker}: {words}")
    return "\n".join(lines)
