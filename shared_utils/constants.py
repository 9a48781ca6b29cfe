"""
Constants management.
Centralized configuration for all magic values, model IDs, limits and defaults.
"""

from enum import Enum
from typing import Final, FrozenSet


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"


# Model IDs
class ModelIDs:
    """Centralized model identifiers."""
    OPENAI_CHAT_MODEL: Final[str] = "gpt-4o-mini"
    OPENAI_TRANSCRIPTION_MODEL: Final[str] = "whisper-1"


# Default values
class Defaults:
    """Defaults for all configurations."""
    LOG_LEVEL: Final[str] = "INFO"
    AWS_REGION: Final[str] = "eu-west-2"
    TRANSCRIPTION_LANGUAGE: Final[str] = "en"
    EXTRACTION_TEMPERATURE: Final[float] = 0.3
    EXTRACTION_MAX_TOKENS: Final[int] = 2000
    SIGNED_URL_TTL_SECONDS: Final[int] = 3600
    STORAGE_RETENTION_HOURS: Final[int] = 24


class MediaLimits:
    """Size limits and encoding targets for uploaded media."""
    TRANSCRIPTION_MAX_BYTES: Final[int] = 25 * 1024 * 1024  # service limit
    CHUNK_BYTES: Final[int] = 24 * 1024 * 1024
    ASSUMED_MB_PER_MINUTE: Final[float] = 1.0  # 32 kbps mp3
    MAX_UPLOAD_BYTES: Final[int] = 500 * 1024 * 1024
    COMPRESSION_THRESHOLD_BYTES: Final[int] = 10 * 1024 * 1024
    TARGET_SAMPLE_RATE: Final[int] = 16000
    TARGET_CHANNELS: Final[int] = 1
    TARGET_BITRATE: Final[str] = "32k"
    TARGET_CODEC: Final[str] = "libmp3lame"
    TARGET_EXTENSION: Final[str] = "mp3"

    VIDEO_EXTENSIONS: Final[FrozenSet[str]] = frozenset(
        {"mp4", "mov", "avi", "mkv", "webm", "flv", "wmv"}
    )
    ALLOWED_MIME_TYPES: Final[FrozenSet[str]] = frozenset(
        {
            "audio/mpeg",
            "audio/mp3",
            "audio/wav",
            "audio/m4a",
            "audio/aac",
            "audio/ogg",
            "audio/flac",
            "video/mp4",
            "video/quicktime",
            "video/x-msvideo",
            "video/x-matroska",
            "video/webm",
        }
    )


class TranscriptLimits:
    """Constraints on transcript text and transcript files."""
    MIN_TRANSCRIPT_CHARS: Final[int] = 20
    ALLOWED_EXTENSIONS: Final[tuple] = ("txt", "docx")


class RoomConfig:
    """Room lifecycle and code format."""
    TTL_DAYS: Final[int] = 90
    CODE_LENGTH: Final[int] = 8
    CODE_ALPHABET: Final[str] = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    CODE_ATTEMPTS: Final[int] = 5


class OrganizationConfig:
    """Organization join token format."""
    TOKEN_LENGTH: Final[int] = 12
    TOKEN_ALPHABET: Final[str] = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    TOKEN_ATTEMPTS: Final[int] = 5


class PlanLimits:
    """Quotas attached to subscription plans."""
    FREE_MONTHLY_EXTRACTIONS: Final[int] = 5


class MeetingBotConfig:
    """Recall.ai bot defaults."""
    BOT_NAME: Final[str] = "VeriAct"
    WAITING_ROOM_TIMEOUT_SECONDS: Final[int] = 600
    NOONE_JOINED_TIMEOUT_SECONDS: Final[int] = 300
    RECORDING_MODE: Final[str] = "speaker_view"
    TRANSCRIPTION_PROVIDER: Final[str] = "assembly_ai"
    LIST_LIMIT: Final[int] = 20


# Logging scopes
class LogScope:
    """Standardized logging scope names."""
    CONFIG = "config_loader"
    API = "api"
    PARSER = "transcript_parser"
    ERROR_HANDLER = "error_handler"
    PROVIDER = "provider"
    ADAPTER = "adapter"
    WORKER = "worker"
    MEDIA = "media"
    TRANSCRIPTION = "transcription"
    EXTRACTION = "extraction"
    ROOMS = "rooms"
    ACCESS = "access_policy"
    ORGANIZATIONS = "organizations"
    BILLING = "billing"
    MEETING_BOT = "meeting_bot"
    REMINDERS = "reminders"
    EXPORT = "export"


# API endpoints and paths
class APIEndpoints:
    """API route definitions."""
    HEALTH = "/health"
    EXTRACT_ACTIONS = "/extract-actions"
    PARSE_TRANSCRIPT = "/transcripts/parse"
    TRANSCRIBE_UPLOAD = "/transcribe/upload"
    STORAGE_UPLOAD = "/storage/upload"
    STORAGE_UPLOAD_URL = "/storage/upload-url"
    STORAGE_CLEANUP = "/storage/cleanup"
    ROOMS_CREATE = "/rooms/create"
    ROOMS_MINE = "/rooms/my-rooms"
    ROOMS_UPDATE_ITEM = "/rooms/update-item"
    ROOM = "/rooms/{room_code}"
    ROOM_JOIN = "/rooms/{room_code}/join"
    ROOM_CHECK_ACCESS = "/rooms/{room_code}/check-access"
    ROOM_INVITE = "/rooms/{room_code}/invite"
    ROOM_MEMBERS = "/rooms/{room_code}/members"
    ROOM_TOGGLE_ITEM = "/rooms/{room_code}/items/{item_id}/toggle"
    ROOM_EXPORT = "/rooms/{room_code}/export"
    ORGANIZATIONS_CREATE = "/organizations/create"
    ORGANIZATIONS_JOIN = "/organizations/join"
    ORGANIZATIONS_LIST = "/organizations/list"
    SUBSCRIPTION_STATUS = "/subscription/status"
    STRIPE_CHECKOUT = "/stripe/create-checkout"
    MEETING_BOT_REQUEST = "/meeting-bot/request"
    MEETING_BOT_REQUESTS = "/meeting-bot/requests"
    WEBHOOK_RECALL = "/webhooks/recall"
    WEBHOOK_STRIPE = "/webhooks/stripe"
    REMINDERS_SEND = "/reminders/send"


# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes for consistency."""
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_INPUT = "INVALID_INPUT"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    EXPIRED = "EXPIRED"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    MEDIA_PROCESSING_FAILED = "MEDIA_PROCESSING_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"
    WORKER_ERROR = "WORKER_ERROR"
