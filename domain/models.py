"""
Pure domain models for VeriAct.

These models contain NO AWS dependencies. They represent core business concepts
that flow through ports and services. Models exchanged with the web client
serialise with camelCase aliases (``model_dump(by_alias=True)``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from shared_utils.constants import PlanLimits


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base for models that cross the HTTP boundary."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class UserContext(BaseModel):
    """Authenticated caller, as asserted by the identity gateway."""

    user_id: str
    email: Optional[str] = None


# ---------------------------------------------------------------------------
# Action items
# ---------------------------------------------------------------------------


class ActionItemStatus(str, Enum):
    """Action item status. Toggling cycles through the values in order."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"

    def next(self) -> "ActionItemStatus":
        cycle = list(ActionItemStatus)
        return cycle[(cycle.index(self) + 1) % len(cycle)]


class ActionItem(CamelModel):
    """A single extracted or imported task."""

    id: str
    task: str
    assignee: str = "Unassigned"
    deadline: Optional[str] = None  # ISO date as given by the LLM, or null
    status: ActionItemStatus = ActionItemStatus.PENDING
    created_at: str
    meeting_title: str = "Untitled Meeting"
    version: int = 1


# ---------------------------------------------------------------------------
# Media & transcription
# ---------------------------------------------------------------------------


class StoredObject(BaseModel):
    """Listing entry returned by the temporary object store."""

    path: str
    size: int = 0
    last_modified: datetime


class TranscriptChunk(BaseModel):
    """Contiguous byte range ``[start_byte, end_byte)`` of a media asset.

    ``start_seconds`` / ``duration_seconds`` come from a bytes-per-minute
    assumption and are only fit for display.
    """

    index: int
    start_byte: int
    end_byte: int
    start_seconds: float = 0.0
    duration_seconds: float = 0.0

    @property
    def size(self) -> int:
        return self.end_byte - self.start_byte


class ChunkPlan(BaseModel):
    total_bytes: int
    needs_chunking: bool
    chunks: List[TranscriptChunk]
    estimated_minutes: float


class TranscriptResult(BaseModel):
    text: str
    chunk_count: int
    was_chunked: bool
    byte_size: int
    filename: str


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------


class AccessLevel(str, Enum):
    """Per-member permission within a room. OWNER is implicit for the creator."""

    VIEWER = "viewer"
    EDITOR = "editor"
    OWNER = "owner"

    @property
    def can_edit(self) -> bool:
        return self in (AccessLevel.EDITOR, AccessLevel.OWNER)


class Room(CamelModel):
    """Shareable, time-boxed collection of action items."""

    code: str
    title: str
    creator_id: str
    creator_email: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    item_count: Optional[int] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at


class RoomMember(CamelModel):
    room_code: str
    email: str
    access_level: AccessLevel = AccessLevel.VIEWER
    invited_by: Optional[str] = None
    user_id: Optional[str] = None
    joined_at: datetime = Field(default_factory=utc_now)


class JoinResult(CamelModel):
    has_access: bool
    access_level: Optional[AccessLevel] = None  # None when has_access is False
    is_owner: bool = False
    was_invited: bool = False
    room: Room


# ---------------------------------------------------------------------------
# Organizations & subscriptions
# ---------------------------------------------------------------------------


class OrganizationRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


class Organization(CamelModel):
    id: str
    name: str
    domain: Optional[str] = None  # e-mail domain restriction
    token: str
    owner_id: str
    created_at: datetime = Field(default_factory=utc_now)


class OrganizationMember(CamelModel):
    organization_id: str
    user_id: str
    email: Optional[str] = None
    role: OrganizationRole = OrganizationRole.MEMBER
    joined_at: datetime = Field(default_factory=utc_now)


class OrganizationSummary(CamelModel):
    """One entry of a user's organization list."""

    id: str
    name: str
    token: str
    role: OrganizationRole
    member_count: int = 0


class Plan(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"
    UNPAID = "unpaid"

    @classmethod
    def from_provider(cls, value: str) -> "SubscriptionStatus":
        """Map a payment-provider status string; unknown values are incomplete."""
        normalized = (value or "").lower()
        if normalized == "canceled":
            return cls.CANCELLED
        try:
            return cls(normalized)
        except ValueError:
            return cls.INCOMPLETE


class Subscription(CamelModel):
    """Subscription row. Scope is a user XOR an organization."""

    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    plan: Plan = Plan.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _exactly_one_scope(self) -> "Subscription":
        if bool(self.user_id) == bool(self.organization_id):
            raise ValueError("subscription must belong to exactly one of user_id / organization_id")
        return self

    @property
    def scope_key(self) -> str:
        return scope_key(user_id=self.user_id, organization_id=self.organization_id)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


def scope_key(user_id: Optional[str] = None, organization_id: Optional[str] = None) -> str:
    """Subscription scope key: ``org:{id}`` wins over ``user:{id}``."""
    if organization_id:
        return f"org:{organization_id}"
    if user_id:
        return f"user:{user_id}"
    raise ValueError("scope requires a user_id or organization_id")


class FeatureFlags(CamelModel):
    can_create_rooms: bool = False
    can_invite_members: bool = False
    can_use_meeting_bot: bool = False
    can_receive_reminders: bool = False
    extraction_limit: Optional[int] = None  # None = unlimited

    @classmethod
    def for_plan(cls, plan: Plan) -> "FeatureFlags":
        return PLAN_FEATURES[plan].model_copy()


PLAN_FEATURES = {
    Plan.FREE: FeatureFlags(extraction_limit=PlanLimits.FREE_MONTHLY_EXTRACTIONS),
    Plan.PRO: FeatureFlags(
        can_create_rooms=True,
        can_invite_members=True,
        can_receive_reminders=True,
    ),
    Plan.ENTERPRISE: FeatureFlags(
        can_create_rooms=True,
        can_invite_members=True,
        can_use_meeting_bot=True,
        can_receive_reminders=True,
    ),
}


class SubscriptionInfo(CamelModel):
    """Resolved plan and features for one user at one point in time."""

    plan: Plan
    status: SubscriptionStatus
    is_active: bool
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None
    features: FeatureFlags


# ---------------------------------------------------------------------------
# Meeting bot
# ---------------------------------------------------------------------------


class BotStatus(str, Enum):
    PENDING = "pending"
    JOINING = "joining"
    WAITING = "waiting"
    JOINED = "joined"
    RECORDING = "recording"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BotStatus.COMPLETED, BotStatus.FAILED)


class MeetingPlatform(str, Enum):
    ZOOM = "zoom"
    GOOGLE_MEET = "google_meet"
    TEAMS = "teams"


class MeetingBotRequest(CamelModel):
    """Automated recording job, keyed by the provider's bot id."""

    bot_id: str
    organization_id: str
    requested_by: str
    requester_email: Optional[str] = None
    meeting_url: str
    platform: MeetingPlatform = MeetingPlatform.ZOOM
    scheduled_time: Optional[datetime] = None
    status: BotStatus = BotStatus.PENDING
    error_message: Optional[str] = None
    room_code: Optional[str] = None
    processing_claimed: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class ReminderReport(CamelModel):
    emails_sent: int = 0
    errors: int = 0
    rooms_processed: int = 0
