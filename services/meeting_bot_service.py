"""
MeetingBotService - recording bots and their webhook-driven lifecycle.

State machine per request:
    pending → joining → waiting → joined → recording → processing
            → completed | failed

Transitions come only from provider webhooks, translated through
``RECALL_STATUS_MAP``. Terminal requests never move again.

Turning a finished recording into a room is a one-shot side effect keyed by
the bot id: an atomic claim on the request row is taken first, and a
redelivered webhook that loses the claim does nothing.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from core_intelligence.parser.transcript_reader import flatten_transcript
from domain.models import (
    AccessLevel,
    BotStatus,
    MeetingBotRequest,
    MeetingPlatform,
    RoomMember,
    UserContext,
    utc_now,
)
from ports.meeting_bot import MeetingBotPort
from ports.metadata_store import BotRequestStorePort, OrganizationStorePort, RoomStorePort
from services.access_policy import AccessPolicy
from services.extraction_service import ExtractionService
from services.room_service import RoomService
from shared_utils.constants import LogScope, MeetingBotConfig
from shared_utils.error_handler import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ValidationError,
)
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.MEETING_BOT)

RECALL_STATUS_MAP: Dict[str, BotStatus] = {
    "ready": BotStatus.PENDING,
    "joining_call": BotStatus.JOINING,
    "joining": BotStatus.JOINING,
    "in_waiting_room": BotStatus.WAITING,
    "in_call_not_recording": BotStatus.JOINED,
    "in_call_recording": BotStatus.RECORDING,
    "in_call": BotStatus.RECORDING,
    "call_ended": BotStatus.PROCESSING,
    "recording_done": BotStatus.PROCESSING,
    "done": BotStatus.COMPLETED,
    "fatal": BotStatus.FAILED,
}

TRANSCRIPT_EVENTS = frozenset({"recording.ready", "bot.done"})


def map_recall_status(status: Optional[str]) -> BotStatus:
    return RECALL_STATUS_MAP.get((status or "").lower(), BotStatus.PENDING)


def detect_platform(url: str) -> MeetingPlatform:
    if "meet.google.com" in url:
        return MeetingPlatform.GOOGLE_MEET
    if "teams.microsoft.com" in url:
        return MeetingPlatform.TEAMS
    return MeetingPlatform.ZOOM


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> None:
    """Check the hex HMAC-SHA256 of ``body``.

    Raises:
        AuthenticationError: Missing secret, missing or mismatched signature.
    """
    if not secret or not signature:
        raise AuthenticationError("Invalid signature")
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise AuthenticationError("Invalid signature")


class MeetingBotService:
    """Bot dispatch, status tracking and transcript-to-room processing."""

    def __init__(
        self,
        *,
        bot_client: MeetingBotPort,
        bot_store: BotRequestStorePort,
        organizations: OrganizationStorePort,
        rooms: RoomStorePort,
        access_policy: AccessPolicy,
        extraction: ExtractionService,
        room_service: RoomService,
        webhook_secret: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = bot_client
        self._bots = bot_store
        self._orgs = organizations
        self._rooms = rooms
        self._policy = access_policy
        self._extraction = extraction
        self._room_service = room_service
        self._secret = webhook_secret
        self._clock = clock

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request_bot(
        self,
        user: UserContext,
        meeting_url: str,
        platform: Optional[Union[MeetingPlatform, str]] = None,
        scheduled_time: Optional[datetime] = None,
    ) -> MeetingBotRequest:
        """Send a recording bot into a meeting.

        Raises:
            AuthorizationError: Plan lacks the meeting bot or the user has
                no organization.
            ValidationError: Missing URL or unknown platform.
            ExternalServiceError: Provider rejected the bot.
        """
        self._policy.require_feature(
            user.user_id,
            "can_use_meeting_bot",
            "Meeting bot feature requires Enterprise plan",
        )
        if not isinstance(meeting_url, str) or not meeting_url.strip():
            raise ValidationError("Meeting URL required")
        meeting_url = meeting_url.strip()

        memberships = self._orgs.list_user_memberships(user.user_id)
        if not memberships:
            raise AuthorizationError("You must be part of an organization to use meeting bot")
        org_id = memberships[0].organization_id

        try:
            resolved_platform = MeetingPlatform(platform) if platform else detect_platform(meeting_url)
        except ValueError:
            raise ValidationError("Invalid meeting platform", context={"platform": platform})

        bot_id = self._client.create_bot(
            meeting_url,
            join_at=scheduled_time,
            metadata={"organizationId": org_id, "requestedBy": user.user_id},
        )
        now = self._clock()
        request = MeetingBotRequest(
            bot_id=bot_id,
            organization_id=org_id,
            requested_by=user.user_id,
            requester_email=user.email,
            meeting_url=meeting_url,
            platform=resolved_platform,
            scheduled_time=scheduled_time,
            status=BotStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._bots.put_bot_request(request)
        logger.info(
            "meeting_bot_requested",
            bot_id=bot_id,
            organization_id=org_id,
            platform=resolved_platform.value,
        )
        return request

    def list_requests(self, user: UserContext) -> List[MeetingBotRequest]:
        memberships = self._orgs.list_user_memberships(user.user_id)
        if not memberships:
            return []
        return self._bots.list_bot_requests(memberships[0].organization_id, MeetingBotConfig.LIST_LIMIT)

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    def handle_webhook(self, body: bytes, signature: Optional[str]) -> Optional[str]:
        """Verify and dispatch one provider webhook; returns the event name."""
        verify_signature(body, signature, self._secret)
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise ValidationError("Invalid webhook payload") from exc
        if not isinstance(payload, dict):
            raise ValidationError("Invalid webhook payload")

        event = payload.get("event")
        data = payload.get("data") or {}
        bot_id = data.get("bot_id") or (data.get("bot") or {}).get("id")
        logger.info("recall_webhook_received", webhook_event=event, bot_id=bot_id)

        if not bot_id:
            logger.warning("recall_webhook_missing_bot_id", webhook_event=event)
            return event

        if event == "bot.status_change":
            self.apply_status(bot_id, data.get("status"))
        elif event in TRANSCRIPT_EVENTS:
            self.process_recording(bot_id, data.get("transcript"))
        else:
            logger.info("recall_webhook_ignored", webhook_event=event)
        return event

    def apply_status(self, bot_id: str, raw_status: Any) -> Optional[BotStatus]:
        code, message = raw_status, None
        if isinstance(raw_status, dict):
            code, message = raw_status.get("code"), raw_status.get("message")

        status = map_recall_status(code)
        if status == BotStatus.COMPLETED:
            # Completion is owned by process_recording so the claim stays open
            request = self._bots.get_bot_request(bot_id)
            if request is not None and request.room_code is None:
                status = BotStatus.PROCESSING
        error = (message or "Bot failed") if status == BotStatus.FAILED else None
        if not self._bots.update_bot_status(bot_id, status, error_message=error):
            logger.info("bot_status_unchanged", bot_id=bot_id, status=status.value)
            return None
        logger.info("bot_status_changed", bot_id=bot_id, provider_status=code, status=status.value)
        return status

    def process_recording(self, bot_id: str, transcript: Any = None) -> Optional[str]:
        """Extract items from the meeting and share them in a new room.

        Returns:
            The new room code, or None when this delivery lost the claim or
            processing failed (the request is then marked failed).
        """
        request = self._bots.get_bot_request(bot_id)
        if request is None:
            logger.warning("bot_request_not_found", bot_id=bot_id)
            return None

        if not self._bots.claim_bot_processing(bot_id):
            logger.info("bot_processing_already_claimed", bot_id=bot_id)
            return None

        try:
            text = self._transcript_text(bot_id, transcript)
            title = f"Meeting - {self._clock().strftime('%Y-%m-%d')}"
            items = self._extraction.extract(text, meeting_title=title)
            if not items:
                self._bots.update_bot_status(bot_id, BotStatus.COMPLETED)
                logger.info("bot_recording_no_action_items", bot_id=bot_id)
                return None

            owner = UserContext(user_id=request.requested_by, email=request.requester_email)
            room = self._room_service.create_room(owner, title, items, agreed_to_privacy=True)
            self._add_organization_members(request, room.code, room.expires_at)
        except AppException as exc:
            self._bots.update_bot_status(bot_id, BotStatus.FAILED, error_message=exc.message)
            logger.error("bot_recording_processing_failed", bot_id=bot_id, error_code=exc.error_code)
            return None
        except Exception as exc:
            self._bots.update_bot_status(bot_id, BotStatus.FAILED, error_message=str(exc))
            logger.error("bot_recording_processing_failed", bot_id=bot_id, error_type=type(exc).__name__)
            return None

        self._bots.update_bot_status(bot_id, BotStatus.COMPLETED, room_code=room.code)
        logger.info("bot_recording_processed", bot_id=bot_id, room_code=room.code, item_count=len(items))
        return room.code

    def _transcript_text(self, bot_id: str, transcript: Any) -> str:
        if isinstance(transcript, str) and transcript.strip():
            return transcript
        if isinstance(transcript, list) and transcript:
            return flatten_transcript(transcript)
        return self._client.get_transcript(bot_id)

    def _add_organization_members(self, request: MeetingBotRequest, code: str, expires_at: datetime) -> None:
        for member in self._orgs.list_organization_members(request.organization_id):
            if not member.email or member.user_id == request.requested_by:
                continue
            self._rooms.add_member(
                RoomMember(
                    room_code=code,
                    email=member.email.lower(),
                    access_level=AccessLevel.EDITOR,
                    invited_by=request.requested_by,
                    user_id=member.user_id,
                    joined_at=self._clock(),
                ),
                expires_at,
            )
