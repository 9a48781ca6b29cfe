"""
Unit tests for MeetingBotService: dispatch, webhook status mapping and the
one-shot transcript-to-room processing.
"""

import hashlib
import hmac
import json
from unittest.mock import MagicMock

import pytest

from conftest import grant_enterprise, grant_plan
from domain.models import AccessLevel, BotStatus, MeetingBotRequest, MeetingPlatform
from services.extraction_service import ExtractionService
from services.meeting_bot_service import (
    MeetingBotService,
    detect_platform,
    map_recall_status,
    verify_signature,
)
from shared_utils.error_handler import AuthenticationError, AuthorizationError, ValidationError


SECRET = "whsec_recall"

TRANSCRIPT = "Bob: I'll send the revised budget to finance by Friday."


def _sign(body: bytes) -> str:
    return hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture()
def bot_client() -> MagicMock:
    client = MagicMock()
    client.create_bot.return_value = "bot-1"
    client.get_transcript.return_value = TRANSCRIPT
    return client


@pytest.fixture()
def service(bot_client, store, policy, room_service, mock_llm, clock) -> MeetingBotService:
    return MeetingBotService(
        bot_client=bot_client,
        bot_store=store,
        organizations=store,
        rooms=store,
        access_policy=policy,
        extraction=ExtractionService(llm_provider=mock_llm, clock=clock),
        room_service=room_service,
        webhook_secret=SECRET,
        clock=clock,
    )


@pytest.fixture()
def enterprise(store, owner, guest):
    grant_enterprise(store, "org-1", owner, guest)


@pytest.fixture()
def pending(store, owner, enterprise) -> MeetingBotRequest:
    request = MeetingBotRequest(
        bot_id="bot-1",
        organization_id="org-1",
        requested_by=owner.user_id,
        requester_email=owner.email,
        meeting_url="https://zoom.us/j/123",
    )
    store.put_bot_request(request)
    return request


class TestHelpers:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("ready", BotStatus.PENDING),
            ("joining_call", BotStatus.JOINING),
            ("in_waiting_room", BotStatus.WAITING),
            ("in_call_not_recording", BotStatus.JOINED),
            ("IN_CALL_RECORDING", BotStatus.RECORDING),
            ("call_ended", BotStatus.PROCESSING),
            ("done", BotStatus.COMPLETED),
            ("fatal", BotStatus.FAILED),
            ("something_new", BotStatus.PENDING),
            (None, BotStatus.PENDING),
        ],
    )
    def test_status_map(self, raw, expected) -> None:
        assert map_recall_status(raw) == expected

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://meet.google.com/abc-defg-hij", MeetingPlatform.GOOGLE_MEET),
            ("https://teams.microsoft.com/l/meetup-join/x", MeetingPlatform.TEAMS),
            ("https://acme.zoom.us/j/1", MeetingPlatform.ZOOM),
        ],
    )
    def test_detect_platform(self, url, expected) -> None:
        assert detect_platform(url) == expected

    def test_signature(self) -> None:
        verify_signature(b"{}", _sign(b"{}").upper(), SECRET)
        with pytest.raises(AuthenticationError):
            verify_signature(b"{}", "deadbeef", SECRET)
        with pytest.raises(AuthenticationError):
            verify_signature(b"{}", _sign(b"{}"), None)
        with pytest.raises(AuthenticationError):
            verify_signature(b"{}", None, SECRET)


class TestRequestBot:
    def test_enterprise_member_requests(self, service, bot_client, owner, enterprise, clock) -> None:
        request = service.request_bot(owner, " https://meet.google.com/abc ", scheduled_time=clock())

        assert request.bot_id == "bot-1"
        assert request.organization_id == "org-1"
        assert request.platform == MeetingPlatform.GOOGLE_MEET
        assert request.status == BotStatus.PENDING
        assert bot_client.create_bot.call_args[1]["join_at"] == clock()
        assert [r.bot_id for r in service.list_requests(owner)] == ["bot-1"]

    def test_pro_plan_denied(self, service, store, owner) -> None:
        grant_plan(store, owner.user_id)
        with pytest.raises(AuthorizationError, match="Enterprise"):
            service.request_bot(owner, "https://zoom.us/j/1")

    def test_url_required(self, service, owner, enterprise) -> None:
        with pytest.raises(ValidationError, match="Meeting URL"):
            service.request_bot(owner, "  ")

    def test_invalid_platform(self, service, bot_client, owner, enterprise) -> None:
        with pytest.raises(ValidationError, match="platform"):
            service.request_bot(owner, "https://x.test/1", platform="skype")
        bot_client.create_bot.assert_not_called()

    def test_list_without_org(self, service, guest) -> None:
        assert service.list_requests(guest) == []


class TestApplyStatus:
    def test_recording(self, service, store, pending) -> None:
        assert service.apply_status("bot-1", "in_call_recording") == BotStatus.RECORDING
        assert store.get_bot_request("bot-1").status == BotStatus.RECORDING

    def test_done_without_room_stays_processing(self, service, pending) -> None:
        assert service.apply_status("bot-1", "done") == BotStatus.PROCESSING

    def test_fatal_records_message(self, service, store, pending) -> None:
        service.apply_status("bot-1", {"code": "fatal", "message": "Meeting not found"})
        request = store.get_bot_request("bot-1")
        assert request.status == BotStatus.FAILED
        assert request.error_message == "Meeting not found"

    def test_terminal_is_final(self, service, pending) -> None:
        service.apply_status("bot-1", "fatal")
        assert service.apply_status("bot-1", "in_call_recording") is None


class TestProcessRecording:
    def test_creates_room_for_org(self, service, store, pending, guest) -> None:
        code = service.process_recording("bot-1", TRANSCRIPT)

        assert code is not None
        request = store.get_bot_request("bot-1")
        assert request.status == BotStatus.COMPLETED
        assert request.room_code == code
        room = store.get_room(code)
        assert room.title == "Meeting - 2026-03-10"
        assert len(store.list_items(code)) == 2
        member = store.get_member(code, "guest@acme.com")
        assert member.access_level == AccessLevel.EDITOR

    def test_redelivery_is_noop(self, service, store, pending, mock_llm) -> None:
        first = service.process_recording("bot-1", TRANSCRIPT)
        second = service.process_recording("bot-1", TRANSCRIPT)

        assert first is not None
        assert second is None
        assert mock_llm.generate.call_count == 1
        assert len(store.list_rooms_by_creator(pending.requested_by)) == 1

    def test_fetches_transcript_when_absent(self, service, bot_client, pending) -> None:
        assert service.process_recording("bot-1") is not None
        bot_client.get_transcript.assert_called_once_with("bot-1")

    def test_no_items_completes_without_room(self, service, store, pending, mock_llm) -> None:
        mock_llm.generate.return_value = "[]"
        assert service.process_recording("bot-1", TRANSCRIPT) is None
        request = store.get_bot_request("bot-1")
        assert request.status == BotStatus.COMPLETED
        assert request.room_code is None

    def test_extraction_failure_marks_failed(self, service, store, pending, mock_llm) -> None:
        mock_llm.generate.side_effect = RuntimeError("timeout")
        assert service.process_recording("bot-1", TRANSCRIPT) is None
        request = store.get_bot_request("bot-1")
        assert request.status == BotStatus.FAILED
        assert request.error_message == "Failed to extract action items"

    def test_unknown_bot(self, service) -> None:
        assert service.process_recording("nope", TRANSCRIPT) is None


class TestWebhook:
    def test_status_change(self, service, store, pending) -> None:
        body = json.dumps({"event": "bot.status_change", "data": {"bot_id": "bot-1", "status": {"code": "joining_call"}}}).encode()
        assert service.handle_webhook(body, _sign(body)) == "bot.status_change"
        assert store.get_bot_request("bot-1").status == BotStatus.JOINING

    def test_done_event_processes(self, service, store, pending) -> None:
        body = json.dumps({
            "event": "bot.done",
            "data": {"bot": {"id": "bot-1"}, "transcript": [
                {"speaker": "Bob", "words": [{"text": "I'll"}, {"text": "send"}, {"text": "the"}, {"text": "budget"}]},
            ]},
        }).encode()
        service.handle_webhook(body, _sign(body))
        assert store.get_bot_request("bot-1").room_code is not None

    def test_bad_signature(self, service, pending) -> None:
        with pytest.raises(AuthenticationError):
            service.handle_webhook(b'{"event": "bot.done"}', "bad")

    def test_invalid_json(self, service) -> None:
        with pytest.raises(ValidationError):
            service.handle_webhook(b"not json", _sign(b"not json"))

    def test_missing_bot_id(self, service) -> None:
        body = b'{"event": "bot.status_change", "data": {}}'
        assert service.handle_webhook(body, _sign(body)) == "bot.status_change"
