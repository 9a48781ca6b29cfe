"""
Unit tests for RoomService on the in-memory store with a frozen clock.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from conftest import grant_plan
from domain.models import AccessLevel, ActionItemStatus, Plan, UserContext
from services.room_service import RoomService, generate_room_code
from shared_utils.constants import RoomConfig
from shared_utils.error_handler import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    GoneError,
    NotFoundError,
    ValidationError,
)


DRAFTS = [
    {"task": "Send budget", "assignee": "Bob", "deadline": "2026-03-13", "status": "pending"},
    {"task": "Book venue", "assignee": "Alice", "status": "bogus"},
]


@pytest.fixture()
def room(room_service, store, owner):
    grant_plan(store, owner.user_id)
    return room_service.create_room(owner, "  Planning  ", DRAFTS, agreed_to_privacy=True)


def _first_item_id(room_service, owner, code) -> str:
    _, items, _ = room_service.get_room(owner, code)
    return next(i.id for i in items if i.task == "Send budget")


class TestGenerateRoomCode:
    def test_format(self) -> None:
        code = generate_room_code()
        assert len(code) == RoomConfig.CODE_LENGTH
        assert all(c in RoomConfig.CODE_ALPHABET for c in code)


class TestCreateRoom:
    def test_creates_copies(self, room, store, clock) -> None:
        assert room.title == "Planning"
        assert room.item_count == 2
        assert room.expires_at == clock() + timedelta(days=RoomConfig.TTL_DAYS)
        items = store.list_items(room.code)
        assert {i.status for i in items} == {ActionItemStatus.PENDING}
        assert all(len(i.id) == 32 for i in items)
        assert {i.meeting_title for i in items} == {"Planning"}

    def test_requires_privacy_consent(self, room_service, store, owner) -> None:
        grant_plan(store, owner.user_id)
        with pytest.raises(ValidationError, match="privacy"):
            room_service.create_room(owner, "T", DRAFTS, agreed_to_privacy=False)

    @pytest.mark.parametrize("title, items", [("", DRAFTS), ("T", None), ("T", "not-a-list")])
    def test_invalid_room_data(self, room_service, store, owner, title, items) -> None:
        grant_plan(store, owner.user_id)
        with pytest.raises(ValidationError, match="Invalid room data"):
            room_service.create_room(owner, title, items, agreed_to_privacy=True)

    def test_free_plan_denied(self, room_service, owner) -> None:
        with pytest.raises(AuthorizationError, match="Pro or Enterprise"):
            room_service.create_room(owner, "T", DRAFTS, agreed_to_privacy=True)

    def test_code_collision_retries(self, store, policy, clock, owner) -> None:
        grant_plan(store, owner.user_id)
        codes = iter(["dupe0001", "dupe0001", "fresh001"])
        service = RoomService(store=store, access_policy=policy, clock=clock, code_generator=lambda: next(codes))
        first = service.create_room(owner, "A", [], agreed_to_privacy=True)
        second = service.create_room(owner, "B", [], agreed_to_privacy=True)
        assert (first.code, second.code) == ("DUPE0001", "FRESH001")

    def test_item_write_failure_rolls_back(self, clock, owner) -> None:
        backing = MagicMock()
        backing.create_room.return_value = True
        backing.put_items.side_effect = RuntimeError("throttled")
        service = RoomService(store=backing, access_policy=MagicMock(), clock=clock)

        with pytest.raises(ExternalServiceError, match="Failed to create action items"):
            service.create_room(owner, "T", DRAFTS, agreed_to_privacy=True)
        backing.delete_room.assert_called_once()


class TestJoinRoom:
    def test_owner_joins_as_owner(self, room_service, room, owner) -> None:
        result = room_service.join_room(owner, room.code)
        assert result.is_owner
        assert result.access_level == AccessLevel.OWNER

    def test_guest_auto_joins_as_viewer(self, room_service, room, guest, store) -> None:
        result = room_service.join_room(guest, room.code.lower())
        assert result.has_access
        assert result.access_level == AccessLevel.VIEWER
        assert store.get_member(room.code, "guest@acme.com") is not None

    def test_rejoin_is_idempotent(self, room_service, room, guest, store) -> None:
        room_service.join_room(guest, room.code)
        again = room_service.join_room(guest, room.code)
        assert again.was_invited
        assert len(store.list_members(room.code)) == 1

    def test_case_insensitive_invite_match(self, room_service, room, owner, guest) -> None:
        room_service.invite_member(owner, room.code, "GUEST@acme.com", "editor")
        result = room_service.join_room(guest, room.code)
        assert result.access_level == AccessLevel.EDITOR
        assert result.was_invited

    def test_requires_email(self, room_service, room) -> None:
        with pytest.raises(ValidationError, match="email"):
            room_service.join_room(UserContext(user_id="anon"), room.code)

    def test_unknown_room(self, room_service, guest) -> None:
        with pytest.raises(NotFoundError):
            room_service.join_room(guest, "NOPE0000")

    def test_expired_room(self, room_service, room, guest, clock) -> None:
        clock.advance(days=RoomConfig.TTL_DAYS)
        with pytest.raises(GoneError):
            room_service.join_room(guest, room.code)


class TestCheckAccess:
    def test_does_not_create_membership(self, room_service, room, guest, store) -> None:
        result = room_service.check_access(guest, room.code)
        assert result.has_access is False
        assert result.access_level is None
        assert store.list_members(room.code) == []


class TestMembership:
    def test_invite_and_list(self, room_service, room, owner) -> None:
        member = room_service.invite_member(owner, room.code, "Carol@Acme.com", "viewer")
        assert member.email == "carol@acme.com"
        assert [m.email for m in room_service.list_members(owner, room.code)] == ["carol@acme.com"]

    def test_duplicate_invite(self, room_service, room, owner) -> None:
        room_service.invite_member(owner, room.code, "carol@acme.com")
        with pytest.raises(ValidationError, match="already invited"):
            room_service.invite_member(owner, room.code, "carol@acme.com")

    def test_owner_level_not_invitable(self, room_service, room, owner) -> None:
        with pytest.raises(ValidationError, match="Invalid access level"):
            room_service.invite_member(owner, room.code, "carol@acme.com", "owner")

    def test_non_creator_cannot_invite(self, room_service, room, guest) -> None:
        with pytest.raises(AuthorizationError, match="Only room creator"):
            room_service.invite_member(guest, room.code, "carol@acme.com")

    def test_invite_needs_paid_plan(self, room_service, room, owner, store) -> None:
        grant_plan(store, owner.user_id, Plan.FREE)
        with pytest.raises(AuthorizationError, match="Inviting members"):
            room_service.invite_member(owner, room.code, "carol@acme.com")

    def test_remove_member(self, room_service, room, owner) -> None:
        room_service.invite_member(owner, room.code, "carol@acme.com")
        room_service.remove_member(owner, room.code, "carol@acme.com")
        with pytest.raises(NotFoundError):
            room_service.remove_member(owner, room.code, "carol@acme.com")


class TestReads:
    def test_get_room_requires_access(self, room_service, room, guest) -> None:
        with pytest.raises(AuthorizationError):
            room_service.get_room(guest, room.code)

    def test_get_room_for_member(self, room_service, room, guest) -> None:
        room_service.join_room(guest, room.code)
        fetched, items, level = room_service.get_room(guest, room.code)
        assert fetched.item_count == 2
        assert len(items) == 2
        assert level == AccessLevel.VIEWER

    def test_list_my_rooms(self, room_service, room, owner) -> None:
        assert [r.code for r in room_service.list_my_rooms(owner)] == [room.code]

    def test_delete_only_by_creator(self, room_service, room, owner, guest) -> None:
        with pytest.raises(AuthorizationError):
            room_service.delete_room(guest, room.code)
        room_service.delete_room(owner, room.code)
        with pytest.raises(NotFoundError):
            room_service.get_room(owner, room.code)


class TestItemStatus:
    def test_toggle_cycles_back_to_pending(self, room_service, room, owner) -> None:
        item_id = _first_item_id(room_service, owner, room.code)
        seen = [room_service.toggle_item_status(owner, room.code, item_id).status for _ in range(3)]
        assert seen == [ActionItemStatus.IN_PROGRESS, ActionItemStatus.COMPLETED, ActionItemStatus.PENDING]

    def test_viewer_cannot_toggle(self, room_service, room, owner, guest) -> None:
        room_service.join_room(guest, room.code)
        item_id = _first_item_id(room_service, owner, room.code)
        with pytest.raises(AuthorizationError, match="editor access"):
            room_service.toggle_item_status(guest, room.code, item_id)

    def test_editor_can_update(self, room_service, room, owner, guest) -> None:
        room_service.invite_member(owner, room.code, guest.email, "editor")
        item_id = _first_item_id(room_service, owner, room.code)
        item = room_service.update_item_status(guest, room.code, item_id, "completed")
        assert item.status == ActionItemStatus.COMPLETED
        assert item.version == 2

    def test_stale_version_conflicts(self, room_service, room, owner) -> None:
        item_id = _first_item_id(room_service, owner, room.code)
        room_service.toggle_item_status(owner, room.code, item_id, expected_version=1)
        with pytest.raises(ConflictError):
            room_service.toggle_item_status(owner, room.code, item_id, expected_version=1)

    def test_invalid_status(self, room_service, room, owner) -> None:
        with pytest.raises(ValidationError, match="Invalid status"):
            room_service.update_item_status(owner, room.code, "x", "done")

    def test_unknown_item(self, room_service, room, owner) -> None:
        with pytest.raises(NotFoundError):
            room_service.toggle_item_status(owner, room.code, "missing")

    def test_expired_room_is_read_only(self, room_service, room, owner, clock) -> None:
        item_id = _first_item_id(room_service, owner, room.code)
        clock.advance(days=RoomConfig.TTL_DAYS + 1)
        with pytest.raises(GoneError):
            room_service.toggle_item_status(owner, room.code, item_id)

    def test_expired_room_rejects_membership_changes(self, room_service, room, owner, clock) -> None:
        room_service.invite_member(owner, room.code, "early@acme.com", "viewer")
        clock.advance(days=RoomConfig.TTL_DAYS + 1)
        with pytest.raises(GoneError):
            room_service.invite_member(owner, room.code, "late@acme.com", "editor")
        with pytest.raises(GoneError):
            room_service.remove_member(owner, room.code, "early@acme.com")

    def test_update_without_room_code(self, room_service, room, owner, store) -> None:
        item_id = _first_item_id(room_service, owner, room.code)
        assert store.find_item_room(item_id) == room.code

        item = room_service.update_item_status(owner, None, item_id, "completed")

        assert item.status == ActionItemStatus.COMPLETED
        assert store.get_item(room.code, item_id).status == ActionItemStatus.COMPLETED

    def test_update_without_room_code_checks_access(self, room_service, room, owner, guest) -> None:
        item_id = _first_item_id(room_service, owner, room.code)
        room_service.join_room(guest, room.code)
        with pytest.raises(AuthorizationError):
            room_service.update_item_status(guest, None, item_id, "completed")

    def test_update_unknown_item_without_room_code(self, room_service, owner) -> None:
        with pytest.raises(NotFoundError):
            room_service.update_item_status(owner, None, "missing", "completed")
