"""
RoomService - shareable, time-boxed rooms of action items.

Lifecycle per room:
    active (now < expires_at) → expired (read-only, 410 on every access).

Access:
    * the creator is always ``owner`` regardless of membership rows;
    * invited members are ``viewer`` or ``editor``;
    * opening a room link auto-joins as ``viewer`` (no invitation needed).

Item writes are single atomic updates that bump the item's version.
Callers that present the version they observed get a 409 when another
collaborator wrote first; callers that don't get last-write-wins.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from domain.models import (
    AccessLevel,
    ActionItem,
    ActionItemStatus,
    JoinResult,
    Room,
    RoomMember,
    UserContext,
    utc_now,
)
from ports.metadata_store import RoomStorePort
from services.access_policy import AccessPolicy
from shared_utils.constants import LogScope, RoomConfig
from shared_utils.error_handler import (
    AuthorizationError,
    ExternalServiceError,
    GoneError,
    NotFoundError,
    ValidationError,
)
from shared_utils.logging_utils import ContextualLogger
from shared_utils.validation import InputValidator


logger = ContextualLogger(scope=LogScope.ROOMS)

INVITABLE_LEVELS = (AccessLevel.VIEWER, AccessLevel.EDITOR)


def generate_room_code() -> str:
    return "".join(secrets.choice(RoomConfig.CODE_ALPHABET) for _ in range(RoomConfig.CODE_LENGTH))


class RoomService:
    """Room creation, membership and item status changes."""

    def __init__(
        self,
        *,
        store: RoomStorePort,
        access_policy: AccessPolicy,
        clock: Callable[[], datetime] = utc_now,
        code_generator: Callable[[], str] = generate_room_code,
        ttl_days: int = RoomConfig.TTL_DAYS,
    ) -> None:
        self._store = store
        self._policy = access_policy
        self._clock = clock
        self._new_code = code_generator
        self._ttl = timedelta(days=ttl_days)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_room(
        self,
        user: UserContext,
        title: str,
        action_items: Iterable[Union[ActionItem, Dict[str, Any]]],
        agreed_to_privacy: bool,
    ) -> Room:
        """Create a room holding copies of ``action_items``.

        Raises:
            ValidationError: Privacy terms not accepted, missing title or items.
            AuthorizationError: Plan does not allow rooms.
            ExternalServiceError: Items could not be stored (room rolled back).
        """
        if not agreed_to_privacy:
            raise ValidationError("You must agree to the privacy terms to create a shared room")
        if not isinstance(title, str) or not title.strip() or action_items is None:
            raise ValidationError("Invalid room data")
        if not isinstance(action_items, (list, tuple)):
            raise ValidationError("Invalid room data")
        title = title.strip()

        self._policy.require_feature(
            user.user_id,
            "can_create_rooms",
            "Shared rooms require a Pro or Enterprise plan",
        )

        now = self._clock()
        room = self._insert_room(user, title, now)
        items = self._copy_items(action_items, title, now)

        try:
            self._store.put_items(room.code, items, room.expires_at)
        except Exception as exc:
            logger.error(
                "room_items_write_failed",
                room_code=room.code,
                item_count=len(items),
                error=str(exc),
            )
            self._store.delete_room(room.code)
            raise ExternalServiceError(
                "Metadata store",
                "Failed to create action items",
                context={"room_code": room.code},
            ) from exc

        logger.info("room_created", room_code=room.code, user_id=user.user_id, item_count=len(items))
        return room.model_copy(update={"item_count": len(items)})

    def _insert_room(self, user: UserContext, title: str, now: datetime) -> Room:
        for _ in range(RoomConfig.CODE_ATTEMPTS):
            room = Room(
                code=self._new_code().upper(),
                title=title,
                creator_id=user.user_id,
                creator_email=(user.email or "").lower() or None,
                created_at=now,
                expires_at=now + self._ttl,
            )
            if self._store.create_room(room):
                return room
            logger.debug("room_code_collision", room_code=room.code)
        raise ExternalServiceError("Metadata store", "Failed to generate room code")

    @staticmethod
    def _copy_items(
        drafts: Iterable[Union[ActionItem, Dict[str, Any]]],
        title: str,
        now: datetime,
    ) -> List[ActionItem]:
        items = []
        for draft in drafts:
            data = draft.model_dump() if isinstance(draft, ActionItem) else dict(draft or {})
            raw_status = data.get("status") or ActionItemStatus.PENDING
            try:
                status = ActionItemStatus(raw_status)
            except ValueError:
                status = ActionItemStatus.PENDING
            items.append(
                ActionItem(
                    id=uuid.uuid4().hex,
                    task=str(data.get("task") or "Untitled task"),
                    assignee=str(data.get("assignee") or "Unassigned"),
                    deadline=data.get("deadline") or None,
                    status=status,
                    created_at=data.get("created_at") or data.get("createdAt") or now.isoformat(),
                    meeting_title=data.get("meeting_title") or data.get("meetingTitle") or title,
                )
            )
        return items

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def join_room(self, user: UserContext, code: str) -> JoinResult:
        """Open a room link: confirm access, auto-joining as viewer if needed.

        Joining twice is idempotent; a concurrent duplicate insert is treated
        as success and the stored row is returned.
        """
        room = self._active_room(code)
        if room.creator_id == user.user_id:
            return JoinResult(has_access=True, access_level=AccessLevel.OWNER, is_owner=True, room=room)

        email = self._require_email(user)
        existing = self._store.get_member(room.code, email)
        if existing:
            logger.info("room_accessed", room_code=room.code, user_id=user.user_id)
            return JoinResult(
                has_access=True,
                access_level=existing.access_level,
                was_invited=True,
                room=room,
            )

        member = RoomMember(
            room_code=room.code,
            email=email,
            access_level=AccessLevel.VIEWER,
            invited_by=room.creator_id,
            user_id=user.user_id,
            joined_at=self._clock(),
        )
        if not self._store.add_member(member, room.expires_at):
            stored = self._store.get_member(room.code, email) or member
            logger.info("room_join_raced", room_code=room.code, user_id=user.user_id)
            return JoinResult(has_access=True, access_level=stored.access_level, room=room)

        logger.info("room_joined", room_code=room.code, user_id=user.user_id)
        return JoinResult(has_access=True, access_level=AccessLevel.VIEWER, room=room)

    def check_access(self, user: UserContext, code: str) -> JoinResult:
        """Read-only access check; never creates a membership."""
        room = self._room(code)
        if room.creator_id == user.user_id:
            return JoinResult(has_access=True, access_level=AccessLevel.OWNER, is_owner=True, room=room)

        member = self._store.get_member(room.code, user.email.lower()) if user.email else None
        if member is None:
            return JoinResult(has_access=False, room=room)
        return JoinResult(has_access=True, access_level=member.access_level, was_invited=True, room=room)

    def access_level(self, user: UserContext, room: Room) -> Optional[AccessLevel]:
        if room.creator_id == user.user_id:
            return AccessLevel.OWNER
        if not user.email:
            return None
        member = self._store.get_member(room.code, user.email.lower())
        return member.access_level if member else None

    # ------------------------------------------------------------------
    # Membership (creator only)
    # ------------------------------------------------------------------

    def invite_member(
        self,
        user: UserContext,
        code: str,
        email: str,
        access_level: Union[AccessLevel, str] = AccessLevel.EDITOR,
    ) -> RoomMember:
        email = InputValidator.validate_email(email)
        try:
            level = AccessLevel(access_level or AccessLevel.EDITOR)
        except ValueError:
            raise ValidationError("Invalid access level", context={"access_level": access_level})
        if level not in INVITABLE_LEVELS:
            raise ValidationError("Invalid access level", context={"access_level": level.value})

        room = self._owned_room(user, code, "Only room creator can invite", active=True)
        self._policy.require_feature(
            user.user_id,
            "can_invite_members",
            "Inviting members requires a Pro or Enterprise plan",
        )

        member = RoomMember(
            room_code=room.code,
            email=email,
            access_level=level,
            invited_by=user.user_id,
            joined_at=self._clock(),
        )
        if not self._store.add_member(member, room.expires_at):
            raise ValidationError("User already invited", context={"email": email})

        logger.info("room_member_invited", room_code=room.code, access_level=level.value)
        return member

    def list_members(self, user: UserContext, code: str) -> List[RoomMember]:
        room = self._owned_room(user, code, "Only room creator can view members")
        return sorted(self._store.list_members(room.code), key=lambda m: m.joined_at, reverse=True)

    def remove_member(self, user: UserContext, code: str, email: str) -> None:
        email = InputValidator.validate_email(email)
        room = self._owned_room(user, code, "Only room creator can remove members", active=True)
        if not self._store.remove_member(room.code, email):
            raise NotFoundError("Member not found", context={"email": email})
        logger.info("room_member_removed", room_code=room.code)

    # ------------------------------------------------------------------
    # Reads & lifecycle
    # ------------------------------------------------------------------

    def get_room(self, user: UserContext, code: str) -> Tuple[Room, List[ActionItem], AccessLevel]:
        room = self._active_room(code)
        level = self.access_level(user, room)
        if level is None:
            raise AuthorizationError("You do not have access to this room")
        items = self._store.list_items(room.code)
        return room.model_copy(update={"item_count": len(items)}), items, level

    def list_my_rooms(self, user: UserContext) -> List[Room]:
        return self._store.list_rooms_by_creator(user.user_id)

    def delete_room(self, user: UserContext, code: str) -> None:
        room = self._owned_room(user, code, "Only room creator can delete the room")
        self._store.delete_room(room.code)
        logger.info("room_deleted", room_code=room.code, user_id=user.user_id)

    # ------------------------------------------------------------------
    # Item status
    # ------------------------------------------------------------------

    def update_item_status(
        self,
        user: UserContext,
        code: Optional[str],
        item_id: str,
        status: Union[ActionItemStatus, str],
        expected_version: Optional[int] = None,
    ) -> ActionItem:
        """Set an item's status. Without ``code`` the room is looked up from the item.

        Raises:
            GoneError: Room expired.
            AuthorizationError: Caller is a viewer or not a member.
            ConflictError: ``expected_version`` is stale.
        """
        try:
            status = ActionItemStatus(status)
        except ValueError:
            raise ValidationError("Invalid status", context={"status": status})
        if not code:
            code = self._store.find_item_room(item_id)
            if code is None:
                raise NotFoundError("Action item not found", context={"item_id": item_id})
        room = self._editable_room(user, code)
        return self._write_status(user, room, item_id, status, expected_version)

    def toggle_item_status(
        self,
        user: UserContext,
        code: str,
        item_id: str,
        expected_version: Optional[int] = None,
    ) -> ActionItem:
        """Advance an item one step through pending → in-progress → completed → pending."""
        room = self._editable_room(user, code)
        current = self._store.get_item(room.code, item_id)
        if current is None:
            raise NotFoundError("Action item not found", context={"item_id": item_id})
        return self._write_status(user, room, item_id, current.status.next(), expected_version)

    def _write_status(
        self,
        user: UserContext,
        room: Room,
        item_id: str,
        status: ActionItemStatus,
        expected_version: Optional[int],
    ) -> ActionItem:
        item = self._store.update_item_status(room.code, item_id, status, expected_version)
        logger.info(
            "action_item_status_updated",
            room_code=room.code,
            item_id=item_id,
            status=status.value,
            version=item.version,
            user_id=user.user_id,
        )
        return item

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _room(self, code: str) -> Room:
        normalized = InputValidator.normalize_code(code or "")
        room = self._store.get_room(normalized) if normalized else None
        if room is None:
            raise NotFoundError("Room not found", context={"room_code": normalized})
        return room

    def _active_room(self, code: str) -> Room:
        room = self._room(code)
        if room.is_expired(self._clock()):
            raise GoneError("This room has expired", context={"room_code": room.code})
        return room

    def _owned_room(self, user: UserContext, code: str, message: str, active: bool = False) -> Room:
        room = self._active_room(code) if active else self._room(code)
        if room.creator_id != user.user_id:
            raise AuthorizationError(message, context={"room_code": room.code})
        return room

    def _editable_room(self, user: UserContext, code: str) -> Room:
        room = self._active_room(code)
        level = self.access_level(user, room)
        if level is None or not level.can_edit:
            logger.info("room_write_denied", room_code=room.code, user_id=user.user_id)
            raise AuthorizationError(
                "You need editor access to change action items",
                context={"room_code": room.code},
            )
        return room

    @staticmethod
    def _require_email(user: UserContext) -> str:
        if not user.email:
            raise ValidationError("User email not found")
        return user.email.strip().lower()
