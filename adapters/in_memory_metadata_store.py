"""
In-memory metadata store adapter for local development.

Implements MetadataStorePort with plain dicts guarded by one lock, so the
conditional writes (room codes, memberships, bot claims) keep the same
exactly-once semantics as the DynamoDB adapter. Used when
DYNAMODB_TABLE_NAME is empty (local dev, CI).

NOT for production - no persistence across restarts.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from domain.models import (
    ActionItem,
    ActionItemStatus,
    BotStatus,
    MeetingBotRequest,
    Organization,
    OrganizationMember,
    Room,
    RoomMember,
    Subscription,
)
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import LogScope
from shared_utils.error_handler import ConflictError, NotFoundError


logger = get_scoped_logger(LogScope.ADAPTER)


class InMemoryMetadataStoreAdapter:
    """Dict-backed implementation of every metadata port."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._rooms: Dict[str, Room] = {}
        self._items: Dict[str, Dict[str, ActionItem]] = defaultdict(dict)
        self._members: Dict[str, Dict[str, RoomMember]] = defaultdict(dict)
        self._orgs: Dict[str, Organization] = {}
        self._org_tokens: Dict[str, str] = {}
        self._org_members: Dict[str, Dict[str, OrganizationMember]] = defaultdict(dict)
        self._subscriptions: Dict[str, Subscription] = {}
        self._stripe_refs: Dict[str, str] = {}
        self._bots: Dict[str, MeetingBotRequest] = {}
        self._usage: Dict[Tuple[str, str], int] = defaultdict(int)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def create_room(self, room: Room) -> bool:
        with self._lock:
            if room.code in self._rooms:
                return False
            self._rooms[room.code] = room.model_copy(update={"item_count": None})
        logger.info("inmemory_room_created", room_code=room.code)
        return True

    def get_room(self, code: str) -> Optional[Room]:
        room = self._rooms.get(code)
        return room.model_copy() if room else None

    def delete_room(self, code: str) -> None:
        with self._lock:
            self._rooms.pop(code, None)
            self._items.pop(code, None)
            self._members.pop(code, None)

    def list_rooms_by_creator(self, user_id: str) -> List[Room]:
        with self._lock:
            rooms = [
                r.model_copy(update={"item_count": len(self._items.get(r.code, {}))})
                for r in self._rooms.values()
                if r.creator_id == user_id
            ]
        return sorted(rooms, key=lambda r: r.created_at, reverse=True)

    def list_active_rooms(self, now: datetime) -> List[Room]:
        return [r.model_copy() for r in self._rooms.values() if not r.is_expired(now)]

    def put_items(self, code: str, items: List[ActionItem], expires_at: datetime) -> None:
        with self._lock:
            for item in items:
                self._items[code][item.id] = item.model_copy()

    def get_item(self, code: str, item_id: str) -> Optional[ActionItem]:
        item = self._items.get(code, {}).get(item_id)
        return item.model_copy() if item else None

    def find_item_room(self, item_id: str) -> Optional[str]:
        with self._lock:
            for code, items in self._items.items():
                if item_id in items:
                    return code
        return None

    def list_items(self, code: str) -> List[ActionItem]:
        items = [i.model_copy() for i in self._items.get(code, {}).values()]
        return sorted(items, key=lambda i: i.created_at, reverse=True)

    def update_item_status(
        self,
        code: str,
        item_id: str,
        status: ActionItemStatus,
        expected_version: Optional[int] = None,
    ) -> ActionItem:
        with self._lock:
            current = self._items.get(code, {}).get(item_id)
            if current is None:
                raise NotFoundError("Action item not found", context={"item_id": item_id})
            if expected_version is not None and current.version != expected_version:
                raise ConflictError(
                    "Action item was modified by someone else",
                    context={"item_id": item_id, "current_version": current.version},
                )
            updated = current.model_copy(update={"status": status, "version": current.version + 1})
            self._items[code][item_id] = updated
        return updated.model_copy()

    def add_member(self, member: RoomMember, expires_at: datetime) -> bool:
        with self._lock:
            if member.email in self._members[member.room_code]:
                return False
            self._members[member.room_code][member.email] = member.model_copy()
        return True

    def get_member(self, code: str, email: str) -> Optional[RoomMember]:
        member = self._members.get(code, {}).get(email)
        return member.model_copy() if member else None

    def list_members(self, code: str) -> List[RoomMember]:
        return [m.model_copy() for m in self._members.get(code, {}).values()]

    def remove_member(self, code: str, email: str) -> bool:
        with self._lock:
            return self._members.get(code, {}).pop(email, None) is not None

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def create_organization(self, org: Organization) -> bool:
        with self._lock:
            if org.token in self._org_tokens:
                return False
            self._org_tokens[org.token] = org.id
            self._orgs[org.id] = org.model_copy()
        return True

    def get_organization(self, org_id: str) -> Optional[Organization]:
        org = self._orgs.get(org_id)
        return org.model_copy() if org else None

    def get_organization_by_token(self, token: str) -> Optional[Organization]:
        org_id = self._org_tokens.get(token)
        return self.get_organization(org_id) if org_id else None

    def delete_organization(self, org_id: str) -> None:
        with self._lock:
            org = self._orgs.pop(org_id, None)
            if org is not None:
                self._org_tokens.pop(org.token, None)
            self._org_members.pop(org_id, None)

    def add_organization_member(self, member: OrganizationMember) -> bool:
        with self._lock:
            if member.user_id in self._org_members[member.organization_id]:
                return False
            self._org_members[member.organization_id][member.user_id] = member.model_copy()
        return True

    def list_organization_members(self, org_id: str) -> List[OrganizationMember]:
        return [m.model_copy() for m in self._org_members.get(org_id, {}).values()]

    def list_user_memberships(self, user_id: str) -> List[OrganizationMember]:
        with self._lock:
            return [
                members[user_id].model_copy()
                for members in self._org_members.values()
                if user_id in members
            ]

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def put_subscription(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions[subscription.scope_key] = subscription.model_copy()
            if subscription.stripe_subscription_id:
                self._stripe_refs[subscription.stripe_subscription_id] = subscription.scope_key

    def get_subscription(self, scope_key: str) -> Optional[Subscription]:
        sub = self._subscriptions.get(scope_key)
        return sub.model_copy() if sub else None

    def find_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        key = self._stripe_refs.get(stripe_subscription_id)
        return self.get_subscription(key) if key else None

    # ------------------------------------------------------------------
    # Meeting bot requests
    # ------------------------------------------------------------------

    def put_bot_request(self, request: MeetingBotRequest) -> None:
        with self._lock:
            self._bots[request.bot_id] = request.model_copy()

    def get_bot_request(self, bot_id: str) -> Optional[MeetingBotRequest]:
        request = self._bots.get(bot_id)
        return request.model_copy() if request else None

    def list_bot_requests(self, org_id: str, limit: int) -> List[MeetingBotRequest]:
        requests = [r.model_copy() for r in self._bots.values() if r.organization_id == org_id]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests[:limit]

    def update_bot_status(
        self,
        bot_id: str,
        status: BotStatus,
        error_message: Optional[str] = None,
        room_code: Optional[str] = None,
    ) -> bool:
        with self._lock:
            current = self._bots.get(bot_id)
            if current is None or current.status.is_terminal:
                return False
            update = {"status": status, "updated_at": datetime.now(timezone.utc)}
            if error_message is not None:
                update["error_message"] = error_message
            if room_code is not None:
                update["room_code"] = room_code
            self._bots[bot_id] = current.model_copy(update=update)
        return True

    def claim_bot_processing(self, bot_id: str) -> bool:
        with self._lock:
            current = self._bots.get(bot_id)
            if current is None or current.processing_claimed or current.status.is_terminal:
                return False
            self._bots[bot_id] = current.model_copy(
                update={"processing_claimed": True, "updated_at": datetime.now(timezone.utc)}
            )
        return True

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    def increment_usage(self, user_id: str, period: str) -> int:
        with self._lock:
            self._usage[(user_id, period)] += 1
            return self._usage[(user_id, period)]

    def get_usage(self, user_id: str, period: str) -> int:
        return self._usage.get((user_id, period), 0)
