"""
Port interfaces for application metadata.

Implementations: DynamoMetadataStoreAdapter, InMemoryMetadataStoreAdapter (adapters/)

The port is split by aggregate so each service depends on the slice it uses;
both adapters implement all of them.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

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


@runtime_checkable
class RoomStorePort(Protocol):
    """Rooms, their copied action items and their members."""

    def create_room(self, room: Room) -> bool:
        """Insert a room if its code is unused.

        Returns:
            False when the code is already taken (caller regenerates).
        """
        ...

    def get_room(self, code: str) -> Optional[Room]:
        ...

    def delete_room(self, code: str) -> None:
        """Delete the room with its items and members."""
        ...

    def list_rooms_by_creator(self, user_id: str) -> List[Room]:
        """Rooms created by ``user_id``, newest first, with ``item_count`` set."""
        ...

    def list_active_rooms(self, now: datetime) -> List[Room]:
        ...

    def put_items(self, code: str, items: List[ActionItem], expires_at: datetime) -> None:
        ...

    def get_item(self, code: str, item_id: str) -> Optional[ActionItem]:
        ...

    def find_item_room(self, item_id: str) -> Optional[str]:
        """Code of the room holding ``item_id``, or None."""
        ...

    def list_items(self, code: str) -> List[ActionItem]:
        """Items of a room, newest first."""
        ...

    def update_item_status(
        self,
        code: str,
        item_id: str,
        status: ActionItemStatus,
        expected_version: Optional[int] = None,
    ) -> ActionItem:
        """Set an item's status and bump its version in one atomic write.

        Raises:
            NotFoundError: No such item.
            ConflictError: ``expected_version`` given and stale.
        """
        ...

    def add_member(self, member: RoomMember, expires_at: datetime) -> bool:
        """Insert a membership row unless (room, email) exists.

        Returns:
            False when the row already existed.
        """
        ...

    def get_member(self, code: str, email: str) -> Optional[RoomMember]:
        ...

    def list_members(self, code: str) -> List[RoomMember]:
        ...

    def remove_member(self, code: str, email: str) -> bool:
        ...


@runtime_checkable
class OrganizationStorePort(Protocol):
    """Organizations, join tokens and memberships."""

    def create_organization(self, org: Organization) -> bool:
        """Insert an organization unless its token is taken."""
        ...

    def get_organization(self, org_id: str) -> Optional[Organization]:
        ...

    def get_organization_by_token(self, token: str) -> Optional[Organization]:
        ...

    def delete_organization(self, org_id: str) -> None:
        ...

    def add_organization_member(self, member: OrganizationMember) -> bool:
        """Insert a membership unless (organization, user) exists."""
        ...

    def list_organization_members(self, org_id: str) -> List[OrganizationMember]:
        ...

    def list_user_memberships(self, user_id: str) -> List[OrganizationMember]:
        ...


@runtime_checkable
class SubscriptionStorePort(Protocol):
    """One subscription row per scope key."""

    def put_subscription(self, subscription: Subscription) -> None:
        """Create or overwrite the row for ``subscription.scope_key``."""
        ...

    def get_subscription(self, scope_key: str) -> Optional[Subscription]:
        ...

    def find_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        ...


@runtime_checkable
class BotRequestStorePort(Protocol):
    """Meeting bot jobs keyed by the provider's bot id."""

    def put_bot_request(self, request: MeetingBotRequest) -> None:
        ...

    def get_bot_request(self, bot_id: str) -> Optional[MeetingBotRequest]:
        ...

    def list_bot_requests(self, org_id: str, limit: int) -> List[MeetingBotRequest]:
        """Latest requests of an organization, newest first."""
        ...

    def update_bot_status(
        self,
        bot_id: str,
        status: BotStatus,
        error_message: Optional[str] = None,
        room_code: Optional[str] = None,
    ) -> bool:
        """Move a non-terminal request to ``status``.

        Returns:
            False when the request is missing or already terminal.
        """
        ...

    def claim_bot_processing(self, bot_id: str) -> bool:
        """Atomically mark a request as being processed.

        Returns:
            True for exactly one caller per request; False when already
            claimed, terminal or missing.
        """
        ...


@runtime_checkable
class UsageStorePort(Protocol):
    """Monthly per-user usage counters."""

    def increment_usage(self, user_id: str, period: str) -> int:
        """Atomically add one; returns the new value."""
        ...

    def get_usage(self, user_id: str, period: str) -> int:
        ...


@runtime_checkable
class MetadataStorePort(
    RoomStorePort,
    OrganizationStorePort,
    SubscriptionStorePort,
    BotRequestStorePort,
    UsageStorePort,
    Protocol,
):
    """Everything the single metadata table holds."""
