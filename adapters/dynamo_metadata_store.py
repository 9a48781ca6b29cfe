"""
DynamoDB-backed metadata store adapter.

Implements every metadata port (rooms, organizations, subscriptions, bot
requests, usage) on one table with a generic ``pk`` / ``sk`` key schema.

Key layout::

    ROOM#{code}         META                  room
    ROOM#{code}         ITEM#{item_id}        action item copy
    ROOM#{code}         MEMBER#{email}        room membership
    ITEMREF#{item_id}   META                  action item -> room code
    USER#{user_id}      ROOM#{code}           rooms created by user
    USER#{user_id}      ORG#{org_id}          organization membership (reverse)
    USER#{user_id}      USAGE#{YYYY-MM}       monthly extraction counter
    ORG#{org_id}        META                  organization
    ORG#{org_id}        MEMBER#{user_id}      organization membership
    ORG#{org_id}        BOT#{created}#{id}    bot request index
    ORGTOKEN#{token}    META                  join token -> org id
    SUB#{scope_key}     META                  subscription
    STRIPESUB#{id}      META                  stripe subscription -> scope key
    BOT#{bot_id}        META                  meeting bot request

Room rows carry a ``ttl`` attribute (epoch seconds) so the table expires the
room, its items and its members on its own.
"""

from __future__ import annotations

import contextlib
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
from pydantic import BaseModel

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
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ConflictError, ExternalServiceError, NotFoundError


logger = get_scoped_logger(LogScope.ADAPTER)

M = TypeVar("M", bound=BaseModel)

META = "META"
_TERMINAL = [s.value for s in BotStatus if s.is_terminal]


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


@contextlib.contextmanager
def _dynamo_errors(operation: str, **context: Any) -> Iterator[None]:
    """Translate boto errors into ExternalServiceError."""
    try:
        yield
    except ClientError as exc:
        logger.error(f"dynamo_{operation}_failed", error=str(exc), **context)
        raise ExternalServiceError("DynamoDB", f"Failed to {operation.replace('_', ' ')}: {exc}") from exc


class DynamoMetadataStoreAdapter:
    """Amazon DynamoDB implementation of MetadataStorePort.

    Table key: ``pk`` (partition, string) + ``sk`` (sort, string).
    """

    def __init__(
        self,
        table_name: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: Optional[str] = None,
        dynamodb_resource: Optional[object] = None,
    ) -> None:
        self._table_name = table_name
        resource_kwargs: dict = {"region_name": region}
        if endpoint_url:
            resource_kwargs["endpoint_url"] = endpoint_url
        self._dynamo = dynamodb_resource or boto3.resource(
            "dynamodb", **resource_kwargs
        )
        self._table = self._dynamo.Table(table_name)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def create_room(self, room: Room) -> bool:
        item = {
            "pk": f"ROOM#{room.code}",
            "sk": META,
            "entity": "room",
            "ttl": self._ttl(room.expires_at),
            **self._to_item(room, exclude={"item_count"}),
        }
        with _dynamo_errors("create_room", room_code=room.code):
            try:
                self._table.put_item(Item=item, ConditionExpression="attribute_not_exists(pk)")
            except ClientError as exc:
                if _is_conditional_failure(exc):
                    logger.info("dynamo_room_code_collision", room_code=room.code)
                    return False
                raise
            self._table.put_item(Item={
                "pk": f"USER#{room.creator_id}",
                "sk": f"ROOM#{room.code}",
                "entity": "user_room",
                "created_at": item["created_at"],
                "ttl": item["ttl"],
            })
        logger.info("dynamo_room_created", room_code=room.code)
        return True

    def get_room(self, code: str) -> Optional[Room]:
        with _dynamo_errors("get_room", room_code=code):
            item = self._table.get_item(Key={"pk": f"ROOM#{code}", "sk": META}).get("Item")
        return self._from_item(item, Room) if item else None

    def delete_room(self, code: str) -> None:
        room = self.get_room(code)
        with _dynamo_errors("delete_room", room_code=code):
            rows = self._query_all(Key("pk").eq(f"ROOM#{code}"))
            with self._table.batch_writer() as batch:
                for row in rows:
                    batch.delete_item(Key={"pk": row["pk"], "sk": row["sk"]})
                    if row["sk"].startswith("ITEM#"):
                        batch.delete_item(Key={"pk": f"ITEMREF#{row['sk'][5:]}", "sk": META})
                if room is not None:
                    batch.delete_item(Key={"pk": f"USER#{room.creator_id}", "sk": f"ROOM#{code}"})
        logger.info("dynamo_room_deleted", room_code=code, rows=len(rows))

    def list_rooms_by_creator(self, user_id: str) -> List[Room]:
        with _dynamo_errors("list_rooms", user_id=user_id):
            refs = self._query_all(
                Key("pk").eq(f"USER#{user_id}") & Key("sk").begins_with("ROOM#")
            )
        rooms: List[Room] = []
        for ref in refs:
            code = ref["sk"].split("#", 1)[1]
            room = self.get_room(code)
            if room is None:
                continue
            with _dynamo_errors("count_items", room_code=code):
                count = self._count(
                    Key("pk").eq(f"ROOM#{code}") & Key("sk").begins_with("ITEM#")
                )
            rooms.append(room.model_copy(update={"item_count": count}))
        rooms.sort(key=lambda r: r.created_at, reverse=True)
        return rooms

    def list_active_rooms(self, now: datetime) -> List[Room]:
        scan_kwargs: Dict[str, Any] = {
            "FilterExpression": Attr("entity").eq("room") & Attr("expires_at").gt(now.isoformat()),
        }
        items: List[Dict[str, Any]] = []
        with _dynamo_errors("list_active_rooms"):
            while True:
                response = self._table.scan(**scan_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if last_key is None:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        return [self._from_item(i, Room) for i in items]

    def put_items(self, code: str, items: List[ActionItem], expires_at: datetime) -> None:
        ttl = self._ttl(expires_at)
        with _dynamo_errors("put_items", room_code=code, count=len(items)):
            with self._table.batch_writer() as batch:
                for action_item in items:
                    batch.put_item(Item={
                        "pk": f"ROOM#{code}",
                        "sk": f"ITEM#{action_item.id}",
                        "entity": "room_item",
                        "ttl": ttl,
                        **self._to_item(action_item),
                    })
                    batch.put_item(Item={
                        "pk": f"ITEMREF#{action_item.id}",
                        "sk": META,
                        "room_code": code,
                        "ttl": ttl,
                    })
        logger.info("dynamo_room_items_put", room_code=code, count=len(items))

    def get_item(self, code: str, item_id: str) -> Optional[ActionItem]:
        with _dynamo_errors("get_item", room_code=code, item_id=item_id):
            item = self._table.get_item(
                Key={"pk": f"ROOM#{code}", "sk": f"ITEM#{item_id}"}
            ).get("Item")
        return self._from_item(item, ActionItem) if item else None

    def find_item_room(self, item_id: str) -> Optional[str]:
        with _dynamo_errors("find_item_room", item_id=item_id):
            ref = self._table.get_item(Key={"pk": f"ITEMREF#{item_id}", "sk": META}).get("Item")
        return ref["room_code"] if ref else None

    def list_items(self, code: str) -> List[ActionItem]:
        with _dynamo_errors("list_items", room_code=code):
            rows = self._query_all(
                Key("pk").eq(f"ROOM#{code}") & Key("sk").begins_with("ITEM#")
            )
        items = [self._from_item(r, ActionItem) for r in rows]
        items.sort(key=lambda i: i.created_at, reverse=True)
        return items

    def update_item_status(
        self,
        code: str,
        item_id: str,
        status: ActionItemStatus,
        expected_version: Optional[int] = None,
    ) -> ActionItem:
        condition = "attribute_exists(pk)"
        values: Dict[str, Any] = {":s": status.value, ":one": 1, ":initial": 1}
        if expected_version is not None:
            condition += " AND #v = :expected"
            values[":expected"] = expected_version

        with _dynamo_errors("update_item_status", room_code=code, item_id=item_id):
            try:
                response = self._table.update_item(
                    Key={"pk": f"ROOM#{code}", "sk": f"ITEM#{item_id}"},
                    UpdateExpression="SET #s = :s, #v = if_not_exists(#v, :initial) + :one",
                    ConditionExpression=condition,
                    ExpressionAttributeNames={"#s": "status", "#v": "version"},
                    ExpressionAttributeValues=values,
                    ReturnValues="ALL_NEW",
                )
            except ClientError as exc:
                if not _is_conditional_failure(exc):
                    raise
                current = self.get_item(code, item_id)
                if current is None:
                    raise NotFoundError("Action item not found", context={"item_id": item_id}) from exc
                raise ConflictError(
                    "Action item was modified by someone else",
                    context={"item_id": item_id, "current_version": current.version},
                ) from exc
        return self._from_item(response["Attributes"], ActionItem)

    def add_member(self, member: RoomMember, expires_at: datetime) -> bool:
        item = {
            "pk": f"ROOM#{member.room_code}",
            "sk": f"MEMBER#{member.email}",
            "entity": "room_member",
            "ttl": self._ttl(expires_at),
            **self._to_item(member),
        }
        with _dynamo_errors("add_member", room_code=member.room_code):
            try:
                self._table.put_item(Item=item, ConditionExpression="attribute_not_exists(pk)")
            except ClientError as exc:
                if _is_conditional_failure(exc):
                    return False
                raise
        return True

    def get_member(self, code: str, email: str) -> Optional[RoomMember]:
        with _dynamo_errors("get_member", room_code=code):
            item = self._table.get_item(
                Key={"pk": f"ROOM#{code}", "sk": f"MEMBER#{email}"}
            ).get("Item")
        return self._from_item(item, RoomMember) if item else None

    def list_members(self, code: str) -> List[RoomMember]:
        with _dynamo_errors("list_members", room_code=code):
            rows = self._query_all(
                Key("pk").eq(f"ROOM#{code}") & Key("sk").begins_with("MEMBER#")
            )
        return [self._from_item(r, RoomMember) for r in rows]

    def remove_member(self, code: str, email: str) -> bool:
        with _dynamo_errors("remove_member", room_code=code):
            response = self._table.delete_item(
                Key={"pk": f"ROOM#{code}", "sk": f"MEMBER#{email}"},
                ReturnValues="ALL_OLD",
            )
        return "Attributes" in response

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def create_organization(self, org: Organization) -> bool:
        with _dynamo_errors("create_organization", org_id=org.id):
            try:
                self._table.put_item(
                    Item={"pk": f"ORGTOKEN#{org.token}", "sk": META, "organization_id": org.id},
                    ConditionExpression="attribute_not_exists(pk)",
                )
            except ClientError as exc:
                if _is_conditional_failure(exc):
                    return False
                raise
            self._table.put_item(Item={
                "pk": f"ORG#{org.id}",
                "sk": META,
                "entity": "organization",
                **self._to_item(org),
            })
        return True

    def get_organization(self, org_id: str) -> Optional[Organization]:
        with _dynamo_errors("get_organization", org_id=org_id):
            item = self._table.get_item(Key={"pk": f"ORG#{org_id}", "sk": META}).get("Item")
        return self._from_item(item, Organization) if item else None

    def get_organization_by_token(self, token: str) -> Optional[Organization]:
        with _dynamo_errors("get_organization_by_token"):
            ref = self._table.get_item(Key={"pk": f"ORGTOKEN#{token}", "sk": META}).get("Item")
        if not ref:
            return None
        return self.get_organization(ref["organization_id"])

    def delete_organization(self, org_id: str) -> None:
        org = self.get_organization(org_id)
        with _dynamo_errors("delete_organization", org_id=org_id):
            rows = self._query_all(Key("pk").eq(f"ORG#{org_id}"))
            with self._table.batch_writer() as batch:
                for row in rows:
                    batch.delete_item(Key={"pk": row["pk"], "sk": row["sk"]})
                    if row["sk"].startswith("MEMBER#"):
                        batch.delete_item(Key={"pk": f"USER#{row['user_id']}", "sk": f"ORG#{org_id}"})
                if org is not None:
                    batch.delete_item(Key={"pk": f"ORGTOKEN#{org.token}", "sk": META})
        logger.info("dynamo_organization_deleted", org_id=org_id)

    def add_organization_member(self, member: OrganizationMember) -> bool:
        body = self._to_item(member)
        with _dynamo_errors("add_organization_member", org_id=member.organization_id):
            try:
                self._table.put_item(
                    Item={
                        "pk": f"ORG#{member.organization_id}",
                        "sk": f"MEMBER#{member.user_id}",
                        "entity": "org_member",
                        **body,
                    },
                    ConditionExpression="attribute_not_exists(pk)",
                )
            except ClientError as exc:
                if _is_conditional_failure(exc):
                    return False
                raise
            self._table.put_item(Item={
                "pk": f"USER#{member.user_id}",
                "sk": f"ORG#{member.organization_id}",
                "entity": "user_org",
                **body,
            })
        return True

    def list_organization_members(self, org_id: str) -> List[OrganizationMember]:
        with _dynamo_errors("list_organization_members", org_id=org_id):
            rows = self._query_all(
                Key("pk").eq(f"ORG#{org_id}") & Key("sk").begins_with("MEMBER#")
            )
        return [self._from_item(r, OrganizationMember) for r in rows]

    def list_user_memberships(self, user_id: str) -> List[OrganizationMember]:
        with _dynamo_errors("list_user_memberships", user_id=user_id):
            rows = self._query_all(
                Key("pk").eq(f"USER#{user_id}") & Key("sk").begins_with("ORG#")
            )
        return [self._from_item(r, OrganizationMember) for r in rows]

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def put_subscription(self, subscription: Subscription) -> None:
        key = subscription.scope_key
        with _dynamo_errors("put_subscription", scope=key):
            self._table.put_item(Item={
                "pk": f"SUB#{key}",
                "sk": META,
                "entity": "subscription",
                **self._to_item(subscription),
            })
            if subscription.stripe_subscription_id:
                self._table.put_item(Item={
                    "pk": f"STRIPESUB#{subscription.stripe_subscription_id}",
                    "sk": META,
                    "scope_key": key,
                })
        logger.info(
            "dynamo_subscription_put",
            scope=key,
            plan=subscription.plan.value,
            status=subscription.status.value,
        )

    def get_subscription(self, scope_key: str) -> Optional[Subscription]:
        with _dynamo_errors("get_subscription", scope=scope_key):
            item = self._table.get_item(Key={"pk": f"SUB#{scope_key}", "sk": META}).get("Item")
        return self._from_item(item, Subscription) if item else None

    def find_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        with _dynamo_errors("find_subscription"):
            ref = self._table.get_item(
                Key={"pk": f"STRIPESUB#{stripe_subscription_id}", "sk": META}
            ).get("Item")
        if not ref:
            return None
        return self.get_subscription(ref["scope_key"])

    # ------------------------------------------------------------------
    # Meeting bot requests
    # ------------------------------------------------------------------

    def put_bot_request(self, request: MeetingBotRequest) -> None:
        with _dynamo_errors("put_bot_request", bot_id=request.bot_id):
            self._table.put_item(Item={
                "pk": f"BOT#{request.bot_id}",
                "sk": META,
                "entity": "bot_request",
                **self._to_item(request),
            })
            self._table.put_item(Item={
                "pk": f"ORG#{request.organization_id}",
                "sk": f"BOT#{request.created_at.isoformat()}#{request.bot_id}",
                "bot_id": request.bot_id,
            })

    def get_bot_request(self, bot_id: str) -> Optional[MeetingBotRequest]:
        with _dynamo_errors("get_bot_request", bot_id=bot_id):
            item = self._table.get_item(Key={"pk": f"BOT#{bot_id}", "sk": META}).get("Item")
        return self._from_item(item, MeetingBotRequest) if item else None

    def list_bot_requests(self, org_id: str, limit: int) -> List[MeetingBotRequest]:
        with _dynamo_errors("list_bot_requests", org_id=org_id):
            response = self._table.query(
                KeyConditionExpression=Key("pk").eq(f"ORG#{org_id}") & Key("sk").begins_with("BOT#"),
                ScanIndexForward=False,
                Limit=limit,
            )
        requests = []
        for ref in response.get("Items", []):
            request = self.get_bot_request(ref["bot_id"])
            if request is not None:
                requests.append(request)
        return requests

    def update_bot_status(
        self,
        bot_id: str,
        status: BotStatus,
        error_message: Optional[str] = None,
        room_code: Optional[str] = None,
    ) -> bool:
        update = "SET #s = :s, updated_at = :now"
        values: Dict[str, Any] = {
            ":s": status.value,
            ":now": datetime.now(timezone.utc).isoformat(),
            ":t0": _TERMINAL[0],
            ":t1": _TERMINAL[1],
        }
        if error_message is not None:
            update += ", error_message = :e"
            values[":e"] = error_message
        if room_code is not None:
            update += ", room_code = :r"
            values[":r"] = room_code

        with _dynamo_errors("update_bot_status", bot_id=bot_id):
            try:
                self._table.update_item(
                    Key={"pk": f"BOT#{bot_id}", "sk": META},
                    UpdateExpression=update,
                    ConditionExpression="attribute_exists(pk) AND NOT #s IN (:t0, :t1)",
                    ExpressionAttributeNames={"#s": "status"},
                    ExpressionAttributeValues=values,
                )
            except ClientError as exc:
                if _is_conditional_failure(exc):
                    return False
                raise
        return True

    def claim_bot_processing(self, bot_id: str) -> bool:
        with _dynamo_errors("claim_bot_processing", bot_id=bot_id):
            try:
                self._table.update_item(
                    Key={"pk": f"BOT#{bot_id}", "sk": META},
                    UpdateExpression="SET processing_claimed = :true, updated_at = :now",
                    ConditionExpression=(
                        "attribute_exists(pk) AND processing_claimed = :false "
                        "AND NOT #s IN (:t0, :t1)"
                    ),
                    ExpressionAttributeNames={"#s": "status"},
                    ExpressionAttributeValues={
                        ":true": True,
                        ":false": False,
                        ":now": datetime.now(timezone.utc).isoformat(),
                        ":t0": _TERMINAL[0],
                        ":t1": _TERMINAL[1],
                    },
                )
            except ClientError as exc:
                if _is_conditional_failure(exc):
                    return False
                raise
        return True

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    def increment_usage(self, user_id: str, period: str) -> int:
        with _dynamo_errors("increment_usage", user_id=user_id):
            response = self._table.update_item(
                Key={"pk": f"USER#{user_id}", "sk": f"USAGE#{period}"},
                UpdateExpression="ADD extractions :one",
                ExpressionAttributeValues={":one": 1},
                ReturnValues="UPDATED_NEW",
            )
        return int(response["Attributes"]["extractions"])

    def get_usage(self, user_id: str, period: str) -> int:
        with _dynamo_errors("get_usage", user_id=user_id):
            item = self._table.get_item(
                Key={"pk": f"USER#{user_id}", "sk": f"USAGE#{period}"}
            ).get("Item")
        return int(item.get("extractions", 0)) if item else 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _query_all(self, key_condition: Any) -> List[Dict[str, Any]]:
        query_kwargs: Dict[str, Any] = {"KeyConditionExpression": key_condition}
        items: List[Dict[str, Any]] = []
        while True:
            response = self._table.query(**query_kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if last_key is None:
                return items
            query_kwargs["ExclusiveStartKey"] = last_key

    def _count(self, key_condition: Any) -> int:
        query_kwargs: Dict[str, Any] = {"KeyConditionExpression": key_condition, "Select": "COUNT"}
        total = 0
        while True:
            response = self._table.query(**query_kwargs)
            total += int(response.get("Count", 0))
            last_key = response.get("LastEvaluatedKey")
            if last_key is None:
                return total
            query_kwargs["ExclusiveStartKey"] = last_key

    @staticmethod
    def _ttl(expires_at: datetime) -> int:
        return int(expires_at.timestamp())

    @staticmethod
    def _to_item(model: BaseModel, exclude: Optional[set] = None) -> Dict[str, Any]:
        """Model → DynamoDB attributes (JSON-mode dump, None values dropped)."""
        data = model.model_dump(mode="json", exclude=exclude)
        return {k: v for k, v in data.items() if v is not None}

    @staticmethod
    def _from_item(item: Dict[str, Any], model_cls: Type[M]) -> M:
        """DynamoDB attributes → model. Numbers come back as Decimal."""
        fields = {}
        for name in model_cls.model_fields:
            if name not in item:
                continue
            value = item[name]
            if isinstance(value, Decimal):
                value = int(value) if value == value.to_integral_value() else float(value)
            fields[name] = value
        return model_cls.model_validate(fields)
