"""
AccessPolicy - derives a user's effective plan and feature flags.

Resolution order:
    1. Any organization the user belongs to with an active enterprise
       subscription (the first such organization wins).
    2. The user's personal subscription when it is active and on pro.
    3. Free.

Nothing is cached: a plan change is visible on the next call.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from domain.models import (
    FeatureFlags,
    Plan,
    SubscriptionInfo,
    SubscriptionStatus,
    scope_key,
    utc_now,
)
from ports.metadata_store import (
    OrganizationStorePort,
    SubscriptionStorePort,
    UsageStorePort,
)
from shared_utils.constants import LogScope
from shared_utils.error_handler import AuthorizationError, QuotaExceededError, ValidationError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.ACCESS)

FEATURE_NAMES = frozenset(
    {"can_create_rooms", "can_invite_members", "can_use_meeting_bot", "can_receive_reminders"}
)


def usage_period(now: datetime) -> str:
    return now.strftime("%Y-%m")


class AccessPolicy:
    """Plan resolution and feature gating."""

    def __init__(
        self,
        *,
        organizations: OrganizationStorePort,
        subscriptions: SubscriptionStorePort,
        usage: UsageStorePort,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._orgs = organizations
        self._subs = subscriptions
        self._usage = usage
        self._clock = clock

    def resolve(self, user_id: str) -> SubscriptionInfo:
        for membership in self._orgs.list_user_memberships(user_id):
            sub = self._subs.get_subscription(scope_key(organization_id=membership.organization_id))
            if sub and sub.is_active and sub.plan == Plan.ENTERPRISE:
                org = self._orgs.get_organization(membership.organization_id)
                return SubscriptionInfo(
                    plan=Plan.ENTERPRISE,
                    status=sub.status,
                    is_active=True,
                    organization_id=membership.organization_id,
                    organization_name=org.name if org else None,
                    features=FeatureFlags.for_plan(Plan.ENTERPRISE),
                )

        personal = self._subs.get_subscription(scope_key(user_id=user_id))
        if personal and personal.is_active and personal.plan == Plan.PRO:
            return SubscriptionInfo(
                plan=Plan.PRO,
                status=personal.status,
                is_active=True,
                features=FeatureFlags.for_plan(Plan.PRO),
            )

        return SubscriptionInfo(
            plan=Plan.FREE,
            status=SubscriptionStatus.ACTIVE,
            is_active=True,
            features=FeatureFlags.for_plan(Plan.FREE),
        )

    def check_feature(self, user_id: str, feature: str) -> bool:
        if feature not in FEATURE_NAMES:
            raise ValidationError(f"Unknown feature: {feature}")
        return bool(getattr(self.resolve(user_id).features, feature))

    def require_feature(self, user_id: str, feature: str, message: Optional[str] = None) -> SubscriptionInfo:
        """Return the resolved info, or raise when the plan lacks ``feature``.

        Raises:
            AuthorizationError: Plan does not include the feature.
        """
        if feature not in FEATURE_NAMES:
            raise ValidationError(f"Unknown feature: {feature}")
        info = self.resolve(user_id)
        if not getattr(info.features, feature):
            logger.info("feature_denied", user_id=user_id, feature=feature, plan=info.plan.value)
            raise AuthorizationError(
                message or "Your plan does not include this feature",
                context={"feature": feature, "plan": info.plan.value},
            )
        return info

    def check_extraction_quota(self, user_id: str) -> int:
        """Return remaining extractions this month (-1 for unlimited).

        Raises:
            QuotaExceededError: Free monthly limit reached.
        """
        limit = self.resolve(user_id).features.extraction_limit
        if limit is None:
            return -1

        used = self._usage.get_usage(user_id, usage_period(self._clock()))
        if used >= limit:
            logger.info("extraction_quota_exceeded", user_id=user_id, used=used, limit=limit)
            raise QuotaExceededError(
                f"Monthly extraction limit of {limit} reached. Upgrade to Pro for unlimited extractions.",
                context={"used": used, "limit": limit},
            )
        return limit - used

    def record_extraction(self, user_id: str) -> int:
        count = self._usage.increment_usage(user_id, usage_period(self._clock()))
        logger.debug("extraction_recorded", user_id=user_id, count=count)
        return count
