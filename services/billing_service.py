"""
BillingService - Stripe checkout and subscription webhooks.

Webhook events are applied to the single subscription row of their scope
(``user:{id}`` or ``org:{id}``). Handlers never retry; Stripe redelivers
failed events on its own schedule.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from domain.models import (
    Plan,
    Subscription,
    SubscriptionStatus,
    UserContext,
    utc_now,
)
from ports.metadata_store import SubscriptionStorePort
from ports.payment_gateway import PaymentGatewayPort
from services.organization_service import OrganizationService
from shared_utils.constants import LogScope
from shared_utils.error_handler import ConfigurationError, ValidationError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.BILLING)

DEFAULT_PERIOD = timedelta(days=30)


def _from_epoch(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class BillingService:
    """Checkout sessions and webhook-driven subscription state."""

    def __init__(
        self,
        *,
        gateway: PaymentGatewayPort,
        subscriptions: SubscriptionStorePort,
        organizations: OrganizationService,
        price_ids: Dict[Plan, Optional[str]],
        app_url: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._gateway = gateway
        self._subs = subscriptions
        self._orgs = organizations
        self._prices = price_ids
        self._app_url = app_url.rstrip("/")
        self._clock = clock
        self._handlers = {
            "checkout.session.completed": self._on_checkout_completed,
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_payment_succeeded,
            "invoice.payment_failed": self._on_payment_failed,
        }

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create_checkout_session(
        self,
        user: UserContext,
        plan: str,
        organization_id: Optional[str] = None,
    ) -> str:
        """Return the hosted checkout URL for ``plan``.

        Raises:
            ValidationError: Unknown plan, enterprise without organization,
                missing e-mail.
            NotFoundError / AuthorizationError: Organization missing or not
                owned by the caller.
            ConfigurationError: Price id not configured.
        """
        try:
            plan = Plan(plan)
        except ValueError:
            raise ValidationError("Invalid plan", context={"plan": plan})
        if plan == Plan.FREE:
            raise ValidationError("Invalid plan", context={"plan": plan.value})
        if plan == Plan.ENTERPRISE and not organization_id:
            raise ValidationError("Organization ID required for Enterprise")
        if not user.email:
            raise ValidationError("User email not found")

        price_id = self._prices.get(plan)
        if not price_id:
            raise ConfigurationError("Price ID not configured", context={"plan": plan.value})

        if plan == Plan.ENTERPRISE:
            self._orgs.get_owned_organization(user, organization_id)

        metadata = {
            "userId": user.user_id if plan == Plan.PRO else "",
            "organizationId": organization_id if plan == Plan.ENTERPRISE else "",
            "plan": plan.value,
        }
        url = self._gateway.create_checkout_session(
            price_id=price_id,
            customer_email=user.email,
            metadata=metadata,
            success_url=f"{self._app_url}/dashboard?success=true&plan={plan.value}",
            cancel_url=f"{self._app_url}/dashboard?cancelled=true",
        )
        logger.info("checkout_session_created", user_id=user.user_id, plan=plan.value)
        return url

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> str:
        """Verify and apply one webhook delivery; returns the event type."""
        event = self._gateway.construct_event(payload, signature)
        self.handle_event(event)
        return event["type"]

    def handle_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        handler = self._handlers.get(event_type)

        if handler is None:
            logger.info("stripe_event_ignored", event_type=event_type)
            return

        logger.info("stripe_event_received", event_type=event_type, object_id=obj.get("id"))
        handler(obj)

    def _on_checkout_completed(self, session: Dict[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId") or None
        organization_id = metadata.get("organizationId") or None
        raw_plan = metadata.get("plan")
        subscription_id = session.get("subscription")

        if not raw_plan or not (user_id or organization_id):
            logger.warning("checkout_missing_metadata", session_id=session.get("id"))
            return
        if not subscription_id:
            logger.warning("checkout_missing_subscription", session_id=session.get("id"))
            return

        try:
            plan = Plan(raw_plan)
        except ValueError:
            logger.warning("checkout_unknown_plan", session_id=session.get("id"), plan=raw_plan)
            return

        details = self._gateway.retrieve_subscription(subscription_id)
        now = self._clock()
        period_start = _from_epoch(details.get("current_period_start")) or now
        period_end = _from_epoch(details.get("current_period_end")) or now + DEFAULT_PERIOD

        subscription = Subscription(
            user_id=None if organization_id else user_id,
            organization_id=organization_id,
            plan=plan,
            status=SubscriptionStatus.from_provider(details.get("status") or "active"),
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(details.get("cancel_at_period_end", False)),
            stripe_customer_id=session.get("customer"),
            stripe_subscription_id=subscription_id,
            updated_at=now,
        )
        self._subs.put_subscription(subscription)
        logger.info(
            "subscription_activated",
            scope=subscription.scope_key,
            plan=subscription.plan.value,
            status=subscription.status.value,
        )

    def _on_subscription_updated(self, obj: Dict[str, Any]) -> None:
        self._update(
            obj.get("id"),
            status=SubscriptionStatus.from_provider(obj.get("status")),
            current_period_start=_from_epoch(obj.get("current_period_start")),
            current_period_end=_from_epoch(obj.get("current_period_end")),
            cancel_at_period_end=bool(obj.get("cancel_at_period_end", False)),
        )

    def _on_subscription_deleted(self, obj: Dict[str, Any]) -> None:
        self._update(obj.get("id"), status=SubscriptionStatus.CANCELLED)

    def _on_payment_succeeded(self, invoice: Dict[str, Any]) -> None:
        if invoice.get("subscription"):
            self._update(invoice["subscription"], status=SubscriptionStatus.ACTIVE)

    def _on_payment_failed(self, invoice: Dict[str, Any]) -> None:
        if invoice.get("subscription"):
            self._update(invoice["subscription"], status=SubscriptionStatus.PAST_DUE)

    def _update(self, stripe_subscription_id: Optional[str], **changes: Any) -> None:
        if not stripe_subscription_id:
            return
        current = self._subs.find_subscription_by_stripe_id(stripe_subscription_id)
        if current is None:
            logger.warning("subscription_not_found", stripe_subscription_id=stripe_subscription_id)
            return

        updates = {k: v for k, v in changes.items() if v is not None}
        updates["updated_at"] = self._clock()
        updated = current.model_copy(update=updates)
        self._subs.put_subscription(updated)
        logger.info(
            "subscription_updated",
            scope=updated.scope_key,
            status=updated.status.value,
        )
