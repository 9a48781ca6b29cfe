"""
Stripe payment gateway adapter.

Implements PaymentGatewayPort with the ``stripe`` SDK: webhook signature
verification, subscription lookup and checkout session creation.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import stripe

from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import LogScope
from shared_utils.error_handler import ConfigurationError, ExternalServiceError, ValidationError


logger = get_scoped_logger(LogScope.ADAPTER)


class StripePaymentGatewayAdapter:
    """Stripe implementation of PaymentGatewayPort.

    ``skip_signature`` parses webhook payloads without verification and must
    only be enabled in development.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: Optional[str],
        skip_signature: bool = False,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._skip_signature = skip_signature

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if self._skip_signature:
            logger.warning("stripe_signature_check_skipped")
            return self._parse(payload)

        if not signature:
            raise ValidationError("Missing stripe-signature header")
        if not self._webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET not configured")

        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_signature_invalid", error=str(exc))
            raise ValidationError("Invalid signature") from exc
        except ValueError as exc:
            raise ValidationError("Invalid webhook payload") from exc

        return self._parse(payload)

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self._require_key())
        except stripe.StripeError as exc:
            logger.error("stripe_subscription_retrieve_failed", subscription_id=subscription_id, error=str(exc))
            raise ExternalServiceError("Stripe", "Failed to retrieve subscription") from exc
        return {
            "id": subscription.get("id"),
            "status": subscription.get("status"),
            "customer": subscription.get("customer"),
            "current_period_start": subscription.get("current_period_start"),
            "current_period_end": subscription.get("current_period_end"),
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end", False)),
        }

    def create_checkout_session(
        self,
        price_id: str,
        customer_email: Optional[str],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> str:
        try:
            session = stripe.checkout.Session.create(
                api_key=self._require_key(),
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                customer_email=customer_email,
                metadata=metadata,
                subscription_data={"metadata": metadata},
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as exc:
            logger.error("stripe_checkout_failed", error=str(exc))
            raise ExternalServiceError("Stripe", "Failed to create checkout session") from exc
        logger.info("stripe_checkout_created", session_id=session.get("id"))
        return session.get("url")

    def _require_key(self) -> str:
        if not self._secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY not configured")
        return self._secret_key

    @staticmethod
    def _parse(payload: bytes) -> Dict[str, Any]:
        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise ValidationError("Invalid webhook payload") from exc
        if not isinstance(event, dict) or "type" not in event:
            raise ValidationError("Invalid webhook payload")
        return event
