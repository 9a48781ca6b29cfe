"""
Port interface for the payment provider.

Implementations: StripePaymentGatewayAdapter (adapters/)
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class PaymentGatewayPort(Protocol):
    """Payment provider (Stripe)."""

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the webhook signature and parse the event.

        Raises:
            ValidationError: Missing or invalid signature, malformed payload.
        """
        ...

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        ...

    def create_checkout_session(
        self,
        price_id: str,
        customer_email: Optional[str],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> str:
        """Create a subscription checkout session and return its URL."""
        ...
