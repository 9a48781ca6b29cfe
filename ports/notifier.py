"""
Port interface for outbound e-mail.

Implementations: ResendNotifierAdapter, LoggingNotifierAdapter (adapters/)
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotifierPort(Protocol):

    def send_email(self, to: str, subject: str, html: str) -> None:
        """Deliver one e-mail.

        Raises:
            ExternalServiceError: Delivery was rejected or the API unreachable.
        """
        ...
