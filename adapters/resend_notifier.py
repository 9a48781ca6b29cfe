"""
E-mail notifier adapters.

ResendNotifierAdapter delivers through the Resend HTTP API; LoggingNotifierAdapter
records messages instead of sending them (local dev, CI).
"""

from __future__ import annotations

from typing import Dict, List, Optional

import requests

from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import LogScope
from shared_utils.error_handler import ExternalServiceError


logger = get_scoped_logger(LogScope.ADAPTER)

RESEND_API_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT_SECONDS = 15


class ResendNotifierAdapter:
    """Resend implementation of NotifierPort."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key
        self._from_email = from_email
        self._session = session or requests.Session()

    def send_email(self, to: str, subject: str, html: str) -> None:
        try:
            response = self._session.post(
                RESEND_API_URL,
                json={"from": self._from_email, "to": [to], "subject": subject, "html": html},
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            logger.error("resend_request_failed", error=str(exc))
            raise ExternalServiceError("Resend", "Failed to send e-mail") from exc

        if not response.ok:
            logger.error("resend_rejected", status_code=response.status_code, body=response.text[:500])
            raise ExternalServiceError("Resend", f"E-mail rejected ({response.status_code})")

        logger.info("email_sent", message_id=response.json().get("id"))


class LoggingNotifierAdapter:
    """Keeps sent messages in memory and logs them."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, str]] = []

    def send_email(self, to: str, subject: str, html: str) -> None:
        self.sent.append({"to": to, "subject": subject, "html": html})
        logger.info("email_logged", subject=subject)
