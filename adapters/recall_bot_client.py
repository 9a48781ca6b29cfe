"""
Recall.ai meeting bot adapter.

Implements MeetingBotPort over the Recall.ai REST API with ``requests``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import requests

from core_intelligence.parser.transcript_reader import flatten_transcript
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import LogScope, MeetingBotConfig
from shared_utils.error_handler import ConfigurationError, ExternalServiceError


logger = get_scoped_logger(LogScope.ADAPTER)

REQUEST_TIMEOUT_SECONDS = 30


class RecallBotClientAdapter:
    """Recall.ai implementation of MeetingBotPort."""

    def __init__(
        self,
        api_key: Optional[str],
        api_base: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ConfigurationError("RECALL_API_KEY not configured")
        return {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": "application/json",
        }

    def create_bot(
        self,
        meeting_url: str,
        join_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "meeting_url": meeting_url,
            "bot_name": MeetingBotConfig.BOT_NAME,
            "transcription_options": {"provider": MeetingBotConfig.TRANSCRIPTION_PROVIDER},
            "automatic_leave": {
                "waiting_room_timeout": MeetingBotConfig.WAITING_ROOM_TIMEOUT_SECONDS,
                "noone_joined_timeout": MeetingBotConfig.NOONE_JOINED_TIMEOUT_SECONDS,
            },
            "recording_mode": MeetingBotConfig.RECORDING_MODE,
        }
        if join_at is not None:
            payload["join_at"] = join_at.isoformat()
        if metadata:
            payload["metadata"] = metadata

        try:
            response = self._session.post(
                f"{self._api_base}/api/v1/bot/",
                json=payload,
                headers=self._headers(),
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            logger.error("recall_create_bot_failed", error=str(exc))
            raise ExternalServiceError("Recall.ai", "Failed to create meeting bot") from exc

        if not response.ok:
            logger.error(
                "recall_create_bot_rejected",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ExternalServiceError("Recall.ai", "Failed to create meeting bot")

        bot_id = response.json()["id"]
        logger.info("recall_bot_created", bot_id=bot_id)
        return bot_id

    def get_transcript(self, bot_id: str) -> str:
        """Fetch the transcript and flatten it to ``Speaker: words`` lines."""
        try:
            response = self._session.get(
                f"{self._api_base}/api/v1/bot/{bot_id}/transcript/",
                headers=self._headers(),
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("recall_get_transcript_failed", bot_id=bot_id, error=str(exc))
            raise ExternalServiceError("Recall.ai", "Failed to fetch transcript") from exc

        return flatten_transcript(response.json())

