"""
Port interface for the meeting-recording bot provider.

Implementations: RecallBotClientAdapter (adapters/)
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class MeetingBotPort(Protocol):
    """Recording bot provider (Recall.ai)."""

    def create_bot(
        self,
        meeting_url: str,
        join_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Dispatch a bot into a meeting.

        Returns:
            Provider bot id.

        Raises:
            ExternalServiceError: If the provider rejects the request.
        """
        ...

    def get_transcript(self, bot_id: str) -> str:
        """Flattened transcript text of a finished recording."""
        ...
