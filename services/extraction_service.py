"""
ExtractionService - transcript text in, structured action items out.

One LLM call per transcript. The response must be a JSON array; anything else
is a hard failure and nothing partial is returned.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, List, Optional

from core_intelligence.parser.action_item_parser import (
    ACTION_ITEM_PROMPT_VERSION,
    ACTION_ITEM_SYSTEM_PROMPT,
    ActionItemParser,
    build_user_prompt,
)
from domain.models import ActionItem, utc_now
from ports.llm_provider import LLMProviderPort
from services.access_policy import AccessPolicy
from shared_utils.constants import Defaults, LogScope, TranscriptLimits
from shared_utils.error_handler import AppException, ExtractionError, ValidationError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.EXTRACTION)


class ExtractionService:
    """Wraps the LLM call, response parsing and usage accounting."""

    def __init__(
        self,
        *,
        llm_provider: LLMProviderPort,
        access_policy: Optional[AccessPolicy] = None,
        temperature: float = Defaults.EXTRACTION_TEMPERATURE,
        max_tokens: int = Defaults.EXTRACTION_MAX_TOKENS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._llm = llm_provider
        self._policy = access_policy
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._clock = clock

    def extract(
        self,
        transcript: str,
        meeting_title: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[ActionItem]:
        """Extract action items from a transcript.

        When ``user_id`` is given and an access policy is wired, the free-plan
        monthly quota is checked before the LLM call and a successful
        extraction is counted.

        Raises:
            ValidationError: Transcript missing or shorter than 20 characters.
            QuotaExceededError: Free monthly limit reached.
            ExtractionError: LLM failure or unparseable response.
        """
        if not isinstance(transcript, str) or len(transcript.strip()) < TranscriptLimits.MIN_TRANSCRIPT_CHARS:
            raise ValidationError(
                "Transcript is too short or invalid",
                context={"min_chars": TranscriptLimits.MIN_TRANSCRIPT_CHARS},
            )

        if user_id and self._policy:
            self._policy.check_extraction_quota(user_id)

        start = time.perf_counter()
        content = self._complete(transcript)
        items = ActionItemParser.parse(content, meeting_title, now=self._clock())

        if user_id and self._policy:
            self._policy.record_extraction(user_id)

        logger.info(
            "action_items_extracted",
            count=len(items),
            transcript_chars=len(transcript),
            prompt_version=ACTION_ITEM_PROMPT_VERSION,
            latency_ms=round((time.perf_counter() - start) * 1000, 1),
        )
        return items

    def _complete(self, transcript: str) -> str:
        try:
            return self._llm.generate(
                build_user_prompt(transcript),
                system_prompt=ACTION_ITEM_SYSTEM_PROMPT,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except AppException:
            raise
        except Exception as exc:
            logger.error("llm_call_failed", error_type=type(exc).__name__, error=str(exc))
            raise ExtractionError("Failed to extract action items") from exc
