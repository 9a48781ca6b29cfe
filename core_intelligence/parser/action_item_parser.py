"""
Prompt contract and response parsing for action item extraction.

The prompt is versioned; change ``ACTION_ITEM_PROMPT_VERSION`` whenever the
wording or the expected JSON shape changes.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from domain.models import ActionItem, ActionItemStatus
from shared_utils.logging_utils import ContextualLogger
from shared_utils.constants import LogScope
from shared_utils.error_handler import ExtractionError


logger = ContextualLogger(scope=LogScope.PARSER)

ACTION_ITEM_PROMPT_VERSION = "v1"

DEFAULT_TASK = "Untitled task"
DEFAULT_ASSIGNEE = "Unassigned"
DEFAULT_MEETING_TITLE = "Untitled Meeting"

ACTION_ITEM_SYSTEM_PROMPT = """You are an AI assistant that extracts action items from meeting transcripts.

Your task is to:
1. Identify all action items, tasks, or commitments mentioned
2. Extract who is responsible (the assignee)
3. Identify any deadlines or due dates mentioned
4. Return the results as a JSON array

Important rules:
- Only extract explicit action items (things people committed to do)
- If no assignee is mentioned, use "Unassigned"
- If no deadline is mentioned, set deadline to null
- Be concise but accurate
- Don't make assumptions about tasks that weren't explicitly mentioned

Return ONLY a valid JSON array with this structure:
[
  {
    "task": "Description of the action item",
    "assignee": "Name of person responsible",
    "deadline": "YYYY-MM-DD or null"
  }
]"""

# Placeholders the model writes instead of a JSON null
_EMPTY_DEADLINES = frozenset({"", "null", "none"})

# Markdown fences the model sometimes wraps around the payload
_FENCE = re.compile(r"```json\n?|\n?```")


def _clean_deadline(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return None if text.lower() in _EMPTY_DEADLINES else text


def build_user_prompt(transcript: str) -> str:
    return f"Extract action items from this meeting transcript:\n\n{transcript}"


class ActionItemParser:
    """Turns a raw LLM completion into ActionItem records."""

    @staticmethod
    def parse_drafts(content: str) -> List[Dict[str, Any]]:
        """Strip code fences and decode the JSON array.

        Raises:
            ExtractionError: Empty response, invalid JSON or not an array.
        """
        if not content or not content.strip():
            raise ExtractionError("No response from AI")

        cleaned = _FENCE.sub("", content).strip()
        try:
            drafts = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            logger.error("action_item_response_unparseable", response_chars=len(content))
            raise ExtractionError("Failed to parse AI response") from exc

        if not isinstance(drafts, list):
            logger.error("action_item_response_not_array", response_type=type(drafts).__name__)
            raise ExtractionError("Failed to parse AI response")
        return drafts

    @staticmethod
    def to_action_items(
        drafts: List[Any],
        meeting_title: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[ActionItem]:
        """Assign ids, defaults, ``pending`` status and a creation timestamp."""
        now = now or datetime.now(timezone.utc)
        stamp = int(now.timestamp() * 1000)
        title = (meeting_title or "").strip() or DEFAULT_MEETING_TITLE

        items = []
        for index, draft in enumerate(drafts):
            draft = draft if isinstance(draft, dict) else {}
            deadline = _clean_deadline(draft.get("deadline"))
            items.append(
                ActionItem(
                    id=f"action-{stamp}-{index}",
                    task=str(draft.get("task") or DEFAULT_TASK),
                    assignee=str(draft.get("assignee") or DEFAULT_ASSIGNEE),
                    deadline=deadline,
                    status=ActionItemStatus.PENDING,
                    created_at=now.isoformat(),
                    meeting_title=title,
                )
            )
        return items

    @classmethod
    def parse(
        cls,
        content: str,
        meeting_title: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[ActionItem]:
        return cls.to_action_items(cls.parse_drafts(content), meeting_title, now)
