"""
ExportService - renders action items as JSON, CSV, iCalendar or Markdown.
"""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError

from domain.models import ActionItem, utc_now
from shared_utils.constants import LogScope
from shared_utils.error_handler import ValidationError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.EXPORT)

CSV_HEADER = ["Task", "Assignee", "Deadline", "Status", "Meeting", "Created"]
EVENT_DURATION = timedelta(hours=1)


class ExportedFile(BaseModel):
    content: str
    media_type: str
    filename: str


def _ics_escape(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace(";", "\\;").replace(",", "\\,")
    return escaped.replace("\r\n", "\\n").replace("\n", "\\n")


def _ics_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _parse_datetime(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class ExportService:
    """Stateless renderers; ``clock`` only feeds timestamps and filenames."""

    FORMATS = ("json", "csv", "ics", "md")

    def __init__(self, ics_domain: str = "veriact.app", clock: Callable[[], datetime] = utc_now) -> None:
        self._domain = ics_domain
        self._clock = clock

    def export(self, items: List[ActionItem], fmt: str) -> ExportedFile:
        fmt = (fmt or "").lower()
        date = self._clock().strftime("%Y-%m-%d")
        if fmt == "json":
            result = ExportedFile(
                content=self.to_json(items),
                media_type="application/json",
                filename=f"veriact-actions-{date}.json",
            )
        elif fmt == "csv":
            result = ExportedFile(
                content=self.to_csv(items),
                media_type="text/csv",
                filename=f"veriact-actions-{date}.csv",
            )
        elif fmt == "ics":
            result = ExportedFile(
                content=self.to_ics(items),
                media_type="text/calendar",
                filename=f"veriact-deadlines-{date}.ics",
            )
        elif fmt == "md":
            result = ExportedFile(
                content=self.to_markdown(items),
                media_type="text/markdown",
                filename=f"veriact-actions-{date}.md",
            )
        else:
            raise ValidationError(f"Unsupported export format: {fmt}", context={"formats": list(self.FORMATS)})

        logger.info("action_items_exported", format=fmt, count=len(items))
        return result

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    @staticmethod
    def to_json(items: List[ActionItem]) -> str:
        return json.dumps([i.model_dump(mode="json", by_alias=True) for i in items], indent=2)

    @staticmethod
    def import_json(content: str) -> List[ActionItem]:
        """Parse a JSON export back into action items.

        Raises:
            ValidationError: Not a JSON array of action items.
        """
        try:
            data = json.loads(content)
        except ValueError as exc:
            raise ValidationError("Invalid JSON") from exc
        if not isinstance(data, list):
            raise ValidationError("Expected a JSON array of action items")
        try:
            return [ActionItem.model_validate(entry) for entry in data]
        except PydanticValidationError as exc:
            raise ValidationError("Invalid action item", context={"errors": exc.error_count()}) from exc

    # ------------------------------------------------------------------
    # CSV
    # ------------------------------------------------------------------

    @staticmethod
    def to_csv(items: List[ActionItem]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for item in items:
            created = _parse_datetime(item.created_at)
            writer.writerow(
                [
                    item.task,
                    item.assignee,
                    item.deadline or "",
                    item.status.value,
                    item.meeting_title or "",
                    created.strftime("%Y-%m-%d") if created else item.created_at,
                ]
            )
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # iCalendar
    # ------------------------------------------------------------------

    def to_ics(self, items: List[ActionItem]) -> str:
        """One VEVENT per item with a parseable deadline.

        Raises:
            ValidationError: No item has a deadline.
        """
        stamp = _ics_timestamp(self._clock())
        events = []
        for item in items:
            if not item.deadline:
                continue
            start = _parse_datetime(item.deadline)
            if start is None:
                logger.warning("export_deadline_unparseable", item_id=item.id)
                continue
            description = f"Assignee: {item.assignee}\nFrom: {item.meeting_title or 'Meeting'}"
            events.extend(
                [
                    "BEGIN:VEVENT",
                    f"UID:{item.id}@{self._domain}",
                    f"DTSTAMP:{stamp}",
                    f"DTSTART:{_ics_timestamp(start)}",
                    f"DTEND:{_ics_timestamp(start + EVENT_DURATION)}",
                    f"SUMMARY:{_ics_escape(item.task)}",
                    f"DESCRIPTION:{_ics_escape(description)}",
                    "STATUS:CONFIRMED",
                    "END:VEVENT",
                ]
            )

        if not events:
            raise ValidationError("No action items with deadlines to export")

        lines = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            "PRODID:-//VeriAct//Action Items//EN",
            "CALSCALE:GREGORIAN",
            *events,
            "END:VCALENDAR",
        ]
        return "\r\n".join(lines) + "\r\n"

    # ------------------------------------------------------------------
    # Markdown
    # ------------------------------------------------------------------

    @staticmethod
    def to_markdown(items: List[ActionItem]) -> str:
        blocks = []
        for item in items:
            deadline = item.deadline or "No deadline"
            blocks.append(
                f"- [{'x' if item.status.value == 'completed' else ' '}] **{item.task}**\n"
                f"  {item.assignee} | {deadline} | {item.status.value}"
            )
        return "\n\n".join(blocks)
