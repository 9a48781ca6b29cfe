"""
Unit tests for ExportService renderers.
"""

import csv
import io

import pytest

from domain.models import ActionItem, ActionItemStatus
from services.export_service import ExportService
from shared_utils.error_handler import ValidationError


@pytest.fixture()
def items():
    return [
        ActionItem(
            id="a1",
            task="Send budget, v2; final",
            assignee="Bob",
            deadline="2026-03-13",
            created_at="2026-03-10T12:00:00+00:00",
            meeting_title="Planning",
        ),
        ActionItem(
            id="a2",
            task="Book venue",
            assignee="Alice",
            status=ActionItemStatus.COMPLETED,
            created_at="2026-03-10T12:00:00Z",
        ),
    ]


@pytest.fixture()
def exporter(clock) -> ExportService:
    return ExportService(clock=clock)


class TestExport:
    @pytest.mark.parametrize(
        "fmt, media_type, filename",
        [
            ("json", "application/json", "veriact-actions-2026-03-10.json"),
            ("CSV", "text/csv", "veriact-actions-2026-03-10.csv"),
            ("ics", "text/calendar", "veriact-deadlines-2026-03-10.ics"),
            ("md", "text/markdown", "veriact-actions-2026-03-10.md"),
        ],
    )
    def test_formats(self, exporter, items, fmt, media_type, filename) -> None:
        exported = exporter.export(items, fmt)
        assert exported.media_type == media_type
        assert exported.filename == filename

    def test_unknown_format(self, exporter, items) -> None:
        with pytest.raises(ValidationError, match="Unsupported export format"):
            exporter.export(items, "pdf")


class TestJson:
    def test_camel_case_and_import(self, items) -> None:
        content = ExportService.to_json(items)
        assert '"meetingTitle": "Planning"' in content
        assert ExportService.import_json(content) == items

    @pytest.mark.parametrize("content", ["{not json", '{"id": "a1"}', '[{"id": "a1"}]'])
    def test_import_rejects(self, content) -> None:
        with pytest.raises(ValidationError):
            ExportService.import_json(content)


class TestCsv:
    def test_rows(self, items) -> None:
        rows = list(csv.reader(io.StringIO(ExportService.to_csv(items))))
        assert rows[0] == ["Task", "Assignee", "Deadline", "Status", "Meeting", "Created"]
        assert rows[1] == ["Send budget, v2; final", "Bob", "2026-03-13", "pending", "Planning", "2026-03-10"]
        assert rows[2][2] == ""
        assert rows[2][3] == "completed"


class TestIcs:
    def test_only_dated_items(self, exporter, items) -> None:
        content = exporter.to_ics(items)
        assert content.startswith("BEGIN:VCALENDAR\r\n")
        assert content.count("BEGIN:VEVENT") == 1
        assert "UID:a1@veriact.app" in content
        assert "DTSTART:20260313T000000Z" in content
        assert "DTEND:20260313T010000Z" in content
        assert "SUMMARY:Send budget\\, v2\\; final" in content
        assert "DTSTAMP:20260310T120000Z" in content

    def test_no_deadlines(self, exporter, items) -> None:
        with pytest.raises(ValidationError, match="No action items with deadlines"):
            exporter.to_ics([items[1]])

    def test_unparseable_deadline_skipped(self, exporter, items) -> None:
        fuzzy = items[0].model_copy(update={"id": "a3", "deadline": "next Friday"})
        content = exporter.to_ics([items[0], fuzzy])
        assert "UID:a3@" not in content


class TestMarkdown:
    def test_checkboxes(self, items) -> None:
        content = ExportService.to_markdown(items)
        assert "- [ ] **Send budget, v2; final**" in content
        assert "- [x] **Book venue**" in content
        assert "No deadline" in content
