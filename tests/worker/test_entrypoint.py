"""
Tests for worker.entrypoint.main().

Covers:
  - storage_cleanup job (uses the configured retention window)
  - send_reminders job
  - Missing / unknown JOB (exit 1)
  - Job failure (exception, exit 1)
"""

import os
from unittest.mock import MagicMock, patch

import pytest

from domain.models import ReminderReport
from worker.entrypoint import main


def _mock_settings(**overrides):
    """Return a MagicMock that looks like Settings."""
    defaults = {"storage_retention_hours": 24, "log_level": "INFO"}
    defaults.update(overrides)
    mock = MagicMock()
    for k, v in defaults.items():
        setattr(mock, k, v)
    return mock


class TestWorkerMain:
    @patch.dict(os.environ, {"JOB": "storage_cleanup"}, clear=False)
    @patch("worker.entrypoint.get_settings")
    @patch("worker.entrypoint.get_di_container")
    def test_storage_cleanup(self, mock_get_di, mock_get_settings) -> None:
        mock_get_settings.return_value = _mock_settings(storage_retention_hours=6)
        container = MagicMock()
        container.get_media_store.return_value.cleanup.return_value = 3
        mock_get_di.return_value = container

        assert main() == 0
        container.get_media_store.return_value.cleanup.assert_called_once_with(6)

    @patch.dict(os.environ, {"JOB": " Send_Reminders "}, clear=False)
    @patch("worker.entrypoint.get_settings")
    @patch("worker.entrypoint.get_di_container")
    def test_send_reminders(self, mock_get_di, mock_get_settings) -> None:
        mock_get_settings.return_value = _mock_settings()
        container = MagicMock()
        container.get_reminder_service.return_value.send_reminders.return_value = ReminderReport(
            emails_sent=4, errors=0, rooms_processed=2
        )
        mock_get_di.return_value = container

        assert main() == 0
        container.get_reminder_service.return_value.send_reminders.assert_called_once()
        container.get_media_store.assert_not_called()

    @pytest.mark.parametrize("job", ["", "ingest"])
    @patch("worker.entrypoint.get_di_container")
    def test_unknown_job_returns_one(self, mock_get_di, job) -> None:
        with patch.dict(os.environ, {"JOB": job}, clear=False):
            assert main() == 1
        mock_get_di.assert_not_called()

    @patch.dict(os.environ, {"JOB": "storage_cleanup"}, clear=False)
    @patch("worker.entrypoint.get_settings")
    @patch("worker.entrypoint.get_di_container")
    def test_failure_returns_one(self, mock_get_di, mock_get_settings) -> None:
        mock_get_settings.return_value = _mock_settings()
        mock_get_di.return_value.get_media_store.return_value.cleanup.side_effect = RuntimeError("S3 down")

        assert main() == 1
