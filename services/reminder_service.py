"""
ReminderService - e-mails the open action items of every active room.

Runs from the cron endpoint or the worker. One e-mail per recipient per room;
failures are counted and logged, never retried (the next run sends again).
"""

from __future__ import annotations

import html
from datetime import datetime
from typing import Callable, Dict, List, Optional

from domain.models import ActionItem, ActionItemStatus, ReminderReport, Room, utc_now
from ports.metadata_store import RoomStorePort
from ports.notifier import NotifierPort
from services.access_policy import AccessPolicy
from shared_utils.constants import LogScope
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.REMINDERS)

OPEN_STATUSES = (ActionItemStatus.PENDING, ActionItemStatus.IN_PROGRESS)


def render_reminder_email(
    recipient: str,
    room: Room,
    items: List[ActionItem],
    room_link: str,
) -> Dict[str, str]:
    """Subject and HTML body listing the open items of one room."""
    count = len(items)
    plural = "s" if count != 1 else ""
    name = html.escape(recipient.split("@")[0] or "Team Member")
    title = html.escape(room.title)

    sections = []
    for status, heading in ((ActionItemStatus.PENDING, "Not Started"), (ActionItemStatus.IN_PROGRESS, "In Progress")):
        group = [i for i in items if i.status == status]
        if not group:
            continue
        rows = "".join(
            "<li><strong>{task}</strong> ({assignee}){due}</li>".format(
                task=html.escape(i.task),
                assignee=html.escape(i.assignee),
                due=f" - due {html.escape(i.deadline)}" if i.deadline else "",
            )
            for i in group
        )
        sections.append(f"<h3>{heading} ({len(group)})</h3><ul>{rows}</ul>")

    body = (
        "<!DOCTYPE html><html><body>"
        f"<h1>VeriAct</h1><h2>Hi {name}</h2>"
        f"<p>You have <strong>{count} pending action item{plural}</strong> in <strong>{title}</strong>"
        " that need your attention.</p>"
        f"{''.join(sections)}"
        f'<p><a href="{html.escape(room_link, quote=True)}">Open room {html.escape(room.code)}</a></p>'
        "</body></html>"
    )
    return {"subject": f"{count} Action Item{plural} Due Soon - {room.title}", "html": body}


class ReminderService:

    def __init__(
        self,
        *,
        rooms: RoomStorePort,
        notifier: NotifierPort,
        access_policy: AccessPolicy,
        app_url: str,
        test_recipient: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._rooms = rooms
        self._notifier = notifier
        self._policy = access_policy
        self._app_url = app_url.rstrip("/")
        self._test_recipient = test_recipient.lower() if test_recipient else None
        self._clock = clock

    def send_reminders(self) -> ReminderReport:
        report = ReminderReport()
        rooms = self._rooms.list_active_rooms(self._clock())
        report.rooms_processed = len(rooms)
        logger.info("reminder_job_started", active_rooms=len(rooms))

        for room in rooms:
            try:
                self._remind_room(room, report)
            except Exception as exc:
                report.errors += 1
                logger.error("reminder_room_failed", room_code=room.code, error=str(exc))

        logger.info(
            "reminder_job_completed",
            emails_sent=report.emails_sent,
            errors=report.errors,
            rooms_processed=report.rooms_processed,
        )
        return report

    def _remind_room(self, room: Room, report: ReminderReport) -> None:
        items = [i for i in self._rooms.list_items(room.code) if i.status in OPEN_STATUSES]
        if not items:
            logger.debug("reminder_room_skipped", room_code=room.code, reason="no_open_items")
            return
        if not self._policy.check_feature(room.creator_id, "can_receive_reminders"):
            logger.debug("reminder_room_skipped", room_code=room.code, reason="plan")
            return

        room_link = f"{self._app_url}/dashboard?room={room.code}"
        for recipient in self._recipients(room):
            message = render_reminder_email(recipient, room, items, room_link)
            try:
                self._notifier.send_email(recipient, message["subject"], message["html"])
                report.emails_sent += 1
            except Exception as exc:
                report.errors += 1
                logger.warning("reminder_send_failed", room_code=room.code, error=str(exc))

    def _recipients(self, room: Room) -> List[str]:
        emails = [m.email.lower() for m in self._rooms.list_members(room.code) if m.email]
        if room.creator_email:
            emails.append(room.creator_email.lower())
        # Preserve order, drop duplicates
        recipients = list(dict.fromkeys(emails))
        if self._test_recipient:
            recipients = [e for e in recipients if e == self._test_recipient]
        return recipients
