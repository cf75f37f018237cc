"""Notification manager: turns notification jobs into presentable alerts."""

from typing import Optional

from loguru import logger

from medication_reminder.config import settings
from medication_reminder.services.notification_job import AlertAction, NotificationJob
from medication_reminder.services.presenter import Alert, AlertButton

REMINDER_TITLE = "Time to take your medication"
SNOOZED_REMINDER_TITLE = "Time to take your medication (reminder)"


class NotificationManager:
    """Formatting logic for medication alerts.

    Handles:
    - Formatting alert title and body
    - Creating the three alert actions with their callback data
    - Parsing callback data coming back from the host
    """

    def __init__(self, snooze_minutes: Optional[int] = None):
        """Initialize notification manager.

        Args:
            snooze_minutes: Snooze delay shown on the snooze action
        """
        self.snooze_minutes = (
            settings.snooze_minutes if snooze_minutes is None else snooze_minutes
        )
        logger.debug("NotificationManager initialized")

    def format_alert_body(self, job: NotificationJob) -> str:
        """Format alert body: medication name followed by dosage.

        Format:
            Sertraline 25 mg (08:00)
        """
        dosage_str = f" {job.dosage}" if job.dosage else ""
        return f"{job.medication_name}{dosage_str} ({job.time})"

    def create_alert_actions(self, job: NotificationJob) -> tuple[AlertButton, ...]:
        """Create the taken / snooze / skip actions for an alert.

        Callback data has the form ``<action>|<tag>``, for example
        ``taken|3:08:00``.
        """
        titles = {
            AlertAction.TAKEN: "taken",
            AlertAction.SNOOZE: f"snooze (+{self.snooze_minutes} min)",
            AlertAction.SKIP: "skip",
        }
        return tuple(
            AlertButton(
                action=action.value,
                title=titles[action],
                callback_data=f"{action.value}|{job.tag}",
            )
            for action in (AlertAction.TAKEN, AlertAction.SNOOZE, AlertAction.SKIP)
        )

    def build_alert(self, job: NotificationJob) -> Alert:
        """Build the alert presented when ``job`` fires."""
        return Alert(
            title=SNOOZED_REMINDER_TITLE if job.snooze else REMINDER_TITLE,
            body=self.format_alert_body(job),
            tag=job.tag,
            actions=self.create_alert_actions(job),
        )

    @staticmethod
    def parse_callback_data(callback_data: str) -> tuple[AlertAction, str]:
        """Split callback data into (action, tag).

        Raises:
            ValueError: If the data is malformed or the action unknown
        """
        action, separator, tag = callback_data.partition("|")
        if not separator or not tag:
            raise ValueError(f"Malformed callback data: {callback_data!r}")
        return AlertAction(action), tag
