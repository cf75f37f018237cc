"""Notification job model: one scheduled alert instance and its lifecycle."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from itertools import count
from typing import Optional

from medication_reminder.utils import InvalidTransition

SNOOZE_SUFFIX = ":snooze"

_job_ids = count(1)


class JobState(str, Enum):
    """Lifecycle states of a notification job."""

    SCHEDULED = "scheduled"
    FIRED = "fired"
    ACKNOWLEDGED = "acknowledged"
    SNOOZED = "snoozed"
    SKIPPED = "skipped"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (JobState.SCHEDULED, JobState.FIRED)


class AlertAction(str, Enum):
    """User responses offered on a fired alert."""

    TAKEN = "taken"
    SNOOZE = "snooze"
    SKIP = "skip"


# Allowed transitions; CANCELLED is reachable from any live state.
_TRANSITIONS = {
    JobState.SCHEDULED: {JobState.FIRED, JobState.CANCELLED},
    JobState.FIRED: {
        JobState.ACKNOWLEDGED,
        JobState.SNOOZED,
        JobState.SKIPPED,
        JobState.EXPIRED,
        JobState.CANCELLED,
    },
}

_ACTION_STATES = {
    AlertAction.TAKEN: JobState.ACKNOWLEDGED,
    AlertAction.SNOOZE: JobState.SNOOZED,
    AlertAction.SKIP: JobState.SKIPPED,
}


def make_tag(medication_id: int, time: str, snooze: bool = False) -> str:
    """Build the stable de-duplication tag of a job.

    Examples:
        >>> make_tag(3, "08:00")
        '3:08:00'
        >>> make_tag(3, "08:00", snooze=True)
        '3:08:00:snooze'
    """
    tag = f"{medication_id}:{time}"
    return tag + SNOOZE_SUFFIX if snooze else tag


@dataclass
class NotificationJob:
    """A scheduled alert for one (medication, dose time) pair.

    Attributes:
        medication_id: ID of the medication
        medication_name: Denormalized name for rendering
        dosage: Denormalized dosage for rendering
        time: Target dose time ("HH:MM")
        fire_at: Local instant the alert fires
        snooze: Whether this job is a snoozed copy
        state: Current lifecycle state
        job_id: Process-unique identity, distinguishes jobs sharing a tag
        fired_at: Instant the job fired, if it did
        resolved_at: Instant the job reached a terminal state
    """

    medication_id: int
    medication_name: str
    dosage: str
    time: str
    fire_at: datetime
    snooze: bool = False
    state: JobState = JobState.SCHEDULED
    job_id: int = field(default_factory=lambda: next(_job_ids))
    fired_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @property
    def tag(self) -> str:
        return make_tag(self.medication_id, self.time, snooze=self.snooze)

    @property
    def is_active(self) -> bool:
        return not self.state.is_terminal

    def _transition(self, target: JobState, at: Optional[datetime]) -> None:
        allowed = _TRANSITIONS.get(self.state, set())
        if target not in allowed:
            raise InvalidTransition(
                f"Job {self.tag} cannot move from {self.state.value} to {target.value}"
            )
        self.state = target
        if target.is_terminal:
            self.resolved_at = at

    def fire(self, at: datetime) -> None:
        self._transition(JobState.FIRED, at)
        self.fired_at = at

    def respond(self, action: AlertAction, at: datetime) -> JobState:
        """Apply a user response to a fired job.

        Returns:
            The resulting terminal state
        """
        self._transition(_ACTION_STATES[AlertAction(action)], at)
        return self.state

    def expire(self, at: datetime) -> None:
        self._transition(JobState.EXPIRED, at)

    def cancel(self, at: Optional[datetime] = None) -> None:
        self._transition(JobState.CANCELLED, at)

    def snoozed_copy(self, fire_at: datetime) -> "NotificationJob":
        """New Scheduled job re-firing this alert under the snooze tag."""
        return NotificationJob(
            medication_id=self.medication_id,
            medication_name=self.medication_name,
            dosage=self.dosage,
            time=self.time,
            fire_at=fire_at,
            snooze=True,
        )
