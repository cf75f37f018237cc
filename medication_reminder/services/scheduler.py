"""Background scheduler for medication alerts."""

import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from loguru import logger

from medication_reminder.channel import (
    CancelRequest,
    DoseSkipped,
    DoseTaken,
    Endpoint,
    Message,
    ScheduleRequest,
)
from medication_reminder.config import settings
from medication_reminder.data.models import Medication
from medication_reminder.services.notification_job import (
    AlertAction,
    JobState,
    NotificationJob,
)
from medication_reminder.services.notification_manager import NotificationManager
from medication_reminder.services.presenter import AlertPresenter
from medication_reminder.utils import PermissionDenied, handle_errors, log_operation
from medication_reminder.utils.clock import local_now_provider, next_occurrence, seconds_until

Sleep = Callable[[float], Awaitable[None]]


class BackgroundScheduler:
    """Owns the notification jobs of the background execution context.

    One asyncio task per armed job sleeps until the job's fire time.
    Jobs are indexed by tag: at most one Scheduled job and at most one
    Fired (unanswered) job per tag.

    Features:
    - Re-registration replaces every job of a medication
    - Daily recurrence of regular jobs
    - Snooze re-fires under a distinct tag, the last snooze wins
    - Unanswered alerts expire after the configured lifetime
    - Stale fires after cancellation are suppressed at fire time
    """

    def __init__(
        self,
        presenter: AlertPresenter,
        endpoint: Optional[Endpoint] = None,
        now_provider: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Sleep] = None,
        snooze_minutes: Optional[int] = None,
        alert_lifetime_minutes: Optional[int] = None,
        resurface_expired: Optional[bool] = None,
    ):
        """Initialize background scheduler.

        Args:
            presenter: Host alert presentation capability
            endpoint: Background side of the message channel
            now_provider: Returns the current local time
            sleep: Coroutine function used to wait for timers
            snooze_minutes: Snooze delay
            alert_lifetime_minutes: Lifetime of an unanswered alert, 0 disables expiry
            resurface_expired: Re-arm expired alerts like a snooze
        """
        self.presenter = presenter
        self.endpoint = endpoint
        self.now = now_provider or local_now_provider()
        self._sleep = sleep or asyncio.sleep

        snooze_minutes = settings.snooze_minutes if snooze_minutes is None else snooze_minutes
        lifetime = (
            settings.alert_lifetime_minutes
            if alert_lifetime_minutes is None else alert_lifetime_minutes
        )
        self.snooze_delay = timedelta(minutes=snooze_minutes)
        self.alert_lifetime: Optional[timedelta] = timedelta(minutes=lifetime) if lifetime else None
        self.resurface_expired = (
            settings.resurface_expired_alerts if resurface_expired is None else resurface_expired
        )
        self.notification_manager = NotificationManager(snooze_minutes)

        self._scheduled: dict[str, NotificationJob] = {}
        self._fired: dict[str, NotificationJob] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._expiry_timers: dict[str, asyncio.Task] = {}
        self._background_tasks: set[asyncio.Task] = set()

        self._running = False
        self._task: Optional[asyncio.Task] = None

        logger.info("BackgroundScheduler initialized")

    # Lifecycle

    async def start(self):
        """Mark the background context ready and start the message loop."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        if self.endpoint is not None:
            self.endpoint.mark_ready()
            self._task = asyncio.create_task(self._message_loop())
        logger.info("Scheduler started")

    async def stop(self):
        """Stop the message loop and release every timer."""
        if not self._running:
            logger.warning("Scheduler not running")
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._release_all()
        logger.info("Scheduler stopped")

    def restart(self) -> None:
        """Simulate a host restart: every in-memory job is lost.

        Jobs are rebuilt from the foreground's resync, never restored.
        """
        lost = len(self._scheduled) + len(self._fired)
        self._release_all()
        if self.endpoint is not None:
            self.endpoint.restart()
            if self._running:
                self.endpoint.mark_ready()
        log_operation("background_context_restarted", jobs_lost=lost)

    def _release_all(self) -> None:
        for task in [*self._timers.values(), *self._expiry_timers.values()]:
            task.cancel()
        self._timers.clear()
        self._expiry_timers.clear()
        self._scheduled.clear()
        self._fired.clear()

    async def _message_loop(self):
        """Consume inbound messages until stopped."""
        logger.info("Scheduler message loop started")
        while self._running:
            message = await self.endpoint.receive()
            await self.handle_message(message)

    @handle_errors(default_return=None)
    async def handle_message(self, message: Message) -> None:
        """Dispatch one inbound message from the foreground."""
        if isinstance(message, ScheduleRequest):
            self.schedule(message.medication)
        elif isinstance(message, CancelRequest):
            self.cancel(message.medication_id)
        else:
            logger.warning(f"Scheduler ignored unexpected message: {message.type.value}")

    # Public contract

    def schedule(self, medication: Medication) -> None:
        """Replace the jobs of ``medication`` with one job per dose time.

        Fails softly when alerts are not permitted: existing jobs are
        cancelled and nothing new is armed.
        """
        self.cancel(medication.id)

        try:
            self._ensure_permitted()
        except PermissionDenied as e:
            logger.warning(f"Not scheduling medication {medication.id}: {e}")
            return

        now = self.now()
        for time in medication.times:
            job = NotificationJob(
                medication_id=medication.id,
                medication_name=medication.name,
                dosage=medication.dosage,
                time=time,
                fire_at=next_occurrence(time, now),
            )
            self._arm(job)

        log_operation(
            "medication_scheduled",
            medication_id=medication.id,
            jobs=len(medication.times),
            times=medication.times,
        )

    def cancel(self, medication_id: int) -> None:
        """Cancel every live job of a medication. Idempotent."""
        now = self.now()
        cancelled = 0

        for tag, job in list(self._scheduled.items()):
            if job.medication_id == medication_id:
                self._disarm(tag)
                job.cancel(now)
                cancelled += 1

        for tag, job in list(self._fired.items()):
            if job.medication_id == medication_id:
                del self._fired[tag]
                self._cancel_expiry(tag)
                job.cancel(now)
                self._spawn(self._dismiss(tag))
                cancelled += 1

        if cancelled:
            log_operation("medication_cancelled", medication_id=medication_id, jobs=cancelled)
        else:
            logger.debug(f"No jobs to cancel for medication {medication_id}")

    async def handle_action(self, tag: str, action) -> bool:
        """Apply the user's response to a fired alert.

        Args:
            tag: Tag of the alert the user answered
            action: "taken", "snooze" or "skip"

        Returns:
            True if a fired job handled the response, False if it was stale
        """
        action = AlertAction(action)
        job = self._fired.pop(tag, None)
        if job is None:
            logger.warning(f"Ignoring '{action.value}' for inactive alert {tag}")
            return False

        self._cancel_expiry(tag)
        now = self.now()
        job.respond(action, now)

        if action is AlertAction.TAKEN:
            self._send(DoseTaken(medication_id=job.medication_id, time=job.time, instant=now))
        elif action is AlertAction.SKIP:
            self._send(DoseSkipped(medication_id=job.medication_id, time=job.time, instant=now))
        else:
            self._arm(job.snoozed_copy(now + self.snooze_delay))

        log_operation(f"job_{job.state.value}", medication_id=job.medication_id, tag=tag)
        return True

    async def handle_callback(self, callback_data: str) -> bool:
        """Apply a response given as alert callback data (``action|tag``)."""
        try:
            action, tag = self.notification_manager.parse_callback_data(callback_data)
        except ValueError as e:
            logger.warning(f"Ignoring alert callback: {e}")
            return False
        return await self.handle_action(tag, action)

    def active_jobs(self, medication_id: Optional[int] = None) -> list[NotificationJob]:
        """Scheduled jobs, optionally for one medication, by fire time."""
        jobs = [
            job for job in self._scheduled.values()
            if medication_id is None or job.medication_id == medication_id
        ]
        return sorted(jobs, key=lambda job: (job.fire_at, job.tag))

    def fired_jobs(self) -> list[NotificationJob]:
        """Fired jobs still waiting for a response."""
        return sorted(self._fired.values(), key=lambda job: job.tag)

    # Internals

    def _ensure_permitted(self) -> None:
        try:
            permitted = self.presenter.is_permitted()
        except Exception as e:
            raise PermissionDenied(f"alert presentation unavailable: {e}") from e
        if not permitted:
            raise PermissionDenied("alerts are off")

    def _arm(self, job: NotificationJob) -> None:
        """Register a Scheduled job and start its timer, replacing its tag."""
        previous = self._scheduled.get(job.tag)
        if previous is not None:
            self._disarm(job.tag)
            previous.cancel(self.now())
            logger.debug(f"Replaced scheduled job {job.tag}")

        self._scheduled[job.tag] = job
        self._timers[job.tag] = asyncio.create_task(self._run_timer(job))
        logger.debug(f"Armed job {job.tag} for {job.fire_at.isoformat()}")

    def _disarm(self, tag: str) -> None:
        self._scheduled.pop(tag, None)
        timer = self._timers.pop(tag, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    def _cancel_expiry(self, tag: str) -> None:
        timer = self._expiry_timers.pop(tag, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _run_timer(self, job: NotificationJob) -> None:
        await self._sleep(seconds_until(job.fire_at, self.now()))
        await self._on_fire(job)

    async def _on_fire(self, job: NotificationJob) -> None:
        """Move a job to Fired and present its alert.

        Validity is checked here, not only when arming: a job cancelled
        or replaced while its timer was elapsing is dropped silently.
        """
        if self._scheduled.get(job.tag) is not job or job.state is not JobState.SCHEDULED:
            logger.debug(f"Suppressed stale fire of {job.tag} ({job.state.value})")
            return

        now = self.now()
        self._scheduled.pop(job.tag)
        self._timers.pop(job.tag, None)
        job.fire(now)

        previous = self._fired.pop(job.tag, None)
        if previous is not None:
            self._cancel_expiry(job.tag)
            previous.expire(now)
            log_operation("job_expired", medication_id=previous.medication_id, tag=previous.tag)
        self._fired[job.tag] = job

        if not job.snooze:
            # Next day's reminder for the same dose time
            self._arm(NotificationJob(
                medication_id=job.medication_id,
                medication_name=job.medication_name,
                dosage=job.dosage,
                time=job.time,
                fire_at=next_occurrence(job.time, max(now, job.fire_at)),
            ))

        log_operation("job_fired", medication_id=job.medication_id, tag=job.tag)

        if not await self._present(job):
            if self._fired.get(job.tag) is job:
                del self._fired[job.tag]
                job.expire(now)
            return

        if self._fired.get(job.tag) is not job:
            # Cancelled while presenting: the cancel's dismiss may have run first
            if job.state is JobState.CANCELLED and job.tag not in self._fired:
                await self._dismiss(job.tag)
                log_operation("late_alert_dismissed", medication_id=job.medication_id, tag=job.tag)
            return

        if self.alert_lifetime is not None:
            self._expiry_timers[job.tag] = asyncio.create_task(self._run_expiry(job))

    @handle_errors(default_return=False)
    async def _present(self, job: NotificationJob) -> bool:
        try:
            self._ensure_permitted()
        except PermissionDenied as e:
            logger.warning(f"Alert {job.tag} not shown: {e}")
            return False
        await self.presenter.present_alert(self.notification_manager.build_alert(job))
        return True

    @handle_errors(default_return=None, log_level="WARNING")
    async def _dismiss(self, tag: str) -> None:
        await self.presenter.dismiss_alert(tag)

    async def _run_expiry(self, job: NotificationJob) -> None:
        await self._sleep(self.alert_lifetime.total_seconds())
        await self._on_expire(job)

    async def _on_expire(self, job: NotificationJob) -> None:
        """Silently drop an unanswered alert, or re-arm it when configured."""
        if self._fired.get(job.tag) is not job:
            return

        now = self.now()
        del self._fired[job.tag]
        self._expiry_timers.pop(job.tag, None)
        job.expire(now)
        await self._dismiss(job.tag)
        log_operation("job_expired", medication_id=job.medication_id, tag=job.tag)

        if self.resurface_expired:
            self._arm(job.snoozed_copy(now + self.snooze_delay))

    def _send(self, message: Message) -> None:
        if self.endpoint is None:
            logger.warning(f"No channel, dropping {message.type.value}")
            return
        self.endpoint.post(message)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
