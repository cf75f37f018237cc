"""Foreground reconciler: owns the data model and consumes background outcomes."""

import asyncio
from datetime import date, datetime
from typing import Any, Callable, Optional, Union

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
from medication_reminder.data.models import (
    AppData,
    BleedingRecord,
    DoseRecord,
    Medication,
    MedicationCategory,
)
from medication_reminder.data.storage import DataManager
from medication_reminder.services import aggregates
from medication_reminder.services.presenter import BadgeController, ConfirmationNotifier
from medication_reminder.utils import (
    UnsupportedEnvironment,
    ValidationError,
    handle_errors,
    log_operation,
)
from medication_reminder.utils.clock import (
    day_key,
    format_time_of_day,
    local_now_provider,
    parse_day_key,
    parse_time_of_day,
)

STATUS_ALERTS_ON = "alerts_on"
STATUS_ALERTS_OFF = "alerts_off"
STATUS_FOREGROUND_ONLY = "foreground_only"

DOSE_SAVED_TITLE = "Dose taken"
DOSE_SAVED_BODY = "Dose record saved"


class ForegroundReconciler:
    """Foreground controller of medications, dose records and bleeding records.

    Handles:
    - Medication add / delete and the matching schedule / cancel requests
    - Idempotent dose records from the "mark taken" button or DoseTaken messages
    - Bleeding records upserted per day
    - Full resync of the background context on startup
    - Badge of today's pending doses, recomputed on every change
    - Adherence and break-period aggregates for the UI
    """

    def __init__(
        self,
        data_manager: DataManager,
        endpoint: Optional[Endpoint],
        badge: BadgeController,
        alerts_permitted: Optional[Callable[[], bool]] = None,
        now_provider: Optional[Callable[[], datetime]] = None,
        confirmations: Optional[ConfirmationNotifier] = None,
    ):
        """Initialize reconciler.

        Args:
            data_manager: Store of the persisted document
            endpoint: Foreground side of the channel, None when the host
                has no background context
            badge: Host badge capability
            alerts_permitted: Authorization predicate for alerts
            now_provider: Returns the current local time
            confirmations: Host confirmation capability for alert answers
        """
        self.data_manager = data_manager
        self.endpoint = endpoint
        self.badge = badge
        self.confirmations = confirmations
        self.alerts_permitted = alerts_permitted or (lambda: True)
        self.now = now_provider or local_now_provider()
        self.data = AppData()

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._unsupported_logged = False

        logger.debug("ForegroundReconciler initialized")

    # Lifecycle

    async def start(self) -> None:
        """Load the document, resync the background and start consuming messages."""
        if self._running:
            logger.warning("Reconciler already running")
            return

        self.data = await self.data_manager.load()
        self._running = True

        if self.endpoint is not None:
            self.endpoint.mark_ready()
            self._task = asyncio.create_task(self._message_loop())

        self.resync()
        await self.refresh_badge()
        logger.info(
            f"Reconciler started with {len(self.data.medications)} medication(s), "
            f"status: {self.status}"
        )

    async def stop(self) -> None:
        if not self._running:
            logger.warning("Reconciler not running")
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.endpoint is not None:
            await self.endpoint.flush()
        logger.info("Reconciler stopped")

    async def _message_loop(self) -> None:
        while self._running:
            message = await self.endpoint.receive()
            await self.handle_message(message)

    # Status

    @property
    def alerts_enabled(self) -> bool:
        try:
            return bool(self.alerts_permitted())
        except Exception as e:
            logger.warning(f"Alert authorization check failed: {e}")
            return False

    @property
    def status(self) -> str:
        """User-visible reminder status."""
        if self.endpoint is None:
            return STATUS_FOREGROUND_ONLY
        return STATUS_ALERTS_ON if self.alerts_enabled else STATUS_ALERTS_OFF

    # Background requests

    def _require_background(self) -> Endpoint:
        if self.endpoint is None:
            raise UnsupportedEnvironment("no background execution context")
        return self.endpoint

    def _request_schedule(self, medication: Medication) -> bool:
        try:
            endpoint = self._require_background()
        except UnsupportedEnvironment as e:
            if not self._unsupported_logged:
                logger.warning(f"Reminders limited to the foreground: {e}")
                self._unsupported_logged = True
            return False

        if not self.alerts_enabled:
            logger.info(f"Alerts are off, medication {medication.id} not scheduled")
            return False

        endpoint.post(ScheduleRequest(medication=medication))
        return True

    def _request_cancel(self, medication_id: int) -> None:
        if self.endpoint is None:
            return
        self.endpoint.post(CancelRequest(medication_id=medication_id))

    def resync(self) -> int:
        """Send a ScheduleRequest for every stored medication.

        Returns:
            Number of requests sent
        """
        sent = sum(1 for medication in self.data.medications if self._request_schedule(medication))
        log_operation("background_resync", requests=sent)
        return sent

    # Mutations

    async def _commit(self) -> None:
        await self.data_manager.save(self.data)
        await self.refresh_badge()

    async def add_medication(
        self,
        name: str,
        times: list[str],
        dosage: str = "",
        notes: str = "",
        category: Any = MedicationCategory.NONE,
    ) -> Medication:
        """Register a medication and schedule its alerts.

        Raises:
            ValidationError: If the name is blank or no valid time remains
        """
        medication = self.data.add_medication(
            name=name,
            times=times,
            dosage=dosage,
            notes=notes,
            category=category,
        )
        await self._commit()
        self._request_schedule(medication)

        log_operation(
            "medication_added",
            medication_id=medication.id,
            name=medication.name,
            times=medication.times,
        )
        return medication

    async def delete_medication(self, medication_id: int) -> bool:
        """Delete a medication with its dose records and cancel its alerts.

        Returns:
            True if deleted, False if not found
        """
        if not self.data.remove_medication(medication_id):
            logger.warning(f"Medication {medication_id} not found for deletion")
            return False

        await self._commit()
        self._request_cancel(medication_id)
        log_operation("medication_deleted", medication_id=medication_id)
        return True

    async def mark_taken(
        self,
        medication_id: int,
        time: Optional[str] = None,
        instant: Optional[datetime] = None,
    ) -> Optional[DoseRecord]:
        """Record a taken dose unless one exists for (id, day, time).

        Args:
            medication_id: ID of the medication
            time: Dose time, defaults to the current "HH:MM"
            instant: When the dose was taken, defaults to now

        Returns:
            The new record, or None for a duplicate or unknown medication
        """
        instant = instant or self.now()
        if time is None:
            time = format_time_of_day(instant)
        else:
            hour, minute = parse_time_of_day(time)
            time = f"{hour:02d}:{minute:02d}"

        if self.data.get_medication_by_id(medication_id) is None:
            logger.warning(f"Ignoring dose for unknown medication {medication_id}")
            return None

        record = self.data.add_dose_record(medication_id, time, instant)
        if record is None:
            logger.debug(
                f"Duplicate dose record ignored: {medication_id} {day_key(instant)} {time}"
            )
            return None

        await self._commit()
        log_operation("dose_recorded", medication_id=medication_id, date=record.date, time=time)
        return record

    def record_skip(self, medication_id: int, time: str, instant: datetime) -> None:
        """Skips leave no dose record, they are only logged."""
        log_operation(
            "dose_skipped",
            medication_id=medication_id,
            date=day_key(instant),
            time=time,
        )

    async def record_bleeding(self, day: Union[str, date, datetime, None], level: Any) -> BleedingRecord:
        """Upsert the bleeding level of a day (defaults to today).

        Raises:
            ValidationError: On a malformed day or unknown level
        """
        if day is None:
            key = day_key(self.now())
        elif isinstance(day, str):
            key = day_key(parse_day_key(day))
        else:
            key = day_key(day)

        record = self.data.upsert_bleeding(key, level)
        await self._commit()
        log_operation("bleeding_recorded", date=key, level=record.level.value)
        return record

    @handle_errors(default_return=None)
    async def handle_message(self, message: Message) -> None:
        """Apply one inbound message from the background context."""
        if isinstance(message, DoseTaken):
            record = await self.mark_taken(message.medication_id, message.time, message.instant)
            if record is not None:
                await self._confirm(DOSE_SAVED_TITLE, DOSE_SAVED_BODY)
        elif isinstance(message, DoseSkipped):
            self.record_skip(message.medication_id, message.time, message.instant)
        else:
            logger.warning(f"Reconciler ignored unexpected message: {message.type.value}")

    @handle_errors(default_return=None, log_level="WARNING")
    async def _confirm(self, title: str, body: str) -> None:
        if self.confirmations is not None:
            await self.confirmations.show_confirmation(title, body)

    # Derived state

    def pending_dose_count(self, today: Optional[date] = None) -> int:
        return aggregates.pending_dose_count(
            self.data.medications, self.data.records, today or self.now()
        )

    @handle_errors(default_return=None, log_level="WARNING")
    async def refresh_badge(self) -> None:
        """Push today's pending dose count to the host badge."""
        count = self.pending_dose_count()
        if count > 0:
            await self.badge.set_badge_count(count)
        else:
            await self.badge.clear_badge()
        log_operation("badge_updated", pending=count)

    def adherence_report(
        self,
        window: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[aggregates.AdherenceSummary]:
        """Adherence of every medication over the window ending today."""
        window = settings.adherence_window_days if window is None else window
        today = today or self.now()
        return [
            aggregates.adherence_summary(medication, self.data.records, window, today)
            for medication in self.data.medications
        ]

    def adherence_rate(
        self,
        medication_id: int,
        window: Optional[int] = None,
        today: Optional[date] = None,
    ) -> float:
        """Adherence of one medication.

        Raises:
            ValidationError: If the medication does not exist
        """
        medication = self.data.get_medication_by_id(medication_id)
        if medication is None:
            raise ValidationError(f"Medication {medication_id} not found")
        window = settings.adherence_window_days if window is None else window
        return aggregates.adherence_rate(medication, self.data.records, window, today or self.now())

    def bleeding_streaks(self, today: Optional[date] = None) -> dict[str, int]:
        """Trailing streak ending today and longest streak overall."""
        today = today or self.now()
        return {
            "trailing": aggregates.trailing_bleeding_streak(
                self.data.bleeding_records, today, settings.bleeding_window_days
            ),
            "longest": aggregates.longest_bleeding_streak(self.data.bleeding_records),
        }

    def break_period_alerts(self, today: Optional[date] = None) -> list[Medication]:
        """Cyclic-regimen medications whose break-period alert is live."""
        today = today or self.now()
        return [
            medication for medication in self.data.medications
            if aggregates.should_enter_break_period(
                medication,
                self.data.bleeding_records,
                today,
                threshold=settings.break_period_streak_days,
                window=settings.bleeding_window_days,
            )
        ]
