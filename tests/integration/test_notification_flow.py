"""Integration tests for the foreground/background reminder flow."""

import asyncio
from datetime import date, datetime, timedelta
from unittest.mock import call

import pytest

from medication_reminder.channel import DoseTaken
from medication_reminder.data.models import MedicationCategory
from medication_reminder.data.storage import DataManager
from medication_reminder.services.reconciler import (
    DOSE_SAVED_BODY,
    DOSE_SAVED_TITLE,
    STATUS_ALERTS_OFF,
    STATUS_ALERTS_ON,
    STATUS_FOREGROUND_ONLY,
    ForegroundReconciler,
)
from medication_reminder.utils import ValidationError

TO_08_00 = 1800.0


async def start_both(scheduler, reconciler):
    await scheduler.start()
    await reconciler.start()


async def stop_both(scheduler, reconciler):
    await reconciler.stop()
    await scheduler.stop()


# TC-FLOW-001: Add medication -> alert -> taken -> record persisted
@pytest.mark.asyncio
async def test_taken_alert_creates_persisted_record(
    scheduler,
    reconciler,
    clock,
    manual_sleep,
    mock_presenter,
    mock_badge,
    mock_confirmations,
    eventually,
    data_manager,
):
    """Test the complete reminder round trip."""
    # Given: Both contexts running and a medication added in the foreground
    await start_both(scheduler, reconciler)
    assert reconciler.status == STATUS_ALERTS_ON
    mock_badge.clear_badge.assert_awaited_once()

    medication = await reconciler.add_medication("Sertraline", ["08:00", "20:00"], dosage="25 mg")
    await eventually(lambda: len(scheduler.active_jobs()) == 2)
    mock_badge.set_badge_count.assert_awaited_with(2)

    # When: The 08:00 timer elapses and the user answers "taken"
    clock.advance(minutes=30)
    manual_sleep.release(TO_08_00)
    await eventually(lambda: len(scheduler.fired_jobs()) == 1)

    alert = mock_presenter.present_alert.await_args.args[0]
    assert alert.body == "Sertraline 25 mg (08:00)"
    assert await scheduler.handle_callback(alert.actions[0].callback_data)

    # Then: The foreground records the dose exactly once and updates the badge
    await eventually(lambda: mock_confirmations.show_confirmation.await_count == 1)
    mock_confirmations.show_confirmation.assert_awaited_with(DOSE_SAVED_TITLE, DOSE_SAVED_BODY)
    await eventually(lambda: mock_badge.set_badge_count.await_count == 2)
    assert mock_badge.set_badge_count.await_args_list[-1] == call(1)
    assert [record.key for record in reconciler.data.records] == [
        (medication.id, "2024-01-01", "08:00"),
    ]

    # And: The record is on disk
    stored = await DataManager(data_manager.data_path).load()
    assert [record.key for record in stored.records] == [(medication.id, "2024-01-01", "08:00")]

    # And: A repeated outcome for the same dose is ignored
    await reconciler.handle_message(DoseTaken(medication.id, "08:00", datetime(2024, 1, 1, 8, 5)))
    assert len(reconciler.data.records) == 1
    assert mock_confirmations.show_confirmation.await_count == 1

    await stop_both(scheduler, reconciler)


# TC-FLOW-002: Delete medication cancels jobs and alerts
@pytest.mark.asyncio
async def test_delete_cancels_jobs_and_dismisses_alert(
    scheduler, reconciler, clock, manual_sleep, mock_presenter, eventually
):
    await start_both(scheduler, reconciler)
    medication = await reconciler.add_medication("Sertraline", ["08:00", "20:00"])
    await eventually(lambda: len(scheduler.active_jobs()) == 2)

    clock.advance(minutes=30)
    manual_sleep.release(TO_08_00)
    await eventually(lambda: len(scheduler.fired_jobs()) == 1)

    assert await reconciler.delete_medication(medication.id)

    await eventually(lambda: not scheduler.active_jobs() and not scheduler.fired_jobs())
    await eventually(lambda: mock_presenter.dismiss_alert.await_count == 1)
    mock_presenter.dismiss_alert.assert_awaited_with("1:08:00")
    assert reconciler.data.medications == []
    assert not await reconciler.delete_medication(medication.id)

    await stop_both(scheduler, reconciler)


# TC-FLOW-003: Background restart is repaired by resync
@pytest.mark.asyncio
async def test_resync_rebuilds_jobs_after_background_restart(scheduler, reconciler, eventually):
    await start_both(scheduler, reconciler)
    await reconciler.add_medication("Sertraline", ["08:00", "20:00"])
    await reconciler.add_medication("Vitamin D", ["09:00"])
    await eventually(lambda: len(scheduler.active_jobs()) == 3)

    scheduler.restart()
    assert scheduler.active_jobs() == []

    assert reconciler.resync() == 2
    await eventually(lambda: len(scheduler.active_jobs()) == 3)
    assert [job.tag for job in scheduler.active_jobs()] == ["1:08:00", "2:09:00", "1:20:00"]

    await stop_both(scheduler, reconciler)


@pytest.mark.asyncio
async def test_startup_resync_schedules_stored_medications(
    scheduler, data_manager, channel, mock_badge, clock, eventually
):
    # Given: Medications saved by an earlier session
    first = ForegroundReconciler(data_manager, None, mock_badge, now_provider=clock)
    await first.start()
    await first.add_medication("Sertraline", ["08:00", "20:00"])
    await first.stop()

    # When: Both contexts start
    reconciler = ForegroundReconciler(data_manager, channel.foreground, mock_badge, now_provider=clock)
    await start_both(scheduler, reconciler)

    # Then: Startup resync rebuilt the jobs
    await eventually(lambda: len(scheduler.active_jobs()) == 2)

    await stop_both(scheduler, reconciler)


# TC-FLOW-004: Status when alerts are off or unsupported
@pytest.mark.asyncio
async def test_alerts_off_keeps_foreground_working(data_manager, channel, mock_badge, clock):
    reconciler = ForegroundReconciler(
        data_manager,
        channel.foreground,
        mock_badge,
        alerts_permitted=lambda: False,
        now_provider=clock,
    )
    await reconciler.start()

    assert reconciler.status == STATUS_ALERTS_OFF
    medication = await reconciler.add_medication("Sertraline", ["08:00"])
    assert channel.background.pending_count() == 0
    assert await reconciler.mark_taken(medication.id, "08:00") is not None

    await reconciler.stop()


@pytest.mark.asyncio
async def test_foreground_only_environment(data_manager, mock_badge, clock):
    reconciler = ForegroundReconciler(data_manager, None, mock_badge, now_provider=clock)
    await reconciler.start()

    assert reconciler.status == STATUS_FOREGROUND_ONLY
    medication = await reconciler.add_medication("Sertraline", ["08:00"])
    assert reconciler.resync() == 0

    record = await reconciler.mark_taken(medication.id)
    assert record.time == "07:30"
    assert await reconciler.mark_taken(medication.id, "7:30") is None
    mock_badge.set_badge_count.assert_awaited_with(1)

    await reconciler.stop()


# TC-FLOW-005: Foreground mutations and aggregates
@pytest.mark.asyncio
async def test_mark_taken_for_unknown_medication_is_ignored(reconciler, mock_badge):
    await reconciler.start()

    assert await reconciler.mark_taken(42, "08:00") is None
    assert reconciler.data.records == []
    with pytest.raises(ValidationError):
        await reconciler.add_medication("", ["08:00"])
    with pytest.raises(ValidationError):
        reconciler.adherence_rate(42)

    await reconciler.stop()


@pytest.mark.asyncio
async def test_bleeding_streak_raises_break_period_alert(reconciler):
    await reconciler.start()
    pill = await reconciler.add_medication(
        "Pill", ["09:00"], category=MedicationCategory.CYCLIC_REGIMEN
    )
    await reconciler.add_medication("Sertraline", ["08:00"], category="antidepressant")

    await reconciler.record_bleeding("2023-12-30", "heavy")
    await reconciler.record_bleeding(date(2023, 12, 31), "moderate")
    assert reconciler.break_period_alerts() == []

    await reconciler.record_bleeding(None, "light")

    assert reconciler.bleeding_streaks() == {"trailing": 3, "longest": 3}
    assert reconciler.break_period_alerts() == [pill]

    await reconciler.record_bleeding(None, "none")
    assert reconciler.break_period_alerts() == []

    await reconciler.stop()


@pytest.mark.asyncio
async def test_adherence_report(reconciler, clock):
    await reconciler.start()
    medication = await reconciler.add_medication("Sertraline", ["08:00", "20:00"])

    await reconciler.mark_taken(medication.id, "08:00", datetime(2024, 1, 1, 8, 1))
    await reconciler.mark_taken(medication.id, "20:00", datetime(2024, 1, 1, 20, 3))

    report = reconciler.adherence_report(window=1)
    assert report[0].rate == 1.0
    assert report[0].band == "good"
    assert reconciler.adherence_rate(medication.id, window=2) == 0.5

    await reconciler.stop()


@pytest.mark.asyncio
async def test_manual_mark_taken_shows_no_confirmation(reconciler, mock_confirmations):
    """Only answers coming from an alert are confirmed."""
    await reconciler.start()
    medication = await reconciler.add_medication("Sertraline", ["08:00"])

    assert await reconciler.mark_taken(medication.id, "08:00") is not None
    await reconciler.handle_message(DoseTaken(medication.id, "08:00", datetime(2024, 1, 1, 8, 0)))

    mock_confirmations.show_confirmation.assert_not_awaited()

    await reconciler.stop()


# TC-FLOW-006: Overlapping mutations all persist
@pytest.mark.asyncio
async def test_overlapping_mutations_all_persist(reconciler, data_manager):
    """A dose answer arriving while bleeding entries are saved loses nothing."""
    await reconciler.start()
    medication = await reconciler.add_medication("Sertraline", ["08:00"])
    first_day = date(2023, 12, 1)

    results = await asyncio.gather(
        *(
            reconciler.record_bleeding(first_day + timedelta(days=offset), "light")
            for offset in range(28)
        ),
        reconciler.mark_taken(medication.id, "08:00"),
        return_exceptions=True,
    )

    assert [r for r in results if isinstance(r, Exception)] == []
    stored = await DataManager(data_manager.data_path).load()
    assert len(stored.bleeding_records) == 28
    assert [record.key for record in stored.records] == [(medication.id, "2024-01-01", "08:00")]

    await reconciler.stop()
