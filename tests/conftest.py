"""Shared fixtures for tests."""

import asyncio
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from medication_reminder.channel import MessageChannel
from medication_reminder.data.models import Medication
from medication_reminder.data.storage import DataManager
from medication_reminder.services.reconciler import ForegroundReconciler
from medication_reminder.services.scheduler import BackgroundScheduler


class FakeClock:
    """Settable local clock."""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class ManualSleep:
    """Sleep replacement whose waits only end when a test releases them."""

    def __init__(self):
        self.calls: list[tuple[float, asyncio.Future]] = []

    async def __call__(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self.calls.append((delay, future))
        await future

    @property
    def pending(self) -> list[tuple[float, asyncio.Future]]:
        return [(delay, future) for delay, future in self.calls if not future.done()]

    @property
    def pending_delays(self) -> list[float]:
        return [delay for delay, _ in self.pending]

    def release(self, delay: float) -> int:
        """End every pending wait with the given delay."""
        released = 0
        for pending_delay, future in self.pending:
            if pending_delay == delay:
                future.set_result(None)
                released += 1
        return released


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def _eventually(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def settle():
    """Let scheduled tasks run until they block again.

    Returns:
        Coroutine function yielding to the event loop a few times
    """
    return _settle


@pytest.fixture
def eventually():
    """Poll a predicate until it holds (file I/O runs in worker threads).

    Returns:
        Coroutine function taking a predicate and an optional timeout
    """
    return _eventually


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data.

    Yields:
        Path: Path to temporary directory
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_manager(temp_data_dir):
    """Create DataManager writing into the temp directory."""
    return DataManager(data_path=temp_data_dir / "medication_app.json")


@pytest.fixture
def clock():
    """Clock frozen at 2024-01-01 07:30 local time."""
    return FakeClock(datetime(2024, 1, 1, 7, 30, 0))


@pytest.fixture
def manual_sleep():
    return ManualSleep()


@pytest.fixture
def mock_presenter():
    """Create mock AlertPresenter.

    Returns:
        MagicMock: Presenter permitting alerts with async present/dismiss
    """
    presenter = MagicMock()
    presenter.is_permitted = MagicMock(return_value=True)
    presenter.present_alert = AsyncMock()
    presenter.dismiss_alert = AsyncMock()
    return presenter


@pytest.fixture
def mock_badge():
    """Create mock BadgeController."""
    badge = MagicMock()
    badge.set_badge_count = AsyncMock()
    badge.clear_badge = AsyncMock()
    return badge


@pytest.fixture
def mock_confirmations():
    """Create mock ConfirmationNotifier."""
    confirmations = MagicMock()
    confirmations.show_confirmation = AsyncMock()
    return confirmations


@pytest.fixture
def channel():
    """Channel with a short readiness timeout."""
    return MessageChannel(ready_timeout=0.05)


@pytest.fixture
def scheduler(mock_presenter, channel, clock, manual_sleep):
    """Create BackgroundScheduler on a fake clock and manual timers."""
    return BackgroundScheduler(
        presenter=mock_presenter,
        endpoint=channel.background,
        now_provider=clock,
        sleep=manual_sleep,
        snooze_minutes=10,
        alert_lifetime_minutes=60,
        resurface_expired=False,
    )


@pytest.fixture
def reconciler(data_manager, channel, mock_badge, mock_confirmations, clock):
    """Create ForegroundReconciler on the fake clock."""
    return ForegroundReconciler(
        data_manager=data_manager,
        endpoint=channel.foreground,
        badge=mock_badge,
        now_provider=clock,
        confirmations=mock_confirmations,
    )


@pytest.fixture
def sample_medication():
    """Medication taken twice a day."""
    return Medication(
        id=1,
        name="Sertraline",
        dosage="25 mg",
        times=["08:00", "20:00"],
    )
