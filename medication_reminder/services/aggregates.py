"""Derived aggregates: adherence rate, bleeding streaks, pending doses."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Union

from medication_reminder.data.models import (
    BleedingLevel,
    BleedingRecord,
    DoseRecord,
    Medication,
    MedicationCategory,
)
from medication_reminder.utils.clock import day_key, days_between, parse_day_key, window_days

Day = Union[date, datetime]

DEFAULT_BREAK_PERIOD_STREAK = 3


@dataclass(frozen=True)
class AdherenceSummary:
    """Adherence of one medication over a window."""

    medication_id: int
    medication_name: str
    taken: int
    expected: int
    rate: float

    @property
    def band(self) -> str:
        return adherence_band(self.rate)

    @property
    def percent(self) -> float:
        return round(self.rate * 100, 1)


def adherence_band(rate: float) -> str:
    """Classify a rate as "good" (>= 80%), "fair" (>= 60%) or "poor"."""
    if rate >= 0.8:
        return "good"
    if rate >= 0.6:
        return "fair"
    return "poor"


def count_taken(
    medication_id: int,
    records: Iterable[DoseRecord],
    days: Iterable[str],
) -> int:
    """Number of dose records of a medication falling on the given days."""
    day_set = set(days)
    return sum(
        1 for record in records
        if record.medication_id == medication_id and record.date in day_set
    )


def adherence_summary(
    medication: Medication,
    records: Iterable[DoseRecord],
    window: int,
    today: Day,
) -> AdherenceSummary:
    """Adherence of ``medication`` over the ``window`` days ending today.

    The rate is taken / (window x doses per day), clamped to 1.0 and 0.0
    when nothing is expected.
    """
    taken = count_taken(medication.id, records, window_days(window, today))
    expected = max(window, 0) * medication.doses_per_day
    if expected == 0:
        rate = 0.0
    else:
        rate = min(taken / expected, 1.0)
    return AdherenceSummary(
        medication_id=medication.id,
        medication_name=medication.name,
        taken=taken,
        expected=expected,
        rate=rate,
    )


def adherence_rate(
    medication: Medication,
    records: Iterable[DoseRecord],
    window: int,
    today: Day,
) -> float:
    return adherence_summary(medication, records, window, today).rate


def _levels_by_day(records: Iterable[BleedingRecord]) -> dict[str, BleedingLevel]:
    # One level per day, last entry wins
    return {record.date: record.level for record in records}


def longest_bleeding_streak(records: Iterable[BleedingRecord]) -> int:
    """Longest run of adjacent days with a level other than none.

    A missing day or a "none" day ends the current run.
    """
    levels = _levels_by_day(records)
    longest = 0
    current = 0
    previous_day: Optional[str] = None

    for day in sorted(levels, key=parse_day_key):
        if levels[day] is BleedingLevel.NONE:
            current = 0
            previous_day = None
            continue
        if previous_day is not None and days_between(previous_day, day) == 1:
            current += 1
        else:
            current = 1
        previous_day = day
        longest = max(longest, current)

    return longest


def trailing_bleeding_streak(
    records: Iterable[BleedingRecord],
    today: Day,
    window: Optional[int] = None,
) -> int:
    """Length of the bleeding run ending today.

    Args:
        records: Bleeding records in any order
        today: Last day of the run
        window: Only inspect this many days back (including today)

    Returns:
        Consecutive non-"none" days ending today, 0 if today has none
    """
    levels = _levels_by_day(records)
    if window is None:
        window = len(levels)

    streak = 0
    for day in window_days(window, today, oldest_first=False):
        level = levels.get(day)
        if level is None or level is BleedingLevel.NONE:
            break
        streak += 1
    return streak


def break_period_triggered(
    records: Iterable[BleedingRecord],
    today: Day,
    threshold: int = DEFAULT_BREAK_PERIOD_STREAK,
    window: Optional[int] = None,
) -> bool:
    """True iff the trailing streak ending today reaches ``threshold``."""
    return trailing_bleeding_streak(records, today, window) >= threshold


def should_enter_break_period(
    medication: Medication,
    records: Iterable[BleedingRecord],
    today: Day,
    threshold: int = DEFAULT_BREAK_PERIOD_STREAK,
    window: Optional[int] = None,
) -> bool:
    """Break-period alert for a medication; only cyclic regimens qualify."""
    if medication.category is not MedicationCategory.CYCLIC_REGIMEN:
        return False
    return break_period_triggered(records, today, threshold, window)


def pending_doses(
    medications: Iterable[Medication],
    records: Iterable[DoseRecord],
    today: Day,
) -> list[tuple[int, str]]:
    """(medication id, dose time) pairs of today without a dose record."""
    today_key = day_key(today)
    taken = {
        (record.medication_id, record.time)
        for record in records if record.date == today_key
    }
    return [
        (medication.id, time)
        for medication in medications
        for time in medication.times
        if (medication.id, time) not in taken
    ]


def pending_dose_count(
    medications: Iterable[Medication],
    records: Iterable[DoseRecord],
    today: Day,
) -> int:
    return len(pending_doses(medications, records, today))
