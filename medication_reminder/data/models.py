"""Data models for the medication reminder."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from medication_reminder.utils.clock import day_key, normalize_dose_times
from medication_reminder.utils.error_handler import ValidationError


class MedicationCategory(str, Enum):
    """Category flag of a medication (exactly one per medication)."""

    NONE = "none"
    CYCLIC_REGIMEN = "cyclic_regimen"
    ANTIDEPRESSANT = "antidepressant"
    ANTIPSYCHOTIC = "antipsychotic"

    @classmethod
    def parse(cls, value: Any) -> "MedicationCategory":
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.NONE
        try:
            return cls(value)
        except ValueError as e:
            raise ValidationError(f"Unknown medication category: {value!r}") from e


class BleedingLevel(str, Enum):
    """Severity of a day's bleeding entry."""

    NONE = "none"
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"

    @classmethod
    def parse(cls, value: Any) -> "BleedingLevel":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise ValidationError(f"Unknown bleeding level: {value!r}") from e


@dataclass
class Medication:
    """Medication data model.

    Attributes:
        id: Unique identifier for the medication (incremental)
        name: Display name of the medication
        dosage: Dosage information (e.g., "25 mg", "1 tablet")
        times: Ordered unique dose times in HH:MM format (local time)
        notes: Free-text notes
        category: Category flag
    """

    id: int
    name: str
    dosage: str
    times: list[str]
    notes: str = ""
    category: MedicationCategory = MedicationCategory.NONE

    def to_dict(self) -> dict:
        """Convert medication to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "dosage": self.dosage,
            "times": list(self.times),
            "notes": self.notes,
            "category": self.category.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Medication":
        """Create medication from dictionary.

        Args:
            data: Dictionary with medication data

        Returns:
            Medication instance
        """
        return cls(
            id=int(data["id"]),
            name=data["name"],
            dosage=data.get("dosage") or "",
            times=normalize_dose_times(data.get("times", [])),
            notes=data.get("notes") or "",
            category=MedicationCategory.parse(data.get("category")),
        )

    @property
    def doses_per_day(self) -> int:
        return len(self.times)


@dataclass(frozen=True)
class DoseRecord:
    """Immutable fact that one dose was taken.

    Attributes:
        medication_id: ID of the medication
        date: Day key of the dose ("YYYY-MM-DD")
        time: Scheduled dose time ("HH:MM")
        timestamp: ISO instant the record was made
    """

    medication_id: int
    date: str
    time: str
    timestamp: str

    @property
    def key(self) -> tuple[int, str, str]:
        return (self.medication_id, self.date, self.time)

    def to_dict(self) -> dict:
        return {
            "medicationId": self.medication_id,
            "date": self.date,
            "time": self.time,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DoseRecord":
        return cls(
            medication_id=int(data["medicationId"]),
            date=data["date"],
            time=data["time"],
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class BleedingRecord:
    """One bleeding entry per calendar day."""

    date: str
    level: BleedingLevel

    def to_dict(self) -> dict:
        return {"date": self.date, "level": self.level.value}

    @classmethod
    def from_dict(cls, data: dict) -> "BleedingRecord":
        return cls(date=data["date"], level=BleedingLevel.parse(data["level"]))


@dataclass
class AppData:
    """The persisted document.

    Attributes:
        medications: Registered medications
        records: Append-only dose records
        bleeding_records: Bleeding entries, one per day
        extra_sections: Sections owned by other parts of the application,
            kept untouched on round trip
    """

    medications: list[Medication] = field(default_factory=list)
    records: list[DoseRecord] = field(default_factory=list)
    bleeding_records: list[BleedingRecord] = field(default_factory=list)
    extra_sections: dict[str, Any] = field(default_factory=dict)

    SECTIONS = ("medications", "records", "bleedingRecords")

    def to_dict(self) -> dict:
        """Convert document to dictionary for JSON serialization."""
        data = dict(self.extra_sections)
        data.update({
            "medications": [med.to_dict() for med in self.medications],
            "records": [record.to_dict() for record in self.records],
            "bleedingRecords": [record.to_dict() for record in self.bleeding_records],
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AppData":
        """Create document from dictionary, missing sections become empty."""
        return cls(
            medications=[Medication.from_dict(item) for item in data.get("medications", [])],
            records=[DoseRecord.from_dict(item) for item in data.get("records", [])],
            bleeding_records=[
                BleedingRecord.from_dict(item) for item in data.get("bleedingRecords", [])
            ],
            extra_sections={
                key: value for key, value in data.items() if key not in cls.SECTIONS
            },
        )

    def get_next_medication_id(self) -> int:
        """Get next available medication ID (max existing ID + 1, or 1)."""
        if not self.medications:
            return 1
        return max(med.id for med in self.medications) + 1

    def add_medication(
        self,
        name: str,
        times: list[str],
        dosage: str = "",
        notes: str = "",
        category: Any = MedicationCategory.NONE,
    ) -> Medication:
        """Validate and add a new medication.

        Args:
            name: Medication name
            times: Dose times in "HH:MM" format
            dosage: Dosage information
            notes: Free-text notes
            category: Category flag or its string value

        Returns:
            Created medication instance

        Raises:
            ValidationError: If the name is blank or no valid time remains
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Medication name cannot be empty")

        normalized_times = normalize_dose_times(times)
        if not normalized_times:
            raise ValidationError("Medication needs at least one dose time")

        medication = Medication(
            id=self.get_next_medication_id(),
            name=name,
            dosage=(dosage or "").strip(),
            times=normalized_times,
            notes=notes or "",
            category=MedicationCategory.parse(category),
        )
        self.medications.append(medication)
        return medication

    def get_medication_by_id(self, medication_id: int) -> Optional[Medication]:
        for med in self.medications:
            if med.id == medication_id:
                return med
        return None

    def remove_medication(self, medication_id: int) -> bool:
        """Remove medication and its dose records.

        Returns:
            True if medication was removed, False if not found
        """
        for i, med in enumerate(self.medications):
            if med.id == medication_id:
                self.medications.pop(i)
                self.records = [
                    record for record in self.records
                    if record.medication_id != medication_id
                ]
                return True
        return False

    def find_dose_record(
        self,
        medication_id: int,
        date: str,
        time: str,
    ) -> Optional[DoseRecord]:
        for record in self.records:
            if record.key == (medication_id, date, time):
                return record
        return None

    def add_dose_record(
        self,
        medication_id: int,
        time: str,
        instant: datetime,
    ) -> Optional[DoseRecord]:
        """Append a dose record unless one exists for (id, day, time).

        Returns:
            The new record, or None when it was a duplicate
        """
        date = day_key(instant)
        if self.find_dose_record(medication_id, date, time) is not None:
            return None
        record = DoseRecord(
            medication_id=medication_id,
            date=date,
            time=time,
            timestamp=instant.isoformat(timespec="seconds"),
        )
        self.records.append(record)
        return record

    def upsert_bleeding(self, date: str, level: Any) -> BleedingRecord:
        """Record bleeding level for a day, the last write wins."""
        level = BleedingLevel.parse(level)
        for record in self.bleeding_records:
            if record.date == date:
                record.level = level
                return record
        record = BleedingRecord(date=date, level=level)
        self.bleeding_records.append(record)
        return record
