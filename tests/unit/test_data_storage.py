"""Unit tests for data storage and the persisted document model."""

import asyncio
import json
from datetime import datetime

import aiofiles
import pytest

from medication_reminder.data.models import (
    AppData,
    BleedingLevel,
    MedicationCategory,
)
from medication_reminder.utils import ValidationError


# TC-STORAGE-001: Missing document loads empty
@pytest.mark.asyncio
async def test_missing_document_loads_empty(data_manager):
    """Test loading when nothing was saved yet."""
    data = await data_manager.load()

    assert data.medications == []
    assert data.records == []
    assert data.bleeding_records == []
    assert not data_manager.exists()


# TC-STORAGE-002: Load existing document
@pytest.mark.asyncio
async def test_load_existing_document(data_manager, temp_data_dir):
    """Test loading a document written by an earlier session."""
    # Given: Document file exists
    (temp_data_dir / "medication_app.json").write_text(json.dumps({
        "medications": [
            {
                "id": 3,
                "name": "Сертралин",
                "dosage": "25 mg",
                "times": ["8:00", "20:00"],
                "category": "antidepressant",
            }
        ],
        "records": [
            {
                "medicationId": 3,
                "date": "2024-01-01",
                "time": "08:00",
                "timestamp": "2024-01-01T08:02:00",
            }
        ],
    }, ensure_ascii=False), encoding="utf-8")

    # When: Loading document
    data = await data_manager.load()

    # Then: Data should be loaded and normalized
    medication = data.medications[0]
    assert medication.name == "Сертралин"
    assert medication.times == ["08:00", "20:00"]
    assert medication.category is MedicationCategory.ANTIDEPRESSANT
    assert medication.notes == ""
    assert data.records[0].key == (3, "2024-01-01", "08:00")
    assert data.bleeding_records == []


# TC-STORAGE-003: Atomic write success
@pytest.mark.asyncio
async def test_atomic_write_success(data_manager, temp_data_dir):
    """Test atomic write pattern."""
    # Given: Document with one medication
    data = AppData()
    data.add_medication("Sertraline", ["08:00"], dosage="25 mg")

    # When: Saving document
    await data_manager.save(data)

    # Then: Final file should exist and temp file should not
    assert (temp_data_dir / "medication_app.json").exists()
    assert not (temp_data_dir / "medication_app.json.tmp").exists()

    loaded = await data_manager.load()
    assert loaded.medications == data.medications


# TC-STORAGE-004: Atomic write failure recovery
@pytest.mark.asyncio
async def test_atomic_write_failure_recovery(data_manager, temp_data_dir, monkeypatch):
    """Test recovery from write failure."""
    # Given: An earlier save succeeded
    data = AppData()
    data.add_medication("Sertraline", ["08:00"])
    await data_manager.save(data)

    # And: Writes will fail from now on
    original_open = aiofiles.open

    class MockAsyncFile:
        async def __aenter__(self):
            raise IOError("Disk full")

        async def __aexit__(self, *args):
            pass

    def mock_open_fail(*args, **kwargs):
        if "w" in kwargs.get("mode", ""):
            return MockAsyncFile()
        return original_open(*args, **kwargs)

    monkeypatch.setattr("aiofiles.open", mock_open_fail)

    # When: Attempting to save a change
    data.add_medication("Vitamin D", ["09:00"])
    with pytest.raises(IOError):
        await data_manager.save(data)

    # Then: Temp file is cleaned up and the old document survives
    assert not (temp_data_dir / "medication_app.json.tmp").exists()
    loaded = await data_manager.load()
    assert [med.name for med in loaded.medications] == ["Sertraline"]


# TC-STORAGE-005: Corrupted file recovery
@pytest.mark.asyncio
async def test_corrupted_file_recovery(data_manager, temp_data_dir):
    """Test recovery from corrupted JSON file."""
    # Given: Corrupted document
    document = temp_data_dir / "medication_app.json"
    document.write_text("{ invalid json }")

    # When: Loading document
    data = await data_manager.load()

    # Then: Should start empty and keep the corrupted content aside
    assert data.medications == []
    assert not document.exists()
    assert (temp_data_dir / "medication_app.json.corrupt").read_text() == "{ invalid json }"


@pytest.mark.asyncio
async def test_invalid_entry_keeps_document_recoverable(data_manager, temp_data_dir):
    """One malformed dose time does not destroy the rest of the log."""
    document = temp_data_dir / "medication_app.json"
    content = json.dumps({
        "medications": [{"id": 1, "name": "Sertraline", "times": ["8 o'clock"]}],
        "bleedingRecords": [{"date": "2024-01-01", "level": "heavy"}],
    })
    document.write_text(content)

    data = await data_manager.load()

    assert data.bleeding_records == []
    assert json.loads(data_manager.corrupt_path.read_text()) == json.loads(content)


# TC-STORAGE-006: Overlapping saves
@pytest.mark.asyncio
async def test_concurrent_saves_all_succeed(data_manager, temp_data_dir):
    """Saves started together are written one after another."""
    data = AppData()
    data.add_medication("Sertraline", ["08:00"])

    async def save_with_bleeding(day):
        data.upsert_bleeding(f"2024-01-{day:02d}", "light")
        await data_manager.save(data)

    await asyncio.gather(*(save_with_bleeding(day) for day in range(1, 21)))

    assert not (temp_data_dir / "medication_app.json.tmp").exists()
    loaded = await data_manager.load()
    assert len(loaded.bleeding_records) == 20


@pytest.mark.asyncio
async def test_unknown_sections_survive_round_trip(data_manager, temp_data_dir):
    """Sections owned by other parts of the app are kept untouched."""
    document = temp_data_dir / "medication_app.json"
    document.write_text(json.dumps({
        "medications": [],
        "moodEntries": [{"date": "2024-01-01", "mood": 4}],
    }))

    data = await data_manager.load()
    data.upsert_bleeding("2024-01-01", "light")
    await data_manager.save(data)

    saved = json.loads(document.read_text())
    assert saved["moodEntries"] == [{"date": "2024-01-01", "mood": 4}]
    assert saved["bleedingRecords"] == [{"date": "2024-01-01", "level": "light"}]


# TC-MODEL-001: Adding medications
def test_add_medication_assigns_incremental_ids():
    data = AppData()

    first = data.add_medication("  Sertraline ", [" 8:00", "", "20:00", "08:00"], dosage="25 mg ")
    second = data.add_medication("Vitamin D", ["09:00"], category="none")

    assert first.id == 1
    assert first.name == "Sertraline"
    assert first.dosage == "25 mg"
    assert first.times == ["08:00", "20:00"]
    assert second.id == 2

    data.remove_medication(1)
    assert data.add_medication("Iron", ["12:00"]).id == 3


@pytest.mark.parametrize("name,times", [
    ("", ["08:00"]),
    ("   ", ["08:00"]),
    ("Sertraline", []),
    ("Sertraline", ["", "  "]),
    ("Sertraline", ["25:00"]),
])
def test_add_medication_rejects_invalid_input(name, times):
    data = AppData()

    with pytest.raises(ValidationError):
        data.add_medication(name, times)

    assert data.medications == []


def test_add_medication_rejects_unknown_category():
    with pytest.raises(ValidationError):
        AppData().add_medication("Pill", ["09:00"], category="vitamin")


# TC-MODEL-002: Dose records
def test_duplicate_dose_record_is_ignored():
    data = AppData()

    first = data.add_dose_record(1, "08:00", datetime(2024, 1, 1, 8, 2))
    duplicate = data.add_dose_record(1, "08:00", datetime(2024, 1, 1, 21, 0))
    next_day = data.add_dose_record(1, "08:00", datetime(2024, 1, 2, 8, 0))

    assert first.date == "2024-01-01"
    assert first.timestamp == "2024-01-01T08:02:00"
    assert duplicate is None
    assert next_day is not None
    assert len(data.records) == 2


def test_remove_medication_drops_its_records():
    data = AppData()
    sertraline = data.add_medication("Sertraline", ["08:00"])
    vitamin = data.add_medication("Vitamin D", ["09:00"])
    data.add_dose_record(sertraline.id, "08:00", datetime(2024, 1, 1, 8, 0))
    data.add_dose_record(vitamin.id, "09:00", datetime(2024, 1, 1, 9, 0))

    assert data.remove_medication(sertraline.id)
    assert not data.remove_medication(sertraline.id)
    assert [record.medication_id for record in data.records] == [vitamin.id]


# TC-MODEL-003: Bleeding entries
def test_upsert_bleeding_keeps_one_entry_per_day():
    data = AppData()

    data.upsert_bleeding("2024-01-01", "light")
    data.upsert_bleeding("2024-01-01", BleedingLevel.HEAVY)
    data.upsert_bleeding("2024-01-02", "none")

    assert [(r.date, r.level) for r in data.bleeding_records] == [
        ("2024-01-01", BleedingLevel.HEAVY),
        ("2024-01-02", BleedingLevel.NONE),
    ]

    with pytest.raises(ValidationError):
        data.upsert_bleeding("2024-01-03", "spotting")
