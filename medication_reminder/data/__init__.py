"""Data layer for the medication reminder.

This module provides entity models and the document store.
"""

from .models import (
    AppData,
    BleedingLevel,
    BleedingRecord,
    DoseRecord,
    Medication,
    MedicationCategory,
)
from .storage import DataManager

__all__ = [
    "AppData",
    "BleedingLevel",
    "BleedingRecord",
    "DataManager",
    "DoseRecord",
    "Medication",
    "MedicationCategory",
]
