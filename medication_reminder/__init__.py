"""Medication reminder notification subsystem."""

__version__ = "0.1.0"
