"""Typed messages exchanged between the foreground and background contexts.

Messages cross the channel as JSON text, never as shared objects.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Union

from medication_reminder.data.models import Medication


class MessageType(str, Enum):
    """Wire names of the message kinds."""

    SCHEDULE = "SCHEDULE_NOTIFICATION"
    CANCEL = "CANCEL_NOTIFICATION"
    DOSE_TAKEN = "MEDICATION_TAKEN"
    DOSE_SKIPPED = "MEDICATION_SKIPPED"


@dataclass(frozen=True)
class ScheduleRequest:
    """fg -> bg: (re)compute the jobs of one medication."""

    medication: Medication
    type: ClassVar[MessageType] = MessageType.SCHEDULE

    def to_dict(self) -> dict:
        return {"type": self.type.value, "medication": self.medication.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduleRequest":
        return cls(medication=Medication.from_dict(data["medication"]))


@dataclass(frozen=True)
class CancelRequest:
    """fg -> bg: cancel every job of one medication."""

    medication_id: int
    type: ClassVar[MessageType] = MessageType.CANCEL

    def to_dict(self) -> dict:
        return {"type": self.type.value, "medicationId": self.medication_id}

    @classmethod
    def from_dict(cls, data: dict) -> "CancelRequest":
        return cls(medication_id=int(data["medicationId"]))


@dataclass(frozen=True)
class _DoseOutcome:
    medication_id: int
    time: str
    instant: datetime

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "medicationId": self.medication_id,
            "time": self.time,
            "timestamp": self.instant.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            medication_id=int(data["medicationId"]),
            time=data["time"],
            instant=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True)
class DoseTaken(_DoseOutcome):
    """bg -> fg: the user answered "taken" on an alert."""

    type: ClassVar[MessageType] = MessageType.DOSE_TAKEN


@dataclass(frozen=True)
class DoseSkipped(_DoseOutcome):
    """bg -> fg: the user answered "skip" on an alert."""

    type: ClassVar[MessageType] = MessageType.DOSE_SKIPPED


Message = Union[ScheduleRequest, CancelRequest, DoseTaken, DoseSkipped]

_MESSAGE_CLASSES = {
    cls.type: cls for cls in (ScheduleRequest, CancelRequest, DoseTaken, DoseSkipped)
}


def encode_message(message: Message) -> str:
    """Serialize a message to JSON text."""
    return json.dumps(message.to_dict(), ensure_ascii=False)


def decode_message(payload: str) -> Message:
    """Parse JSON text back into a message.

    Raises:
        ValueError: If the payload is not a known, well-formed message
    """
    try:
        data = json.loads(payload)
        message_type = MessageType(data["type"])
        return _MESSAGE_CLASSES[message_type].from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Undecodable message: {payload!r}") from e
