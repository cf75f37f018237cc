"""Cross-context message channel."""

from .channel import Endpoint, MessageChannel
from .messages import (
    CancelRequest,
    DoseSkipped,
    DoseTaken,
    Message,
    MessageType,
    ScheduleRequest,
    decode_message,
    encode_message,
)

__all__ = [
    "CancelRequest",
    "DoseSkipped",
    "DoseTaken",
    "Endpoint",
    "Message",
    "MessageChannel",
    "MessageType",
    "ScheduleRequest",
    "decode_message",
    "encode_message",
]
