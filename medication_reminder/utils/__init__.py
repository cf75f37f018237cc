"""Utility helpers for the medication reminder."""

from .error_handler import (
    ChannelDeliveryFailure,
    InvalidTransition,
    PermissionDenied,
    ReminderError,
    UnsupportedEnvironment,
    ValidationError,
    handle_errors,
    log_operation,
)
from .logger import logger, setup_logger

__all__ = [
    "ChannelDeliveryFailure",
    "InvalidTransition",
    "PermissionDenied",
    "ReminderError",
    "UnsupportedEnvironment",
    "ValidationError",
    "handle_errors",
    "log_operation",
    "logger",
    "setup_logger",
]
