"""Error taxonomy and error handling utilities for the medication reminder."""

import functools
from typing import Any, Callable, Optional, TypeVar

from loguru import logger

# Type variable for generic function return type
T = TypeVar('T')


class ReminderError(Exception):
    """Base exception for the notification subsystem."""
    pass


class PermissionDenied(ReminderError):
    """Raised when alert presentation is not authorized."""
    pass


class UnsupportedEnvironment(ReminderError):
    """Raised when no background execution context is available."""
    pass


class ChannelDeliveryFailure(ReminderError):
    """Raised when a message cannot reach the peer context."""
    pass


class InvalidTransition(ReminderError):
    """Raised on an illegal notification job state change."""
    pass


class ValidationError(ReminderError, ValueError):
    """Raised when user supplied data is rejected."""
    pass


def handle_errors(
    default_return: Any = None,
    log_level: str = "ERROR",
) -> Callable:
    """Decorator for async functions that handles errors gracefully.

    Catches all exceptions, logs them with full traceback, and returns
    a default value. Used on fire-and-forget boundaries where a failure
    must degrade to "no reminder" instead of crashing the application.

    Args:
        default_return: Value to return on error (default: None)
        log_level: Log level for error messages (default: ERROR)

    Returns:
        Decorated function that handles errors

    Example:
        @handle_errors(default_return=False)
        async def present(alert) -> bool:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                log_func = getattr(logger.opt(exception=e), log_level.lower(), logger.error)
                log_func(f"Error in {func.__name__}: {type(e).__name__}: {e}")
                return default_return

        return wrapper
    return decorator


def log_operation(
    operation_name: str,
    medication_id: Optional[int] = None,
    **extra_context,
) -> None:
    """Log an operation with structured context.

    Args:
        operation_name: Name of the operation being performed
        medication_id: Medication ID (if applicable)
        **extra_context: Additional context to include in log
    """
    context = {
        "operation": operation_name,
    }

    if medication_id is not None:
        context["medication_id"] = medication_id

    context.update(extra_context)

    details = ", ".join(f"{key}={value}" for key, value in context.items() if key != "operation")
    logger.bind(**context).info(
        f"Operation: {operation_name}" + (f" ({details})" if details else "")
    )


__all__ = [
    "ReminderError",
    "PermissionDenied",
    "UnsupportedEnvironment",
    "ChannelDeliveryFailure",
    "InvalidTransition",
    "ValidationError",
    "handle_errors",
    "log_operation",
]
