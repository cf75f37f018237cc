"""Notification scheduling and reconciliation services."""

from .notification_job import AlertAction, JobState, NotificationJob, make_tag
from .notification_manager import NotificationManager
from .presenter import (
    Alert,
    AlertButton,
    AlertPresenter,
    BadgeController,
    ConfirmationNotifier,
    LoggingAlertPresenter,
    LoggingBadge,
    LoggingConfirmationNotifier,
)
from .reconciler import ForegroundReconciler
from .scheduler import BackgroundScheduler

__all__ = [
    "Alert",
    "AlertAction",
    "AlertButton",
    "AlertPresenter",
    "BackgroundScheduler",
    "BadgeController",
    "ConfirmationNotifier",
    "ForegroundReconciler",
    "JobState",
    "LoggingAlertPresenter",
    "LoggingBadge",
    "LoggingConfirmationNotifier",
    "NotificationJob",
    "NotificationManager",
    "make_tag",
]
