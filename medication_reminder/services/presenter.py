"""Host capabilities used by the subsystem: alert presentation and app badge.

Both are injected so the scheduler and reconciler can run without a live
host environment.
"""

from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger


@dataclass(frozen=True)
class AlertButton:
    """One action offered on an alert."""

    action: str
    title: str
    callback_data: str


@dataclass(frozen=True)
class Alert:
    """Everything the host needs to show one alert."""

    title: str
    body: str
    tag: str
    actions: tuple[AlertButton, ...] = field(default_factory=tuple)
    require_interaction: bool = True


class AlertPresenter(Protocol):
    """Port for showing and dismissing alerts.

    ``present_alert`` must replace any visible alert carrying the same tag
    instead of stacking a second one.
    """

    def is_permitted(self) -> bool:
        """Whether the user authorized alerts."""

    async def present_alert(self, alert: Alert) -> None:
        """Show an alert, replacing a visible one with the same tag."""

    async def dismiss_alert(self, tag: str) -> None:
        """Remove a visible alert, no-op when none is shown."""


class BadgeController(Protocol):
    """Port for the application's unread badge."""

    async def set_badge_count(self, count: int) -> None:
        ...

    async def clear_badge(self) -> None:
        ...


class LoggingAlertPresenter:
    """Presenter for hosts without a notification surface: alerts go to the log."""

    def __init__(self, permitted: bool = True):
        self.permitted = permitted
        self.visible: dict[str, Alert] = {}

    def is_permitted(self) -> bool:
        return self.permitted

    async def present_alert(self, alert: Alert) -> None:
        replaced = alert.tag in self.visible
        self.visible[alert.tag] = alert
        actions = " | ".join(button.title for button in alert.actions)
        logger.info(
            f"ALERT [{alert.tag}]{' (replaced)' if replaced else ''} "
            f"{alert.title}: {alert.body} [{actions}]"
        )

    async def dismiss_alert(self, tag: str) -> None:
        if self.visible.pop(tag, None) is not None:
            logger.info(f"ALERT [{tag}] dismissed")


class LoggingBadge:
    """Badge for hosts without an app badge: the count goes to the log."""

    def __init__(self):
        self.count = 0

    async def set_badge_count(self, count: int) -> None:
        self.count = count
        logger.info(f"Badge: {count} dose(s) pending today")

    async def clear_badge(self) -> None:
        self.count = 0
        logger.info("Badge cleared")


class ConfirmationNotifier(Protocol):
    """Port for short foreground confirmations ("record saved")."""

    async def show_confirmation(self, title: str, body: str) -> None:
        ...


class LoggingConfirmationNotifier:
    """Confirmations for hosts without a toast surface: they go to the log."""

    def __init__(self):
        self.shown: list[tuple[str, str]] = []

    async def show_confirmation(self, title: str, body: str) -> None:
        self.shown.append((title, body))
        logger.info(f"CONFIRMATION {title}: {body}")
