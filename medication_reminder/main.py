"""Main entry point for the medication reminder.

Runs the background scheduler and the foreground reconciler in one
process. The two contexts only talk through the message channel.
"""

import asyncio
import signal
import sys

from medication_reminder.channel import MessageChannel
from medication_reminder.config import settings
from medication_reminder.data.storage import DataManager
from medication_reminder.services import (
    BackgroundScheduler,
    ForegroundReconciler,
    LoggingAlertPresenter,
    LoggingBadge,
    LoggingConfirmationNotifier,
)
from medication_reminder.utils import logger, setup_logger


async def main():
    """Main application entry point."""
    setup_logger(console_level=settings.log_level)

    logger.info("=" * 60)
    logger.info("Starting Medication Reminder")
    logger.info("=" * 60)
    logger.info(f"Configuration: {settings!r}")

    channel = MessageChannel()
    presenter = LoggingAlertPresenter()

    try:
        scheduler = BackgroundScheduler(presenter=presenter, endpoint=channel.background)
        reconciler = ForegroundReconciler(
            data_manager=DataManager(settings.data_path),
            endpoint=channel.foreground,
            badge=LoggingBadge(),
            alerts_permitted=presenter.is_permitted,
            confirmations=LoggingConfirmationNotifier(),
        )
    except Exception as e:
        logger.opt(exception=e).error(f"Failed to initialize services: {e}")
        sys.exit(1)

    shutdown_event = asyncio.Event()

    def signal_handler(sig, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # Background first so the resync finds it ready
    await scheduler.start()
    await reconciler.start()

    await shutdown_event.wait()

    logger.info("Shutdown signal received, stopping services...")
    await reconciler.stop()
    await scheduler.stop()

    logger.info("=" * 60)
    logger.info("Medication Reminder stopped")
    logger.info("=" * 60)


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received KeyboardInterrupt, exiting...")


if __name__ == "__main__":
    run()
