"""
Slotbook entry point.

Usage:
    Demo walkthrough:  python main.py demo [--scenario booking|race|holiday]
    Reminder loop:     python main.py reminders
"""

import asyncio
import logging
import signal
import sys

from slotbook.config import settings

logger = logging.getLogger(__name__)


async def _reminder_loop() -> None:
    """Run the reminder scan against an in-memory store until interrupted."""
    from slotbook.persistence import AppointmentStore, Directory
    from slotbook.services import NotificationQueue, ReminderScheduler

    queue = NotificationQueue()
    scheduler = ReminderScheduler(AppointmentStore(), Directory(), queue)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform")

    async def drain() -> None:
        while not stop.is_set():
            queue.process_due()
            await asyncio.sleep(1)

    await asyncio.gather(scheduler.run(stop), drain())


def _run_reminders() -> None:
    if not settings.reminders.enabled:
        logger.info("Reminders disabled (REMINDERS_ENABLED=false)")
        return
    asyncio.run(_reminder_loop())


def _run_demo(argv: list[str]) -> None:
    from console_demo import main as demo_main

    demo_main(argv)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "reminders":
        _run_reminders()
    else:
        _run_demo(sys.argv[2:] if len(sys.argv) > 1 else [])
