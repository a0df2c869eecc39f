"""
Salon booking service entry point.

Serves the booking API, or runs one reminder sweep for a scheduler
(cron, a Kubernetes CronJob) to call every few minutes.

Usage:
    API server:      python main.py serve
    Reminder sweep:  python main.py reminders
"""

import logging
import sys

from salon.config import settings

logger = logging.getLogger(__name__)


def _run_server() -> None:
    """Start the HTTP API with uvicorn."""
    import uvicorn

    from salon.api import create_app

    uvicorn.run(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


def _run_reminders() -> None:
    """Send every reminder that is due right now, then exit."""
    from salon.container import build_container

    container = build_container(settings)
    sent = container.reminders.send_due_reminders()
    logger.info("Reminder sweep sent %d reminder(s)", len(sent))


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "reminders":
        _run_reminders()
    else:
        _run_server()
