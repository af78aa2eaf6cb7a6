"""Entry point for the kline backfill service.

Loads settings, configures logging, and runs the futures and spot pipelines
until SIGINT/SIGTERM. Exits with status 2 when configuration is missing or
invalid and 1 when a pipeline crashed.
"""

import asyncio
import signal
import sys

from backfill.config import load_settings
from backfill.exceptions import ConfigurationError
from backfill.logging import get_logger, setup_logging
from backfill.orchestrator import Orchestrator


def _setup_signal_handlers(orchestrator: Orchestrator) -> None:
    """Register SIGINT/SIGTERM to stop the pipelines gracefully.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("backfill.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(orchestrator.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


async def run() -> int:
    """Run the backfill service. Returns the process exit status."""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        get_logger("backfill.main").error(
            "missing_required_setting" if e.setting else "invalid_settings",
            setting=e.setting,
            error=str(e),
        )
        return 2

    setup_logging(settings.log_level)
    logger = get_logger("backfill.main")

    orchestrator = Orchestrator(settings)
    _setup_signal_handlers(orchestrator)

    logger.info(
        "kline_backfill_starting",
        db_path=str(settings.db_path),
        markets=[m.value for m in settings.backfill.markets],
        page_limit=settings.backfill.page_limit,
        request_delay=settings.backfill.request_delay,
        pass_interval=settings.backfill.pass_interval,
    )

    try:
        await orchestrator.start()
    finally:
        await orchestrator.close()
        logger.info("kline_backfill_stopped")

    return 1 if orchestrator.crashed else 0


def main() -> None:
    """Synchronous entry point."""
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
