"""Logging setup helpers for feed updater startup."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler", "web3", "urllib3", "aiohttp")


def configure_logging(level: str = "INFO") -> None:
    """Configure base logging and quiet third-party loggers."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_debug_logging(enabled: bool) -> None:
    """Enable DEBUG logs for feed_updater loggers only."""
    if not enabled:
        return
    logging.getLogger("feed_updater").setLevel(logging.DEBUG)
    logger.info("Enabling DEBUG logging for feed_updater")
