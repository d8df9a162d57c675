"""Entry point for the feed updater application."""

import asyncio
import logging
import sys

from pydantic import ValidationError

from feed_updater.bootstrap import (
    build_ledger_client,
    build_orchestrator,
    build_scheduler,
)
from feed_updater.cli import build_parser
from feed_updater.errors import ConfigurationError, PriceSourceError
from feed_updater.logging_setup import configure_debug_logging, configure_logging
from feed_updater.runtime import RuntimeConfig, build_runtime_config
from feed_updater.settings import Settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PASS_FAILED = 1
EXIT_CONFIG_ERROR = 2


async def run_once(config: RuntimeConfig) -> int:
    """Run exactly one synchronization pass and return the exit status."""
    ledger = build_ledger_client(config)
    try:
        orchestrator = build_orchestrator(config, ledger)
        try:
            report = await orchestrator.run_pass()
        except PriceSourceError as e:
            logger.error(f"Sync pass aborted, no feeds touched: {e}")
            return EXIT_PASS_FAILED
    finally:
        await ledger.close()

    for outcome in report.failed:
        if outcome.ambiguous:
            logger.warning(
                f"{outcome.symbol}: tx {outcome.tx_reference} unconfirmed, "
                "it may still land before the next pass"
            )
    return EXIT_OK


async def run_scheduler(config: RuntimeConfig) -> None:
    """Run passes on the configured interval until interrupted."""
    ledger = build_ledger_client(config)
    try:
        scheduler = build_scheduler(build_orchestrator(config, ledger), config.update_interval)
        scheduler.start()
        logger.info("Scheduler started, waiting for jobs...")

        # Block forever, keeping the scheduler running
        await asyncio.Event().wait()
    finally:
        await ledger.close()


def main() -> None:
    """Main entry point for the feed updater."""
    args = build_parser().parse_args()

    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    configure_logging(settings.log_level.upper())

    try:
        config = build_runtime_config(args, settings)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    configure_debug_logging(config.debug)
    logger.info(
        f"Starting feed updater: oracle={config.oracle_address}, rpc={config.rpc_url}, "
        f"symbols={config.symbols}"
    )

    try:
        if config.loop:
            asyncio.run(run_scheduler(config))
            exit_code = EXIT_OK
        else:
            exit_code = asyncio.run(run_once(config))
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
        exit_code = EXIT_OK
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        exit_code = EXIT_CONFIG_ERROR
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        exit_code = EXIT_PASS_FAILED

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
