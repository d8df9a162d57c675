"""Bootstrap functions wiring the feed updater components together.

This module builds the price source, ledger client and orchestrator from the
resolved runtime configuration, and the scheduler used in loop mode.
"""

import logging
from functools import partial

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from feed_updater.errors import ConfigurationError, LedgerError, PriceSourceError
from feed_updater.ledger.client import FeedLedgerClient
from feed_updater.orchestration import SyncOrchestrator, build_retry_policy
from feed_updater.runtime import RuntimeConfig
from feed_updater.sources.coingecko import CoinGeckoSource

logger = logging.getLogger(__name__)


def build_ledger_client(config: RuntimeConfig) -> FeedLedgerClient:
    """Create the ledger client holding the signing credential.

    Raises:
        ConfigurationError: private key cannot be loaded
    """
    try:
        return FeedLedgerClient.connect(
            rpc_url=config.rpc_url,
            oracle_address=config.oracle_address,
            private_key=config.private_key,
            chain_id=config.chain_id,
            rpc_timeout=config.rpc_timeout,
            confirmation_timeout=config.confirmation_timeout,
            confirmation_poll=config.confirmation_poll,
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid signing credential or oracle address: {e}") from e


def build_orchestrator(config: RuntimeConfig, ledger: FeedLedgerClient) -> SyncOrchestrator:
    source = CoinGeckoSource(
        source_ids=config.symbol_source_ids,
        api_url=config.price_api_url,
        timeout=config.source_timeout,
        api_key=config.price_api_key,
    )
    retry_policy = build_retry_policy(
        transient_backoff=config.transient_backoff,
        nonce_backoff=config.nonce_backoff,
    )
    logger.debug(
        f"Orchestrator settings: symbols={config.symbols}, "
        f"inter_tx_delay={config.inter_tx_delay}s, retry_policy={retry_policy}, "
        f"min_change_bps={config.min_change_bps}"
    )
    return SyncOrchestrator(
        price_source=source,
        ledger=ledger,
        symbols=config.symbols,
        retry_policy=retry_policy,
        inter_tx_delay=config.inter_tx_delay,
        min_change_bps=config.min_change_bps,
        dry_run=config.dry_run,
        preflight=partial(check_signer, ledger),
    )


async def check_signer(ledger: FeedLedgerClient) -> bool:
    """Warn when the signer is not the oracle owner; writes would be rejected."""
    try:
        owner = await ledger.owner()
    except LedgerError as e:
        logger.warning(f"Could not read oracle owner: {e}")
        return False

    if owner.lower() != ledger.address.lower():
        logger.warning(
            f"Signer {ledger.address} is not the oracle owner ({owner}); "
            "createFeed/updatePrice will be rejected"
        )
        return False

    logger.info(f"Signer {ledger.address} is the oracle owner")
    return True


def build_scheduler(orchestrator: SyncOrchestrator, interval_seconds: int) -> AsyncIOScheduler:
    """Set up a scheduler running one pass immediately and then every interval.

    max_instances=1 keeps passes from overlapping: a tick that fires while
    the previous pass still runs is skipped, so the nonce cursor never races.
    """
    scheduler = AsyncIOScheduler(
        job_defaults={
            "coalesce": True,  # Collapse missed ticks into one run
            "max_instances": 1,  # Skip a tick while a pass is running
            "misfire_grace_time": interval_seconds,
        }
    )

    async def sync_job() -> None:
        try:
            await orchestrator.run_pass()
        except PriceSourceError as e:
            logger.error(f"Sync pass aborted: {e}")

    scheduler.add_job(
        sync_job,
        trigger=OrTrigger(
            [
                DateTrigger(),  # Run immediately on start
                IntervalTrigger(seconds=interval_seconds),
            ]
        ),
        name="feed_sync",
    )
    logger.info(f"Registered feed sync job (immediate + every {interval_seconds}s)")
    return scheduler
