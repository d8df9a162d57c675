"""Runtime configuration building for feed updater startup."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from decimal import Decimal

from web3 import Web3

from feed_updater.errors import ConfigurationError
from feed_updater.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuntimeConfig:
    """Resolved startup configuration after CLI/ENV merge."""

    private_key: str
    oracle_address: str
    rpc_url: str
    chain_id: int | None
    price_api_url: str
    price_api_key: str | None
    symbol_source_ids: dict[str, str]
    symbols: list[str]
    source_timeout: float
    rpc_timeout: float
    confirmation_timeout: float
    confirmation_poll: float
    transient_backoff: float
    nonce_backoff: float
    inter_tx_delay: float
    update_interval: int
    min_change_bps: Decimal | None
    dry_run: bool
    loop: bool
    debug: bool
    log_level: str


def build_runtime_config(args: argparse.Namespace, settings: Settings) -> RuntimeConfig:
    """Resolve final runtime configuration used by main().

    Raises:
        ConfigurationError: required value missing or out of range
    """
    if settings.signer_private_key is None or not settings.signer_private_key.get_secret_value():
        raise ConfigurationError("SIGNER_PRIVATE_KEY is required")
    if not settings.oracle_address:
        raise ConfigurationError("ORACLE_ADDRESS is required")
    if not Web3.is_address(settings.oracle_address):
        raise ConfigurationError(
            f"ORACLE_ADDRESS is not a valid address: {settings.oracle_address}"
        )

    for name in (
        "source_timeout_seconds",
        "rpc_timeout_seconds",
        "confirmation_timeout_seconds",
        "confirmation_poll_seconds",
    ):
        if getattr(settings, name) <= 0:
            raise ConfigurationError(f"{name.upper()} must be greater than 0")
    for name in ("transient_backoff_seconds", "nonce_backoff_seconds", "inter_tx_delay_seconds"):
        if getattr(settings, name) < 0:
            raise ConfigurationError(f"{name.upper()} must be >= 0")

    update_interval = settings.update_interval_seconds
    if args.interval is not None:
        update_interval = args.interval
    if update_interval <= 0:
        raise ConfigurationError("UPDATE_INTERVAL_SECONDS must be greater than 0")

    if settings.min_change_bps is not None and settings.min_change_bps < 0:
        raise ConfigurationError("MIN_CHANGE_BPS must be >= 0")

    symbols_arg = args.symbols if args.symbols is not None else settings.symbols
    symbols = parse_symbol_filter(symbols_arg, settings.symbol_source_ids)
    if not symbols:
        raise ConfigurationError("No symbols to track; check SYMBOL_SOURCE_IDS and SYMBOLS")

    return RuntimeConfig(
        private_key=settings.signer_private_key.get_secret_value(),
        oracle_address=Web3.to_checksum_address(settings.oracle_address),
        rpc_url=settings.rpc_url,
        chain_id=settings.chain_id,
        price_api_url=settings.price_api_url,
        price_api_key=(
            settings.price_api_key.get_secret_value() if settings.price_api_key else None
        ),
        symbol_source_ids=dict(settings.symbol_source_ids),
        symbols=symbols,
        source_timeout=settings.source_timeout_seconds,
        rpc_timeout=settings.rpc_timeout_seconds,
        confirmation_timeout=settings.confirmation_timeout_seconds,
        confirmation_poll=settings.confirmation_poll_seconds,
        transient_backoff=settings.transient_backoff_seconds,
        nonce_backoff=settings.nonce_backoff_seconds,
        inter_tx_delay=settings.inter_tx_delay_seconds,
        update_interval=update_interval,
        min_change_bps=settings.min_change_bps,
        dry_run=args.dry_run,
        loop=args.loop,
        debug=args.debug,
        log_level=settings.log_level.upper(),
    )


def parse_symbol_filter(
    symbol_filter: str | None, symbol_source_ids: dict[str, str]
) -> list[str]:
    """Filter configured symbols by a comma-separated filter, keeping configured order."""
    configured = list(symbol_source_ids)
    if not symbol_filter:
        return configured

    requested = {item.strip().upper() for item in symbol_filter.split(",") if item.strip()}
    if not requested:
        return configured

    unknown = requested - set(configured)
    if unknown:
        logger.warning(
            "Unknown symbols requested: %s. Configured symbols: %s",
            sorted(unknown),
            configured,
        )

    selected = [symbol for symbol in configured if symbol in requested]
    if selected:
        logger.info("Filtered to %s symbol(s): %s", len(selected), selected)
    return selected
