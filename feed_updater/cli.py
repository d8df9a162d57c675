"""CLI argument parsing for the feed updater."""

from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI parser used by the main entrypoint."""
    parser = argparse.ArgumentParser(
        description="Feed updater - push reference prices to the on-chain oracle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run one synchronization pass for all configured symbols (default)
  feed-updater

  # Only BTC and ETH
  feed-updater --symbols BTC,ETH

  # Show what would be submitted without sending transactions
  feed-updater --dry-run

  # Keep running, one pass every 10 minutes
  feed-updater --loop --interval 600

Exit status:
  0  pass completed (individual symbol failures do not change this)
  1  pass failed (price source unavailable or unexpected error)
  2  configuration error

Environment Variables:
  SIGNER_PRIVATE_KEY   Private key of the oracle owner (required)
  ORACLE_ADDRESS       Oracle contract address (required)
  RPC_URL              Ledger JSON-RPC endpoint
  SYMBOL_SOURCE_IDS    JSON object mapping symbol to CoinGecko id
  SYMBOLS              Comma-separated subset of symbols (overridden by CLI)
  UPDATE_INTERVAL_SECONDS  Loop mode interval (overridden by CLI)
        """,
    )

    parser.add_argument(
        "--symbols",
        type=str,
        default=None,
        help="Comma-separated list of symbols to update (default: all configured).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Read ledger state and plan updates without sending transactions.",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Run a pass now and then on every interval until interrupted.",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between passes in loop mode (default: from env, fallback 300).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable DEBUG logging for feed_updater modules.",
    )

    return parser
