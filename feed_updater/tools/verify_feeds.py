"""Oracle feed verification CLI.

Read-only: checks the signer against the oracle owner and shows on-chain feed
state next to the current source price.
"""

import argparse
import asyncio
import sys
from decimal import Decimal

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from feed_updater.errors import LedgerError, PriceSourceError
from feed_updater.ledger.client import FeedLedgerClient
from feed_updater.ledger.dto import FeedState
from feed_updater.ledger.encoding import decode_price
from feed_updater.runtime import parse_symbol_filter
from feed_updater.settings import Settings
from feed_updater.sources.coingecko import CoinGeckoSource
from feed_updater.sources.dto import ReferencePrice

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Verify oracle feeds against the price source")
    parser.add_argument(
        "--symbols",
        type=str,
        default=None,
        help="Comma-separated list of symbols to check (default: all configured)",
    )
    parser.add_argument(
        "--skip-source",
        action="store_true",
        help="Do not query the price source, only read the ledger",
    )
    return parser


def _render_feeds(
    states: dict[str, FeedState | None],
    source_ids: dict[str, str],
    prices: dict[str, ReferencePrice],
) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Symbol", style="cyan")
    table.add_column("Source ID", style="dim")
    table.add_column("Feed", justify="center")
    table.add_column("On-chain USD", style="green", justify="right")
    table.add_column("Last Updated", style="yellow")
    table.add_column("Source USD", style="green", justify="right")
    table.add_column("Diff", justify="right")

    for symbol, state in states.items():
        ref = prices.get(symbol)
        source_id = source_ids.get(symbol, "-")
        source_usd = f"{ref.usd_value}" if ref else "-"

        if state is None:
            table.add_row(symbol, source_id, "[red]error[/red]", "-", "-", source_usd, "-")
            continue
        if not state.exists:
            table.add_row(symbol, source_id, "[yellow]missing[/yellow]", "-", "-", source_usd, "-")
            continue

        onchain_usd = decode_price(state.encoded_price)
        status = "[green]active[/green]" if state.is_active else "[yellow]inactive[/yellow]"
        last_updated = state.last_updated_at.isoformat() if state.last_updated_at else "-"
        diff = "-"
        if ref and onchain_usd > 0:
            diff_pct = (ref.usd_value - onchain_usd) / onchain_usd * Decimal(100)
            diff = f"{diff_pct:+.4f}%"
        table.add_row(
            symbol,
            source_id,
            status,
            f"{onchain_usd}",
            last_updated,
            source_usd,
            diff,
        )

    console.print(table)


async def verify_feeds(settings: Settings, symbols: list[str], skip_source: bool) -> bool:
    if not settings.oracle_address:
        console.print("[bold red][FAIL][/bold red] ORACLE_ADDRESS is not set")
        return False

    private_key = (
        settings.signer_private_key.get_secret_value() if settings.signer_private_key else None
    )
    try:
        ledger = FeedLedgerClient.connect(
            rpc_url=settings.rpc_url,
            oracle_address=settings.oracle_address,
            private_key=private_key,
            rpc_timeout=settings.rpc_timeout_seconds,
        )
    except ValueError as exc:
        console.print(f"[bold red][FAIL][/bold red] Invalid configuration: {exc}")
        return False

    console.print(f"\n[bold cyan]Verifying oracle: {ledger.contract_address}[/bold cyan]")
    console.print(f"[dim]RPC: {settings.rpc_url}[/dim]\n")

    try:
        return await _run_checks(ledger, settings, symbols, skip_source)
    finally:
        await ledger.close()


async def _run_checks(
    ledger: FeedLedgerClient, settings: Settings, symbols: list[str], skip_source: bool
) -> bool:
    console.print("[bold]Step 1: Ledger - owner()[/bold]")
    try:
        owner = await ledger.owner()
        console.print(f"  [green][OK][/green] Oracle owner: {owner}")
    except LedgerError as exc:
        console.print(f"  [bold red][FAIL][/bold red] owner() failed: {exc}")
        return False

    if ledger.has_signer:
        if owner.lower() == ledger.address.lower():
            console.print(f"  [green][OK][/green] Signer {ledger.address} is the owner")
        else:
            console.print(
                f"  [yellow][WARN][/yellow] Signer {ledger.address} is not the owner; "
                "writes will be rejected"
            )
    else:
        console.print("  [yellow][WARN][/yellow] SIGNER_PRIVATE_KEY not set, skipping signer check")

    prices: dict[str, ReferencePrice] = {}
    if not skip_source:
        console.print("\n[bold]Step 2: Price source - fetch()[/bold]")
        source = CoinGeckoSource(
            source_ids=settings.symbol_source_ids,
            api_url=settings.price_api_url,
            timeout=settings.source_timeout_seconds,
            api_key=settings.price_api_key.get_secret_value() if settings.price_api_key else None,
        )
        try:
            prices = await source.fetch(symbols)
            console.print(f"  [green][OK][/green] Retrieved {len(prices)}/{len(symbols)} prices")
        except PriceSourceError as exc:
            console.print(f"  [yellow][WARN][/yellow] Price fetch failed: {exc}")

    console.print("\n[bold]Step 3: Ledger - feed state[/bold]")
    states: dict[str, FeedState | None] = {}
    failures = 0
    for symbol in symbols:
        try:
            states[symbol] = await ledger.feed_state(symbol)
        except LedgerError as exc:
            console.print(f"  [bold red][FAIL][/bold red] {symbol}: {exc}")
            states[symbol] = None
            failures += 1

    _render_feeds(states, settings.symbol_source_ids, prices)

    if failures:
        console.print(f"\n[bold red][FAIL] {failures} feed read(s) failed[/bold red]\n")
        return False

    console.print("\n[bold green][OK] All feed reads succeeded[/bold green]\n")
    return True


async def amain(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as exc:
        console.print(f"[bold red][FAIL][/bold red] Configuration error: {exc}")
        return 2

    symbols = parse_symbol_filter(args.symbols or settings.symbols, settings.symbol_source_ids)
    if not symbols:
        console.print("[bold red][FAIL][/bold red] No symbols to check")
        return 1

    success = await verify_feeds(settings, symbols, args.skip_source)
    return 0 if success else 1


def main() -> int:
    return asyncio.run(amain())


def entrypoint() -> None:
    sys.exit(main())
