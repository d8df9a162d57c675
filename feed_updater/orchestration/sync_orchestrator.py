"""Sync orchestrator: one fetch-decide-submit pass over all configured symbols."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from feed_updater.errors import ErrorKind, FeedAlreadyExists, LedgerError
from feed_updater.orchestration.retry_policy import (
    DEFAULT_RETRY_POLICY,
    RetryPolicy,
    run_with_retry,
)
from feed_updater.planning.planner import (
    DecisionAction,
    SkipReason,
    UpdateDecision,
    apply_change_threshold,
    decide,
)

if TYPE_CHECKING:
    from feed_updater.ledger.client import FeedLedgerClient
    from feed_updater.sources.protocol import PriceSource

logger = logging.getLogger(__name__)


class SymbolStatus(str, Enum):
    PENDING = "pending"
    DECIDED = "decided"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class SyncOutcome:
    symbol: str
    status: SymbolStatus = SymbolStatus.PENDING
    decision: UpdateDecision | None = None
    tx_reference: str | None = None
    error: ErrorKind | None = None
    attempts: int = 0
    detail: str | None = None

    @property
    def ambiguous(self) -> bool:
        """Submitted but unconfirmed; re-read ledger state before resubmitting."""
        return self.error is ErrorKind.CONFIRMATION_TIMEOUT


@dataclass
class PassReport:
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[SyncOutcome] = field(default_factory=list)

    def _with_status(self, status: SymbolStatus) -> list[SyncOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is status]

    @property
    def confirmed(self) -> list[SyncOutcome]:
        return self._with_status(SymbolStatus.CONFIRMED)

    @property
    def failed(self) -> list[SyncOutcome]:
        return self._with_status(SymbolStatus.FAILED)

    @property
    def skipped(self) -> list[SyncOutcome]:
        return self._with_status(SymbolStatus.SKIPPED)

    def summary(self) -> str:
        return (
            f"{len(self.confirmed)} confirmed, {len(self.failed)} failed, "
            f"{len(self.skipped)} skipped"
        )


class SyncOrchestrator:
    """Keeps on-chain feeds in line with the price source, one pass at a time.

    Writes are issued strictly one after another, separated by
    inter_tx_delay. A failing symbol is recorded and the pass moves on; only a
    price source failure aborts the pass. preflight, if given, runs once per
    pass after the prices are in and before the first ledger read.
    """

    def __init__(
        self,
        price_source: "PriceSource",
        ledger: "FeedLedgerClient",
        symbols: Sequence[str],
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        inter_tx_delay: float = 5.0,
        min_change_bps: Decimal | None = None,
        dry_run: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        preflight: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        self._price_source = price_source
        self._ledger = ledger
        self._symbols = list(symbols)
        self._retry_policy = retry_policy
        self._inter_tx_delay = inter_tx_delay
        self._min_change_bps = min_change_bps
        self._dry_run = dry_run
        self._sleep = sleep
        self._preflight = preflight

    async def run_pass(self) -> PassReport:
        """Run one synchronization pass.

        Raises:
            PriceSourceError: price fetch failed; no ledger call was made
        """
        report = PassReport(started_at=datetime.now(timezone.utc))
        logger.info(
            f"Starting sync pass for {len(self._symbols)} symbols"
            f"{' (dry run)' if self._dry_run else ''}"
        )

        prices = await self._price_source.fetch(self._symbols)
        if self._preflight is not None:
            await self._preflight()

        self._ledger.reset_nonce()
        submissions = 0
        for symbol in self._symbols:
            outcome = SyncOutcome(symbol=symbol)
            report.outcomes.append(outcome)
            try:
                state = await self._ledger.feed_state(symbol)
                decision = apply_change_threshold(
                    decide(prices.get(symbol), state), state, self._min_change_bps
                )
                outcome.decision = decision
                outcome.status = SymbolStatus.DECIDED
                logger.debug(f"{symbol}: {decision}")

                if not decision.is_write:
                    outcome.status = SymbolStatus.SKIPPED
                    logger.info(f"{symbol}: {decision}")
                    continue

                if self._dry_run:
                    outcome.status = SymbolStatus.SKIPPED
                    outcome.detail = "dry-run"
                    logger.info(f"{symbol}: would submit {decision} (dry run)")
                    continue

                if submissions:
                    logger.debug(f"Waiting {self._inter_tx_delay}s before next transaction")
                    await self._sleep(self._inter_tx_delay)
                submissions += 1
                await self._submit(outcome, decision)
            except LedgerError as e:
                self._record_failure(outcome, e)
            except Exception as e:
                outcome.status = SymbolStatus.FAILED
                outcome.detail = str(e)
                logger.error(f"{symbol}: unexpected error: {e}", exc_info=True)

        report.finished_at = datetime.now(timezone.utc)
        duration = report.finished_at - report.started_at
        logger.info(f"Sync pass completed in {duration}: {report.summary()}")
        return report

    async def _submit(self, outcome: SyncOutcome, decision: UpdateDecision) -> None:
        assert decision.encoded_price is not None
        outcome.status = SymbolStatus.SUBMITTING
        if decision.action is DecisionAction.CREATE:
            write = self._ledger.create_feed
        else:
            write = self._ledger.update_price

        async def attempt() -> str:
            outcome.attempts += 1
            return await write(outcome.symbol, decision.encoded_price)  # type: ignore[arg-type]

        try:
            outcome.tx_reference = await run_with_retry(attempt, self._retry_policy, self._sleep)
        except FeedAlreadyExists:
            outcome.status = SymbolStatus.SKIPPED
            outcome.decision = UpdateDecision.skip(SkipReason.ALREADY_EXISTS)
            outcome.detail = "feed created by another writer"
            logger.info(f"{outcome.symbol}: feed already exists, skipping")
            return

        outcome.status = SymbolStatus.CONFIRMED
        logger.info(f"{outcome.symbol}: {decision} confirmed in {outcome.tx_reference}")

    def _record_failure(self, outcome: SyncOutcome, error: LedgerError) -> None:
        outcome.status = SymbolStatus.FAILED
        outcome.error = error.kind
        outcome.detail = str(error)
        tx_reference = getattr(error, "tx_reference", None)
        if tx_reference:
            outcome.tx_reference = tx_reference

        if outcome.ambiguous:
            logger.warning(
                f"{outcome.symbol}: outcome unknown, {error}; next pass re-reads ledger state"
            )
        else:
            logger.error(f"{outcome.symbol}: failed after {outcome.attempts} attempt(s): {error}")
