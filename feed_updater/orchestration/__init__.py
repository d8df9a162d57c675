"""Orchestration layer for the feed updater.

The orchestration layer sits between the scheduler and the components:
- Scheduler (or the one-shot entry point) calls run_pass()
- SyncOrchestrator combines price source, planner and ledger client
- Retry behaviour lives in a declarative policy table

Example:
    orchestrator = SyncOrchestrator(source, ledger, ["BTC", "ETH"])
    report = await orchestrator.run_pass()
"""

from feed_updater.orchestration.retry_policy import (
    DEFAULT_RETRY_POLICY,
    RetryRule,
    build_retry_policy,
    run_with_retry,
)
from feed_updater.orchestration.sync_orchestrator import (
    PassReport,
    SymbolStatus,
    SyncOrchestrator,
    SyncOutcome,
)

__all__ = [
    "DEFAULT_RETRY_POLICY",
    "PassReport",
    "RetryRule",
    "SymbolStatus",
    "SyncOrchestrator",
    "SyncOutcome",
    "build_retry_policy",
    "run_with_retry",
]
