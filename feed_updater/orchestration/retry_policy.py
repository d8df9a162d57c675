"""Declarative retry policy for ledger writes.

Maps an error kind to how many times the same write is retried and how long
to wait first. Kinds missing from the table are never retried.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception

from feed_updater.errors import ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryRule:
    retries: int
    backoff_seconds: float


RetryPolicy = Mapping[ErrorKind, RetryRule]


def build_retry_policy(
    transient_backoff: float = 10.0,
    nonce_backoff: float = 5.0,
) -> dict[ErrorKind, RetryRule]:
    return {
        ErrorKind.TRANSIENT_REJECTION: RetryRule(retries=1, backoff_seconds=transient_backoff),
        ErrorKind.NONCE_CONFLICT: RetryRule(retries=1, backoff_seconds=nonce_backoff),
    }


DEFAULT_RETRY_POLICY: RetryPolicy = build_retry_policy()


def rule_for(policy: RetryPolicy, exc: BaseException | None) -> RetryRule | None:
    kind = getattr(exc, "kind", None)
    if kind is None:
        return None
    return policy.get(kind)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run operation, retrying per policy; the last error is re-raised."""

    def _rule(retry_state: RetryCallState) -> RetryRule | None:
        assert retry_state.outcome is not None
        return rule_for(policy, retry_state.outcome.exception())

    def _stop(retry_state: RetryCallState) -> bool:
        rule = _rule(retry_state)
        return rule is None or retry_state.attempt_number > rule.retries

    def _wait(retry_state: RetryCallState) -> float:
        rule = _rule(retry_state)
        return rule.backoff_seconds if rule else 0.0

    def _log_retry(retry_state: RetryCallState) -> None:
        assert retry_state.outcome is not None
        exc = retry_state.outcome.exception()
        assert retry_state.next_action is not None
        logger.warning(
            f"Attempt {retry_state.attempt_number} failed ({exc}); "
            f"retrying in {retry_state.next_action.sleep}s"
        )

    retrying = AsyncRetrying(
        retry=retry_if_exception(lambda e: rule_for(policy, e) is not None),
        stop=_stop,
        wait=_wait,
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await operation()
    return result
