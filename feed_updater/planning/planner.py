"""Per-symbol update decisions.

Pure functions of (reference price, ledger state); no I/O.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from feed_updater.ledger.dto import FeedState
from feed_updater.ledger.encoding import encode_price
from feed_updater.sources.dto import ReferencePrice


class DecisionAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


class SkipReason(str, Enum):
    NO_FEED_DATA = "no_feed_data"
    ALREADY_EXISTS = "already_exists"
    BELOW_THRESHOLD = "below_threshold"


@dataclass(frozen=True)
class UpdateDecision:
    action: DecisionAction
    encoded_price: int | None = None
    reason: SkipReason | None = None

    @classmethod
    def create(cls, encoded_price: int) -> "UpdateDecision":
        return cls(DecisionAction.CREATE, encoded_price=encoded_price)

    @classmethod
    def update(cls, encoded_price: int) -> "UpdateDecision":
        return cls(DecisionAction.UPDATE, encoded_price=encoded_price)

    @classmethod
    def skip(cls, reason: SkipReason) -> "UpdateDecision":
        return cls(DecisionAction.SKIP, reason=reason)

    @property
    def is_write(self) -> bool:
        return self.action is not DecisionAction.SKIP

    def __str__(self) -> str:
        if self.action is DecisionAction.CREATE:
            return f"CreateFeed({self.encoded_price})"
        if self.action is DecisionAction.UPDATE:
            return f"UpdateFeed({self.encoded_price})"
        assert self.reason is not None
        return f"Skip({self.reason.value})"


def decide(ref: ReferencePrice | None, state: FeedState) -> UpdateDecision:
    """Decide what to do with one feed.

    An existing feed is always re-submitted with the latest price; small
    deltas are not suppressed here (see apply_change_threshold).
    """
    if ref is None:
        return UpdateDecision.skip(SkipReason.NO_FEED_DATA)

    encoded = encode_price(ref.usd_value)
    if not state.exists:
        return UpdateDecision.create(encoded)
    return UpdateDecision.update(encoded)


def apply_change_threshold(
    decision: UpdateDecision, state: FeedState, min_change_bps: Decimal | None
) -> UpdateDecision:
    """Turn an update below min_change_bps (relative to the stored price) into a skip."""
    if min_change_bps is None or decision.action is not DecisionAction.UPDATE:
        return decision
    if state.encoded_price <= 0:
        return decision

    assert decision.encoded_price is not None
    delta = abs(decision.encoded_price - state.encoded_price)
    change_bps = Decimal(delta) * 10_000 / Decimal(state.encoded_price)
    if change_bps < min_change_bps:
        return UpdateDecision.skip(SkipReason.BELOW_THRESHOLD)
    return decision
