"""Error taxonomy for the feed updater.

Price source and ledger failures are separate branches so the orchestrator can
tell pass-fatal errors (source, configuration) from per-symbol ledger errors.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable name for each leaf error, recorded in sync outcomes."""

    CONFIGURATION = "configuration"
    SOURCE_UNAVAILABLE = "source_unavailable"
    SOURCE_MALFORMED = "source_malformed"
    LEDGER_UNREACHABLE = "ledger_unreachable"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    LEDGER_REJECTED = "ledger_rejected"
    TRANSIENT_REJECTION = "transient_rejection"
    NONCE_CONFLICT = "nonce_conflict"
    FEED_ALREADY_EXISTS = "feed_already_exists"


class FeedUpdaterError(Exception):
    kind: ErrorKind


class ConfigurationError(FeedUpdaterError):
    kind = ErrorKind.CONFIGURATION


class PriceSourceError(FeedUpdaterError):
    pass


class SourceUnavailable(PriceSourceError):
    kind = ErrorKind.SOURCE_UNAVAILABLE


class SourceMalformed(PriceSourceError):
    kind = ErrorKind.SOURCE_MALFORMED


class LedgerError(FeedUpdaterError):
    pass


class LedgerUnreachable(LedgerError):
    kind = ErrorKind.LEDGER_UNREACHABLE
    ambiguous = False


class ConfirmationTimeout(LedgerUnreachable):
    """Transaction was submitted but not seen in a block in time.

    The transaction may still land later, so callers must re-read feed state
    before submitting again.
    """

    kind = ErrorKind.CONFIRMATION_TIMEOUT
    ambiguous = True

    def __init__(self, tx_reference: str, timeout: float) -> None:
        super().__init__(f"Transaction {tx_reference} not confirmed within {timeout}s")
        self.tx_reference = tx_reference
        self.timeout = timeout


class LedgerRejected(LedgerError):
    """Protocol-level rejection reported by the ledger node."""

    kind = ErrorKind.LEDGER_REJECTED

    def __init__(self, code: int | str | None, message: str) -> None:
        super().__init__(f"Ledger rejected transaction (code={code}): {message}")
        self.code = code
        self.message = message


class TransientRejection(LedgerRejected):
    """Congestion or temporary-ban style rejection; worth one retry."""

    kind = ErrorKind.TRANSIENT_REJECTION


class NonceConflict(LedgerRejected):
    kind = ErrorKind.NONCE_CONFLICT


class FeedAlreadyExists(LedgerError):
    """createFeed raced another writer; treated as success by callers."""

    kind = ErrorKind.FEED_ALREADY_EXISTS

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Feed already exists for {symbol}")
        self.symbol = symbol
