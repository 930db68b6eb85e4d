"""Exception types raised by the ledger pipeline."""


class WalletLedgerError(Exception):
    pass


class HistoryUnavailableError(WalletLedgerError):
    """The transaction-history collaborator could not be reached at all."""


class PipelineCancelled(WalletLedgerError):
    """Cooperative cancellation was observed; partial results were discarded."""


class LedgerOrderError(WalletLedgerError):
    """An event reached the cost-basis ledger out of timestamp order."""


class MalformedRecordError(WalletLedgerError):
    """A single upstream record could not be parsed and must be skipped."""
