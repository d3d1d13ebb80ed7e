"""Error types shared across FinControl.

Every error here is recoverable: callers are expected to report it (CLI
message, retry) and carry on with the ledger in a consistent state.
"""


class FinControlError(Exception):
    """Base class for application errors."""


class PersistenceError(FinControlError):
    """A storage call failed and the matching in-memory change was rolled back."""


class RecordMappingError(FinControlError):
    """A stored record could not be mapped onto the domain model.

    Args:
        record_id: Identifier of the offending row, if known.
        message: What was wrong with it.
    """

    def __init__(self, record_id, message: str):
        self.record_id = record_id
        super().__init__(f"Record {record_id}: {message}")


class SyncInProgressError(FinControlError):
    """A recurrence sync for the same month is already running."""


class AdviceError(FinControlError):
    """The advice provider is unavailable or failed."""
