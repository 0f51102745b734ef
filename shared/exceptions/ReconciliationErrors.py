"""Error taxonomy of the reconciliation core.

StoreUnavailable: a backend (relational store or vector index) is unreachable.
    Fatal for the current phase.
ScanFailure: one drift scan failed. Aborts the whole drift detection.
RepairItemFailure: one repair item failed. Collected in the repair report,
    never aborts the remaining batch.
"""


class ReconciliationError(Exception):
    """Base class for all reconciliation errors.

    Attributes:
        message:  Human-readable description.
        original: The underlying exception, if any.
    """

    def __init__(self, message: str, original: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original = original

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "original": repr(self.original) if self.original else None,
        }


class StoreUnavailable(ReconciliationError):
    """Raised by a store adapter when its backend cannot be reached.

    Attributes:
        store: Client type of the failing backend ("db" or "rag").
    """

    def __init__(self, store: str, message: str, original: Exception | None = None) -> None:
        super().__init__(f"{store} store unavailable: {message}", original)
        self.store = store


class ScanFailure(ReconciliationError):
    """Raised when a single drift scan fails.

    Attributes:
        scan: Name of the failing scan ("missing", "mismatch", "orphaned").
    """

    def __init__(self, scan: str, message: str, original: Exception | None = None) -> None:
        super().__init__(f"{scan} scan failed: {message}", original)
        self.scan = scan


class RepairItemFailure(ReconciliationError):
    """Raised while repairing a single inconsistency.

    Attributes:
        document_id: Document the failing repair was working on.
        action:      Repair action that failed.
    """

    def __init__(self, document_id: str, action: str, message: str, original: Exception | None = None) -> None:
        super().__init__(message, original)
        self.document_id = document_id
        self.action = action
