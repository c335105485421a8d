"""Domain errors raised by the ledger services."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for errors that are reported back to the caller."""


class ValidationError(LedgerError, ValueError):
    """Malformed input: missing title, no participants, bad amount and so on."""


class NotFoundError(LedgerError, LookupError):
    pass


class AuthorizationError(LedgerError, PermissionError):
    pass


class FetchError(LedgerError):
    def __init__(self, collection: str, message: str | None = None) -> None:
        self.collection = collection
        super().__init__(message or f"Could not load {collection}, please try again.")


class FetchTimeoutError(LedgerError, TimeoutError):
    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        super().__init__(f"Loading took longer than {seconds:g}s, please try again.")


class ResolutionGapError(LedgerError, LookupError):
    """A share record points at an item, bill or participant that is not available."""

    def __init__(self, share_id: str, missing: str) -> None:
        self.share_id = share_id
        self.missing = missing
        super().__init__(f"share {share_id} references a missing {missing}")
