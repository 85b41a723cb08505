class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class NotFoundError(DomainError):
    """Raised when an addressed entity (cadet, view) does not exist."""


class InvalidTransitionError(DomainError):
    """Raised when a roster view is asked to do something its state forbids."""


class ViewClosedError(InvalidTransitionError):
    """Raised when an operation targets a roster view that was already closed."""


class RemoteStoreError(DomainError):
    """Raised when the remote document store fails.

    ``operation`` names the failed call so the UI layer can report it.
    """

    def __init__(self, message: str, *, operation: str = "remote"):
        super().__init__(message)
        self.operation = operation


class RemoteReadError(RemoteStoreError):
    """A query, get or subscription failed (after the one-shot re-fetch)."""


class RemoteWriteError(RemoteStoreError):
    """A single, merge or batch write failed. Nothing is retried internally."""
