"""Error kinds surfaced by the lending engine.

Business failures derive from ``LibraryError`` and are terminal for the
given input. ``StoreError`` wraps failures of the underlying stores and is
kept outside that hierarchy so callers can tell the two apart.
"""


class LibraryError(Exception):
    """Base class for business-rule failures."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NotFoundError(LibraryError):
    pass


class InvalidRequestError(LibraryError):
    pass


class QuotaExceededError(LibraryError):
    def __init__(self, reason: str, limit: int) -> None:
        super().__init__(reason)
        self.limit = limit


class AccessDeniedError(LibraryError):
    pass


class StoreError(Exception):
    """Raised when a collaborator store (the database) fails."""
    pass
