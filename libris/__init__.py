"""Libris - library lending and reader-scoring engine

Modules:
- models: titles, readers, loans, roles and levels
- scoring: score to level mapping and scoring tables
- inventory / ledger: shelf copy counts and the lending history
- borrowing / returns: the lending policies
- statistics: library-wide and overdue reports
- catalog / accounts: title and reader records
- library: facade wiring everything together
- api / main: HTTP and command line surfaces
"""

from libris.errors import (
    AccessDeniedError,
    InvalidRequestError,
    LibraryError,
    NotFoundError,
    QuotaExceededError,
    StoreError,
)
from libris.library import Library
from libris.models import Caller, Level, Loan, Reader, Role, Title

__all__ = [
    "Library",
    "Caller",
    "Level",
    "Loan",
    "Reader",
    "Role",
    "Title",
    "LibraryError",
    "NotFoundError",
    "InvalidRequestError",
    "QuotaExceededError",
    "AccessDeniedError",
    "StoreError",
]
