from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Optional


def new_id() -> str:
    return str(uuid.uuid4())


def _as_date(value: Any) -> Optional[date]:
    # SQLite hands dates back as ISO strings
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


class Role(str, Enum):
    LIBRARIAN = "LIBRARIAN"
    PATRON = "PATRON"
    GUEST = "GUEST"

    @property
    def can_backdate(self) -> bool:
        """Whether the role may borrow or return with a date other than today."""
        return self is Role.LIBRARIAN

    @property
    def can_return_on_behalf_of_others(self) -> bool:
        return self is Role.LIBRARIAN

    @property
    def can_view_any_history(self) -> bool:
        return self is Role.LIBRARIAN


class Level(str, Enum):
    NOVICE = "NOVICE"
    READER = "READER"
    BOOKWORM = "BOOKWORM"
    BIBLIOPHILE = "BIBLIOPHILE"


@dataclass(frozen=True)
class Caller:
    """Identity handed over by the authorization layer."""

    role: Role
    email: str


class Title:
    """A catalog title together with its shelf inventory."""

    def __init__(self, title: str, author: str, isbn: str, genre: str = "GENERAL",
                 page_count: int = 0, copy_count: int = 0, available: Optional[bool] = None,
                 published_date: Optional[date] = None, id: Optional[str] = None) -> None:
        self.id = id or new_id()
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.genre = genre
        self.page_count = page_count
        self.published_date = published_date
        self.copy_count = copy_count
        self.available = copy_count > 0 if available is None else available

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    @staticmethod
    def from_dict(data: dict) -> "Title":
        return Title(
            id=data["id"],
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            genre=data.get("genre") or "GENERAL",
            page_count=data.get("page_count") or 0,
            published_date=_as_date(data.get("published_date")),
            copy_count=data["copy_count"],
            available=bool(data["available"]),
        )


class Reader:
    """A library account, with its standing and reading counters."""

    def __init__(self, full_name: str, email: str, role: Role = Role.PATRON, score: int = 0,
                 level: Level = Level.NOVICE, total_borrowed_books: int = 0,
                 total_returned_books: int = 0, total_late_returns: int = 0,
                 streak_timely_returns: int = 0, total_reading_days: int = 0,
                 total_read_pages: int = 0, id: Optional[str] = None) -> None:
        self.id = id or new_id()
        self.full_name = full_name.strip()
        self.email = email.strip().lower()
        self.role = Role(role)
        self.score = score
        self.level = Level(level)
        self.total_borrowed_books = total_borrowed_books
        self.total_returned_books = total_returned_books
        self.total_late_returns = total_late_returns
        self.streak_timely_returns = streak_timely_returns
        self.total_reading_days = total_reading_days
        self.total_read_pages = total_read_pages

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.full_name} <{self.email}>"

    @staticmethod
    def from_dict(data: dict) -> "Reader":
        return Reader(
            id=data["id"],
            full_name=data["full_name"],
            email=data["email"],
            role=Role(data["role"]),
            score=data["score"],
            level=Level(data["level"]),
            total_borrowed_books=data["total_borrowed_books"],
            total_returned_books=data["total_returned_books"],
            total_late_returns=data["total_late_returns"],
            streak_timely_returns=data["streak_timely_returns"],
            total_reading_days=data["total_reading_days"],
            total_read_pages=data["total_read_pages"],
        )


class Loan:
    """One lending of a title to a reader. Created at borrow time, closed once at return."""

    def __init__(self, title_id: str, reader_id: str, borrow_date: date, due_date: date,
                 return_date: Optional[date] = None, returned: bool = False,
                 id: Optional[str] = None) -> None:
        if due_date < borrow_date:
            raise ValueError("Due date cannot be before the borrow date.")
        if returned != (return_date is not None):
            raise ValueError("A loan is returned exactly when it has a return date.")
        self.id = id or new_id()
        self.title_id = title_id
        self.reader_id = reader_id
        self.borrow_date = borrow_date
        self.due_date = due_date
        self.return_date = return_date
        self.returned = returned

    @property
    def borrow_days(self) -> int:
        return (self.due_date - self.borrow_date).days

    def is_overdue(self, today: date) -> bool:
        return not self.returned and self.due_date < today

    def mark_returned(self, when: date) -> None:
        if self.returned:
            raise ValueError(f"Loan {self.id} has already been returned.")
        self.return_date = when
        self.returned = True

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(
            id=data["id"],
            title_id=data["title_id"],
            reader_id=data["reader_id"],
            borrow_date=_as_date(data["borrow_date"]),
            due_date=_as_date(data["due_date"]),
            return_date=_as_date(data.get("return_date")),
            returned=bool(data["returned"]),
        )
