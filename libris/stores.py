"""SQLite-backed stores for titles, readers and loans.

Each store works on a connection handed to it by the caller, so a policy can
run several stores inside a single ``database.transaction()``.
"""
import sqlite3
from datetime import date
from typing import List, Optional

from libris.models import Loan, Reader, Title

_TITLE_COLUMNS = "id, title, author, isbn, genre, page_count, published_date, copy_count, available"
_READER_COLUMNS = (
    "id, full_name, email, role, score, level, total_borrowed_books, total_returned_books, "
    "total_late_returns, streak_timely_returns, total_reading_days, total_read_pages"
)
_LOAN_COLUMNS = "id, title_id, reader_id, borrow_date, due_date, return_date, returned"


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class TitleStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def find_by_id(self, title_id: str) -> Optional[Title]:
        row = self.conn.execute(
            f"SELECT {_TITLE_COLUMNS} FROM titles WHERE id = ?", (title_id,)
        ).fetchone()
        return Title.from_dict(dict(row)) if row else None

    def find_all(self) -> List[Title]:
        rows = self.conn.execute(f"SELECT {_TITLE_COLUMNS} FROM titles ORDER BY title").fetchall()
        return [Title.from_dict(dict(row)) for row in rows]

    def exists_by_isbn(self, isbn: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM titles WHERE isbn = ?", (isbn,)).fetchone()
        return row is not None

    def search(self, query: str) -> List[Title]:
        """Case-insensitive substring search over title, author and ISBN."""
        pattern = f"%{query.strip()}%"
        rows = self.conn.execute(
            f"""
            SELECT {_TITLE_COLUMNS} FROM titles
            WHERE title LIKE ? OR author LIKE ? OR isbn LIKE ?
            ORDER BY title
            """,
            (pattern, pattern, pattern),
        ).fetchall()
        return [Title.from_dict(dict(row)) for row in rows]

    def save(self, title: Title) -> Title:
        """Insert or update catalog fields. Inventory columns are only written on insert."""
        self.conn.execute(
            f"""
            INSERT INTO titles ({_TITLE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                author = excluded.author,
                isbn = excluded.isbn,
                genre = excluded.genre,
                page_count = excluded.page_count,
                published_date = excluded.published_date
            """,
            (
                title.id, title.title, title.author, title.isbn, title.genre,
                title.page_count, _iso(title.published_date), title.copy_count, title.available,
            ),
        )
        return title

    # ------------------------- Inventory columns ------------------------- #
    def decrement_copies(self, title_id: str) -> bool:
        """Take one copy off the shelf. Returns False if none was left."""
        cursor = self.conn.execute(
            """
            UPDATE titles
            SET copy_count = copy_count - 1, available = (copy_count - 1 > 0)
            WHERE id = ? AND copy_count > 0
            """,
            (title_id,),
        )
        return cursor.rowcount == 1

    def increment_copies(self, title_id: str) -> bool:
        cursor = self.conn.execute(
            "UPDATE titles SET copy_count = copy_count + 1, available = 1 WHERE id = ?",
            (title_id,),
        )
        return cursor.rowcount == 1

    def set_copies(self, title_id: str, copy_count: int) -> bool:
        cursor = self.conn.execute(
            "UPDATE titles SET copy_count = ?, available = ? WHERE id = ?",
            (copy_count, copy_count > 0, title_id),
        )
        return cursor.rowcount == 1


class ReaderStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def find_by_id(self, reader_id: str) -> Optional[Reader]:
        row = self.conn.execute(
            f"SELECT {_READER_COLUMNS} FROM readers WHERE id = ?", (reader_id,)
        ).fetchone()
        return Reader.from_dict(dict(row)) if row else None

    def find_by_email(self, email: str) -> Optional[Reader]:
        row = self.conn.execute(
            f"SELECT {_READER_COLUMNS} FROM readers WHERE email = ?", (email.strip().lower(),)
        ).fetchone()
        return Reader.from_dict(dict(row)) if row else None

    def find_all(self) -> List[Reader]:
        rows = self.conn.execute(f"SELECT {_READER_COLUMNS} FROM readers ORDER BY full_name").fetchall()
        return [Reader.from_dict(dict(row)) for row in rows]

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM readers").fetchone()[0]

    def exists_by_email(self, email: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM readers WHERE email = ?", (email.strip().lower(),)
        ).fetchone()
        return row is not None

    def save(self, reader: Reader) -> Reader:
        self.conn.execute(
            f"""
            INSERT INTO readers ({_READER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                full_name = excluded.full_name,
                email = excluded.email,
                role = excluded.role,
                score = excluded.score,
                level = excluded.level,
                total_borrowed_books = excluded.total_borrowed_books,
                total_returned_books = excluded.total_returned_books,
                total_late_returns = excluded.total_late_returns,
                streak_timely_returns = excluded.streak_timely_returns,
                total_reading_days = excluded.total_reading_days,
                total_read_pages = excluded.total_read_pages
            """,
            (
                reader.id, reader.full_name, reader.email, reader.role.value, reader.score,
                reader.level.value, reader.total_borrowed_books, reader.total_returned_books,
                reader.total_late_returns, reader.streak_timely_returns,
                reader.total_reading_days, reader.total_read_pages,
            ),
        )
        return reader


class LoanStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def _many(self, where: str = "", params: tuple = ()) -> List[Loan]:
        rows = self.conn.execute(
            f"SELECT {_LOAN_COLUMNS} FROM loans {where} ORDER BY borrow_date, rowid", params
        ).fetchall()
        return [Loan.from_dict(dict(row)) for row in rows]

    def find_by_id(self, loan_id: str) -> Optional[Loan]:
        row = self.conn.execute(
            f"SELECT {_LOAN_COLUMNS} FROM loans WHERE id = ?", (loan_id,)
        ).fetchone()
        return Loan.from_dict(dict(row)) if row else None

    def find_all(self) -> List[Loan]:
        return self._many()

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM loans").fetchone()[0]

    def find_by_reader(self, reader_id: str) -> List[Loan]:
        return self._many("WHERE reader_id = ?", (reader_id,))

    def find_active_by_reader(self, reader_id: str) -> List[Loan]:
        return self._many("WHERE reader_id = ? AND returned = 0", (reader_id,))

    def find_active_overdue(self, as_of: date) -> List[Loan]:
        return self._many("WHERE returned = 0 AND due_date < ?", (as_of.isoformat(),))

    def count_active_for_title(self, title_id: str) -> int:
        return self.conn.execute(
            "SELECT COUNT(*) FROM loans WHERE title_id = ? AND returned = 0", (title_id,)
        ).fetchone()[0]

    def exists_active_for_reader_and_title(self, reader_id: str, title_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM loans WHERE reader_id = ? AND title_id = ? AND returned = 0",
            (reader_id, title_id),
        ).fetchone()
        return row is not None

    def save(self, loan: Loan) -> Loan:
        """Insert a new loan or record its return. Dates other than the return date never change."""
        self.conn.execute(
            f"""
            INSERT INTO loans ({_LOAN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                return_date = excluded.return_date,
                returned = excluded.returned
            """,
            (
                loan.id, loan.title_id, loan.reader_id, _iso(loan.borrow_date),
                _iso(loan.due_date), _iso(loan.return_date), loan.returned,
            ),
        )
        return loan
