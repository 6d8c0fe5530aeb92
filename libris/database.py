import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from libris.config import settings
from libris.errors import StoreError

logger = logging.getLogger(__name__)

# Default database file. Tests and callers pass their own path instead.
DATABASE_FILE = settings.database_file


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    The connection runs in autocommit mode so transactions are opened
    explicitly with ``transaction()``.
    """
    try:
        conn = sqlite3.connect(
            db_file or DATABASE_FILE,
            timeout=settings.database_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
    except sqlite3.Error as e:
        raise StoreError(f"Could not open database: {e}") from e
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the lending tables if they don't exist."""
    conn = get_db_connection(db_file)
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS titles (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT UNIQUE NOT NULL,
                genre TEXT NOT NULL DEFAULT 'GENERAL',
                page_count INTEGER NOT NULL DEFAULT 0,
                published_date TEXT,
                copy_count INTEGER NOT NULL CHECK(copy_count >= 0),
                available INTEGER NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                CHECK(available = (copy_count > 0))
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS readers (
                id TEXT PRIMARY KEY,
                full_name TEXT NOT NULL,
                email TEXT UNIQUE NOT NULL,
                role TEXT NOT NULL,
                score INTEGER NOT NULL DEFAULT 0,
                level TEXT NOT NULL,
                total_borrowed_books INTEGER NOT NULL DEFAULT 0,
                total_returned_books INTEGER NOT NULL DEFAULT 0,
                total_late_returns INTEGER NOT NULL DEFAULT 0,
                streak_timely_returns INTEGER NOT NULL DEFAULT 0,
                total_reading_days INTEGER NOT NULL DEFAULT 0,
                total_read_pages INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS loans (
                id TEXT PRIMARY KEY,
                title_id TEXT NOT NULL,
                reader_id TEXT NOT NULL,
                borrow_date TEXT NOT NULL,
                due_date TEXT NOT NULL,
                return_date TEXT,
                returned INTEGER NOT NULL DEFAULT 0,
                CHECK(due_date >= borrow_date),
                CHECK(returned = (return_date IS NOT NULL)),
                FOREIGN KEY (title_id) REFERENCES titles(id),
                FOREIGN KEY (reader_id) REFERENCES readers(id)
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_loans_reader ON loans(reader_id, returned)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_loans_title ON loans(title_id, returned)")
    except sqlite3.Error as e:
        raise StoreError(f"Could not create tables: {e}") from e
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialize the database, creating tables if needed."""
    create_tables(db_file)
    logger.debug("Database initialized at %s", db_file or DATABASE_FILE)


@contextmanager
def transaction(db_file: Optional[str] = None, immediate: bool = True) -> Iterator[sqlite3.Connection]:
    """Run a block as one unit of work.

    ``immediate`` takes the write lock up front so concurrent writers
    serialize before reading anything. Read-only callers pass
    ``immediate=False`` and get a consistent snapshot. Any exception rolls
    the whole block back; ``sqlite3.Error`` is re-raised as ``StoreError``.
    """
    conn = get_db_connection(db_file)
    try:
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()
    except sqlite3.Error as e:
        raise StoreError(f"Database operation failed: {e}") from e
    finally:
        conn.close()
