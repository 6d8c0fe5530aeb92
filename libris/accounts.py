import logging
from typing import Any, Dict, List

from libris import database
from libris.cache_manager import CacheManager, invalidate_lending_views
from libris.errors import InvalidRequestError, NotFoundError
from libris.models import Reader, Role
from libris.scoring import level_for
from libris.stores import ReaderStore

logger = logging.getLogger(__name__)


class AccountService:
    """Reader accounts. Score and counters are only changed by the lending policies."""

    def __init__(self, db_file: str, cache: CacheManager) -> None:
        self.db_file = db_file
        self.cache = cache

    def register_reader(self, full_name: str, email: str, role: Role = Role.PATRON) -> Reader:
        if not full_name or not full_name.strip():
            raise InvalidRequestError("Full name cannot be empty")
        if not email or not email.strip():
            raise InvalidRequestError("Email cannot be empty")

        reader = Reader(full_name=full_name, email=email, role=role)
        reader.level = level_for(reader.score)
        with database.transaction(self.db_file) as conn:
            readers = ReaderStore(conn)
            if readers.exists_by_email(reader.email):
                logger.warning("Registration failed. Email '%s' already in use.", reader.email)
                raise InvalidRequestError("Email already registered.")
            readers.save(reader)

        logger.info("User '%s' registered with role '%s'", reader.email, reader.role.value)
        invalidate_lending_views(self.cache)
        return reader

    def get_reader(self, reader_id: str) -> Reader:
        with database.transaction(self.db_file, immediate=False) as conn:
            reader = ReaderStore(conn).find_by_id(reader_id)
        if reader is None:
            raise NotFoundError(f"User not found with id: {reader_id}")
        return reader

    def find_by_email(self, email: str) -> Reader:
        with database.transaction(self.db_file, immediate=False) as conn:
            reader = ReaderStore(conn).find_by_email(email)
        if reader is None:
            raise NotFoundError(f"User not found with email: {email}")
        return reader

    def list_readers(self) -> List[Reader]:
        with database.transaction(self.db_file, immediate=False) as conn:
            return ReaderStore(conn).find_all()

    def reader_statistics(self, reader_id: str) -> Dict[str, Any]:
        reader = self.get_reader(reader_id)
        avg_pages_per_day = (
            reader.total_read_pages / reader.total_reading_days if reader.total_reading_days > 0 else 0.0
        )
        avg_return_duration = (
            reader.total_reading_days / reader.total_returned_books if reader.total_returned_books > 0 else 0.0
        )
        logger.debug("Fetched statistics for user '%s'", reader.email)
        return {
            "email": reader.email,
            "level": reader.level.value,
            "score": reader.score,
            "total_borrowed_books": reader.total_borrowed_books,
            "total_returned_books": reader.total_returned_books,
            "total_late_returns": reader.total_late_returns,
            "total_reading_days": reader.total_reading_days,
            "total_read_pages": reader.total_read_pages,
            "avg_pages_per_day": round(avg_pages_per_day, 2),
            "avg_return_duration": round(avg_return_duration, 2),
        }
