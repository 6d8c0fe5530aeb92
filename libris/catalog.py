import logging
from datetime import date
from typing import List, Optional

from libris import database
from libris.cache_manager import CacheManager, invalidate_lending_views
from libris.errors import InvalidRequestError, NotFoundError
from libris.inventory import InventoryTracker
from libris.models import Title
from libris.notifier import AvailabilityNotifier
from libris.stores import TitleStore

logger = logging.getLogger(__name__)


class CatalogService:
    """Title records and their shelf inventory, as far as lending needs them."""

    def __init__(self, db_file: str, notifier: AvailabilityNotifier, cache: CacheManager) -> None:
        self.db_file = db_file
        self.notifier = notifier
        self.cache = cache

    # ------------------------- Queries ------------------------- #
    def get_title(self, title_id: str) -> Title:
        with database.transaction(self.db_file, immediate=False) as conn:
            title = TitleStore(conn).find_by_id(title_id)
        if title is None:
            raise NotFoundError(f"Book not found with id: {title_id}")
        return title

    def list_titles(self) -> List[Title]:
        with database.transaction(self.db_file, immediate=False) as conn:
            titles = TitleStore(conn).find_all()
        if not titles:
            logger.warning("No books found in the system.")
        return titles

    def search_titles(self, query: str) -> List[Title]:
        with database.transaction(self.db_file, immediate=False) as conn:
            results = TitleStore(conn).search(query)
        if not results:
            logger.info("Search query '%s' returned no results.", query)
        return results

    # ------------------------- Mutations ------------------------- #
    def add_title(self, title: str, author: str, isbn: str, genre: str = "GENERAL",
                  page_count: int = 0, copy_count: int = 1,
                  published_date: Optional[date] = None) -> Title:
        """Add a title with ``copy_count`` copies on the shelf. ISBNs are unique."""
        if page_count < 0:
            raise InvalidRequestError("Page count must be 0 or greater.")
        record = Title(title=title, author=author, isbn=isbn, genre=genre.upper(),
                       page_count=page_count, published_date=published_date)
        with database.transaction(self.db_file) as conn:
            titles = TitleStore(conn)
            if titles.exists_by_isbn(record.isbn):
                raise InvalidRequestError("Book with the same ISBN already exists.")
            InventoryTracker(titles).register(record, copy_count)

        logger.info("Added book '%s' with %d copies", record.title, record.copy_count)
        self._changed(record)
        return record

    def update_title(self, title_id: str, *, title: Optional[str] = None, author: Optional[str] = None,
                     isbn: Optional[str] = None, genre: Optional[str] = None,
                     page_count: Optional[int] = None, copy_count: Optional[int] = None,
                     published_date: Optional[date] = None) -> Title:
        """Update the given fields. Raises InvalidRequestError if nothing would change."""
        with database.transaction(self.db_file) as conn:
            titles = TitleStore(conn)
            existing = titles.find_by_id(title_id)
            if existing is None:
                raise NotFoundError(f"Book not found with id: {title_id}")

            changes = {
                "title": title.strip() if title is not None else None,
                "author": author.strip() if author is not None else None,
                "isbn": isbn.strip() if isbn is not None else None,
                "genre": genre.upper() if genre is not None else None,
                "page_count": page_count,
                "published_date": published_date,
            }
            changed = {
                field: value for field, value in changes.items()
                if value is not None and getattr(existing, field) != value
            }
            count_changed = copy_count is not None and copy_count != existing.copy_count
            if not changed and not count_changed:
                raise InvalidRequestError("No changes detected. Book is already up-to-date.")

            if "isbn" in changed and titles.exists_by_isbn(changed["isbn"]):
                raise InvalidRequestError("Book with the same ISBN already exists.")
            if changed.get("page_count", 0) < 0:
                raise InvalidRequestError("Page count must be 0 or greater.")

            for field, value in changed.items():
                setattr(existing, field, value)
            titles.save(existing)
            if count_changed:
                InventoryTracker(titles).set_copies(existing, copy_count)

        logger.info("Book '%s' updated: %s", existing.id, ", ".join(sorted(changed)) or "copy_count")
        self._changed(existing)
        return existing

    def withdraw_copy(self, title_id: str) -> Title:
        """Remove one copy from the shelf; refused when every copy is out on loan."""
        with database.transaction(self.db_file) as conn:
            titles = TitleStore(conn)
            existing = titles.find_by_id(title_id)
            if existing is None:
                raise NotFoundError(f"Book not found with id: {title_id}")
            InventoryTracker(titles).withdraw_copy(existing)

        self._changed(existing)
        return existing

    def _changed(self, title: Title) -> None:
        invalidate_lending_views(self.cache)
        self.notifier.publish(title.id, title.title, title.available)
