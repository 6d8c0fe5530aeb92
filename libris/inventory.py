import logging

from libris.errors import InvalidRequestError, NotFoundError
from libris.models import Title
from libris.stores import TitleStore

logger = logging.getLogger(__name__)


class InventoryTracker:
    """Single writer of a title's shelf copy count and its availability flag.

    Every method keeps ``available == (copy_count > 0)`` on both the row and
    the in-memory ``Title`` it was handed.
    """

    def __init__(self, titles: TitleStore) -> None:
        self.titles = titles

    def register(self, title: Title, copy_count: int) -> Title:
        """Store a new title with its initial number of copies."""
        if copy_count < 0:
            raise InvalidRequestError("Book count must be 0 or greater.")
        title.copy_count = copy_count
        title.available = copy_count > 0
        return self.titles.save(title)

    def take_copy(self, title: Title) -> Title:
        """Lend one copy out. The guarded update never lets the count go negative."""
        if not self.titles.decrement_copies(title.id):
            raise InvalidRequestError("Book is not available for borrowing.")
        title.copy_count -= 1
        title.available = title.copy_count > 0
        return title

    def return_copy(self, title: Title) -> Title:
        if not self.titles.increment_copies(title.id):
            raise NotFoundError(f"Book not found with id: {title.id}")
        title.copy_count += 1
        title.available = True
        return title

    def set_copies(self, title: Title, copy_count: int) -> Title:
        """Overwrite the shelf count, e.g. after a catalog correction."""
        if copy_count < 0:
            raise InvalidRequestError("Book count must be 0 or greater.")
        if not self.titles.set_copies(title.id, copy_count):
            raise NotFoundError(f"Book not found with id: {title.id}")
        title.copy_count = copy_count
        title.available = copy_count > 0
        return title

    def withdraw_copy(self, title: Title) -> Title:
        """Remove one copy from the shelf for good."""
        if title.copy_count <= 0 or not self.titles.decrement_copies(title.id):
            raise InvalidRequestError("Cannot delete this book. All copies are currently borrowed.")
        title.copy_count -= 1
        title.available = title.copy_count > 0
        logger.info("Withdrew one copy of '%s'; %d left on shelf", title.title, title.copy_count)
        return title
