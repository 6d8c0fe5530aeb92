import logging
from datetime import date, timedelta
from typing import Callable, Optional

from libris import database
from libris.cache_manager import CacheManager, invalidate_lending_views
from libris.errors import InvalidRequestError, NotFoundError, QuotaExceededError
from libris.inventory import InventoryTracker
from libris.ledger import BorrowLedger
from libris.models import Caller, Loan, Reader
from libris.notifier import AvailabilityNotifier
from libris.scoring import (
    MIN_BORROW_SCORE,
    borrow_reward,
    default_borrow_days,
    level_for,
    max_total_borrow_days,
)
from libris.stores import LoanStore, ReaderStore, TitleStore

logger = logging.getLogger(__name__)


class BorrowingPolicy:
    """Decides whether a copy may be lent and commits the loan."""

    def __init__(self, db_file: str, notifier: AvailabilityNotifier, cache: CacheManager,
                 today: Callable[[], date] = date.today) -> None:
        self.db_file = db_file
        self.notifier = notifier
        self.cache = cache
        self.today = today

    def borrow(self, title_id: str, reader_email: str, borrow_date: date,
               due_date: Optional[date] = None, *, caller: Caller) -> Loan:
        """Lend one copy of a title to the reader with ``reader_email``.

        Every check runs before anything is written; the loan, the copy
        count and the reader's score are then committed in one transaction.
        """
        with database.transaction(self.db_file) as conn:
            titles = TitleStore(conn)
            readers = ReaderStore(conn)
            ledger = BorrowLedger(LoanStore(conn))
            inventory = InventoryTracker(titles)

            title = titles.find_by_id(title_id)
            if title is None:
                raise NotFoundError("Book not found")
            if not title.available or title.copy_count <= 0:
                raise InvalidRequestError("Book is not available for borrowing.")

            reader = readers.find_by_email(reader_email)
            if reader is None:
                raise NotFoundError(f"User not found with email: {reader_email}")

            self._check_borrow_date(borrow_date, caller)
            self._check_eligibility(reader)

            if ledger.holds_active(reader, title):
                raise InvalidRequestError(
                    "This user has already borrowed this book and has not returned it yet."
                )

            reader.level = level_for(reader.score)
            max_days = max_total_borrow_days(reader.level)

            if due_date is None:
                due_date = borrow_date + timedelta(days=default_borrow_days(reader.level))
            elif due_date < borrow_date:
                raise InvalidRequestError("Due date cannot be before the borrow date.")

            active_days = ledger.active_borrow_days(reader)
            new_days = (due_date - borrow_date).days
            if active_days + new_days > max_days:
                logger.warning(
                    "User %s attempted to borrow beyond allowed days. Active: %d, New: %d, Max: %d",
                    reader.email, active_days, new_days, max_days,
                )
                raise QuotaExceededError(
                    f"Borrowing this book would exceed your allowed total borrow day limit of {max_days} days.",
                    limit=max_days,
                )

            loan = ledger.open(title, reader, borrow_date, due_date)
            inventory.take_copy(title)

            reader.total_borrowed_books += 1
            reader.score += borrow_reward(reader.total_borrowed_books)
            reader.level = level_for(reader.score)
            readers.save(reader)

        logger.info("User %s borrowed book '%s' from %s to %s",
                    reader.email, title.title, loan.borrow_date, loan.due_date)
        invalidate_lending_views(self.cache)
        self.notifier.publish(title.id, title.title, title.available)
        return loan

    def _check_borrow_date(self, borrow_date: date, caller: Caller) -> None:
        if not caller.role.can_backdate and borrow_date != self.today():
            raise InvalidRequestError("Patrons can only borrow books for today.")

    @staticmethod
    def _check_eligibility(reader: Reader) -> None:
        if reader.score < MIN_BORROW_SCORE:
            logger.warning("User %s cannot borrow due to low score (%d)", reader.email, reader.score)
            raise InvalidRequestError(
                f"Your score is too low to borrow books. Minimum allowed: {MIN_BORROW_SCORE}"
            )
