import logging
from datetime import date, timedelta
from typing import Callable, Optional

from libris import database
from libris.cache_manager import CacheManager, invalidate_lending_views
from libris.errors import AccessDeniedError, InvalidRequestError, NotFoundError
from libris.inventory import InventoryTracker
from libris.ledger import BorrowLedger
from libris.models import Caller, Loan, Reader
from libris.notifier import AvailabilityNotifier
from libris.scoring import level_for, return_score_delta
from libris.stores import LoanStore, ReaderStore, TitleStore

logger = logging.getLogger(__name__)


class ReturnPolicy:
    """Closes a loan, scores the return and puts the copy back on the shelf."""

    def __init__(self, db_file: str, notifier: AvailabilityNotifier, cache: CacheManager,
                 today: Callable[[], date] = date.today) -> None:
        self.db_file = db_file
        self.notifier = notifier
        self.cache = cache
        self.today = today

    def return_loan(self, loan_id: str, *, caller: Caller, as_of: Optional[date] = None) -> Loan:
        """Return a loan as of today.

        Librarians may pass ``as_of`` to record a return on another day.
        Reader, title and loan are updated in one transaction.
        """
        with database.transaction(self.db_file) as conn:
            titles = TitleStore(conn)
            readers = ReaderStore(conn)
            ledger = BorrowLedger(LoanStore(conn))

            loan = ledger.get(loan_id)
            if loan.returned:
                raise InvalidRequestError("Book has already been returned.")

            reader = readers.find_by_id(loan.reader_id)
            title = titles.find_by_id(loan.title_id)
            if reader is None or title is None:
                raise NotFoundError("Borrow record refers to a missing book or user")

            if not caller.role.can_return_on_behalf_of_others and caller.email.lower() != reader.email:
                raise AccessDeniedError("You can only return your own borrowed books.")

            return_date = self._resolve_return_date(loan, caller, as_of)
            delta = self._score_return(reader, loan, return_date)

            reader.total_returned_books += 1
            reader.total_reading_days += (return_date - loan.borrow_date).days
            reader.total_read_pages += title.page_count
            readers.save(reader)

            InventoryTracker(titles).return_copy(title)
            ledger.close(loan, return_date)

        logger.info("User %s returned book '%s' on %s. Score delta: %d, new score: %d",
                    reader.email, title.title, return_date, delta, reader.score)
        invalidate_lending_views(self.cache)
        self.notifier.publish(title.id, title.title, True)
        return loan

    def _resolve_return_date(self, loan: Loan, caller: Caller, as_of: Optional[date]) -> date:
        today = self.today()
        if as_of is None or as_of == today:
            return today
        if not caller.role.can_backdate:
            raise InvalidRequestError("Patrons can only return books for today.")
        if as_of < loan.borrow_date:
            raise InvalidRequestError("Return date cannot be before the borrow date.")
        return as_of

    @staticmethod
    def _score_return(reader: Reader, loan: Loan, return_date: date) -> int:
        """Apply the return's score delta and streak bookkeeping to ``reader``."""
        delay_days = (return_date - loan.due_date).days
        is_early = return_date < loan.due_date - timedelta(days=1)

        if delay_days > 0:
            reader.total_late_returns += 1
            reader.streak_timely_returns = 0
        else:
            reader.streak_timely_returns += 1

        delta = return_score_delta(delay_days, is_early, reader.streak_timely_returns)
        reader.score += delta
        reader.level = level_for(reader.score)
        return delta
