import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from libris import database
from libris.accounts import AccountService
from libris.borrowing import BorrowingPolicy
from libris.cache_manager import CacheManager, cached
from libris.catalog import CatalogService
from libris.errors import InvalidRequestError
from libris.ledger import BorrowLedger
from libris.models import Caller, Loan, Reader, Role, Title
from libris.notifier import AvailabilityNotifier
from libris.returns import ReturnPolicy
from libris.statistics import StatisticsAggregator
from libris.stores import LoanStore

logger = logging.getLogger(__name__)


class Library:
    """Wires the stores, policies, cache and notifier into one entry point."""

    def __init__(self, db_file: Optional[str] = None, *,
                 today: Callable[[], date] = date.today,
                 now: Callable[[], datetime] = datetime.now,
                 cache: Optional[CacheManager] = None,
                 notifier: Optional[AvailabilityNotifier] = None) -> None:
        self.db_file = db_file or database.DATABASE_FILE
        self.today = today
        self.cache = cache or CacheManager()
        self.notifier = notifier or AvailabilityNotifier()

        database.initialize_database(self.db_file)

        self.catalog = CatalogService(self.db_file, self.notifier, self.cache)
        self.accounts = AccountService(self.db_file, self.cache)
        self.borrowing = BorrowingPolicy(self.db_file, self.notifier, self.cache, today=today)
        self.returns = ReturnPolicy(self.db_file, self.notifier, self.cache, today=today)
        self.statistics = StatisticsAggregator(self.db_file, today=today, now=now)

    # ------------------------- Catalog ------------------------- #
    def add_title(self, title: str, author: str, isbn: str, **kwargs: Any) -> Title:
        return self.catalog.add_title(title, author, isbn, **kwargs)

    def update_title(self, title_id: str, **changes: Any) -> Title:
        return self.catalog.update_title(title_id, **changes)

    def withdraw_copy(self, title_id: str) -> Title:
        return self.catalog.withdraw_copy(title_id)

    def get_title(self, title_id: str) -> Title:
        return self.catalog.get_title(title_id)

    def search_titles(self, query: str) -> List[Title]:
        return self.catalog.search_titles(query)

    @cached(lambda self: "title_list")
    def list_titles(self) -> List[Title]:
        return self.catalog.list_titles()

    # ------------------------- Readers ------------------------- #
    def register_reader(self, full_name: str, email: str, role: Role = Role.PATRON) -> Reader:
        return self.accounts.register_reader(full_name, email, role)

    def list_readers(self) -> List[Reader]:
        return self.accounts.list_readers()

    def get_reader(self, reader_id: str) -> Reader:
        return self.accounts.get_reader(reader_id)

    def find_reader(self, email: str) -> Reader:
        return self.accounts.find_by_email(email)

    @cached(lambda self, reader_id: f"reader_statistics:{reader_id}")
    def reader_statistics(self, reader_id: str) -> Dict[str, Any]:
        return self.accounts.reader_statistics(reader_id)

    # ------------------------- Lending ------------------------- #
    def borrow(self, title_id: str, reader_email: str, borrow_date: Optional[date] = None,
               due_date: Optional[date] = None, *, caller: Caller) -> Loan:
        return self.borrowing.borrow(
            title_id, reader_email, borrow_date or self.today(), due_date, caller=caller
        )

    def return_loan(self, loan_id: str, *, caller: Caller, as_of: Optional[date] = None) -> Loan:
        return self.returns.return_loan(loan_id, caller=caller, as_of=as_of)

    def loan_history(self, reader_id: str, caller: Caller) -> List[Loan]:
        """Loans of one reader. Patrons may only look at their own."""
        reader = self.get_reader(reader_id)
        if not caller.role.can_view_any_history and caller.email.lower() != reader.email:
            raise InvalidRequestError("Patrons can only view their own borrow history.")
        return self._loan_history(reader.id)

    @cached(lambda self, reader_id: f"loan_history:{reader_id}")
    def _loan_history(self, reader_id: str) -> List[Loan]:
        with database.transaction(self.db_file, immediate=False) as conn:
            return BorrowLedger(LoanStore(conn)).history(reader_id)

    def list_loans(self, caller: Caller) -> List[Loan]:
        """Every loan for librarians, the caller's own loans for anyone else."""
        if caller.role.can_view_any_history:
            with database.transaction(self.db_file, immediate=False) as conn:
                return BorrowLedger(LoanStore(conn)).all()
        return self._loan_history(self.find_reader(caller.email).id)

    def overdue_loans(self) -> List[Loan]:
        with database.transaction(self.db_file, immediate=False) as conn:
            loans = BorrowLedger(LoanStore(conn)).overdue(self.today())
        if not loans:
            logger.info("No overdue borrows found.")
        return loans

    # ------------------------- Reports ------------------------- #
    @cached(lambda self: f"library_statistics:{self.today().isoformat()}")
    def library_statistics(self) -> Dict[str, Any]:
        return self.statistics.library_statistics()

    @cached(lambda self: f"overdue_statistics:{self.today().isoformat()}")
    def overdue_statistics(self) -> Dict[str, Any]:
        return self.statistics.overdue_statistics()

    def close(self) -> None:
        """Connections are opened per operation; only the cache needs clearing."""
        self.cache.clear()
