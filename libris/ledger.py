from datetime import date
from typing import List

from libris.errors import InvalidRequestError, NotFoundError
from libris.models import Loan, Reader, Title
from libris.stores import LoanStore


class BorrowLedger:
    """Permanent lending history.

    Loans are opened once and closed once; nothing here deletes a loan.
    """

    def __init__(self, loans: LoanStore) -> None:
        self.loans = loans

    def get(self, loan_id: str) -> Loan:
        loan = self.loans.find_by_id(loan_id)
        if loan is None:
            raise NotFoundError("Borrow record not found")
        return loan

    def open(self, title: Title, reader: Reader, borrow_date: date, due_date: date) -> Loan:
        loan = Loan(title_id=title.id, reader_id=reader.id, borrow_date=borrow_date, due_date=due_date)
        return self.loans.save(loan)

    def close(self, loan: Loan, return_date: date) -> Loan:
        if loan.returned:
            raise InvalidRequestError("Book has already been returned.")
        loan.mark_returned(return_date)
        return self.loans.save(loan)

    def holds_active(self, reader: Reader, title: Title) -> bool:
        return self.loans.exists_active_for_reader_and_title(reader.id, title.id)

    def active_loans(self, reader: Reader) -> List[Loan]:
        return self.loans.find_active_by_reader(reader.id)

    def active_borrow_days(self, reader: Reader) -> int:
        """Sum of borrow spans over the reader's active loans."""
        return sum(loan.borrow_days for loan in self.active_loans(reader))

    def history(self, reader_id: str) -> List[Loan]:
        return self.loans.find_by_reader(reader_id)

    def overdue(self, as_of: date) -> List[Loan]:
        return self.loans.find_active_overdue(as_of)

    def active_count_for_title(self, title_id: str) -> int:
        return self.loans.count_active_for_title(title_id)

    def all(self) -> List[Loan]:
        return self.loans.find_all()

    def count(self) -> int:
        return self.loans.count()
