from datetime import timedelta

import pytest

from conftest import TODAY, set_score
from libris.errors import AccessDeniedError, InvalidRequestError, NotFoundError
from libris.models import Caller, Level, Role


def _borrow(lib, librarian, reader, title, borrow_offset=0, due_offset=0):
    return lib.borrow(title.id, reader.email, TODAY + timedelta(days=borrow_offset),
                      TODAY + timedelta(days=due_offset), caller=librarian)


@pytest.mark.parametrize("borrow_offset, due_offset, expected_score", [
    (0, 0, 3 + 5),      # due today
    (0, 1, 3 + 5),      # one day early is still just on time
    (0, 2, 3 + 5 + 2),  # early bonus
    (-13, -3, 3 - 3),   # late
    (-18, -8, 3 - 6),   # more than a week late
])
def test_return_score_deltas(lib, librarian, patron, as_patron, book,
                             borrow_offset, due_offset, expected_score):
    loan = _borrow(lib, librarian, patron, book, borrow_offset, due_offset)
    assert lib.get_reader(patron.id).score == 3

    lib.return_loan(loan.id, caller=as_patron)

    assert lib.get_reader(patron.id).score == expected_score


def test_scores_are_not_clamped(lib, librarian, patron, as_patron, book):
    set_score(lib, patron.email, -20)
    loan = _borrow(lib, librarian, patron, book, -18, -8)

    lib.return_loan(loan.id, caller=as_patron)

    reader = lib.get_reader(patron.id)
    assert reader.score == -23
    assert reader.level is Level.NOVICE


def test_return_restores_copy_and_closes_loan(lib, librarian, patron, as_patron, book):
    loan = _borrow(lib, librarian, patron, book, due_offset=3)
    assert lib.get_title(book.id).available is False

    returned = lib.return_loan(loan.id, caller=as_patron)

    assert returned.returned is True
    assert returned.return_date == TODAY
    stored = lib.get_title(book.id)
    assert stored.copy_count == 1
    assert stored.available is True


def test_return_updates_reading_counters(lib, librarian, patron, as_patron, book):
    loan = _borrow(lib, librarian, patron, book, -4, 1)

    lib.return_loan(loan.id, caller=as_patron)

    reader = lib.get_reader(patron.id)
    assert reader.total_returned_books == 1
    assert reader.total_reading_days == 4
    assert reader.total_read_pages == 412
    assert reader.total_late_returns == 0
    assert reader.streak_timely_returns == 1


def test_late_return_resets_streak(lib, librarian, patron, as_patron, book):
    first = _borrow(lib, librarian, patron, book)
    lib.return_loan(first.id, caller=as_patron)
    second = _borrow(lib, librarian, patron, book, -6, -1)

    lib.return_loan(second.id, caller=as_patron)

    reader = lib.get_reader(patron.id)
    assert reader.streak_timely_returns == 0
    assert reader.total_late_returns == 1


def test_fifth_timely_return_earns_streak_bonus(lib, librarian, patron, as_patron, book):
    for _ in range(5):
        loan = _borrow(lib, librarian, patron, book)
        lib.return_loan(loan.id, caller=as_patron)

    reader = lib.get_reader(patron.id)
    # 3 + 1 * 4 for borrowing, 5 * 5 for returning on time, 10 for the streak
    assert reader.score == 42
    assert reader.streak_timely_returns == 5
    assert reader.total_returned_books == 5


def test_borrow_and_return_end_to_end(lib, librarian, patron, as_patron, book, clock):
    set_score(lib, patron.email, 10)

    loan = lib.borrow(book.id, patron.email, TODAY, caller=librarian)
    assert loan.due_date == TODAY + timedelta(days=5)
    assert lib.get_reader(patron.id).score == 13
    assert lib.get_title(book.id).available is False

    clock.advance(3)
    lib.return_loan(loan.id, caller=as_patron)

    reader = lib.get_reader(patron.id)
    assert reader.score == 20
    stored = lib.get_title(book.id)
    assert stored.copy_count == 1
    assert stored.available is True


def test_returning_twice_is_rejected(lib, librarian, patron, as_patron, book):
    loan = _borrow(lib, librarian, patron, book)
    lib.return_loan(loan.id, caller=as_patron)

    with pytest.raises(InvalidRequestError, match="already been returned"):
        lib.return_loan(loan.id, caller=as_patron)

    assert lib.get_title(book.id).copy_count == 1
    assert lib.get_reader(patron.id).score == 8


def test_unknown_loan(lib, as_patron):
    with pytest.raises(NotFoundError, match="Borrow record not found"):
        lib.return_loan("missing", caller=as_patron)


def test_patron_cannot_return_someone_elses_loan(lib, librarian, patron, book):
    loan = _borrow(lib, librarian, patron, book)
    lib.register_reader("Other Reader", "other@libris.test")
    other = Caller(role=Role.PATRON, email="other@libris.test")

    with pytest.raises(AccessDeniedError, match="your own"):
        lib.return_loan(loan.id, caller=other)

    assert lib.get_title(book.id).available is False


def test_librarian_returns_on_behalf_of_reader(lib, librarian, patron, book):
    loan = _borrow(lib, librarian, patron, book)

    lib.return_loan(loan.id, caller=librarian)

    assert lib.get_reader(patron.id).score == 8


def test_librarian_records_return_on_another_day(lib, librarian, patron, book):
    loan = _borrow(lib, librarian, patron, book, -10, -5)

    returned = lib.return_loan(loan.id, caller=librarian, as_of=TODAY - timedelta(days=5))

    assert returned.return_date == TODAY - timedelta(days=5)
    assert lib.get_reader(patron.id).score == 8


def test_patron_cannot_backdate_return(lib, librarian, patron, as_patron, book):
    loan = _borrow(lib, librarian, patron, book, -10, -5)

    with pytest.raises(InvalidRequestError, match="only return books for today"):
        lib.return_loan(loan.id, caller=as_patron, as_of=TODAY - timedelta(days=5))


def test_return_date_before_borrow_date(lib, librarian, patron, book):
    loan = _borrow(lib, librarian, patron, book, -2, 3)

    with pytest.raises(InvalidRequestError, match="before the borrow date"):
        lib.return_loan(loan.id, caller=librarian, as_of=TODAY - timedelta(days=3))
