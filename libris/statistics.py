import logging
from collections import Counter
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List

from libris import database
from libris.ledger import BorrowLedger
from libris.stores import LoanStore, ReaderStore, TitleStore

logger = logging.getLogger(__name__)

TOP_N = 5


def _top(counts: Counter) -> List[Dict[str, Any]]:
    # Highest count first, ties broken by name so reports are stable
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{"name": name, "count": count} for name, count in ranked[:TOP_N]]


def overdue_ratio(overdue_count: int, total_loans: int) -> float:
    """``overdue_count / total_loans`` rounded half-up to two decimals; 0 for an empty ledger."""
    if total_loans == 0:
        return 0.0
    ratio = Decimal(overdue_count) / Decimal(total_loans)
    return float(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class StatisticsAggregator:
    """Read-only reports over the ledger and the catalog.

    Each report reads a single database snapshot; it may be stale by the
    time it is returned.
    """

    def __init__(self, db_file: str, today: Callable[[], date] = date.today,
                 now: Callable[[], datetime] = datetime.now) -> None:
        self.db_file = db_file
        self.today = today
        self.now = now

    def library_statistics(self) -> Dict[str, Any]:
        logger.info("Generating full library statistics...")
        today = self.today()
        with database.transaction(self.db_file, immediate=False) as conn:
            titles = TitleStore(conn).find_all()
            total_users = ReaderStore(conn).count()
            ledger = BorrowLedger(LoanStore(conn))
            loans = ledger.all()
            overdue_books = len(ledger.overdue(today))

        names = {title.id: title.title for title in titles}
        borrowed_books = sum(1 for loan in loans if not loan.returned)
        # Raw shelf inventory: the sum of copy counts, not the number of available titles
        available_books = sum(title.copy_count for title in titles)

        returned = [loan for loan in loans if loan.returned]
        average_return_days = (
            sum((loan.return_date - loan.borrow_date).days for loan in returned) / len(returned)
            if returned else 0.0
        )

        most_borrowed_books = _top(Counter(names.get(loan.title_id, loan.title_id) for loan in loans))
        top_genres = _top(Counter(title.genre for title in titles))

        stats = {
            "total_books": len(titles),
            "total_users": total_users,
            "total_borrows": len(loans),
            "borrowed_books": borrowed_books,
            "available_books": available_books,
            "overdue_books": overdue_books,
            "average_return_days": average_return_days,
            "most_borrowed_books": most_borrowed_books,
            "top_genres": top_genres,
        }
        stats["text_report"] = self._text_report(stats)
        logger.debug("Library statistics generated: total_books=%d, total_users=%d, overdue_books=%d",
                     stats["total_books"], total_users, overdue_books)
        return stats

    def _text_report(self, stats: Dict[str, Any]) -> str:
        lines = [
            "LIBRARY STATISTICS REPORT",
            "----------------------------",
            f"Total Books        : {stats['total_books']}",
            f"Available Books    : {stats['available_books']}",
            f"Borrowed Books     : {stats['borrowed_books']}",
            f"Overdue Books      : {stats['overdue_books']}",
            f"Total Users        : {stats['total_users']}",
            f"Total Borrows      : {stats['total_borrows']}",
            f"Avg Return (days)  : {stats['average_return_days']:.2f}",
            f"Last Updated       : {self.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "",
            "Top Genres:",
        ]
        lines += [f" - {g['name']} ({g['count']})" for g in stats["top_genres"]]
        lines += ["", "Most Borrowed Books:"]
        lines += [f" - {b['name']} ({b['count']})" for b in stats["most_borrowed_books"]]
        return "\n".join(lines) + "\n"

    def overdue_statistics(self) -> Dict[str, Any]:
        logger.info("Generating detailed overdue borrow report...")
        today = self.today()
        with database.transaction(self.db_file, immediate=False) as conn:
            ledger = BorrowLedger(LoanStore(conn))
            overdue = ledger.overdue(today)
            total_borrows = ledger.count()
            titles = {title.id: title for title in TitleStore(conn).find_all()}
            readers = {reader.id: reader for reader in ReaderStore(conn).find_all()}

        entries = []
        by_user: Counter = Counter()
        by_book: Counter = Counter()
        for loan in overdue:
            email = readers[loan.reader_id].email
            book = titles[loan.title_id].title
            by_user[email] += 1
            by_book[book] += 1
            entries.append({
                "user": email,
                "book": book,
                "borrow_date": loan.borrow_date,
                "due_date": loan.due_date,
                "days_overdue": (today - loan.due_date).days,
            })

        logger.debug("Detailed overdue report generated: %d overdues", len(overdue))
        return {
            "total_borrows": total_borrows,
            "overdue_borrows": len(overdue),
            "overdue_ratio": overdue_ratio(len(overdue), total_borrows),
            "overdue_count_by_user": dict(by_user),
            "overdue_count_by_book": dict(by_book),
            "detailed_overdue_entries": entries,
        }
