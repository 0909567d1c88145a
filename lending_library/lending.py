import logging
from datetime import datetime
from typing import Callable, List, Optional

from lending_library.book import BookRecord
from lending_library.categories import book_from_row
from lending_library.records import LibraryUser, LoanRecord, Role
from lending_library.store import BookFilter, CatalogStore, CatalogUnit

logger = logging.getLogger(__name__)


class LendingEngine:
    """Availability checks and borrow/return transitions against a catalog store.

    Every public method runs inside exactly one atomic unit of the store and
    re-reads the current state; nothing is cached between calls. Business
    refusals (book already out, no matching loan) come back as ``False``.
    Store failures propagate unchanged.
    """

    def __init__(self, store: CatalogStore, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self._clock = clock or datetime.now

    # ------------------------- Catalog ------------------------- #
    def add_book(self, book: BookRecord) -> None:
        """Persist a copy of ``book``."""
        if not book.title:
            raise ValueError("Book title cannot be empty.")
        with self.store.atomic(book.title) as unit:
            unit.insert_book(book.duplicate())

    def remove_book(self, title: str) -> bool:
        """Delete a book. A book that is out on loan is left in place."""
        with self.store.atomic(title) as unit:
            if not unit.book_exists(title) or unit.loan_exists(title):
                return False
            return unit.delete_book(title) > 0

    def list_books(self) -> List[BookRecord]:
        return self._list(BookFilter.ALL)

    def list_available(self) -> List[BookRecord]:
        return self._list(BookFilter.AVAILABLE)

    def list_borrowed(self) -> List[BookRecord]:
        return self._list(BookFilter.BORROWED)

    # ------------------------- Lending ------------------------- #
    def is_available(self, title: str) -> bool:
        with self.store.atomic(title, readonly=True) as unit:
            return self._available(unit, title)

    def borrow(self, title: str, borrower_name: str) -> bool:
        return self.checkout(title, borrower_name) is not None

    def checkout(self, title: str, borrower_name: str) -> Optional[LoanRecord]:
        """Borrow a book and return the loan it created, or None when refused."""
        borrower_name = self._clean_borrower(borrower_name)
        with self.store.atomic(title) as unit:
            if not self._available(unit, title):
                logger.debug(f"Borrow refused, {title!r} is not available")
                return None
            loan = LoanRecord(title, borrower_name, self._clock())
            unit.insert_loan(loan.book_title, loan.borrower_name, loan.borrowed_at)
            unit.set_borrowed_flag(title, True)
            return loan

    def return_book(self, title: str, borrower_name: str) -> bool:
        borrower_name = self._clean_borrower(borrower_name)
        with self.store.atomic(title) as unit:
            if not unit.loan_exists(title, borrower_name):
                logger.debug(f"Return refused, no loan of {title!r} to {borrower_name!r}")
                return False
            unit.delete_loan(title, borrower_name)
            unit.set_borrowed_flag(title, False)
            return True

    def get_loan(self, title: str) -> Optional[LoanRecord]:
        with self.store.atomic(title, readonly=True) as unit:
            return unit.get_loan(title)

    def list_loans(self) -> List[LoanRecord]:
        with self.store.atomic(readonly=True) as unit:
            return unit.list_loans()

    # ------------------------- Users ------------------------- #
    def add_user(self, name: str, role: Role) -> LibraryUser:
        name = (name or "").strip()
        if not name:
            raise ValueError("User name cannot be empty.")
        with self.store.atomic() as unit:
            unit.insert_user(name, role)
        return LibraryUser(name=name, role=role)

    def list_users(self) -> List[LibraryUser]:
        with self.store.atomic(readonly=True) as unit:
            return unit.list_users()

    # ------------------------- Helpers ------------------------- #
    def _list(self, book_filter: BookFilter) -> List[BookRecord]:
        with self.store.atomic(readonly=True) as unit:
            rows = unit.list_books(book_filter)
        return [book_from_row(row) for row in rows]

    @staticmethod
    def _available(unit: CatalogUnit, title: str) -> bool:
        return unit.book_exists(title) and not unit.loan_exists(title)

    @staticmethod
    def _clean_borrower(borrower_name: str) -> str:
        name = (borrower_name or "").strip()
        if not name:
            raise ValueError("Borrower name cannot be empty.")
        return name
