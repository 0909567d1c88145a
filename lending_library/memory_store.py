"""In-memory catalog store, handy for tests and throwaway sessions."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from lending_library.book import BookRecord
from lending_library.exceptions import DuplicateBookError
from lending_library.records import LibraryUser, LoanRecord, Role
from lending_library.store import BookFilter, BookRow

logger = logging.getLogger(__name__)


class MemoryUnit:
    """Catalog operations for one unit.

    Reads see committed data only. Writes are queued and applied together by
    ``commit()``, so no other unit ever observes half of a unit.
    """

    def __init__(self, store: "InMemoryCatalogStore") -> None:
        self._store = store
        self._pending: List[Callable[[], None]] = []

    # ------------------------- Books ------------------------- #
    def insert_book(self, book: BookRecord) -> None:
        store = self._store
        if store.unique_titles and self.book_exists(book.title):
            raise DuplicateBookError(book.title)
        row = {**book.to_dict(), "is_borrowed": False}
        self._pending.append(lambda: store._books.append(row))

    def delete_book(self, title: str) -> int:
        store = self._store
        with store._data_lock:
            count = sum(1 for row in store._books if row["title"] == title)

        def apply() -> None:
            store._books[:] = [row for row in store._books if row["title"] != title]

        self._pending.append(apply)
        return count

    def book_exists(self, title: str) -> bool:
        with self._store._data_lock:
            return any(row["title"] == title for row in self._store._books)

    def list_books(self, book_filter: BookFilter = BookFilter.ALL) -> List[BookRow]:
        book_filter = BookFilter(book_filter)
        store = self._store
        with store._data_lock:
            rows = []
            for row in store._books:
                on_loan = row["title"] in store._loans
                if book_filter is BookFilter.AVAILABLE and on_loan:
                    continue
                if book_filter is BookFilter.BORROWED and not on_loan:
                    continue
                rows.append({"title": row["title"], "author": row["author"], "category": row["category"]})
            return rows

    def set_borrowed_flag(self, title: str, borrowed: bool) -> None:
        store = self._store

        def apply() -> None:
            for row in store._books:
                if row["title"] == title:
                    row["is_borrowed"] = borrowed

        self._pending.append(apply)

    # ------------------------- Loans ------------------------- #
    def loan_exists(self, title: str, borrower_name: Optional[str] = None) -> bool:
        with self._store._data_lock:
            loan = self._store._loans.get(title)
        if loan is None:
            return False
        return borrower_name is None or loan.borrower_name == borrower_name

    def insert_loan(self, title: str, borrower_name: str, timestamp: datetime) -> None:
        if self.loan_exists(title):
            # Mirrors the unique index on borrowed_books.book_title
            raise RuntimeError(f"Active loan already exists for {title!r}")
        loan = LoanRecord(title, borrower_name, timestamp)
        self._pending.append(lambda: self._store._loans.__setitem__(title, loan))

    def delete_loan(self, title: str, borrower_name: str) -> int:
        if not self.loan_exists(title, borrower_name):
            return 0
        self._pending.append(lambda: self._store._loans.pop(title, None))
        return 1

    def get_loan(self, title: str) -> Optional[LoanRecord]:
        with self._store._data_lock:
            return self._store._loans.get(title)

    def list_loans(self) -> List[LoanRecord]:
        with self._store._data_lock:
            return list(self._store._loans.values())

    # ------------------------- Users ------------------------- #
    def insert_user(self, name: str, role: Role) -> None:
        user = LibraryUser(name=name, role=role)
        self._pending.append(lambda: self._store._users.append(user))

    def list_users(self) -> List[LibraryUser]:
        with self._store._data_lock:
            return list(self._store._users)

    def commit(self) -> None:
        with self._store._data_lock:
            for apply in self._pending:
                apply()
        self._pending.clear()

    def discard(self) -> None:
        self._pending.clear()


class _TitleLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class InMemoryCatalogStore:
    """Catalog store that keeps everything in process memory.

    Units that name a title hold that title's lock for their whole duration,
    so guard-then-act sequences on one title are serialized while different
    titles proceed in parallel. A title's lock is dropped once no unit is
    waiting on or holding it.
    """

    def __init__(self, unique_titles: bool = False) -> None:
        self.unique_titles = unique_titles
        self._books: List[dict] = []
        self._loans: Dict[str, LoanRecord] = {}
        self._users: List[LibraryUser] = []
        self._data_lock = threading.RLock()
        self._title_locks: Dict[str, _TitleLock] = {}
        self._registry_lock = threading.Lock()

    def _checkout_lock(self, title: str) -> _TitleLock:
        with self._registry_lock:
            entry = self._title_locks.get(title)
            if entry is None:
                entry = self._title_locks[title] = _TitleLock()
            entry.users += 1
            return entry

    def _checkin_lock(self, title: str, entry: _TitleLock) -> None:
        with self._registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del self._title_locks[title]

    @contextmanager
    def atomic(self, title: Optional[str] = None, readonly: bool = False) -> Iterator[MemoryUnit]:
        entry = self._checkout_lock(title) if title is not None else None
        if entry is not None:
            entry.lock.acquire()
        unit = MemoryUnit(self)
        try:
            yield unit
            unit.commit()
        except BaseException:
            unit.discard()
            logger.debug(f"Discarded in-memory unit (title={title})")
            raise
        finally:
            if entry is not None:
                entry.lock.release()
                self._checkin_lock(title, entry)

    def ping(self) -> bool:
        return True
