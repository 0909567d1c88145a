"""Catalog store contract used by the lending engine.

A store hands out atomic units through ``atomic()``. Every read and write the
engine performs for one operation goes through a single unit, and the store
adapter owns the transaction boundary: the unit commits when the ``with``
block exits normally and rolls back when it raises.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ContextManager, Dict, List, Optional, Protocol

from lending_library.book import BookRecord
from lending_library.records import LibraryUser, LoanRecord, Role

BookRow = Dict[str, str]


class BookFilter(str, Enum):
    ALL = "all"
    AVAILABLE = "available"
    BORROWED = "borrowed"


class CatalogUnit(Protocol):
    """Operations available inside one atomic unit."""

    def insert_book(self, book: BookRecord) -> None: ...

    def delete_book(self, title: str) -> int: ...

    def book_exists(self, title: str) -> bool: ...

    def list_books(self, book_filter: BookFilter = BookFilter.ALL) -> List[BookRow]: ...

    def loan_exists(self, title: str, borrower_name: Optional[str] = None) -> bool: ...

    def insert_loan(self, title: str, borrower_name: str, timestamp: datetime) -> None: ...

    def delete_loan(self, title: str, borrower_name: str) -> int: ...

    def get_loan(self, title: str) -> Optional[LoanRecord]: ...

    def list_loans(self) -> List[LoanRecord]: ...

    def set_borrowed_flag(self, title: str, borrowed: bool) -> None: ...

    def insert_user(self, name: str, role: Role) -> None: ...

    def list_users(self) -> List[LibraryUser]: ...


class CatalogStore(Protocol):
    def atomic(self, title: Optional[str] = None, readonly: bool = False) -> ContextManager[CatalogUnit]:
        """Open an atomic unit.

        ``title`` names the book the unit guards, if any. ``readonly`` marks a
        unit that performs no writes, so the adapter may skip the write lock.
        """
        ...
