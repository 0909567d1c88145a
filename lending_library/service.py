"""Service facade: lending operations wrapped with audit notifications.

``LendingService`` forwards every call to a ``LendingEngine`` and reports a
message before and after it through a ``Notifier``. Results and exceptions are
passed back untouched, so the engine behaves the same with or without the
wrapper.
"""
from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, List, Optional, Protocol

from rich.console import Console
from rich.markup import escape

from lending_library.book import BookRecord
from lending_library.categories import BookBuilder
from lending_library.database import SQLiteCatalogStore
from lending_library.lending import LendingEngine
from lending_library.records import LibraryUser, LoanRecord, Role

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


class LoggingNotifier:
    """Writes notifications to a standard logger."""

    def __init__(self, logger_name: str = "lending_library.audit", level: int = logging.INFO) -> None:
        self._logger = logging.getLogger(logger_name)
        self._level = level

    def notify(self, message: str) -> None:
        self._logger.log(self._level, message)


class ConsoleNotifier:
    """Prints notifications as dimmed lines on a rich console."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(stderr=True)

    def notify(self, message: str) -> None:
        self.console.print(f"[dim]LOG: {escape(message)}[/]")


class NullNotifier:
    def notify(self, message: str) -> None:
        return None


def _count(noun: str) -> Callable[..., str]:
    return lambda result, *args, **kwargs: f"Retrieved {len(result)} {noun}"


def _borrowing(title: str, borrower_name: str) -> str:
    return f"Borrowing book: {title} for {borrower_name}"


def _borrowed(result: Any, title: str, borrower_name: str) -> str:
    if result:
        return f"Book borrowed: {title} by {borrower_name}"
    return f"Borrow refused: {title} is not available"


def notified(before: Callable[..., str], after: Callable[..., str]):
    """Wrap a service method with a pre-call and a post-call notification.

    ``before`` receives the call arguments; ``after`` receives the result
    followed by the call arguments. A failing call produces a failure message
    and the original exception is re-raised.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self: "LendingService", *args: Any, **kwargs: Any):
            self._emit(before(*args, **kwargs))
            try:
                result = func(self, *args, **kwargs)
            except Exception as e:
                self._emit(f"{func.__name__} failed: {e}")
                raise
            self._emit(after(result, *args, **kwargs))
            return result
        return wrapper
    return decorator


class LendingService:
    """Facade used by the CLI and the HTTP API."""

    def __init__(self, engine: LendingEngine, notifier: Optional[Notifier] = None) -> None:
        self.engine = engine
        self.notifier = notifier or NullNotifier()

    def _emit(self, message: str) -> None:
        try:
            self.notifier.notify(message)
        except Exception:
            # Fire-and-forget
            logger.exception("Notifier failed")

    # ------------------------- Catalog ------------------------- #
    @notified(
        lambda category, title, author: f"Creating {category} book: {title}",
        lambda book, *args, **kwargs: f"Book created: {book.title} ({book.category.value})",
    )
    def create_book(self, category: str, title: str, author: str) -> BookRecord:
        """Build a book for ``category`` and add it to the catalog."""
        book = BookBuilder(category).set_title(title).set_author(author).build()
        self.engine.add_book(book)
        return book

    @notified(
        lambda book: f"Adding book: {book.title}",
        lambda result, book: f"Book added successfully: {book.title}",
    )
    def add_book(self, book: BookRecord) -> None:
        self.engine.add_book(book)

    @notified(
        lambda title: f"Removing book: {title}",
        lambda removed, title: f"Book removed successfully: {title}" if removed else f"Book not removed: {title}",
    )
    def remove_book(self, title: str) -> bool:
        return self.engine.remove_book(title)

    @notified(lambda: "Fetching all books", _count("books"))
    def list_books(self) -> List[BookRecord]:
        return self.engine.list_books()

    @notified(lambda: "Fetching available books", _count("available books"))
    def list_available(self) -> List[BookRecord]:
        return self.engine.list_available()

    @notified(lambda: "Fetching borrowed books", _count("borrowed books"))
    def list_borrowed(self) -> List[BookRecord]:
        return self.engine.list_borrowed()

    # ------------------------- Lending ------------------------- #
    @notified(
        lambda title: f"Checking availability for book: {title}",
        lambda available, title: f"Book {title} is {'available' if available else 'not available'}",
    )
    def is_available(self, title: str) -> bool:
        return self.engine.is_available(title)

    @notified(_borrowing, _borrowed)
    def borrow(self, title: str, borrower_name: str) -> bool:
        return self.engine.borrow(title, borrower_name)

    @notified(_borrowing, _borrowed)
    def checkout(self, title: str, borrower_name: str) -> Optional[LoanRecord]:
        """Like ``borrow``, but hands back the loan record that was created."""
        return self.engine.checkout(title, borrower_name)

    @notified(
        lambda title, borrower_name: f"Returning book: {title} from {borrower_name}",
        lambda ok, title, borrower_name: (
            f"Book returned: {title} by {borrower_name}"
            if ok
            else f"Return refused: no loan of {title} to {borrower_name}"
        ),
    )
    def return_book(self, title: str, borrower_name: str) -> bool:
        return self.engine.return_book(title, borrower_name)

    @notified(
        lambda title: f"Looking up loan for book: {title}",
        lambda loan, title: f"Book {title} is on loan to {loan.borrower_name}" if loan else f"Book {title} has no loan",
    )
    def get_loan(self, title: str) -> Optional[LoanRecord]:
        return self.engine.get_loan(title)

    @notified(lambda: "Fetching loans", _count("loans"))
    def list_loans(self) -> List[LoanRecord]:
        return self.engine.list_loans()

    # ------------------------- Users ------------------------- #
    @notified(
        lambda name, role: f"Adding user: {name} ({role})",
        lambda user, *args, **kwargs: f"User added: {user.name}",
    )
    def add_user(self, name: str, role: Role) -> LibraryUser:
        return self.engine.add_user(name, role)

    @notified(lambda: "Fetching users", _count("users"))
    def list_users(self) -> List[LibraryUser]:
        return self.engine.list_users()


def build_service(db_file: Optional[str] = None, notifier: Optional[Notifier] = None) -> LendingService:
    """Wire a SQLite-backed service; settings supply anything not given."""
    store = SQLiteCatalogStore(db_file=db_file)
    return LendingService(LendingEngine(store), notifier or LoggingNotifier())
