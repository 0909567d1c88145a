import logging
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from lending_library.book import Category
from lending_library.exceptions import InvalidCategory, StoreUnavailable
from lending_library.lending import LendingEngine
from lending_library.memory_store import InMemoryCatalogStore
from lending_library.records import Role
from lending_library.service import ConsoleNotifier, LendingService, LoggingNotifier, NullNotifier


def test_borrow_flow_notifications(service, notifier):
    service.create_book("Software Engineering", "Clean Code", "A")
    notifier.messages.clear()

    assert service.borrow("Clean Code", "Alice") is True
    assert service.borrow("Clean Code", "Bob") is False
    assert service.return_book("Clean Code", "Bob") is False
    assert service.return_book("Clean Code", "Alice") is True

    assert notifier.messages == [
        "Borrowing book: Clean Code for Alice",
        "Book borrowed: Clean Code by Alice",
        "Borrowing book: Clean Code for Bob",
        "Borrow refused: Clean Code is not available",
        "Returning book: Clean Code from Bob",
        "Return refused: no loan of Clean Code to Bob",
        "Returning book: Clean Code from Alice",
        "Book returned: Clean Code by Alice",
    ]


def test_checkout_notifies_like_borrow(service, notifier):
    service.create_book("Software Engineering", "Clean Code", "A")
    notifier.messages.clear()

    loan = service.checkout("Clean Code", "Alice")
    assert loan.borrower_name == "Alice"
    assert service.checkout("Clean Code", "Bob") is None

    assert notifier.messages == [
        "Borrowing book: Clean Code for Alice",
        "Book borrowed: Clean Code by Alice",
        "Borrowing book: Clean Code for Bob",
        "Borrow refused: Clean Code is not available",
    ]


def test_listing_notifications_report_size(service, notifier):
    service.create_book("Management", "The Goal", "Goldratt")
    service.create_book("Artificial Intelligence", "AIMA", "Russell")
    service.borrow("AIMA", "Alice")
    notifier.messages.clear()

    assert len(service.list_books()) == 2
    assert len(service.list_available()) == 1
    assert len(service.list_borrowed()) == 1
    assert service.is_available("AIMA") is False

    assert notifier.messages == [
        "Fetching all books",
        "Retrieved 2 books",
        "Fetching available books",
        "Retrieved 1 available books",
        "Fetching borrowed books",
        "Retrieved 1 borrowed books",
        "Checking availability for book: AIMA",
        "Book AIMA is not available",
    ]


def test_create_book_builds_and_persists(service, notifier):
    book = service.create_book("Artificial Intelligence", "Deep Learning", "Goodfellow")

    assert book.category is Category.ARTIFICIAL_INTELLIGENCE
    assert service.list_books() == [book]
    assert notifier.messages[:2] == [
        "Creating Artificial Intelligence book: Deep Learning",
        "Book created: Deep Learning (Artificial Intelligence)",
    ]


def test_invalid_category_propagates_with_failure_message(service, notifier):
    with pytest.raises(InvalidCategory):
        service.create_book("Poetry", "Odes", "Keats")

    assert notifier.messages == [
        "Creating Poetry book: Odes",
        "create_book failed: Invalid category: Poetry",
    ]
    assert service.list_books() == []


def test_store_failure_propagates_unchanged(notifier):
    engine = MagicMock(spec=LendingEngine)
    error = StoreUnavailable("connection lost")
    engine.borrow.side_effect = error
    service = LendingService(engine, notifier)

    with pytest.raises(StoreUnavailable) as exc_info:
        service.borrow("Clean Code", "Alice")

    assert exc_info.value is error
    assert notifier.messages == [
        "Borrowing book: Clean Code for Alice",
        "borrow failed: connection lost",
    ]


def test_results_pass_through_unchanged(notifier):
    engine = MagicMock(spec=LendingEngine)
    sentinel = object()
    engine.list_books.return_value = [sentinel]
    engine.return_book.return_value = False
    service = LendingService(engine, notifier)

    assert service.list_books() == [sentinel]
    assert service.return_book("Clean Code", "Alice") is False
    engine.return_book.assert_called_once_with("Clean Code", "Alice")


def test_broken_notifier_does_not_change_outcome(caplog):
    broken = MagicMock()
    broken.notify.side_effect = RuntimeError("notifier down")
    service = LendingService(LendingEngine(InMemoryCatalogStore()), broken)

    with caplog.at_level(logging.ERROR, logger="lending_library.service"):
        book = service.create_book("Management", "The Goal", "Goldratt")
        assert service.borrow("The Goal", "Alice") is True

    assert book.title == "The Goal"
    assert "Notifier failed" in caplog.text


def test_users_are_reported(service, notifier):
    user = service.add_user("Alice", Role.ADMIN)
    users = service.list_users()

    assert user.role is Role.ADMIN
    assert [u.name for u in users] == ["Alice"]
    assert notifier.messages == [
        "Adding user: Alice (Admin)",
        "User added: Alice",
        "Fetching users",
        "Retrieved 1 users",
    ]


def test_remove_book_messages(service, notifier):
    service.create_book("Management", "The Goal", "Goldratt")
    notifier.messages.clear()

    assert service.remove_book("The Goal") is True
    assert service.remove_book("The Goal") is False
    assert notifier.messages == [
        "Removing book: The Goal",
        "Book removed successfully: The Goal",
        "Removing book: The Goal",
        "Book not removed: The Goal",
    ]


def test_default_notifier_is_silent():
    service = LendingService(LendingEngine(InMemoryCatalogStore()))
    assert isinstance(service.notifier, NullNotifier)
    assert service.list_books() == []


def test_logging_notifier(caplog):
    service = LendingService(LendingEngine(InMemoryCatalogStore()), LoggingNotifier())
    with caplog.at_level(logging.INFO, logger="lending_library.audit"):
        service.list_books()
    assert [r.getMessage() for r in caplog.records if r.name == "lending_library.audit"] == [
        "Fetching all books",
        "Retrieved 0 books",
    ]


def test_console_notifier():
    console = Console(record=True, width=120)
    ConsoleNotifier(console).notify("Adding book: [draft] Clean Code")
    assert "LOG: Adding book: [draft] Clean Code" in console.export_text()
