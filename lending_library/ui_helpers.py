import json
import os
from typing import List

from rich.console import Console
from rich.table import Table

from lending_library.book import BookRecord
from lending_library.records import LibraryUser, LoanRecord

# Environment variable that controls CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_books(books: List[BookRecord], empty_message: str = "No books in library.", title: str = "Books") -> None:
    """Print books in the current output mode.
    - plain: 'Title by Author [Category]' lines, or ``empty_message``
    - json: JSON array of title, author, category
    - rich: Rich table
    """
    if not books:
        print(empty_message)
        return

    mode = get_output_mode()
    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=f"📚 {title}", show_lines=True, header_style="bold cyan")
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Category", style="magenta", no_wrap=True)
        for b in books:
            table.add_row(b.title, b.author, b.category.value)
        _console.print(table)
    else:
        for b in books:
            print(f"{b.title} by {b.author} [{b.category.value}]")


def print_loans(loans: List[LoanRecord]) -> None:
    if not loans:
        print("No active loans.")
        return

    mode = get_output_mode()
    if mode == "json":
        print(json.dumps([loan.to_dict() for loan in loans], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📖 Loans", show_lines=True, header_style="bold cyan")
        table.add_column("Title", style="white")
        table.add_column("Borrower", style="white")
        table.add_column("Borrowed At", style="dim")
        for loan in loans:
            table.add_row(loan.book_title, loan.borrower_name, loan.borrowed_at.strftime("%Y-%m-%d %H:%M"))
        _console.print(table)
    else:
        for loan in loans:
            print(f"{loan.book_title} - borrowed by {loan.borrower_name} on {loan.borrowed_at:%Y-%m-%d %H:%M}")


def print_users(users: List[LibraryUser]) -> None:
    if not users:
        print("No users registered.")
        return

    mode = get_output_mode()
    if mode == "json":
        print(json.dumps([u.to_dict() for u in users], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="👤 Users", show_lines=True, header_style="bold cyan")
        table.add_column("Name", style="white")
        table.add_column("Role", style="magenta")
        for u in users:
            table.add_row(u.name, u.role.value)
        _console.print(table)
    else:
        for u in users:
            print(f"Name: {u.name}, Role: {u.role.value}")
