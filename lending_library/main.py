import os
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console

from lending_library import categories
from lending_library.config import configure_logging, settings
from lending_library.exceptions import LendingError, StoreUnavailable
from lending_library.records import Role
from lending_library.service import ConsoleNotifier, LendingService, NullNotifier, build_service
from lending_library.ui_helpers import print_books, print_loans, print_users, set_output_mode

APP_NAME = "Library CLI"

console = Console()

app = typer.Typer(help="Library catalog and lending CLI")


def _service(ctx: typer.Context) -> LendingService:
    """Open the catalog on first use; commands that never touch it skip the database."""
    obj = ctx.obj
    if obj.get("service") is None:
        try:
            obj["service"] = build_service(db_file=obj["db"], notifier=obj["notifier"])
        except StoreUnavailable as e:
            _fail(f"Database unavailable: {e}")
    return obj["service"]


def _fail(message: str) -> None:
    print(message)
    raise typer.Exit(code=1)


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show audit messages for each operation"),
):
    """Global options for the CLI (output mode, database, verbosity)."""
    configure_logging()
    if output:
        set_output_mode(output)
    if ctx.resilient_parsing:
        return
    notifier = ConsoleNotifier() if verbose else NullNotifier()
    ctx.obj = {"service": None, "db": db, "notifier": notifier}


@app.command("add")
def cli_add(
    ctx: typer.Context,
    title: str,
    author: str,
    category: str = typer.Option(..., "--category", "-c", help="One of: " + ", ".join(categories.known_categories())),
):
    """Add a book to the catalog."""
    try:
        book = _service(ctx).create_book(category, title, author)
    except (LendingError, ValueError) as e:
        _fail(f"Error: {e}")
    else:
        print(f"Book added successfully: {book.title} by {book.author} [{book.category.value}]")


@app.command("remove")
def cli_remove(ctx: typer.Context, title: str):
    """Remove a book by title. Books that are on loan are kept."""
    try:
        removed = _service(ctx).remove_book(title)
    except StoreUnavailable as e:
        _fail(f"Error: {e}")
    if removed:
        print(f"Book '{title}' has been removed.")
    else:
        print(f"Book '{title}' not found or currently borrowed.")


@app.command("list")
def cli_list(
    ctx: typer.Context,
    available: bool = typer.Option(False, "--available", help="Only books that can be borrowed"),
    borrowed: bool = typer.Option(False, "--borrowed", help="Only books that are on loan"),
):
    """List catalog books."""
    if available and borrowed:
        _fail("Error: use either --available or --borrowed, not both.")
    service = _service(ctx)
    try:
        if available:
            print_books(service.list_available(), "No books are available for borrowing right now.", "Available Books")
        elif borrowed:
            print_books(service.list_borrowed(), "No books are currently borrowed.", "Borrowed Books")
        else:
            print_books(service.list_books())
    except StoreUnavailable as e:
        _fail(f"Error: {e}")


@app.command("available")
def cli_available(ctx: typer.Context, title: str):
    """Check whether a book can be borrowed."""
    try:
        ok = _service(ctx).is_available(title)
    except StoreUnavailable as e:
        _fail(f"Error: {e}")
    print(f"'{title}' is available." if ok else f"'{title}' is not available.")


@app.command("borrow")
def cli_borrow(ctx: typer.Context, title: str, borrower: str):
    """Borrow a book for a borrower."""
    try:
        ok = _service(ctx).borrow(title, borrower)
    except (StoreUnavailable, ValueError) as e:
        _fail(f"Error: {e}")
    if ok:
        print(f"Book '{title}' borrowed by {borrower.strip()}.")
    else:
        print(f"Sorry, '{title}' is not available for borrowing.")


@app.command("return")
def cli_return(ctx: typer.Context, title: str, borrower: str):
    """Return a book; the borrower name must match the loan."""
    try:
        ok = _service(ctx).return_book(title, borrower)
    except (StoreUnavailable, ValueError) as e:
        _fail(f"Error: {e}")
    if ok:
        print(f"Book '{title}' returned by {borrower.strip()}.")
    else:
        print(f"No borrowing record found for '{title}' and {borrower.strip()}.")


@app.command("loans")
def cli_loans(ctx: typer.Context):
    """List active loans."""
    try:
        print_loans(_service(ctx).list_loans())
    except StoreUnavailable as e:
        _fail(f"Error: {e}")


@app.command("add-user")
def cli_add_user(
    ctx: typer.Context,
    name: str,
    role: str = typer.Option(Role.REGULAR.value, "--role", "-r", help="Admin | Regular User"),
):
    """Register a library user (name and role only)."""
    try:
        user = _service(ctx).add_user(name, Role.from_name(role))
    except (StoreUnavailable, ValueError) as e:
        _fail(f"Error: {e}")
    print(f"User added: {user.name} ({user.role.value})")


@app.command("users")
def cli_users(ctx: typer.Context):
    """List registered users."""
    try:
        print_users(_service(ctx).list_users())
    except StoreUnavailable as e:
        _fail(f"Error: {e}")


@app.command("view")
def cli_view(ctx: typer.Context):
    """Show the whole database: books, then users."""
    service = _service(ctx)
    try:
        books = service.list_books()
        users = service.list_users()
    except StoreUnavailable as e:
        _fail(f"Error: {e}")
    print("Books:")
    print_books(books)
    print("")
    print("Users:")
    print_users(users)


@app.command("categories")
def cli_categories():
    """List the categories a book can be filed under."""
    for name in categories.known_categories():
        print(name)


@app.command("serve")
def serve(ctx: typer.Context, host: Optional[str] = None, port: Optional[int] = None):
    """Start the HTTP API with Uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/"
    console.print(f"[green]Starting API on [link={url}]{url}[/link][/]")

    env = dict(os.environ)
    db = (ctx.obj or {}).get("db")
    if db:
        env["LIBRARY_DB_FILE"] = db
    args = [sys.executable, "-m", "uvicorn", "lending_library.api:app", "--host", host, "--port", str(port)]
    try:
        subprocess.run(args, env=env, check=False)
    except KeyboardInterrupt:
        console.print("[yellow]Server stopped.[/]")


def main() -> None:
    app(prog_name="lending-library")


if __name__ == "__main__":
    main()
