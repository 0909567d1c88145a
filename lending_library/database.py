import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from lending_library.book import BookRecord
from lending_library.config import settings
from lending_library.exceptions import DuplicateBookError, StoreUnavailable
from lending_library.records import LibraryUser, LoanRecord, Role
from lending_library.store import BookFilter, BookRow

logger = logging.getLogger(__name__)

# The three listings share one column set and differ only in how loans are joined.
_BOOK_QUERIES = {
    BookFilter.ALL: "SELECT b.title, b.author, b.category FROM books b ORDER BY b.id",
    BookFilter.AVAILABLE: (
        "SELECT b.title, b.author, b.category FROM books b "
        "WHERE NOT EXISTS (SELECT 1 FROM borrowed_books bb WHERE bb.book_title = b.title) "
        "ORDER BY b.id"
    ),
    BookFilter.BORROWED: (
        "SELECT b.title, b.author, b.category FROM books b "
        "JOIN borrowed_books bb ON b.title = bb.book_title "
        "ORDER BY b.id"
    ),
}


def get_db_connection(db_file: str, timeout: float) -> sqlite3.Connection:
    """Open a connection in autocommit mode; transactions are started explicitly."""
    conn = sqlite3.connect(db_file, timeout=timeout, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def create_tables(conn: sqlite3.Connection) -> None:
    """Create the tables if they do not exist yet."""
    cursor = conn.cursor()
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS books (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            author TEXT NOT NULL,
            category TEXT NOT NULL,
            is_borrowed BOOLEAN NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS borrowed_books (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            book_title TEXT NOT NULL,
            user_name TEXT NOT NULL,
            borrow_date TIMESTAMP NOT NULL
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            role TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Older databases predate the cached availability flag
    cursor.execute("PRAGMA table_info(books)")
    columns = [column[1] for column in cursor.fetchall()]
    if "is_borrowed" not in columns:
        cursor.execute("ALTER TABLE books ADD COLUMN is_borrowed BOOLEAN NOT NULL DEFAULT 0")
        cursor.execute(
            "UPDATE books SET is_borrowed = 1 "
            "WHERE title IN (SELECT book_title FROM borrowed_books)"
        )

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
    # At most one active loan per title
    cursor.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_borrowed_books_book_title ON borrowed_books(book_title)"
    )


def initialize_database(db_file: str, timeout: float) -> None:
    """Initialize the database file and its schema."""
    directory = os.path.dirname(os.path.abspath(db_file))
    os.makedirs(directory, exist_ok=True)
    conn = get_db_connection(db_file, timeout)
    try:
        conn.execute("BEGIN IMMEDIATE")
        create_tables(conn)
        conn.execute("COMMIT")
        logger.debug(f"Database schema ready at {db_file}")
    except sqlite3.Error:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


class SQLiteUnit:
    """Catalog operations bound to one open SQLite transaction."""

    def __init__(self, conn: sqlite3.Connection, unique_titles: bool = False) -> None:
        self._conn = conn
        self._unique_titles = unique_titles

    # ------------------------- Books ------------------------- #
    def insert_book(self, book: BookRecord) -> None:
        if self._unique_titles and self.book_exists(book.title):
            raise DuplicateBookError(book.title)
        self._conn.execute(
            "INSERT INTO books (title, author, category) VALUES (?, ?, ?)",
            (book.title, book.author, book.category.value),
        )

    def delete_book(self, title: str) -> int:
        cursor = self._conn.execute("DELETE FROM books WHERE title = ?", (title,))
        return cursor.rowcount

    def book_exists(self, title: str) -> bool:
        row = self._conn.execute("SELECT COUNT(*) FROM books WHERE title = ?", (title,)).fetchone()
        return row[0] > 0

    def list_books(self, book_filter: BookFilter = BookFilter.ALL) -> List[BookRow]:
        rows = self._conn.execute(_BOOK_QUERIES[BookFilter(book_filter)]).fetchall()
        return [dict(row) for row in rows]

    def set_borrowed_flag(self, title: str, borrowed: bool) -> None:
        self._conn.execute("UPDATE books SET is_borrowed = ? WHERE title = ?", (1 if borrowed else 0, title))

    # ------------------------- Loans ------------------------- #
    def loan_exists(self, title: str, borrower_name: Optional[str] = None) -> bool:
        if borrower_name is None:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM borrowed_books WHERE book_title = ?", (title,)
            ).fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM borrowed_books WHERE book_title = ? AND user_name = ?",
                (title, borrower_name),
            ).fetchone()
        return row[0] > 0

    def insert_loan(self, title: str, borrower_name: str, timestamp: datetime) -> None:
        self._conn.execute(
            "INSERT INTO borrowed_books (book_title, user_name, borrow_date) VALUES (?, ?, ?)",
            (title, borrower_name, timestamp.isoformat()),
        )

    def delete_loan(self, title: str, borrower_name: str) -> int:
        cursor = self._conn.execute(
            "DELETE FROM borrowed_books WHERE book_title = ? AND user_name = ?",
            (title, borrower_name),
        )
        return cursor.rowcount

    def get_loan(self, title: str) -> Optional[LoanRecord]:
        row = self._conn.execute(
            "SELECT book_title, user_name, borrow_date FROM borrowed_books WHERE book_title = ?",
            (title,),
        ).fetchone()
        return self._loan_from_row(row) if row else None

    def list_loans(self) -> List[LoanRecord]:
        rows = self._conn.execute(
            "SELECT book_title, user_name, borrow_date FROM borrowed_books ORDER BY id"
        ).fetchall()
        return [self._loan_from_row(row) for row in rows]

    # ------------------------- Users ------------------------- #
    def insert_user(self, name: str, role: Role) -> None:
        self._conn.execute("INSERT INTO users (name, role) VALUES (?, ?)", (name, role.value))

    def list_users(self) -> List[LibraryUser]:
        rows = self._conn.execute("SELECT name, role FROM users ORDER BY id").fetchall()
        return [LibraryUser(name=row["name"], role=Role.from_name(row["role"])) for row in rows]

    @staticmethod
    def _loan_from_row(row: sqlite3.Row) -> LoanRecord:
        return LoanRecord(
            book_title=row["book_title"],
            borrower_name=row["user_name"],
            borrowed_at=datetime.fromisoformat(row["borrow_date"]),
        )


class SQLiteCatalogStore:
    """Catalog store backed by a SQLite file.

    Each unit opens its own connection and starts with ``BEGIN IMMEDIATE`` so
    the write lock is held before the first guard read. Two units touching the
    same title can therefore never interleave; the second one waits up to
    ``timeout`` seconds for the first to commit or roll back. Read-only units
    use a deferred ``BEGIN`` and only take a shared lock.
    """

    def __init__(
        self,
        db_file: Optional[str] = None,
        timeout: Optional[float] = None,
        unique_titles: Optional[bool] = None,
    ) -> None:
        self.db_file = db_file or settings.database_file
        self.timeout = settings.database_timeout if timeout is None else timeout
        self.unique_titles = settings.unique_titles if unique_titles is None else unique_titles
        try:
            initialize_database(self.db_file, self.timeout)
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Could not initialize database {self.db_file}: {e}")
            raise StoreUnavailable(f"Could not open catalog database: {e}") from e

    @contextmanager
    def atomic(self, title: Optional[str] = None, readonly: bool = False) -> Iterator[SQLiteUnit]:
        try:
            conn = get_db_connection(self.db_file, self.timeout)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Could not connect to catalog database: {e}") from e
        try:
            conn.execute("BEGIN" if readonly else "BEGIN IMMEDIATE")
            yield SQLiteUnit(conn, self.unique_titles)
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn, title)
            logger.error(f"Catalog store error (title={title}): {e}")
            raise StoreUnavailable(f"Catalog store error: {e}") from e
        except BaseException:
            self._rollback(conn, title)
            raise
        finally:
            conn.close()

    def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            conn = get_db_connection(self.db_file, self.timeout)
            try:
                conn.execute("SELECT 1")
            finally:
                conn.close()
            return True
        except sqlite3.Error:
            return False

    @staticmethod
    def _rollback(conn: sqlite3.Connection, title: Optional[str]) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
            logger.debug(f"Rolled back catalog unit (title={title})")
