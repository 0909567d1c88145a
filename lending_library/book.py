from __future__ import annotations

from enum import Enum


class Category(str, Enum):
    """Closed set of shelf categories a book can belong to."""

    SOFTWARE_ENGINEERING = "Software Engineering"
    MANAGEMENT = "Management"
    ARTIFICIAL_INTELLIGENCE = "Artificial Intelligence"

    def __str__(self) -> str:
        return self.value


class BookRecord:
    """Represents a single book in the catalog.

    The category is fixed when the record is created. Title and author are
    filled in afterwards (usually by ``BookBuilder``) and are not expected to
    change once the record has been handed to a store.
    """

    __slots__ = ("_title", "_author", "_category")

    def __init__(self, category: Category, title: str = "", author: str = "") -> None:
        if not isinstance(category, Category):
            raise TypeError(f"category must be a Category, got {type(category).__name__}")
        self._category = category
        self._title = ""
        self._author = ""
        self.title = title
        self.author = author

    @property
    def title(self) -> str:
        return self._title

    @title.setter
    def title(self, value: str) -> None:
        self._title = (value or "").strip()

    @property
    def author(self) -> str:
        return self._author

    @author.setter
    def author(self, value: str) -> None:
        self._author = (value or "").strip()

    @property
    def category(self) -> Category:
        return self._category

    def duplicate(self) -> "BookRecord":
        """Return an independent copy with the same field values."""
        return BookRecord(self._category, self._title, self._author)

    def to_dict(self) -> dict:
        return {
            "title": self._title,
            "author": self._author,
            "category": self._category.value,
        }

    @staticmethod
    def from_dict(data: dict) -> "BookRecord":
        # Category names are resolved by the registry so unknown names fail loudly
        from lending_library.categories import book_from_row

        return book_from_row(data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BookRecord):
            return NotImplemented
        return (self._title, self._author, self._category) == (other._title, other._author, other._category)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"BookRecord(category={self._category.value!r}, title={self._title!r}, author={self._author!r})"

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self._title} by {self._author} ({self._category.value})"
