"""Category registry: turns a category name into a correctly tagged BookRecord."""
from __future__ import annotations

from typing import Callable, Dict, List, Mapping

from lending_library.book import BookRecord, Category
from lending_library.exceptions import InvalidCategory

BookConstructor = Callable[[], BookRecord]

# Closed registry. Adding a category means adding a Category member and an entry here.
_REGISTRY: Dict[str, BookConstructor] = {
    Category.SOFTWARE_ENGINEERING.value: lambda: BookRecord(Category.SOFTWARE_ENGINEERING),
    Category.MANAGEMENT.value: lambda: BookRecord(Category.MANAGEMENT),
    Category.ARTIFICIAL_INTELLIGENCE.value: lambda: BookRecord(Category.ARTIFICIAL_INTELLIGENCE),
}


def known_categories() -> List[str]:
    return list(_REGISTRY)


def create_for(category_name: str) -> BookRecord:
    """Create an empty BookRecord tagged with ``category_name``.

    The name must match a registered category exactly. Anything else raises
    ``InvalidCategory``; there is no fallback category.
    """
    try:
        constructor = _REGISTRY[category_name]
    except (KeyError, TypeError):
        raise InvalidCategory(str(category_name)) from None
    return constructor()


class BookBuilder:
    """Fluent builder: picks the category first, then fills in the fields."""

    def __init__(self, category_name: str) -> None:
        self._book = create_for(category_name)

    def set_title(self, title: str) -> "BookBuilder":
        self._book.title = title
        return self

    def set_author(self, author: str) -> "BookBuilder":
        self._book.author = author
        return self

    def build(self) -> BookRecord:
        return self._book


def book_from_row(row: Mapping[str, str]) -> BookRecord:
    """Map a raw store row ``{title, author, category}`` to a BookRecord.

    Every listing goes through this one function; the mapping does not depend
    on the category.
    """
    return BookBuilder(row["category"]).set_title(row["title"]).set_author(row["author"]).build()


def from_external(title: str, author: str, category: str) -> BookRecord:
    """Adapt a record from an external catalog into a BookRecord."""
    return book_from_row({"title": title, "author": author, "category": category})
