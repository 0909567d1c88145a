class LendingError(Exception):
    """Base exception for the lending library."""


class InvalidCategory(LendingError, ValueError):
    """Category name does not match any registered category."""

    def __init__(self, category: str) -> None:
        self.category = category
        super().__init__(f"Invalid category: {category}")


class StoreUnavailable(LendingError):
    """The catalog store could not complete the request."""


class DuplicateBookError(LendingError, ValueError):
    """A book with the same title already exists and titles must be unique."""

    def __init__(self, title: str) -> None:
        self.title = title
        super().__init__(f"Book with title {title!r} already exists.")
