from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class LoanRecord:
    """An active loan of one book title to one borrower."""

    book_title: str
    borrower_name: str
    borrowed_at: datetime

    def to_dict(self) -> dict:
        return {
            "book_title": self.book_title,
            "borrower_name": self.borrower_name,
            "borrowed_at": self.borrowed_at.isoformat(),
        }


class Role(str, Enum):
    ADMIN = "Admin"
    REGULAR = "Regular User"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: str) -> "Role":
        for role in cls:
            if role.value == name or role.name == name.upper():
                return role
        raise ValueError(f"Invalid role: {name}")


@dataclass(frozen=True)
class LibraryUser:
    """Directory entry for a library user. Holds no credentials."""

    name: str
    role: Role

    def to_dict(self) -> dict:
        return {"name": self.name, "role": self.role.value}
