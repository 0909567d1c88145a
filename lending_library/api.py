import os
from datetime import datetime, timezone
from functools import lru_cache
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from lending_library import categories
from lending_library.config import configure_logging, settings
from lending_library.exceptions import StoreUnavailable
from lending_library.records import Role
from lending_library.service import LendingService, build_service
from lending_library.store import BookFilter

configure_logging()

app = FastAPI(title=settings.app_name, version=settings.app_version)


@lru_cache(maxsize=1)
def get_service() -> LendingService:
    """One service per process, built from LIBRARY_DB_FILE or the settings default."""
    return build_service(db_file=os.environ.get("LIBRARY_DB_FILE") or None)


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency that validates the API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    return JSONResponse(status_code=503, content={"detail": f"Catalog store unavailable: {exc}"})


# --- Models ---
class BookModel(BaseModel):
    title: str
    author: str
    category: str


class BookCreateModel(BaseModel):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    category: str = Field(..., description="One of the registered categories")


class AvailabilityModel(BaseModel):
    title: str
    available: bool


class LoanRequestModel(BaseModel):
    title: str = Field(..., min_length=1)
    borrower_name: str = Field(..., min_length=1)


class LoanModel(BaseModel):
    book_title: str
    borrower_name: str
    borrowed_at: datetime


class UserCreateModel(BaseModel):
    name: str = Field(..., min_length=1)
    role: str = Role.REGULAR.value


class UserModel(BaseModel):
    name: str
    role: str


# --- Health ---
@app.get("/health")
def health(service: LendingService = Depends(get_service)):
    """Lightweight health endpoint: database reachability and catalog size."""
    db_ok = service.engine.store.ping()
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
        "total_books": len(service.engine.list_books()) if db_ok else 0,
    }


@app.get("/categories", response_model=List[str])
def list_categories():
    return categories.known_categories()


# --- Books ---
@app.get("/books", response_model=List[BookModel])
def get_books(
    status: BookFilter = Query(BookFilter.ALL, description="all | available | borrowed"),
    service: LendingService = Depends(get_service),
):
    """List catalog books, optionally only available or only borrowed ones."""
    if status is BookFilter.AVAILABLE:
        books = service.list_available()
    elif status is BookFilter.BORROWED:
        books = service.list_borrowed()
    else:
        books = service.list_books()
    return [BookModel(**b.to_dict()) for b in books]


@app.get("/books/{title}/availability", response_model=AvailabilityModel)
def get_availability(title: str, service: LendingService = Depends(get_service)):
    return AvailabilityModel(title=title, available=service.is_available(title))


@app.post("/books", response_model=BookModel, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel, service: LendingService = Depends(get_service)):
    """Add a book to the catalog under a registered category."""
    try:
        book = service.create_book(payload.category, payload.title, payload.author)
    except ValueError as e:
        # InvalidCategory and DuplicateBookError are ValueErrors
        raise HTTPException(status_code=400, detail=str(e))
    return BookModel(**book.to_dict())


@app.delete("/books/{title}", dependencies=[Depends(get_api_key)])
def delete_book(title: str, service: LendingService = Depends(get_service)):
    """Remove a book by title. Borrowed books cannot be removed."""
    if not service.remove_book(title):
        raise HTTPException(status_code=404, detail="Book not found or currently borrowed.")
    return {"message": "Book removed."}


# --- Loans ---
@app.get("/loans", response_model=List[LoanModel])
def get_loans(service: LendingService = Depends(get_service)):
    return [LoanModel(**loan.__dict__) for loan in service.list_loans()]


@app.post("/loans", response_model=LoanModel)
def borrow_book(payload: LoanRequestModel, service: LendingService = Depends(get_service)):
    """Borrow a book. Responds 409 when the book is not available."""
    try:
        loan = service.checkout(payload.title, payload.borrower_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if loan is None:
        raise HTTPException(status_code=409, detail="Book is not available for borrowing.")
    return LoanModel(**loan.__dict__)


@app.post("/returns")
def return_book(payload: LoanRequestModel, service: LendingService = Depends(get_service)):
    """Return a book. Responds 404 when no loan matches both title and borrower."""
    try:
        ok = service.return_book(payload.title, payload.borrower_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not ok:
        raise HTTPException(status_code=404, detail="No borrowing record found for this book and user.")
    return {"message": "Book returned.", "title": payload.title}


# --- Users ---
@app.get("/users", response_model=List[UserModel])
def get_users(service: LendingService = Depends(get_service)):
    return [UserModel(**u.to_dict()) for u in service.list_users()]


@app.post("/users", response_model=UserModel, dependencies=[Depends(get_api_key)])
def add_user(payload: UserCreateModel, service: LendingService = Depends(get_service)):
    try:
        user = service.add_user(payload.name, Role.from_name(payload.role))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return UserModel(**user.to_dict())
