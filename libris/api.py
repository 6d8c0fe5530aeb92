import asyncio
import json
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from libris.config import configure_logging, settings
from libris.errors import (
    AccessDeniedError,
    InvalidRequestError,
    LibraryError,
    NotFoundError,
    QuotaExceededError,
    StoreError,
)
from libris.library import Library
from libris.models import Caller, Level, Loan, Role
from libris.seed import ensure_default_librarian

_library: Optional[Library] = None

# Seconds between checks of an availability subscription for new events
STREAM_POLL_SECONDS = 0.2


def get_library() -> Library:
    """Process-wide Library instance; tests replace it through dependency_overrides."""
    global _library
    if _library is None:
        _library = Library()
    return _library


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    library = app.dependency_overrides.get(get_library, get_library)()
    ensure_default_librarian(library)
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug,
              lifespan=lifespan)


# --- Error mapping ---
_STATUS_BY_ERROR = {
    NotFoundError: 404,
    InvalidRequestError: 400,
    QuotaExceededError: 400,
    AccessDeniedError: 403,
}


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    status = _STATUS_BY_ERROR.get(type(exc), 400)
    return JSONResponse(
        status_code=status,
        content={"timestamp": datetime.now().isoformat(), "status": status, "message": exc.reason},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(
        status_code=500,
        content={"timestamp": datetime.now().isoformat(), "status": 500,
                 "message": "An unexpected error occurred."},
    )


# --- Caller context ---
def get_caller(x_caller_role: str = Header(...), x_caller_email: str = Header(...)) -> Caller:
    """Identity forwarded by the authorization layer in front of this service."""
    try:
        role = Role(x_caller_role.upper())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_caller_role}")
    return Caller(role=role, email=x_caller_email)


def require_roles(*roles: Role):
    def dependency(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.role not in roles:
            raise HTTPException(status_code=403, detail="Access denied")
        return caller
    return dependency


# --- Models ---
class TitleModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    author: str
    isbn: str
    genre: str
    page_count: int
    published_date: Optional[date] = None
    copy_count: int
    available: bool


class TitleCreateModel(BaseModel):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    isbn: str = Field(..., min_length=1)
    genre: str = "GENERAL"
    page_count: int = Field(0, ge=0)
    copy_count: int = Field(1, ge=0)
    published_date: Optional[date] = None


class TitleUpdateModel(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    genre: Optional[str] = None
    page_count: Optional[int] = Field(None, ge=0)
    copy_count: Optional[int] = Field(None, ge=0)
    published_date: Optional[date] = None


class ReaderCreateModel(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: Role = Role.PATRON


class ReaderModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    email: str
    role: Role
    score: int
    level: Level


class ReaderStatsModel(BaseModel):
    email: str
    level: Level
    score: int
    total_borrowed_books: int
    total_returned_books: int
    total_late_returns: int
    total_reading_days: int
    total_read_pages: int
    avg_pages_per_day: float
    avg_return_duration: float


class BorrowCreateModel(BaseModel):
    book_id: str
    email: str
    borrow_date: date
    due_date: Optional[date] = None


class LoanModel(BaseModel):
    id: str
    book_id: str
    book_title: str
    user_id: str
    user_name: str
    borrow_date: date
    due_date: date
    return_date: Optional[date] = None
    returned: bool


class SimpleCountModel(BaseModel):
    name: str
    count: int


class LibraryStatsModel(BaseModel):
    total_books: int
    total_users: int
    total_borrows: int
    borrowed_books: int
    available_books: int
    overdue_books: int
    average_return_days: float
    most_borrowed_books: List[SimpleCountModel]
    top_genres: List[SimpleCountModel]
    text_report: str


class OverdueEntryModel(BaseModel):
    user: str
    book: str
    borrow_date: date
    due_date: date
    days_overdue: int


class OverdueStatsModel(BaseModel):
    total_borrows: int
    overdue_borrows: int
    overdue_ratio: float
    overdue_count_by_user: Dict[str, int]
    overdue_count_by_book: Dict[str, int]
    detailed_overdue_entries: List[OverdueEntryModel]


def _loan_model(library: Library, loan: Loan) -> LoanModel:
    title = library.get_title(loan.title_id)
    reader = library.get_reader(loan.reader_id)
    return LoanModel(
        id=loan.id,
        book_id=loan.title_id,
        book_title=title.title,
        user_id=loan.reader_id,
        user_name=reader.full_name,
        borrow_date=loan.borrow_date,
        due_date=loan.due_date,
        return_date=loan.return_date,
        returned=loan.returned,
    )


# --- Health ---
@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name, "version": settings.app_version}


# --- Borrows ---
@app.post("/api/borrows", response_model=LoanModel, status_code=201)
def borrow_book(payload: BorrowCreateModel,
                caller: Caller = Depends(require_roles(Role.LIBRARIAN, Role.PATRON)),
                library: Library = Depends(get_library)):
    loan = library.borrow(payload.book_id, payload.email, payload.borrow_date, payload.due_date,
                          caller=caller)
    return _loan_model(library, loan)


@app.put("/api/borrows/return/{loan_id}", response_model=LoanModel)
def return_book(loan_id: str,
                caller: Caller = Depends(require_roles(Role.LIBRARIAN, Role.PATRON)),
                library: Library = Depends(get_library)):
    loan = library.return_loan(loan_id, caller=caller)
    return _loan_model(library, loan)


@app.get("/api/borrows/user/{reader_id}", response_model=List[LoanModel])
def get_borrow_history(reader_id: str,
                       caller: Caller = Depends(require_roles(Role.LIBRARIAN, Role.PATRON)),
                       library: Library = Depends(get_library)):
    return [_loan_model(library, loan) for loan in library.loan_history(reader_id, caller)]


@app.get("/api/borrows", response_model=List[LoanModel])
def get_all_borrows(caller: Caller = Depends(require_roles(Role.LIBRARIAN, Role.PATRON)),
                    library: Library = Depends(get_library)):
    return [_loan_model(library, loan) for loan in library.list_loans(caller)]


@app.get("/api/borrows/overdue", response_model=List[LoanModel])
def get_overdue_borrows(caller: Caller = Depends(require_roles(Role.LIBRARIAN)),
                        library: Library = Depends(get_library)):
    return [_loan_model(library, loan) for loan in library.overdue_loans()]


# --- Statistics ---
@app.get("/api/statistics", response_model=LibraryStatsModel)
def get_library_statistics(caller: Caller = Depends(require_roles(Role.LIBRARIAN)),
                           library: Library = Depends(get_library)):
    return library.library_statistics()


@app.get("/api/statistics/overdue", response_model=OverdueStatsModel)
def get_overdue_statistics(caller: Caller = Depends(require_roles(Role.LIBRARIAN)),
                           library: Library = Depends(get_library)):
    return library.overdue_statistics()


# --- Books ---
@app.get("/api/books", response_model=List[TitleModel])
def list_books(caller: Caller = Depends(get_caller), library: Library = Depends(get_library)):
    return library.list_titles()


@app.get("/api/books/search", response_model=List[TitleModel])
def search_books(q: str, caller: Caller = Depends(get_caller), library: Library = Depends(get_library)):
    return library.search_titles(q)


@app.get("/api/books/availability/stream")
async def stream_availability(request: Request,
                              max_events: Optional[int] = Query(None, ge=1),
                              caller: Caller = Depends(get_caller),
                              library: Library = Depends(get_library)):
    """Server-sent events, one per change of a title's availability.

    The stream ends after ``max_events`` events when given, otherwise when
    the client goes away.
    """
    subscription = library.notifier.subscribe()

    async def events():
        sent = 0
        try:
            while max_events is None or sent < max_events:
                if await request.is_disconnected():
                    break
                event = subscription.get(timeout=0)
                if event is None:
                    await asyncio.sleep(STREAM_POLL_SECONDS)
                    continue
                yield f"event: availability\ndata: {json.dumps(event.to_dict())}\n\n"
                sent += 1
        finally:
            subscription.close()

    return StreamingResponse(events(), media_type="text/event-stream")


@app.get("/api/books/{title_id}", response_model=TitleModel)
def get_book(title_id: str, caller: Caller = Depends(get_caller), library: Library = Depends(get_library)):
    return library.get_title(title_id)


@app.post("/api/books", response_model=TitleModel, status_code=201)
def add_book(payload: TitleCreateModel,
             caller: Caller = Depends(require_roles(Role.LIBRARIAN)),
             library: Library = Depends(get_library)):
    return library.add_title(**payload.model_dump())


@app.put("/api/books/{title_id}", response_model=TitleModel)
def update_book(title_id: str, payload: TitleUpdateModel,
                caller: Caller = Depends(require_roles(Role.LIBRARIAN)),
                library: Library = Depends(get_library)):
    return library.update_title(title_id, **payload.model_dump(exclude_none=True))


@app.delete("/api/books/{title_id}", response_model=TitleModel)
def delete_book_copy(title_id: str,
                     caller: Caller = Depends(require_roles(Role.LIBRARIAN)),
                     library: Library = Depends(get_library)):
    return library.withdraw_copy(title_id)


# --- Users ---
@app.post("/api/users/register", response_model=ReaderModel, status_code=201)
def register_user(payload: ReaderCreateModel, library: Library = Depends(get_library)):
    return library.register_reader(payload.full_name, payload.email, payload.role)


@app.get("/api/users", response_model=List[ReaderModel])
def list_users(caller: Caller = Depends(require_roles(Role.LIBRARIAN, Role.PATRON)),
               library: Library = Depends(get_library)):
    return library.list_readers()


@app.get("/api/users/{reader_id}/stats", response_model=ReaderStatsModel)
def get_user_statistics(reader_id: str,
                        caller: Caller = Depends(require_roles(Role.LIBRARIAN, Role.PATRON)),
                        library: Library = Depends(get_library)):
    return library.reader_statistics(reader_id)
