import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from book import Book
from config import settings
from library import (
    BookNotFoundError,
    InvalidBookIdError,
    Library,
    StorageError,
    build_library,
)

logger = logging.getLogger(__name__)


# --- Models ---
class BookPayload(BaseModel):
    """Request body for create/update. Any ``id`` in the body is ignored."""
    title: str
    author: str


class BookModel(BaseModel):
    id: Union[int, str]
    title: str
    author: str


class MessageModel(BaseModel):
    message: str


class HealthModel(BaseModel):
    status: str
    timestamp: str
    backend: str
    total_books: int
    cache: Optional[dict] = None


# --- Dependencies ---
def get_library(request: Request) -> Library:
    return request.app.state.library


# --- Error handlers ---
def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def book_not_found_handler(request: Request, exc: BookNotFoundError):
    return _error(404, "Book not found")


async def invalid_id_handler(request: Request, exc: InvalidBookIdError):
    return _error(400, "Invalid book id")


async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return _error(500, str(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return _error(400, "; ".join(problems) or "Invalid request body")


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# --- Routes ---
router = APIRouter()


@router.get("/books", response_model=List[BookModel])
def list_books(library: Library = Depends(get_library)):
    """Get every book in backend order."""
    return [BookModel(**b.to_dict()) for b in library.list_books()]


@router.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, library: Library = Depends(get_library)):
    """Get a single book by id."""
    return BookModel(**library.find_book(book_id).to_dict())


@router.post("/books", response_model=BookModel, status_code=201)
def create_book(payload: BookPayload, library: Library = Depends(get_library)):
    """Create a book; the backend assigns its id."""
    book = library.add_book(Book(title=payload.title, author=payload.author))
    return BookModel(**book.to_dict())


@router.put("/books/{book_id}", response_model=BookModel)
def update_book(book_id: str, payload: BookPayload, library: Library = Depends(get_library)):
    """Replace title and author of an existing book."""
    book = library.update_book(book_id, Book(title=payload.title, author=payload.author))
    return BookModel(**book.to_dict())


@router.delete("/books/{book_id}", response_model=MessageModel)
def delete_book(book_id: str, library: Library = Depends(get_library)):
    """Delete a book by id."""
    library.remove_book(book_id)
    return MessageModel(message="Book deleted")


@router.get("/health", response_model=HealthModel)
def health(library: Library = Depends(get_library)):
    stats = library.get_statistics()
    return HealthModel(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        backend=stats["backend"],
        total_books=stats["total_books"],
        cache=stats["cache"],
    )


# --- Maintenance routes, one router per persistent backend ---
mongodb_router = APIRouter()
redis_router = APIRouter()


@mongodb_router.delete("/clear-mongodb", response_model=MessageModel)
def clear_mongodb(library: Library = Depends(get_library)):
    """Remove every book from the MongoDB collection and its cache."""
    library.clear()
    return MessageModel(message="MongoDB storage cleared")


@redis_router.delete("/clear-redis", response_model=MessageModel)
def clear_redis(library: Library = Depends(get_library)):
    """Flush the Redis database."""
    library.clear()
    return MessageModel(message="Redis storage cleared")


CLEAR_ROUTERS = {
    "mongodb": mongodb_router,
    "redis": redis_router,
}


def create_app(library: Optional[Library] = None) -> FastAPI:
    """Build the API around ``library`` (or one built from settings)."""
    if library is None:
        library = build_library(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.library.close()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.library = library

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BookNotFoundError, book_not_found_handler)
    app.add_exception_handler(InvalidBookIdError, invalid_id_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    app.include_router(router)
    if library.backend in CLEAR_ROUTERS:
        app.include_router(CLEAR_ROUTERS[library.backend])

    logger.info(f"{settings.app_name} ready with {library.backend} backend")
    return app


app = create_app()
