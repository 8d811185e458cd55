import logging
from typing import Any, Dict, List, Optional

from book import Book, BookId
from cache_manager import CacheManager
from config import Settings
from database import (
    BookNotFoundError,
    BookStore,
    InvalidBookIdError,
    MemoryBookStore,
    MongoBookStore,
    RedisBookStore,
    StorageError,
    get_mongo_client,
    get_mongo_collection,
    get_redis_client,
)

logger = logging.getLogger(__name__)

WRITE_POLICIES = ("refresh", "invalidate")

__all__ = [
    "Book",
    "BookNotFoundError",
    "InvalidBookIdError",
    "Library",
    "StorageError",
    "build_library",
]


class Library:
    """Manages the book collection on top of one storage backend.

    When a cache is attached, reads go through it first and fill it on a miss
    (cache-aside). Writes hit the store first and then refresh or drop the
    cached entry, so a failed cache step after a successful store write leaves
    the cache stale until the next write to that id.
    """

    def __init__(self, store: BookStore, cache: Optional[CacheManager] = None,
                 write_policy: str = "refresh") -> None:
        if write_policy not in WRITE_POLICIES:
            raise ValueError(f"Unknown cache write policy: {write_policy!r}")
        self.store = store
        self.cache = cache
        self.write_policy = write_policy

    @property
    def backend(self) -> str:
        return self.store.name

    # ------------------------- Core operations ------------------------- #
    def list_books(self) -> List[Book]:
        if self.cache is not None:
            cached = self.cache.get_list()
            if cached is not None:
                return cached

        books = self.store.list()
        if self.cache is not None:
            self.cache.set_list(books)
        return books

    def find_book(self, raw_id: Any) -> Book:
        """Return the book for ``raw_id`` or raise BookNotFoundError."""
        book_id = self.store.parse_id(raw_id)
        if self.cache is not None:
            cached = self.cache.get_book(book_id)
            if cached is not None:
                return cached

        book = self.store.get(book_id)
        if self.cache is not None:
            self.cache.set_book(book)
        return book

    def add_book(self, book: Book) -> Book:
        """Persist a new book; the store assigns its id."""
        created = self.store.create(Book(title=book.title, author=book.author))
        logger.debug(f"Created book {created.id} in {self.backend}")
        self._sync_cache(created.id, created)
        return created

    def update_book(self, raw_id: Any, book: Book) -> Book:
        """Overwrite title and author of an existing book. The id always comes from ``raw_id``."""
        book_id = self.store.parse_id(raw_id)
        try:
            updated = self.store.update(book_id, Book(title=book.title, author=book.author, id=book_id))
        except BookNotFoundError:
            self._sync_cache(book_id, None)
            raise
        self._sync_cache(book_id, updated)
        return updated

    def remove_book(self, raw_id: Any) -> None:
        book_id = self.store.parse_id(raw_id)
        try:
            self.store.delete(book_id)
        except BookNotFoundError:
            # A cached copy may outlive an earlier delete whose cache step failed
            self._sync_cache(book_id, None)
            raise
        self._sync_cache(book_id, None)

    def clear(self) -> None:
        """Empty the active store and any cached entries."""
        self.store.clear()
        if self.cache is not None:
            self.cache.clear()
        logger.info(f"Cleared all books from {self.backend}")

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "total_books": len(self.store.list()),
            "cache": self.cache.get_stats() if self.cache is not None else None,
        }

    def close(self) -> None:
        self.store.close()
        if self.cache is not None:
            self.cache.close()

    # ------------------------- Cache helpers ------------------------- #
    def _sync_cache(self, book_id: BookId, book: Optional[Book]) -> None:
        """Bring the cache in line with the store after a write.

        ``book`` is None for deletions and for writes that found no book.
        """
        if self.cache is None:
            return
        try:
            self.cache.invalidate_list()
            if book is None or self.write_policy == "invalidate":
                self.cache.delete_book(book_id)
            else:
                self.cache.set_book(book)
        except StorageError:
            logger.warning(f"Cache update for book {book_id} failed after the store call; cached entry may be stale")
            raise


def build_library(settings: Settings) -> Library:
    """Create the Library for the backend named in ``settings.storage_backend``."""
    backend = settings.storage_backend
    if backend == "memory":
        logger.info("Using in-memory book store")
        return Library(MemoryBookStore())

    if backend == "redis":
        logger.info(f"Using Redis book store at {settings.redis_host}:{settings.redis_port}/{settings.redis_db}")
        return Library(RedisBookStore(get_redis_client(settings)))

    if backend == "mongodb":
        client = get_mongo_client(settings)
        store = MongoBookStore(get_mongo_collection(client, settings), client=client)
        cache = None
        if settings.cache_enabled:
            cache = CacheManager(get_redis_client(settings))
            logger.info(f"Redis cache enabled at {settings.redis_host}:{settings.redis_port} "
                        f"(write policy: {settings.cache_write_policy})")
        logger.info(f"Using MongoDB book store {settings.mongodb_database}.{settings.mongodb_collection}")
        return Library(store, cache=cache, write_policy=settings.cache_write_policy)

    raise ValueError(f"Unknown storage backend: {backend!r}")
