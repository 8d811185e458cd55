"""Storage backends for the book collection.

Every store exposes the same contract so the Library (and the API on top of it)
does not care which one is active:

    parse_id(raw) -> id
    create(book)  -> book with id
    get(id)       -> book            (BookNotFoundError)
    list()        -> [book, ...]
    update(id, b) -> book            (BookNotFoundError)
    delete(id)    -> None            (BookNotFoundError)
    clear()       -> None
"""
import logging
import re
import threading
from typing import Any, List, Optional

import redis
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from book import Book, BookId, InvalidBookError
from config import Settings

logger = logging.getLogger(__name__)

BOOK_KEY_PREFIX = "book:"
NEXT_BOOK_ID_KEY = "next_book_id"
_INT_ID_RE = re.compile(r"[+-]?[0-9]+")


class StorageError(Exception):
    """Raised when the storage or cache client fails."""


class BookNotFoundError(LookupError):
    """Raised when no book exists for the given id."""

    def __init__(self, book_id: Any = None) -> None:
        super().__init__("Book not found")
        self.book_id = book_id


class InvalidBookIdError(ValueError):
    """Raised when a path identifier cannot be parsed for the active store."""

    def __init__(self, raw: Any = None) -> None:
        super().__init__("Invalid book id")
        self.raw = raw


def book_key(book_id: BookId) -> str:
    return f"{BOOK_KEY_PREFIX}{book_id}"


def _parse_int_id(raw: Any) -> int:
    if isinstance(raw, bool):
        raise InvalidBookIdError(raw)
    if isinstance(raw, int):
        return raw
    text = str(raw).strip()
    if not _INT_ID_RE.fullmatch(text):
        raise InvalidBookIdError(raw)
    return int(text, 10)


class BookStore:
    """Base class for the storage backends."""

    name = "base"

    def parse_id(self, raw: Any) -> BookId:
        raise NotImplementedError

    def create(self, book: Book) -> Book:
        raise NotImplementedError

    def get(self, book_id: BookId) -> Book:
        raise NotImplementedError

    def list(self) -> List[Book]:
        raise NotImplementedError

    def update(self, book_id: BookId, book: Book) -> Book:
        raise NotImplementedError

    def delete(self, book_id: BookId) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return None


# ------------------------- In-memory ------------------------- #
class MemoryBookStore(BookStore):
    """Ephemeral store kept in an insertion-ordered list.

    A single lock serialises every read-modify-write so concurrent requests
    never hand out the same id or mutate the list mid-iteration.
    """

    name = "memory"

    def __init__(self) -> None:
        self._books: List[Book] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def parse_id(self, raw: Any) -> int:
        return _parse_int_id(raw)

    def create(self, book: Book) -> Book:
        with self._lock:
            stored = Book(title=book.title, author=book.author, id=self._next_id)
            self._next_id += 1
            self._books.append(stored)
            return self._copy(stored)

    def get(self, book_id: BookId) -> Book:
        with self._lock:
            return self._copy(self._find(book_id))

    def list(self) -> List[Book]:
        with self._lock:
            return [self._copy(b) for b in self._books]

    def update(self, book_id: BookId, book: Book) -> Book:
        with self._lock:
            stored = self._find(book_id)
            stored.title = book.title
            stored.author = book.author
            return self._copy(stored)

    def delete(self, book_id: BookId) -> None:
        with self._lock:
            stored = self._find(book_id)
            self._books.remove(stored)

    def clear(self) -> None:
        with self._lock:
            self._books.clear()

    def _find(self, book_id: BookId) -> Book:
        for book in self._books:
            if book.id == book_id:
                return book
        raise BookNotFoundError(book_id)

    @staticmethod
    def _copy(book: Book) -> Book:
        return Book(title=book.title, author=book.author, id=book.id)


# ------------------------- MongoDB ------------------------- #
class MongoBookStore(BookStore):
    """Durable store backed by a MongoDB collection; ids are ObjectId hex strings."""

    name = "mongodb"

    def __init__(self, collection: Collection, client: Optional[MongoClient] = None) -> None:
        self.collection = collection
        self._client = client

    def parse_id(self, raw: Any) -> str:
        if isinstance(raw, ObjectId):
            return str(raw)
        try:
            return str(ObjectId(str(raw)))
        except (InvalidId, TypeError) as exc:
            raise InvalidBookIdError(raw) from exc

    def create(self, book: Book) -> Book:
        document = {"title": book.title, "author": book.author}
        try:
            result = self.collection.insert_one(document)
        except PyMongoError as exc:
            logger.warning(f"MongoDB insert failed: {exc}")
            raise StorageError("Failed to save book to MongoDB") from exc
        return Book(title=book.title, author=book.author, id=str(result.inserted_id))

    def get(self, book_id: BookId) -> Book:
        try:
            document = self.collection.find_one({"_id": ObjectId(book_id)})
        except PyMongoError as exc:
            logger.warning(f"MongoDB find_one failed: {exc}")
            raise StorageError("Failed to get book from MongoDB") from exc
        if document is None:
            raise BookNotFoundError(book_id)
        return self._to_book(document)

    def list(self) -> List[Book]:
        try:
            documents = list(self.collection.find())
        except PyMongoError as exc:
            logger.warning(f"MongoDB find failed: {exc}")
            raise StorageError("Failed to get books from MongoDB") from exc
        return [self._to_book(doc) for doc in documents]

    def update(self, book_id: BookId, book: Book) -> Book:
        # No upsert: a missing document is reported instead of silently created.
        try:
            result = self.collection.update_one(
                {"_id": ObjectId(book_id)},
                {"$set": {"title": book.title, "author": book.author}},
            )
        except PyMongoError as exc:
            logger.warning(f"MongoDB update failed: {exc}")
            raise StorageError("Failed to update book in MongoDB") from exc
        if result.matched_count == 0:
            raise BookNotFoundError(book_id)
        return Book(title=book.title, author=book.author, id=str(book_id))

    def delete(self, book_id: BookId) -> None:
        try:
            result = self.collection.delete_one({"_id": ObjectId(book_id)})
        except PyMongoError as exc:
            logger.warning(f"MongoDB delete failed: {exc}")
            raise StorageError("Failed to delete book from MongoDB") from exc
        if result.deleted_count == 0:
            raise BookNotFoundError(book_id)

    def clear(self) -> None:
        try:
            result = self.collection.delete_many({})
        except PyMongoError as exc:
            logger.warning(f"MongoDB clear failed: {exc}")
            raise StorageError("Failed to clear MongoDB collection") from exc
        logger.info(f"MongoDB collection cleared ({result.deleted_count} documents)")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    @staticmethod
    def _to_book(document: dict) -> Book:
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        try:
            return Book.from_dict(data)
        except InvalidBookError as exc:
            raise StorageError("Failed to decode book document") from exc


# ------------------------- Redis ------------------------- #
class RedisBookStore(BookStore):
    """Redis as the system of record.

    Each book is a hash at ``book:<id>`` whose ``data`` field holds the JSON
    book. Ids come from an atomic INCR on ``next_book_id``. List order follows
    the numeric id since key scans come back in hash order.
    """

    name = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    def parse_id(self, raw: Any) -> int:
        return _parse_int_id(raw)

    def create(self, book: Book) -> Book:
        try:
            new_id = int(self.client.incr(NEXT_BOOK_ID_KEY))
        except redis.RedisError as exc:
            logger.warning(f"Redis INCR failed: {exc}")
            raise StorageError("Failed to generate book ID") from exc
        stored = Book(title=book.title, author=book.author, id=new_id)
        self._write(stored, "Failed to save book to Redis")
        return stored

    def get(self, book_id: BookId) -> Book:
        raw = self._read(book_key(book_id), "Failed to get book data from Redis")
        if raw is None:
            raise BookNotFoundError(book_id)
        return self._decode(raw)

    def list(self) -> List[Book]:
        try:
            keys = self.client.keys(f"{BOOK_KEY_PREFIX}*")
        except redis.RedisError as exc:
            logger.warning(f"Redis KEYS failed: {exc}")
            raise StorageError("Failed to get books from Redis") from exc

        books = []
        for key in keys:
            raw = self._read(key, "Failed to get book data from Redis")
            if raw is None:
                # Deleted between KEYS and HGET
                continue
            books.append(self._decode(raw))
        books.sort(key=lambda b: b.id)
        return books

    def update(self, book_id: BookId, book: Book) -> Book:
        key = book_key(book_id)
        try:
            exists = self.client.hexists(key, "data")
        except redis.RedisError as exc:
            logger.warning(f"Redis HEXISTS failed: {exc}")
            raise StorageError("Failed to get book data from Redis") from exc
        if not exists:
            raise BookNotFoundError(book_id)
        stored = Book(title=book.title, author=book.author, id=book_id)
        self._write(stored, "Failed to update book in Redis")
        return stored

    def delete(self, book_id: BookId) -> None:
        try:
            removed = self.client.delete(book_key(book_id))
        except redis.RedisError as exc:
            logger.warning(f"Redis DEL failed: {exc}")
            raise StorageError("Failed to delete book from Redis") from exc
        if not removed:
            raise BookNotFoundError(book_id)

    def clear(self) -> None:
        try:
            self.client.flushdb()
        except redis.RedisError as exc:
            logger.warning(f"Redis FLUSHDB failed: {exc}")
            raise StorageError("Failed to clear Redis storage") from exc
        logger.info("Redis storage cleared")

    def close(self) -> None:
        self.client.close()

    def _read(self, key: str, error_message: str) -> Optional[str]:
        try:
            return self.client.hget(key, "data")
        except redis.RedisError as exc:
            logger.warning(f"Redis HGET {key} failed: {exc}")
            raise StorageError(error_message) from exc

    def _write(self, book: Book, error_message: str) -> None:
        try:
            self.client.hset(book_key(book.id), "data", book.to_json())
        except redis.RedisError as exc:
            logger.warning(f"Redis HSET {book_key(book.id)} failed: {exc}")
            raise StorageError(error_message) from exc

    @staticmethod
    def _decode(raw: str) -> Book:
        try:
            book = Book.from_json(raw)
        except InvalidBookError as exc:
            raise StorageError("Failed to unmarshal book data") from exc
        if isinstance(book.id, bool) or not isinstance(book.id, int):
            raise StorageError("Failed to unmarshal book data")
        return book


# ------------------------- Connections ------------------------- #
def get_redis_client(settings: Settings) -> redis.Redis:
    """Build a Redis client from settings. The connection is opened lazily."""
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password,
        decode_responses=True,
    )


def get_mongo_client(settings: Settings) -> MongoClient:
    return MongoClient(settings.mongodb_url)


def get_mongo_collection(client: MongoClient, settings: Settings) -> Collection:
    return client[settings.mongodb_database][settings.mongodb_collection]
