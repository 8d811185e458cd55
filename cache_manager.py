"""
Redis cache that sits in front of the document store (cache-aside).

Per-book entries live at ``book:<id>`` and the full list at ``books:all``.
Values are JSON and never expire; they stay until a write replaces or drops
them, or the cache is cleared. Client failures are raised as StorageError so
the caller can report them instead of serving stale data.
"""

import json
import logging
import threading
from typing import Any, Dict, List, Optional

import redis

from book import Book, BookId, InvalidBookError
from database import BOOK_KEY_PREFIX, StorageError, book_key

logger = logging.getLogger(__name__)

BOOK_LIST_KEY = "books:all"


class CacheManager:
    """Cache for single books and the full book list."""

    def __init__(self, client: redis.Redis):
        self.redis_client = client
        self._stats_lock = threading.Lock()
        self.cache_stats = {
            'hits': 0,
            'misses': 0,
        }

    def _record(self, hit: bool) -> None:
        with self._stats_lock:
            self.cache_stats['hits' if hit else 'misses'] += 1

    # ------------------------- Single books ------------------------- #
    def get_book(self, book_id: BookId) -> Optional[Book]:
        """Return the cached book, or None on a miss."""
        key = book_key(book_id)
        try:
            data = self.redis_client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Redis get error for {key}: {e}")
            raise StorageError("Failed to read book from cache") from e

        if data is None:
            self._record(False)
            logger.debug(f"Cache miss: {key}")
            return None

        self._record(True)
        logger.debug(f"Cache hit: {key}")
        try:
            return Book.from_json(data)
        except InvalidBookError as e:
            raise StorageError("Failed to unmarshal cached book") from e

    def set_book(self, book: Book) -> None:
        key = book_key(book.id)
        try:
            self.redis_client.set(key, book.to_json())
        except redis.RedisError as e:
            logger.warning(f"Redis set error for {key}: {e}")
            raise StorageError("Failed to write book to cache") from e

    def delete_book(self, book_id: BookId) -> None:
        key = book_key(book_id)
        try:
            self.redis_client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Redis delete error for {key}: {e}")
            raise StorageError("Failed to delete book from cache") from e

    # ------------------------- Book list ------------------------- #
    def get_list(self) -> Optional[List[Book]]:
        """Return the cached book list, or None on a miss."""
        try:
            data = self.redis_client.get(BOOK_LIST_KEY)
        except redis.RedisError as e:
            logger.warning(f"Redis get error for {BOOK_LIST_KEY}: {e}")
            raise StorageError("Failed to read book list from cache") from e

        if data is None:
            self._record(False)
            logger.debug(f"Cache miss: {BOOK_LIST_KEY}")
            return None

        self._record(True)
        logger.debug(f"Cache hit: {BOOK_LIST_KEY}")
        try:
            items = json.loads(data)
            return [Book.from_dict(item) for item in items]
        except (ValueError, TypeError) as e:
            # InvalidBookError is a ValueError
            raise StorageError("Failed to unmarshal cached book list") from e

    def set_list(self, books: List[Book]) -> None:
        payload = json.dumps([b.to_dict() for b in books], ensure_ascii=False)
        try:
            self.redis_client.set(BOOK_LIST_KEY, payload)
        except redis.RedisError as e:
            logger.warning(f"Redis set error for {BOOK_LIST_KEY}: {e}")
            raise StorageError("Failed to write book list to cache") from e

    def invalidate_list(self) -> None:
        try:
            self.redis_client.delete(BOOK_LIST_KEY)
        except redis.RedisError as e:
            logger.warning(f"Redis delete error for {BOOK_LIST_KEY}: {e}")
            raise StorageError("Failed to invalidate cached book list") from e

    # ------------------------- Maintenance ------------------------- #
    def clear(self) -> int:
        """Drop every book entry and the list entry. Returns the number of keys removed."""
        try:
            keys = self.redis_client.keys(f"{BOOK_KEY_PREFIX}*")
            keys.append(BOOK_LIST_KEY)
            count = self.redis_client.delete(*keys)
        except redis.RedisError as e:
            logger.warning(f"Redis clear error: {e}")
            raise StorageError("Failed to clear Redis cache") from e
        logger.info(f"Cache cleared ({count} keys)")
        return count

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._stats_lock:
            stats = self.cache_stats.copy()

        if stats['hits'] + stats['misses'] > 0:
            stats['hit_ratio'] = stats['hits'] / (stats['hits'] + stats['misses'])
        else:
            stats['hit_ratio'] = 0.0

        return stats

    def close(self) -> None:
        self.redis_client.close()
