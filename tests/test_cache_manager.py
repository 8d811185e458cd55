import pytest

from book import Book
from cache_manager import BOOK_LIST_KEY, CacheManager
from database import StorageError


def test_book_round_trip_and_stats(fake_redis):
    cache = CacheManager(fake_redis)
    assert cache.get_book(1) is None

    cache.set_book(Book("Dune", "Herbert", id=1))

    assert cache.get_book(1) == Book("Dune", "Herbert", id=1)
    stats = cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_ratio"] == 0.5


def test_list_entry(fake_redis):
    cache = CacheManager(fake_redis)
    assert cache.get_list() is None

    books = [Book("Dune", "Herbert", id=1), Book("Emma", "Austen", id=2)]
    cache.set_list(books)
    assert cache.get_list() == books

    cache.invalidate_list()
    assert BOOK_LIST_KEY not in fake_redis.data


def test_empty_list_is_a_hit(fake_redis):
    cache = CacheManager(fake_redis)
    cache.set_list([])
    assert cache.get_list() == []


def test_corrupt_entries_raise_storage_error(fake_redis):
    cache = CacheManager(fake_redis)
    fake_redis.data["book:1"] = "{broken"
    fake_redis.data[BOOK_LIST_KEY] = '[{"id": 1}]'

    with pytest.raises(StorageError):
        cache.get_book(1)
    with pytest.raises(StorageError):
        cache.get_list()


def test_clear_only_touches_book_keys(fake_redis):
    cache = CacheManager(fake_redis)
    cache.set_book(Book("Dune", "Herbert", id=1))
    cache.set_list([])
    fake_redis.data["session:abc"] = "keep"

    assert cache.clear() == 2
    assert fake_redis.data == {"session:abc": "keep"}


def test_write_failure_raises(fake_redis):
    fake_redis.fail_on.add("set")
    with pytest.raises(StorageError, match="Failed to write book to cache"):
        CacheManager(fake_redis).set_book(Book("Dune", "Herbert", id=1))
