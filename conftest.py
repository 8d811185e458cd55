import fnmatch
from types import SimpleNamespace

import pytest
import redis
from bson import ObjectId
from fastapi.testclient import TestClient

from api import create_app
from cache_manager import CacheManager
from database import MemoryBookStore, MongoBookStore, RedisBookStore
from library import Library


class FakeRedis:
    """In-process stand-in for the handful of redis commands the app uses.

    Behaves like a client created with ``decode_responses=True``. Set
    ``fail_on`` to a command name to make that command raise ConnectionError.
    """

    def __init__(self):
        self.data = {}
        self.calls = []
        self.fail_on = set()

    def _call(self, name):
        self.calls.append(name)
        if name in self.fail_on:
            raise redis.exceptions.ConnectionError(f"{name} failed")

    def get(self, key):
        self._call("get")
        value = self.data.get(key)
        return value if isinstance(value, str) else None

    def set(self, key, value):
        self._call("set")
        self.data[key] = value
        return True

    def hget(self, key, field):
        self._call("hget")
        value = self.data.get(key)
        return value.get(field) if isinstance(value, dict) else None

    def hset(self, key, field, value):
        self._call("hset")
        self.data.setdefault(key, {})[field] = value
        return 1

    def hexists(self, key, field):
        self._call("hexists")
        value = self.data.get(key)
        return isinstance(value, dict) and field in value

    def incr(self, key):
        self._call("incr")
        self.data[key] = str(int(self.data.get(key, "0")) + 1)
        return int(self.data[key])

    def delete(self, *keys):
        self._call("delete")
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    def keys(self, pattern="*"):
        self._call("keys")
        return [key for key in self.data if fnmatch.fnmatchcase(key, pattern)]

    def flushdb(self):
        self._call("flushdb")
        self.data.clear()
        return True

    def close(self):
        pass


class FakeCollection:
    """Insertion-ordered stand-in for a pymongo Collection."""

    def __init__(self):
        self.documents = []
        self.calls = []

    @staticmethod
    def _matches(document, query):
        return all(document.get(k) == v for k, v in query.items())

    def insert_one(self, document):
        self.calls.append("insert_one")
        document.setdefault("_id", ObjectId())
        self.documents.append(dict(document))
        return SimpleNamespace(inserted_id=document["_id"])

    def find_one(self, query):
        self.calls.append("find_one")
        for document in self.documents:
            if self._matches(document, query):
                return dict(document)
        return None

    def find(self, query=None):
        self.calls.append("find")
        return [dict(d) for d in self.documents if self._matches(d, query or {})]

    def update_one(self, query, update):
        self.calls.append("update_one")
        for document in self.documents:
            if self._matches(document, query):
                document.update(update.get("$set", {}))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    def delete_one(self, query):
        self.calls.append("delete_one")
        for i, document in enumerate(self.documents):
            if self._matches(document, query):
                del self.documents[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    def delete_many(self, query):
        self.calls.append("delete_many")
        before = len(self.documents)
        self.documents = [d for d in self.documents if not self._matches(d, query)]
        return SimpleNamespace(deleted_count=before - len(self.documents))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_collection():
    return FakeCollection()


@pytest.fixture
def memory_library():
    return Library(MemoryBookStore())


@pytest.fixture
def redis_library(fake_redis):
    return Library(RedisBookStore(fake_redis))


@pytest.fixture
def mongo_library(fake_collection, fake_redis):
    return Library(MongoBookStore(fake_collection), cache=CacheManager(fake_redis))


@pytest.fixture(params=["memory", "redis", "mongo"])
def any_library(request):
    """The same Library contract over each backend variant."""
    return request.getfixturevalue(f"{request.param}_library")


@pytest.fixture
def client(memory_library):
    return TestClient(create_app(memory_library))
