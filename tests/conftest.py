"""Shared test fixtures."""

import fnmatch
import os
import tempfile
import shutil

import pytest

from ai_usage_meter.cache.store import Cache
from ai_usage_meter.storage.repository import initialize_schema


class InMemoryRedis:
    """Dict-backed stand-in for the subset of the Redis client the cache uses."""

    def __init__(self):
        self.data = {}
        self.expiries = {}
        self.lists = {}
        self.closed = False

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        self.expiries.pop(key, None)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.expiries[key] = ttl

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.expiries.pop(key, None)
                removed += 1
        return removed

    def exists(self, key):
        return 1 if key in self.data else 0

    def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])

    def scan_iter(self, match=None):
        return [key for key in list(self.data) if match is None or fnmatch.fnmatch(key, match)]

    def llen(self, key):
        return len(self.lists.get(key, []))

    def lpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    def ltrim(self, key, start, end):
        items = self.lists.get(key, [])
        self.lists[key] = items[start:] if end == -1 else items[start:end + 1]

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    def close(self):
        self.closed = True


@pytest.fixture
def redis_client():
    return InMemoryRedis()


@pytest.fixture
def cache(redis_client):
    return Cache(redis_client)


@pytest.fixture
def db_path():
    """Temporary usage log database with the schema created."""
    temp_dir = tempfile.mkdtemp()
    path = os.path.join(temp_dir, "test.db")
    initialize_schema(path)
    yield path
    shutil.rmtree(temp_dir, ignore_errors=True)
