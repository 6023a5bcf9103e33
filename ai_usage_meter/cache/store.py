"""
Key-value cache backed by Redis.

Values are JSON encoded on the way in and decoded on the way out.
"""

import json
from typing import Any, List, Optional

import redis

from ..jobs.connection import parse_redis_url


def create_redis_client(url: str) -> redis.Redis:
    """Build a Redis client from a ``redis://`` connection URL."""
    options = parse_redis_url(url)
    return redis.Redis(
        host=options.host,
        port=options.port,
        db=options.db,
        username=options.username,
        password=options.password,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )


class Cache:
    """Thin JSON cache over an injected Redis client."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def get(self, key: str) -> Optional[Any]:
        """Get a value, or None on a miss.

        Values that are not valid JSON are returned as stored.
        """
        value = self.client.get(key)
        if not value:
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set a value with an optional expiry in seconds."""
        string_value = value if isinstance(value, str) else json.dumps(value)
        if ttl:
            self.client.setex(key, ttl, string_value)
        else:
            self.client.set(key, string_value)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def delete_pattern(self, pattern: str) -> None:
        """Delete every key matching a glob-style pattern."""
        keys = list(self.client.scan_iter(match=pattern))
        if keys:
            self.client.delete(*keys)

    def exists(self, key: str) -> bool:
        return self.client.exists(key) == 1

    def incr(self, key: str) -> int:
        return int(self.client.incr(key))

    def push_capped(self, key: str, value: str, max_length: int) -> None:
        """Prepend a value to a list, keeping only the newest ``max_length`` items."""
        self.client.lpush(key, value)
        self.client.ltrim(key, 0, max_length - 1)

    def list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        """Items of a list from ``start`` to ``end`` inclusive."""
        return list(self.client.lrange(key, start, end))

    def close(self) -> None:
        self.client.close()
