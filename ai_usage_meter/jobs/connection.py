"""
Redis connection settings shared by the cache, queues and workers.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

DEFAULT_REDIS_PORT = 6379


@dataclass(frozen=True)
class RedisConnectionOptions:
    """Connection parameters parsed from a Redis URL."""
    host: str
    port: int = DEFAULT_REDIS_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    db: int = 0

    def to_url(self) -> str:
        """Rebuild a ``redis://`` URL from the options."""
        auth = ""
        if self.username or self.password:
            auth = quote(self.username or "", safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


def parse_redis_url(url: str) -> RedisConnectionOptions:
    """Parse ``redis://[user[:pass]@]host[:port][/db]`` into connection options.

    Args:
        url: Redis connection URL

    Returns:
        RedisConnectionOptions with port 6379 and db 0 when omitted

    Raises:
        ValueError: If the URL is not a redis:// or rediss:// URL
    """
    parsed = urlsplit(url)
    if parsed.scheme not in ("redis", "rediss"):
        raise ValueError(f"Unsupported Redis URL scheme: {parsed.scheme!r}")
    if not parsed.hostname:
        raise ValueError(f"Redis URL has no host: {url}")

    db = 0
    path = parsed.path.lstrip("/")
    if path:
        try:
            db = int(path)
        except ValueError:
            raise ValueError(f"Invalid Redis database index in URL: {path}")

    return RedisConnectionOptions(
        host=parsed.hostname,
        port=parsed.port or DEFAULT_REDIS_PORT,
        username=unquote(parsed.username) if parsed.username else None,
        password=unquote(parsed.password) if parsed.password else None,
        db=db
    )
