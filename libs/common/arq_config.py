"""ARQ (Async Redis Queue) configuration for the communications worker."""

from urllib.parse import urlparse

from arq.connections import RedisSettings
from libs.common.config import get_settings


def get_redis_settings() -> RedisSettings:
    """
    Build ARQ ``RedisSettings`` from ``REDIS_URL``.

    ``rediss://`` enables TLS; the path selects the database number.
    """
    parsed = urlparse(get_settings().REDIS_URL)
    db_part = parsed.path.lstrip("/")

    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        database=int(db_part) if db_part.isdigit() else 0,
        username=parsed.username or None,
        password=parsed.password,
        ssl=parsed.scheme == "rediss",
        conn_timeout=5,
    )
