"""
Repository layer - Data access abstractions.

Both backends implement the interfaces in ``interfaces``; ``build_repositories``
picks one based on the configured storage backend.
"""

from typing import Optional

import redis.asyncio as redis
from sqlalchemy.orm import Session

from .interfaces import (
    ISessionRepository,
    ITokenRepository,
    IUserRepository,
    Repositories,
)
from .redis_repository import (
    RedisSessionRepository,
    RedisTokenRepository,
    RedisUserRepository,
)
from .sql_repository import SqlSessionRepository, SqlTokenRepository, SqlUserRepository


def build_sql_repositories(db: Session) -> Repositories:
    return Repositories(
        users=SqlUserRepository(db),
        sessions=SqlSessionRepository(db),
        tokens=SqlTokenRepository(db),
    )


def build_redis_repositories(redis_client: redis.Redis) -> Repositories:
    return Repositories(
        users=RedisUserRepository(redis_client),
        sessions=RedisSessionRepository(redis_client),
        tokens=RedisTokenRepository(redis_client),
    )


def build_repositories(
    use_redis: bool,
    db: Optional[Session] = None,
    redis_client: Optional[redis.Redis] = None,
) -> Repositories:
    """Build the repositories for the selected backend."""
    if use_redis:
        if redis_client is None:
            raise ValueError("A Redis client is required for the redis storage backend")
        return build_redis_repositories(redis_client)
    if db is None:
        raise ValueError("A database session is required for the sql storage backend")
    return build_sql_repositories(db)


__all__ = [
    "IUserRepository",
    "ISessionRepository",
    "ITokenRepository",
    "Repositories",
    "build_repositories",
    "build_sql_repositories",
    "build_redis_repositories",
]
