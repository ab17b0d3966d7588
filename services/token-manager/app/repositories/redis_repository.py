"""
Redis implementation of the repositories.

Stores every record as a JSON document under a prefixed key, the same
layout the Workers KV deployment used:

    user:<username>      operator account
    user_id:<id>         username lookup for an account id
    session:<sessionId>  login session, expiring with the session
    token:<id>           access-token record
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis

from ..domain.entities import (
    LoginSession,
    Token,
    User,
    UserRole,
    isoformat,
    parse_datetime,
    utcnow,
)
from ..logging_config import get_logger
from .interfaces import ISessionRepository, ITokenRepository, IUserRepository

logger = get_logger(__name__)

USER_PREFIX = "user:"
USER_ID_PREFIX = "user_id:"
SESSION_PREFIX = "session:"
TOKEN_PREFIX = "token:"


class RedisUserRepository(IUserRepository):
    """Redis implementation for operator accounts."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def get_by_id(self, user_id: str) -> Optional[User]:
        username = await self.redis.get(f"{USER_ID_PREFIX}{user_id}")
        if not username:
            return None
        return await self.get_by_username(username)

    async def get_by_username(self, username: str) -> Optional[User]:
        raw = await self.redis.get(f"{USER_PREFIX}{username}")
        return self._deserialize(raw) if raw else None

    async def create(self, user: User) -> User:
        await self.redis.set(f"{USER_PREFIX}{user.username}", json.dumps(self._serialize(user)))
        await self.redis.set(f"{USER_ID_PREFIX}{user.id}", user.username)
        return user

    async def update(self, user: User) -> User:
        user.updated_at = utcnow()
        await self.redis.set(f"{USER_PREFIX}{user.username}", json.dumps(self._serialize(user)))
        return user

    @staticmethod
    def _serialize(user: User) -> Dict[str, Any]:
        return {
            "id": user.id,
            "username": user.username,
            "password_hash": user.password_hash,
            "role": user.role.value,
            "is_active": user.is_active,
            "created_at": isoformat(user.created_at),
            "updated_at": isoformat(user.updated_at),
        }

    @staticmethod
    def _deserialize(raw: str) -> User:
        data = json.loads(raw)
        return User(
            id=data["id"],
            username=data["username"],
            password_hash=data["password_hash"],
            role=UserRole(data.get("role", UserRole.USER.value)),
            is_active=bool(data.get("is_active", True)),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
            updated_at=parse_datetime(data.get("updated_at")) or utcnow(),
        )


class RedisSessionRepository(ISessionRepository):
    """
    Redis implementation for login sessions.

    Keys carry a TTL matching the session expiry, so Redis removes expired
    sessions on its own.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def get(self, session_id: str) -> Optional[LoginSession]:
        raw = await self.redis.get(f"{SESSION_PREFIX}{session_id}")
        if not raw:
            return None
        data = json.loads(raw)
        return LoginSession(
            session_id=data["session_id"],
            user_id=data["user_id"],
            expires_at=parse_datetime(data["expires_at"]),
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
        )

    async def create(self, session: LoginSession) -> LoginSession:
        payload = {
            "session_id": session.session_id,
            "user_id": session.user_id,
            "expires_at": isoformat(session.expires_at),
            "ip_address": session.ip_address,
            "user_agent": session.user_agent,
            "created_at": isoformat(session.created_at),
        }
        ttl = max(1, session.seconds_remaining())
        await self.redis.setex(f"{SESSION_PREFIX}{session.session_id}", ttl, json.dumps(payload))
        return session

    async def delete(self, session_id: str) -> bool:
        return bool(await self.redis.delete(f"{SESSION_PREFIX}{session_id}"))

    async def delete_expired(self, before: datetime) -> int:
        """Redis handles expiration via TTL; nothing to do."""
        return 0


class RedisTokenRepository(ITokenRepository):
    """Redis implementation for access-token records."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def get(self, token_id: str) -> Optional[Token]:
        raw = await self.redis.get(f"{TOKEN_PREFIX}{token_id}")
        return Token.from_dict(json.loads(raw)) if raw else None

    async def create(self, token: Token) -> Token:
        await self.redis.set(f"{TOKEN_PREFIX}{token.id}", json.dumps(token.to_dict()))
        return token

    async def update(self, token: Token) -> Token:
        token.updated_at = utcnow()
        await self.redis.set(f"{TOKEN_PREFIX}{token.id}", json.dumps(token.to_dict()))
        return token

    async def delete(self, token_id: str) -> bool:
        return bool(await self.redis.delete(f"{TOKEN_PREFIX}{token_id}"))

    async def find(
        self,
        owner_id: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Token], int]:
        tokens = await self._load_all()

        if owner_id:
            tokens = [token for token in tokens if token.created_by == owner_id]
        if search:
            tokens = [token for token in tokens if token.matches(search)]

        tokens.sort(key=lambda token: token.created_at, reverse=True)
        total = len(tokens)
        end = None if limit is None else offset + limit
        return tokens[offset:end], total

    async def _load_all(self) -> List[Token]:
        keys = [key async for key in self.redis.scan_iter(match=f"{TOKEN_PREFIX}*", count=1000)]
        if not keys:
            return []

        tokens = []
        for raw in await self.redis.mget(keys):
            if not raw:
                continue
            try:
                tokens.append(Token.from_dict(json.loads(raw)))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed token record: {e}")
        return tokens
