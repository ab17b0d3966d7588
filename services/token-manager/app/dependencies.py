"""
Dependency functions for the token manager.

Wires repositories, partner clients and services into request handlers and
resolves the bearer session to the current user.
"""

from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .domain.entities import LoginSession, User
from .infrastructure.augment_client import AugmentClient
from .infrastructure.portal_client import PortalClient
from .infrastructure.share_pool_client import SharePoolClient
from .repositories import Repositories, build_repositories
from .security import extract_bearer_token
from .services.auth_service import AuthService
from .services.credit_service import AppSessionCache, CreditService
from .services.session_import import SessionImportService
from .services.share_service import ShareService
from .services.token_service import TokenService

_redis_client: Optional[redis.Redis] = None
_augment_client: Optional[AugmentClient] = None
_portal_client: Optional[PortalClient] = None
_share_pool_client: Optional[SharePoolClient] = None
_app_session_cache: Optional[AppSessionCache] = None


# ==================== INFRASTRUCTURE ====================


def get_redis_client() -> redis.Redis:
    """Shared Redis client; responses are decoded to str."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


def get_repositories(db: Session = Depends(get_db)) -> Repositories:
    """Repositories for the configured storage backend."""
    if settings.uses_redis_storage:
        return build_repositories(True, redis_client=get_redis_client())
    return build_repositories(False, db=db)


def get_augment_client() -> AugmentClient:
    global _augment_client
    if _augment_client is None:
        _augment_client = AugmentClient()
    return _augment_client


def get_portal_client() -> PortalClient:
    global _portal_client
    if _portal_client is None:
        _portal_client = PortalClient()
    return _portal_client


def get_share_pool_client() -> SharePoolClient:
    global _share_pool_client
    if _share_pool_client is None:
        _share_pool_client = SharePoolClient()
    return _share_pool_client


def get_app_session_cache() -> AppSessionCache:
    """App session cache, kept in Redis when Redis is the storage backend."""
    global _app_session_cache
    if _app_session_cache is None:
        redis_client = get_redis_client() if settings.uses_redis_storage else None
        _app_session_cache = AppSessionCache(redis_client=redis_client)
    return _app_session_cache


async def close_clients() -> None:
    """Release pooled connections held by the shared clients."""
    global _redis_client
    for client in (_augment_client, _portal_client, _share_pool_client):
        if client is not None:
            await client.close()
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


# ==================== SERVICES ====================


def get_auth_service(repos: Repositories = Depends(get_repositories)) -> AuthService:
    return AuthService(repos.users, repos.sessions)


def get_token_service(
    repos: Repositories = Depends(get_repositories),
    augment_client: AugmentClient = Depends(get_augment_client),
    portal_client: PortalClient = Depends(get_portal_client),
) -> TokenService:
    return TokenService(repos.tokens, augment_client, portal_client)


def get_share_service(
    repos: Repositories = Depends(get_repositories),
    pool_client: SharePoolClient = Depends(get_share_pool_client),
) -> ShareService:
    return ShareService(repos.tokens, pool_client)


def get_credit_service(
    augment_client: AugmentClient = Depends(get_augment_client),
    cache: AppSessionCache = Depends(get_app_session_cache),
) -> CreditService:
    return CreditService(augment_client, cache)


def get_session_import_service(
    augment_client: AugmentClient = Depends(get_augment_client),
    token_service: TokenService = Depends(get_token_service),
    credit_service: CreditService = Depends(get_credit_service),
) -> SessionImportService:
    return SessionImportService(augment_client, token_service, credit_service)


# ==================== AUTHENTICATION ====================


@dataclass
class AuthContext:
    """The authenticated user and the session they used."""

    user: User
    session: LoginSession


async def get_auth_context(
    authorization: Optional[str] = Header(None),
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthContext:
    """
    Resolve ``Authorization: Bearer <sessionId>`` to the current user.

    Raises:
        AuthenticationError: If the session is missing, unknown or expired
        ForbiddenError: If the user is inactive
    """
    user, session = await auth_service.authenticate(extract_bearer_token(authorization))
    return AuthContext(user=user, session=session)


async def get_current_user(context: AuthContext = Depends(get_auth_context)) -> User:
    return context.user
