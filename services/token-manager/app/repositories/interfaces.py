"""
Repository interfaces (Abstract Base Classes).

Define the contracts for user, session and token persistence independent of
the underlying store, so the relational and key-value backends are
interchangeable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from ..domain.entities import LoginSession, Token, User


class IUserRepository(ABC):
    """Abstract repository for operator accounts."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_by_username(self, username: str) -> Optional[User]:
        pass

    @abstractmethod
    async def create(self, user: User) -> User:
        pass

    @abstractmethod
    async def update(self, user: User) -> User:
        pass


class ISessionRepository(ABC):
    """Abstract repository for login sessions."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[LoginSession]:
        pass

    @abstractmethod
    async def create(self, session: LoginSession) -> LoginSession:
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if a session was removed
        """
        pass

    @abstractmethod
    async def delete_expired(self, before: datetime) -> int:
        """
        Delete sessions that expired before the given time.

        Returns:
            Number of deleted sessions
        """
        pass


class ITokenRepository(ABC):
    """Abstract repository for access-token records."""

    @abstractmethod
    async def get(self, token_id: str) -> Optional[Token]:
        pass

    @abstractmethod
    async def create(self, token: Token) -> Token:
        pass

    @abstractmethod
    async def update(self, token: Token) -> Token:
        pass

    @abstractmethod
    async def delete(self, token_id: str) -> bool:
        pass

    @abstractmethod
    async def find(
        self,
        owner_id: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Token], int]:
        """
        List tokens newest first.

        Args:
            owner_id: Restrict to tokens created by this user
            search: Case-insensitive substring over email_note, tenant_url, portal_url
            offset: Number of matching tokens to skip
            limit: Maximum number of tokens to return, None for all

        Returns:
            Tuple of (page of tokens, total number of matches)
        """
        pass


@dataclass
class Repositories:
    """The repositories a request works with, all from the same backend."""

    users: IUserRepository
    sessions: ISessionRepository
    tokens: ITokenRepository
