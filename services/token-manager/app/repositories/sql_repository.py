"""
SQL implementation of the repositories.

Persists users, sessions and tokens through SQLAlchemy ORM models.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..domain.entities import LoginSession, Token, User, UserRole
from ..logging_config import get_logger
from ..models import SessionModel, TokenModel, UserModel
from .interfaces import ISessionRepository, ITokenRepository, IUserRepository

logger = get_logger(__name__)

TOKEN_FIELDS = (
    "tenant_url",
    "access_token",
    "portal_url",
    "email_note",
    "ban_status",
    "portal_info",
    "share_info",
    "is_shared",
    "auth_session",
    "created_by",
    "created_at",
    "updated_at",
)


class SqlUserRepository(IUserRepository):
    """SQLAlchemy implementation for operator accounts."""

    def __init__(self, db: Session):
        self.db = db

    async def get_by_id(self, user_id: str) -> Optional[User]:
        row = self.db.get(UserModel, user_id)
        return self._map_to_entity(row) if row else None

    async def get_by_username(self, username: str) -> Optional[User]:
        row = self.db.query(UserModel).filter(UserModel.username == username).first()
        return self._map_to_entity(row) if row else None

    async def create(self, user: User) -> User:
        row = UserModel(
            id=user.id,
            username=user.username,
            password_hash=user.password_hash,
            role=user.role.value,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return self._map_to_entity(row)

    async def update(self, user: User) -> User:
        row = self.db.get(UserModel, user.id)
        if row is None:
            raise LookupError(f"User {user.id} does not exist")
        row.password_hash = user.password_hash
        row.role = user.role.value
        row.is_active = user.is_active
        self.db.commit()
        self.db.refresh(row)
        return self._map_to_entity(row)

    @staticmethod
    def _map_to_entity(row: UserModel) -> User:
        return User(
            id=row.id,
            username=row.username,
            password_hash=row.password_hash,
            role=UserRole(row.role),
            is_active=bool(row.is_active),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class SqlSessionRepository(ISessionRepository):
    """SQLAlchemy implementation for login sessions."""

    def __init__(self, db: Session):
        self.db = db

    async def get(self, session_id: str) -> Optional[LoginSession]:
        row = self.db.query(SessionModel).filter(SessionModel.session_id == session_id).first()
        if row is None:
            return None
        return LoginSession(
            session_id=row.session_id,
            user_id=row.user_id,
            expires_at=row.expires_at,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            created_at=row.created_at,
        )

    async def create(self, session: LoginSession) -> LoginSession:
        self.db.add(
            SessionModel(
                session_id=session.session_id,
                user_id=session.user_id,
                expires_at=session.expires_at,
                ip_address=session.ip_address,
                user_agent=session.user_agent,
                created_at=session.created_at,
            )
        )
        self.db.commit()
        return session

    async def delete(self, session_id: str) -> bool:
        deleted = (
            self.db.query(SessionModel)
            .filter(SessionModel.session_id == session_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted > 0

    async def delete_expired(self, before: datetime) -> int:
        deleted = (
            self.db.query(SessionModel)
            .filter(SessionModel.expires_at < before)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info(f"Deleted {deleted} expired sessions")
        return deleted


class SqlTokenRepository(ITokenRepository):
    """SQLAlchemy implementation for access-token records."""

    def __init__(self, db: Session):
        self.db = db

    async def get(self, token_id: str) -> Optional[Token]:
        row = self.db.get(TokenModel, token_id)
        return self._map_to_entity(row) if row else None

    async def create(self, token: Token) -> Token:
        row = TokenModel(id=token.id, **{name: getattr(token, name) for name in TOKEN_FIELDS})
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return self._map_to_entity(row)

    async def update(self, token: Token) -> Token:
        row = self.db.get(TokenModel, token.id)
        if row is None:
            raise LookupError(f"Token {token.id} does not exist")
        for name in TOKEN_FIELDS:
            setattr(row, name, getattr(token, name))
        self.db.commit()
        self.db.refresh(row)
        return self._map_to_entity(row)

    async def delete(self, token_id: str) -> bool:
        deleted = (
            self.db.query(TokenModel)
            .filter(TokenModel.id == token_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted > 0

    async def find(
        self,
        owner_id: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Token], int]:
        query = self.db.query(TokenModel)

        if owner_id:
            query = query.filter(TokenModel.created_by == owner_id)

        if search:
            needle = search.lower()
            query = query.filter(
                or_(
                    func.lower(TokenModel.email_note).contains(needle, autoescape=True),
                    func.lower(TokenModel.tenant_url).contains(needle, autoescape=True),
                    func.lower(TokenModel.portal_url).contains(needle, autoescape=True),
                )
            )

        total = query.count()
        query = query.order_by(TokenModel.created_at.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        return [self._map_to_entity(row) for row in query.all()], total

    @staticmethod
    def _map_to_entity(row: TokenModel) -> Token:
        return Token(id=row.id, **{name: getattr(row, name) for name in TOKEN_FIELDS})
