"""
Database models for the token manager.

This module defines SQLAlchemy ORM models for operator accounts, their login
sessions and the Augment access-token records they manage.
"""

import uuid
from typing import Any

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import declarative_base, relationship

from .domain.entities import utcnow

Base: Any = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class UserModel(Base):
    """
    Operator account.

    Attributes:
        id: UUID primary key
        username: Unique login name
        password_hash: bcrypt hash of the configured password
        role: ADMIN or USER
        is_active: Inactive users cannot log in or use existing sessions
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    username = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default="USER")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    sessions = relationship("SessionModel", back_populates="user", cascade="all, delete-orphan")
    tokens = relationship("TokenModel", back_populates="creator")

    def __repr__(self) -> str:
        return f"<UserModel(username={self.username}, role={self.role})>"


class SessionModel(Base):
    """
    Login session keyed by the opaque bearer token.

    Attributes:
        session_id: Bearer token issued at login
        expires_at: Naive UTC expiry timestamp
    """

    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=_new_id)
    session_id = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("UserModel", back_populates="sessions")


class TokenModel(Base):
    """
    Augment access-token record.

    ``ban_status``, ``portal_info`` and ``share_info`` hold JSON documents
    serialized as text.
    """

    __tablename__ = "tokens"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_url = Column(String(512), nullable=False, default="")
    access_token = Column(Text, nullable=False)
    portal_url = Column(String(1024), nullable=True)
    email_note = Column(String(512), nullable=True)
    ban_status = Column(Text, nullable=True)
    portal_info = Column(Text, nullable=True)
    share_info = Column(Text, nullable=True)
    is_shared = Column(Boolean, nullable=False, default=False)
    auth_session = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    creator = relationship("UserModel", back_populates="tokens")

    __table_args__ = (Index("idx_tokens_owner_created", "created_by", "created_at"),)

    def __repr__(self) -> str:
        return f"<TokenModel(id={self.id}, email_note={self.email_note})>"
