"""
Authentication service.

Logs operators in against the configured credentials, issues server-side
sessions and resolves bearer tokens back to users.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Tuple

from ..domain.entities import LoginSession, User, UserRole, utcnow
from ..exceptions import AuthenticationError, BadRequestError, ForbiddenError
from ..logging_config import get_logger
from ..metrics import track_login
from ..repositories.interfaces import ISessionRepository, IUserRepository
from ..security import (
    check_credentials,
    generate_session_id,
    get_session_expiry,
    hash_password,
    verify_password,
)

logger = get_logger(__name__)

ADMIN_USERNAME = "admin"


@dataclass
class LoginResult:
    """A freshly issued session and the user it belongs to."""

    user: User
    session: LoginSession


class AuthService:
    """
    Session-based authentication.

    Attributes:
        users: User repository
        sessions: Session repository
    """

    def __init__(self, users: IUserRepository, sessions: ISessionRepository) -> None:
        self.users = users
        self.sessions = sessions

    async def login(
        self,
        username: Optional[str],
        password: Optional[str],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        """
        Authenticate against USER_CREDENTIALS and open a session.

        The user record is created on first login; ``admin`` gets the ADMIN
        role, everyone else USER.

        Raises:
            BadRequestError: If username or password is missing
            AuthenticationError: If the credentials are not configured
            ForbiddenError: If the user account is inactive
        """
        if not username or not password:
            raise BadRequestError("Username and password are required")

        if not check_credentials(username, password):
            track_login(False)
            logger.warning(
                "Login rejected",
                extra={"extra_fields": {"username": username, "ip_address": ip_address}},
            )
            raise AuthenticationError("Invalid credentials")

        user = await self._find_or_create_user(username, password)
        if not user.is_active:
            track_login(False)
            raise ForbiddenError("User account is inactive")

        session = await self.sessions.create(
            LoginSession(
                session_id=generate_session_id(),
                user_id=user.id,
                expires_at=get_session_expiry(),
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        track_login(True)
        logger.info(
            "User logged in",
            extra={"extra_fields": {"user_id": user.id, "username": user.username}},
        )
        return LoginResult(user=user, session=session)

    async def _find_or_create_user(self, username: str, password: str) -> User:
        user = await self.users.get_by_username(username)
        if user is None:
            role = UserRole.ADMIN if username == ADMIN_USERNAME else UserRole.USER
            now = utcnow()
            user = await self.users.create(
                User(
                    id=str(uuid.uuid4()),
                    username=username,
                    password_hash=hash_password(password),
                    role=role,
                    created_at=now,
                    updated_at=now,
                )
            )
            logger.info(f"Created user {username} with role {role.value}")
        elif not verify_password(password, user.password_hash):
            # Configured password changed since the record was created
            user.password_hash = hash_password(password)
            user = await self.users.update(user)
        return user

    async def logout(self, session_id: str) -> None:
        await self.sessions.delete(session_id)
        logger.info("Session closed", extra={"extra_fields": {"session": session_id[:8]}})

    async def authenticate(self, session_id: Optional[str]) -> Tuple[User, LoginSession]:
        """
        Resolve a bearer session id to its user.

        Expired sessions are deleted on sight.

        Raises:
            AuthenticationError: If the session is missing, unknown or expired
            ForbiddenError: If the user is inactive
        """
        if not session_id:
            raise AuthenticationError("Authentication required")

        session = await self.sessions.get(session_id)
        if session is None:
            raise AuthenticationError("Invalid session token")

        if session.is_expired():
            await self.sessions.delete(session_id)
            raise AuthenticationError("Session expired")

        user = await self.users.get_by_id(session.user_id)
        if user is None:
            await self.sessions.delete(session_id)
            raise AuthenticationError("Invalid session token")
        if not user.is_active:
            raise ForbiddenError("User account is inactive")

        return user, session
