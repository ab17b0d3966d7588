"""
Security utilities for authentication.

Provides password hashing, configured-credential checks, session id
generation and the PKCE helpers used by the session import flow.
"""

import base64
import hashlib
import json
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Dict, Optional

import bcrypt

from .config import settings
from .domain.entities import utcnow
from .logging_config import get_logger

logger = get_logger(__name__)

PKCE_CHARSET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"


# ==================== PASSWORD HASHING ====================


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    salt = bcrypt.gensalt(rounds=settings.PASSWORD_HASH_ROUNDS)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: Plain text password to verify
        hashed_password: Stored hash to verify against

    Returns:
        True if password matches, False otherwise
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.error(f"Password verification failed: {e}")
        return False


# ==================== CONFIGURED CREDENTIALS ====================


def parse_user_credentials(raw: Optional[str] = None) -> Dict[str, str]:
    """
    Parse the USER_CREDENTIALS setting.

    Two formats are accepted:
        ``admin:admin123,alice:secret`` (passwords may contain colons)
        ``[{"username": "admin", "password": "admin123"}]``

    Args:
        raw: Setting value, defaults to ``settings.USER_CREDENTIALS``

    Returns:
        Mapping of username to password
    """
    raw = (settings.USER_CREDENTIALS if raw is None else raw).strip()
    credentials: Dict[str, str] = {}
    if not raw:
        return credentials

    if raw.startswith("["):
        try:
            entries = json.loads(raw)
        except ValueError:
            logger.error("USER_CREDENTIALS is not valid JSON")
            return credentials
        for entry in entries:
            if isinstance(entry, dict) and entry.get("username") and entry.get("password"):
                credentials[str(entry["username"])] = str(entry["password"])
        return credentials

    for pair in raw.split(","):
        username, sep, password = pair.strip().partition(":")
        if sep and username and password:
            credentials[username] = password
    return credentials


def check_credentials(username: str, password: str) -> bool:
    """Check a username/password pair against the configured credentials."""
    expected = parse_user_credentials().get(username)
    if expected is None:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), password.encode("utf-8"))


# ==================== SESSIONS ====================


def generate_session_id() -> str:
    """Generate an opaque session id (UUID4)."""
    return str(uuid.uuid4())


def get_session_expiry(now: Optional[datetime] = None) -> datetime:
    """Expiry timestamp for a session created at ``now``."""
    return (now or utcnow()) + timedelta(hours=settings.SESSION_EXPIRY_HOURS)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    Returns:
        The token, or None if the header is missing or uses another scheme
    """
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


# ==================== OAUTH PKCE ====================


def generate_random_string(length: int) -> str:
    """Random string drawn from the PKCE unreserved character set."""
    return "".join(secrets.choice(PKCE_CHARSET) for _ in range(length))


def generate_code_challenge(verifier: str) -> str:
    """S256 code challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
