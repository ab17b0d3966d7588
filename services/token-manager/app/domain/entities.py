"""
Domain entities for users, login sessions and access tokens.

These entities are framework-agnostic and contain only business rules:
ownership checks, session expiry and the JSON-encoded status fields stored
alongside each token.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the format every backend stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """Render a naive UTC datetime as an ISO-8601 string with a Z suffix."""
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (with or without Z) into a naive UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class UserRole(str, Enum):
    """Roles a user can hold."""

    ADMIN = "ADMIN"
    USER = "USER"


class BanState(str, Enum):
    """Token status values stored in ``ban_status``."""

    NORMAL = "NORMAL"
    SUSPENDED = "SUSPENDED"


@dataclass
class User:
    """An operator account allowed to manage tokens."""

    id: str
    username: str
    password_hash: str
    role: UserRole = UserRole.USER
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_public_dict(self) -> Dict[str, Any]:
        """User fields safe to return to clients."""
        return {"id": self.id, "username": self.username, "role": self.role.value}


@dataclass
class LoginSession:
    """
    A server-side login session.

    The ``session_id`` is the opaque bearer token handed to the client.
    """

    session_id: str
    user_id: str
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at < (now or utcnow())

    def seconds_remaining(self, now: Optional[datetime] = None) -> int:
        return max(0, int((self.expires_at - (now or utcnow())).total_seconds()))


@dataclass
class ShareInfo:
    """Recharge card details returned by the public pool."""

    recharge_card: str
    deactivation_code: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: Optional[str]) -> Optional["ShareInfo"]:
        """Parse stored share info; malformed or empty values yield None."""
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict) or not data.get("recharge_card"):
            return None
        return cls(
            recharge_card=data["recharge_card"],
            deactivation_code=data.get("deactivation_code"),
        )


def build_ban_status(state: BanState, reason: str) -> str:
    """Serialize a ban status record."""
    return json.dumps(
        {"status": state.value, "reason": reason, "updated_at": isoformat(utcnow())}
    )


@dataclass
class Token:
    """An Augment access-token record."""

    id: str
    access_token: str
    created_by: str
    tenant_url: str = ""
    portal_url: Optional[str] = None
    email_note: Optional[str] = None
    ban_status: Optional[str] = None
    portal_info: Optional[str] = None
    share_info: Optional[str] = None
    is_shared: bool = False
    auth_session: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_owned_by(self, user: User) -> bool:
        return self.created_by == user.id

    def can_be_accessed_by(self, user: User) -> bool:
        return user.is_admin or self.is_owned_by(user)

    @property
    def ban_state(self) -> str:
        """
        Status recorded in ``ban_status``.

        Records whose status cannot be parsed are treated as NORMAL.
        """
        if not self.ban_status:
            return BanState.NORMAL.value
        try:
            data = json.loads(self.ban_status)
        except (TypeError, ValueError):
            return BanState.NORMAL.value
        if not isinstance(data, dict):
            return BanState.NORMAL.value
        return str(data.get("status", BanState.NORMAL.value))

    @property
    def is_normal(self) -> bool:
        return self.ban_state == BanState.NORMAL.value

    def get_share_info(self) -> Optional[ShareInfo]:
        return ShareInfo.from_json(self.share_info)

    def matches(self, search: str) -> bool:
        """Case-insensitive substring match on the searchable fields."""
        needle = search.lower()
        return any(
            needle in (value or "").lower()
            for value in (self.email_note, self.tenant_url, self.portal_url)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the token for API responses and key-value storage."""
        return {
            "id": self.id,
            "tenant_url": self.tenant_url,
            "access_token": self.access_token,
            "portal_url": self.portal_url,
            "email_note": self.email_note,
            "ban_status": self.ban_status,
            "portal_info": self.portal_info,
            "share_info": self.share_info,
            "is_shared": self.is_shared,
            "auth_session": self.auth_session,
            "created_by": self.created_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            id=data["id"],
            access_token=data["access_token"],
            created_by=data["created_by"],
            tenant_url=data.get("tenant_url") or "",
            portal_url=data.get("portal_url"),
            email_note=data.get("email_note"),
            ban_status=data.get("ban_status"),
            portal_info=data.get("portal_info"),
            share_info=data.get("share_info"),
            is_shared=bool(data.get("is_shared", False)),
            auth_session=data.get("auth_session"),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
            updated_at=parse_datetime(data.get("updated_at")) or utcnow(),
        )
