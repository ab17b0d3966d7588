"""
Tests for domain entities.

Covers ownership rules, session expiry, status parsing and serialization.
"""

import json
from datetime import datetime, timedelta

from app.domain.entities import (
    BanState,
    LoginSession,
    ShareInfo,
    Token,
    User,
    UserRole,
    build_ban_status,
    isoformat,
    parse_datetime,
)


def make_user(user_id="u1", role=UserRole.USER):
    return User(id=user_id, username=user_id, password_hash="x", role=role)


def make_token(**overrides):
    data = {"id": "t1", "access_token": "secret", "created_by": "u1"}
    data.update(overrides)
    return Token(**data)


class TestDatetimeHelpers:
    """Test ISO-8601 helpers."""

    def test_isoformat_uses_milliseconds_and_z(self):
        assert isoformat(datetime(2024, 5, 1, 8, 30, 0, 123456)) == "2024-05-01T08:30:00.123Z"

    def test_isoformat_none(self):
        assert isoformat(None) is None

    def test_parse_datetime_with_z(self):
        assert parse_datetime("2024-05-01T08:30:00.123Z") == datetime(2024, 5, 1, 8, 30, 0, 123000)

    def test_parse_datetime_converts_offsets_to_utc(self):
        assert parse_datetime("2024-05-01T10:30:00+02:00") == datetime(2024, 5, 1, 8, 30)

    def test_parse_datetime_empty(self):
        assert parse_datetime(None) is None
        assert parse_datetime("") is None


class TestUser:
    """Test User entity."""

    def test_is_admin(self):
        assert make_user(role=UserRole.ADMIN).is_admin is True
        assert make_user().is_admin is False

    def test_public_dict_hides_password(self):
        assert make_user().to_public_dict() == {"id": "u1", "username": "u1", "role": "USER"}


class TestLoginSession:
    """Test session expiry."""

    def test_is_expired(self):
        now = datetime(2024, 1, 1, 12, 0)
        session = LoginSession(session_id="s", user_id="u", expires_at=now + timedelta(hours=1))
        assert session.is_expired(now) is False
        assert session.is_expired(now + timedelta(hours=2)) is True

    def test_seconds_remaining_never_negative(self):
        now = datetime(2024, 1, 1, 12, 0)
        session = LoginSession(session_id="s", user_id="u", expires_at=now + timedelta(seconds=90))
        assert session.seconds_remaining(now) == 90
        assert session.seconds_remaining(now + timedelta(hours=1)) == 0


class TestToken:
    """Test Token entity."""

    def test_access_rules(self):
        token = make_token()
        assert token.can_be_accessed_by(make_user("u1")) is True
        assert token.can_be_accessed_by(make_user("u2")) is False
        assert token.can_be_accessed_by(make_user("u2", UserRole.ADMIN)) is True

    def test_ban_state_parsing(self):
        assert make_token().ban_state == "NORMAL"
        assert make_token(ban_status="not json").ban_state == "NORMAL"
        assert make_token(ban_status="[1, 2]").ban_state == "NORMAL"
        suspended = make_token(ban_status=build_ban_status(BanState.SUSPENDED, "rejected"))
        assert suspended.ban_state == "SUSPENDED"
        assert suspended.is_normal is False

    def test_build_ban_status(self):
        data = json.loads(build_ban_status(BanState.NORMAL, "Initial state"))
        assert data["status"] == "NORMAL"
        assert data["reason"] == "Initial state"
        assert data["updated_at"].endswith("Z")

    def test_share_info(self):
        assert make_token().get_share_info() is None
        assert make_token(share_info="{broken").get_share_info() is None
        assert make_token(share_info='{"deactivation_code": "d"}').get_share_info() is None

        info = make_token(
            share_info=ShareInfo(recharge_card="CARD", deactivation_code="DEACT").to_json()
        ).get_share_info()
        assert info == ShareInfo(recharge_card="CARD", deactivation_code="DEACT")

    def test_matches_is_case_insensitive(self):
        token = make_token(
            email_note="Alice@Example.com",
            tenant_url="https://d5.api.augmentcode.com/",
            portal_url=None,
        )
        assert token.matches("alice") is True
        assert token.matches("D5.API") is True
        assert token.matches("bob") is False

    def test_dict_round_trip(self):
        token = make_token(
            tenant_url="https://t/",
            email_note="note",
            is_shared=True,
            created_at=datetime(2024, 1, 1, 0, 0, 0),
            updated_at=datetime(2024, 1, 2, 0, 0, 0),
        )
        data = token.to_dict()
        assert data["created_at"] == "2024-01-01T00:00:00.000Z"
        assert Token.from_dict(data) == token

    def test_from_dict_defaults(self):
        token = Token.from_dict({"id": "t", "access_token": "a", "created_by": "u"})
        assert token.tenant_url == ""
        assert token.is_shared is False
        assert token.created_at is not None
