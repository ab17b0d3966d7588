"""
Tests for security.py module.

Tests password hashing, configured credentials, session helpers and PKCE.
"""

import base64
import hashlib
from datetime import datetime, timedelta
from unittest.mock import patch

from app.security import (
    PKCE_CHARSET,
    check_credentials,
    extract_bearer_token,
    generate_code_challenge,
    generate_random_string,
    generate_session_id,
    get_session_expiry,
    hash_password,
    parse_user_credentials,
    verify_password,
)


class TestPasswordHashing:
    """Test password hashing and verification."""

    def test_hash_password_bcrypt_format(self):
        """Test that hash is in bcrypt format and not the password itself."""
        hashed = hash_password("mypassword")
        assert hashed.startswith("$2b$")
        assert hashed != "mypassword"

    def test_hash_password_different_salts(self):
        """Test that same password produces different hashes."""
        assert hash_password("mypassword") != hash_password("mypassword")

    def test_verify_password_correct(self):
        hashed = hash_password("TestPassword123!")
        assert verify_password("TestPassword123!", hashed) is True

    def test_verify_password_incorrect(self):
        hashed = hash_password("TestPassword123!")
        assert verify_password("WrongPassword", hashed) is False

    def test_verify_password_invalid_hash_format(self):
        """Test that a malformed hash is reported as a mismatch."""
        assert verify_password("password", "not-a-bcrypt-hash") is False


class TestUserCredentials:
    """Test parsing of the USER_CREDENTIALS setting."""

    def test_parse_comma_separated_pairs(self):
        assert parse_user_credentials("admin:admin123,alice:secret") == {
            "admin": "admin123",
            "alice": "secret",
        }

    def test_parse_password_with_colon(self):
        """Test that only the first colon separates username and password."""
        assert parse_user_credentials("admin:pa:ss") == {"admin": "pa:ss"}

    def test_parse_skips_malformed_pairs(self):
        assert parse_user_credentials("admin:x, broken ,:nouser,nopass:") == {"admin": "x"}

    def test_parse_json_list(self):
        raw = '[{"username": "admin", "password": "a"}, {"username": "bob"}]'
        assert parse_user_credentials(raw) == {"admin": "a"}

    def test_parse_invalid_json(self):
        assert parse_user_credentials("[not json") == {}

    def test_parse_empty(self):
        assert parse_user_credentials("") == {}

    def test_parse_defaults_to_settings(self):
        """Test that the configured credentials are used by default."""
        credentials = parse_user_credentials()
        assert credentials["admin"] == "admin123"
        assert credentials["alice"] == "alicepw"

    def test_check_credentials(self):
        assert check_credentials("admin", "admin123") is True
        assert check_credentials("admin", "wrong") is False
        assert check_credentials("mallory", "admin123") is False


class TestSessionHelpers:
    """Test session id and expiry helpers."""

    def test_generate_session_id_unique(self):
        ids = {generate_session_id() for _ in range(50)}
        assert len(ids) == 50

    def test_get_session_expiry_uses_configured_hours(self):
        now = datetime(2024, 1, 1, 12, 0, 0)
        with patch("app.security.settings") as mock_settings:
            mock_settings.SESSION_EXPIRY_HOURS = 24
            assert get_session_expiry(now) == now + timedelta(hours=24)

    def test_extract_bearer_token(self):
        assert extract_bearer_token("Bearer abc123") == "abc123"
        assert extract_bearer_token("bearer abc123") == "abc123"

    def test_extract_bearer_token_invalid(self):
        assert extract_bearer_token(None) is None
        assert extract_bearer_token("") is None
        assert extract_bearer_token("Basic abc123") is None
        assert extract_bearer_token("Bearer") is None
        assert extract_bearer_token("Bearer a b") is None


class TestPKCE:
    """Test PKCE verifier, state and challenge generation."""

    def test_random_string_length_and_charset(self):
        value = generate_random_string(42)
        assert len(value) == 42
        assert set(value) <= set(PKCE_CHARSET)

    def test_random_strings_differ(self):
        assert generate_random_string(32) != generate_random_string(32)

    def test_code_challenge_is_unpadded_base64url_sha256(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        expected = (
            base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
            .decode()
            .rstrip("=")
        )
        challenge = generate_code_challenge(verifier)
        assert challenge == expected
        assert challenge == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
        assert "=" not in challenge
