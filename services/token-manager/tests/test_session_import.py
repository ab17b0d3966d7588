"""
Tests for session import.

Covers terms-page scraping, the PKCE exchange, the metadata cookie
fallbacks and the import endpoints.
"""

import json

import httpx
import pytest

from app.exceptions import EXTRACTION_FAILED_MESSAGE, SessionImportError, SessionImportFailure
from app.security import generate_code_challenge
from app.services.credit_service import CreditService
from app.services.session_import import (
    SessionImportService,
    build_cookie_strategies,
    extract_oauth_params,
    looks_like_login_page,
    normalize_session_cookie,
)

TERMS_URL = "https://auth.test/terms-accept"
TENANT_URL = "https://d5.api.augmentcode.com/"
TOKEN_URL = "https://d5.api.augmentcode.com/token"
APP_ROOT = "https://app.test/"
USER_URL = "https://app.test/api/user"
SUBSCRIPTION_URL = "https://app.test/api/subscription"
PORTAL_BASE = "https://portal.test/api/v1"

TERMS_HTML = f"""
<html><script>
  window.__auth = {{
    code: "auth-code-123",
    state: "state-xyz",
    tenant_url: "{TENANT_URL}",
  }};
</script></html>
"""


@pytest.fixture
def oauth_upstream(upstream):
    """Auth server and tenant completing the OAuth flow."""
    upstream.add("GET", TERMS_URL, httpx.Response(200, text=TERMS_HTML))
    upstream.add("POST", TOKEN_URL, httpx.Response(200, json={"access_token": "minted-token"}))
    return upstream


@pytest.fixture
def account_upstream(oauth_upstream):
    """Account app accepting the raw app session cookie."""
    oauth_upstream.add(
        "GET",
        APP_ROOT,
        httpx.Response(302, headers={"set-cookie": "_session=app%2Bsess; Path=/; HttpOnly"}),
    )

    def user_handler(request):
        if request.headers.get("cookie") == "_session=app%2Bsess":
            return httpx.Response(200, json={"email": "owner@example.com"})
        return httpx.Response(401)

    oauth_upstream.add("GET", USER_URL, user_handler)
    oauth_upstream.add(
        "GET",
        SUBSCRIPTION_URL,
        httpx.Response(200, json={"portalUrl": "https://portal.withorb.com/view?token=p-1"}),
    )
    oauth_upstream.add(
        "GET",
        f"{PORTAL_BASE}/customer_from_link",
        httpx.Response(200, json={"customer": {"id": "cus_9", "ledger_pricing_units": []}}),
    )
    oauth_upstream.add(
        "GET",
        f"{PORTAL_BASE}/customers/cus_9/ledger_summary",
        httpx.Response(200, json={"credits_balance": "50", "credit_blocks": []}),
    )
    return oauth_upstream


class TestScraping:
    """Test the pure helpers."""

    def test_extract_oauth_params_primary_patterns(self):
        assert extract_oauth_params(TERMS_HTML) == {
            "code": "auth-code-123",
            "state": "state-xyz",
            "tenant_url": TENANT_URL,
        }

    def test_extract_oauth_params_fallback_patterns(self):
        html = '{"code": "c_1", "state": "s-2", "tenant_url": "https://t.example/"}'
        assert extract_oauth_params(html) == {
            "code": "c_1",
            "state": "s-2",
            "tenant_url": "https://t.example/",
        }

    def test_extract_oauth_params_missing(self):
        assert extract_oauth_params("<html></html>") == {
            "code": None,
            "state": None,
            "tenant_url": None,
        }

    def test_looks_like_login_page(self):
        assert looks_like_login_page("<h1>Sign In</h1>") is True
        assert looks_like_login_page("<h1>Terms</h1>") is False

    def test_normalize_session_cookie(self):
        assert normalize_session_cookie("  abc%3D%3D \n") == "abc=="
        assert normalize_session_cookie("plain") == "plain"
        assert normalize_session_cookie("abc%FFdef") == "abc%FFdef"
        assert normalize_session_cookie("%E2%82") == "%E2%82"

    def test_cookie_strategies_order(self):
        assert build_cookie_strategies("auth", "a+b") == [
            ("app_session_encoded", "_session=a%2Bb"),
            ("app_session_raw", "_session=a+b"),
            ("auth_session", "session=auth"),
        ]
        assert build_cookie_strategies("auth", None) == [("auth_session", "session=auth")]


class TestExtractToken:
    """Test the OAuth flow against a fake auth server."""

    @pytest.fixture
    def service(self, augment_client, app_session_cache):
        credit_service = CreditService(augment_client, app_session_cache)
        return SessionImportService(augment_client, token_service=None, credit_service=credit_service)

    @pytest.mark.asyncio
    async def test_extract_token_success(self, service, oauth_upstream):
        extracted = await service.extract_token("session%3Dvalue")

        assert extracted.access_token == "minted-token"
        assert extracted.tenant_url == TENANT_URL

        terms_request = oauth_upstream.requests_to(TERMS_URL)[0]
        assert terms_request.headers["cookie"] == "session=session=value"
        assert terms_request.url.params["response_type"] == "code"
        assert terms_request.url.params["client_id"] == "v"
        assert terms_request.url.params["prompt"] == "login"

        token_request = oauth_upstream.requests_to(TOKEN_URL)[0]
        body = json.loads(token_request.content)
        assert body["grant_type"] == "authorization_code"
        assert body["code"] == "auth-code-123"
        assert body["redirect_uri"] == ""
        # The challenge sent first must match the verifier sent later
        assert generate_code_challenge(body["code_verifier"]) == terms_request.url.params[
            "code_challenge"
        ]
        assert len(body["code_verifier"]) == 32
        assert len(terms_request.url.params["state"]) == 42

    @pytest.mark.asyncio
    async def test_terms_page_error(self, service, upstream):
        upstream.add("GET", TERMS_URL, httpx.Response(500, text="boom"))

        with pytest.raises(SessionImportError) as exc_info:
            await service.extract_token("s")

        assert exc_info.value.code == SessionImportFailure.TERMS_PAGE_ERROR
        assert exc_info.value.message == EXTRACTION_FAILED_MESSAGE

    @pytest.mark.asyncio
    async def test_login_page_means_invalid_session(self, service, upstream):
        upstream.add("GET", TERMS_URL, httpx.Response(200, text="<h1>Sign In</h1>"))

        with pytest.raises(SessionImportError) as exc_info:
            await service.extract_token("s")

        assert exc_info.value.code == SessionImportFailure.INVALID_SESSION

    @pytest.mark.asyncio
    async def test_params_not_found(self, service, upstream):
        upstream.add("GET", TERMS_URL, httpx.Response(200, text="<p>Terms</p>"))

        with pytest.raises(SessionImportError) as exc_info:
            await service.extract_token("s")

        assert exc_info.value.code == SessionImportFailure.PARAMS_NOT_FOUND

    @pytest.mark.asyncio
    async def test_exchange_failed(self, service, upstream):
        upstream.add("GET", TERMS_URL, httpx.Response(200, text=TERMS_HTML))
        upstream.add("POST", TOKEN_URL, httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(SessionImportError) as exc_info:
            await service.extract_token("s")

        assert exc_info.value.code == SessionImportFailure.TOKEN_EXCHANGE_FAILED

    @pytest.mark.asyncio
    async def test_no_access_token(self, service, upstream):
        upstream.add("GET", TERMS_URL, httpx.Response(200, text=TERMS_HTML))
        upstream.add("POST", TOKEN_URL, httpx.Response(200, json={"token_type": "Bearer"}))

        with pytest.raises(SessionImportError) as exc_info:
            await service.extract_token("s")

        assert exc_info.value.code == SessionImportFailure.NO_ACCESS_TOKEN
        assert exc_info.value.message == "Invalid session: access token not found"

    @pytest.mark.asyncio
    async def test_network_error(self, service, upstream):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        upstream.add("GET", TERMS_URL, fail)

        with pytest.raises(SessionImportError) as exc_info:
            await service.extract_token("s")

        assert exc_info.value.code == SessionImportFailure.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_metadata_falls_back_to_raw_cookie(self, service, account_upstream):
        metadata = await service.fetch_account_metadata("auth-session")

        assert metadata == {
            "email": "owner@example.com",
            "portal_url": "https://portal.withorb.com/view?token=p-1",
        }
        cookies = [r.headers["cookie"] for r in account_upstream.requests_to(USER_URL)]
        assert cookies == ["_session=app%252Bsess", "_session=app%2Bsess"]

    @pytest.mark.asyncio
    async def test_metadata_never_raises(self, service, upstream):
        """Test that a dead account app yields empty metadata."""
        metadata = await service.fetch_account_metadata("auth-session")

        assert metadata == {"email": None, "portal_url": None}
        # Only the auth session strategy remains without an app session
        cookies = [r.headers["cookie"] for r in upstream.requests_to(USER_URL)]
        assert cookies == ["session=auth-session"]


class TestImportEndpoints:
    """Test the session import endpoints."""

    def test_import_session(self, client, alice_headers, account_upstream):
        response = client.post(
            "/api/tokens/import-session",
            json={"session_token": "auth-session"},
            headers=alice_headers,
        )

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["message"] == "Token imported successfully from session"
        token = body["data"]
        assert token["access_token"] == "minted-token"
        assert token["tenant_url"] == TENANT_URL
        assert token["email_note"] == "owner@example.com"
        assert token["portal_url"] == "https://portal.withorb.com/view?token=p-1"
        assert token["auth_session"] == "auth-session"
        assert json.loads(token["portal_info"])["credits_balance"] == "50"

    def test_import_session_keeps_given_email_note(self, client, alice_headers, account_upstream):
        response = client.post(
            "/api/tokens/import-session",
            json={"session_token": "auth-session", "email_note": "my note"},
            headers=alice_headers,
        )
        assert response.json()["data"]["email_note"] == "my note"

    def test_import_session_without_metadata(self, client, alice_headers, oauth_upstream):
        response = client.post(
            "/api/tokens/import-session",
            json={"session_token": "auth-session"},
            headers=alice_headers,
        )

        assert response.status_code == 201
        token = response.json()["data"]
        assert token["email_note"] is None
        assert token["portal_url"] is None

    def test_import_session_survives_malformed_portal_response(
        self, client, alice_headers, account_upstream
    ):
        account_upstream.add(
            "GET",
            f"{PORTAL_BASE}/customer_from_link",
            httpx.Response(200, json={"customer": "cus_9"}),
        )

        response = client.post(
            "/api/tokens/import-session",
            json={"session_token": "auth-session"},
            headers=alice_headers,
        )

        assert response.status_code == 201, response.text
        token = response.json()["data"]
        assert token["portal_url"] == "https://portal.withorb.com/view?token=p-1"
        assert token["portal_info"] == "{}"

    def test_import_session_requires_token(self, client, alice_headers):
        response = client.post("/api/tokens/import-session", json={}, headers=alice_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Session token is required"

    def test_import_session_failure(self, client, alice_headers, upstream):
        upstream.add("GET", TERMS_URL, httpx.Response(200, text="<p>Sign in</p>"))

        response = client.post(
            "/api/tokens/import-session",
            json={"session_token": "expired"},
            headers=alice_headers,
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": EXTRACTION_FAILED_MESSAGE}

    def test_batch_import_sessions(self, client, alice_headers, upstream):
        def terms(request):
            cookie = request.headers["cookie"]
            if cookie == "session=good":
                return httpx.Response(200, text=TERMS_HTML)
            return httpx.Response(200, text="<p>Sign In</p>")

        upstream.add("GET", TERMS_URL, terms)
        upstream.add("POST", TOKEN_URL, httpx.Response(200, json={"access_token": "minted"}))

        response = client.post(
            "/api/tokens/batch-import-sessions",
            json={
                "sessions": [
                    {"session_token": "good", "email_note": "first"},
                    {"session_token": "bad-session-cookie", "email_note": "second"},
                    {"email_note": "third"},
                    "not-an-object",
                ]
            },
            headers=alice_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["imported"] == 1
        assert data["failed"] == 3
        assert data["success"][0]["email_note"] == "first"
        assert data["errors"][0] == {
            "index": 1,
            "session": {"email_note": "second", "session_token": "bad-sess..."},
            "error": "Failed to extract valid token from session",
        }
        assert data["errors"][1]["error"] == "Session token is required"
        assert data["errors"][2] == {
            "index": 3,
            "session": {"email_note": None, "session_token": ""},
            "error": "Session token is required",
        }

    @pytest.mark.parametrize(
        "payload, message",
        [
            ({}, "Sessions array is required"),
            ({"sessions": []}, "At least one session is required"),
            (
                {"sessions": [{"session_token": "s"}] * 51},
                "Maximum 50 sessions allowed per batch",
            ),
        ],
    )
    def test_batch_limits(self, client, alice_headers, payload, message):
        response = client.post(
            "/api/tokens/batch-import-sessions", json=payload, headers=alice_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == message
