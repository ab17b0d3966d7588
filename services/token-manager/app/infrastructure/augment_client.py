"""
HTTP client for the Augment auth server, tenant API and account app.

Wraps the raw calls used by session import, token validation and credit
reporting. Response interpretation is left to the services; this module
only knows URLs, headers and cookies.
"""

import re
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..config import settings
from ..logging_config import get_logger, mask_secret
from .http_client import BROWSER_USER_AGENT, BaseHTTPClient, ExternalServiceError

logger = get_logger(__name__)

APP_SESSION_COOKIE_PATTERN = re.compile(r"_session=([^;]+)")


class AugmentClient(BaseHTTPClient):
    """
    Client for auth.augmentcode.com, tenant API hosts and app.augmentcode.com.

    Attributes:
        auth_base_url: OAuth server base URL
        app_base_url: Account web app base URL
        client_id: OAuth client id used for the PKCE flow
    """

    service_name = "augment"

    def __init__(
        self,
        auth_base_url: Optional[str] = None,
        app_base_url: Optional[str] = None,
        client_id: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, http_client=http_client)
        self.auth_base_url = (auth_base_url or settings.AUTH_BASE_URL).rstrip("/")
        self.app_base_url = (app_base_url or settings.APP_BASE_URL).rstrip("/")
        self.client_id = client_id or settings.OAUTH_CLIENT_ID

    # ==================== OAUTH ====================

    async def fetch_terms_page(
        self, session_cookie: str, code_challenge: str, state: str
    ) -> httpx.Response:
        """
        Load the terms-accept page with a browser session.

        When the session is valid the page embeds the authorization code,
        state and tenant URL in inline script.
        """
        client = await self._get_client()
        params = {
            "response_type": "code",
            "code_challenge": code_challenge,
            "client_id": self.client_id,
            "state": state,
            "prompt": "login",
        }
        headers = {
            "Cookie": f"session={session_cookie}",
            "User-Agent": BROWSER_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }

        start = time.perf_counter()
        response = await client.get(
            f"{self.auth_base_url}/terms-accept", params=params, headers=headers
        )
        logger.info(
            "Fetched terms page",
            extra={
                "extra_fields": {
                    "status_code": response.status_code,
                    "html_length": len(response.text),
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                }
            },
        )
        return response

    async def exchange_code(self, tenant_url: str, code: str, code_verifier: str) -> httpx.Response:
        """Exchange an authorization code for an access token at the tenant."""
        client = await self._get_client()
        payload = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "code_verifier": code_verifier,
            "redirect_uri": "",
            "code": code,
        }
        logger.info(f"Exchanging authorization code at {tenant_url}token")
        return await client.post(
            f"{tenant_url}token",
            json=payload,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    # ==================== TENANT API ====================

    async def check_access_token(self, tenant_url: str, access_token: str) -> int:
        """
        Probe the tenant API with an access token.

        Returns:
            HTTP status code of the probe
        """
        client = await self._get_client()
        url = f"{tenant_url.rstrip('/')}/find-missing"
        response = await client.post(
            url,
            json={},
            headers=self._get_request_headers(
                {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
            ),
        )
        logger.debug(
            "Tenant probe finished",
            extra={
                "extra_fields": {
                    "tenant_url": tenant_url,
                    "token": mask_secret(access_token),
                    "status_code": response.status_code,
                }
            },
        )
        return response.status_code

    # ==================== ACCOUNT APP ====================

    async def exchange_app_session(self, auth_session: str) -> Optional[str]:
        """
        Trade an auth-server session for an app session cookie.

        The app answers the landing page with a redirect that sets
        ``_session``; redirects are not followed so the cookie can be read.

        Returns:
            The ``_session`` cookie value, or None if the app did not set one
        """
        client = await self._get_client()
        response = await client.get(
            f"{self.app_base_url}/",
            headers={
                "Cookie": f"session={auth_session}",
                "User-Agent": BROWSER_USER_AGENT,
                "Accept": "text/html,application/xhtml+xml",
            },
            follow_redirects=False,
        )

        for header in response.headers.get_list("set-cookie"):
            match = APP_SESSION_COOKIE_PATTERN.search(header)
            if match:
                return match.group(1)

        logger.warning(
            "App session cookie missing from response",
            extra={"extra_fields": {"status_code": response.status_code}},
        )
        return None

    async def get_app_resource(self, path: str, cookie_header: str) -> httpx.Response:
        """GET an account app API path with the given Cookie header."""
        client = await self._get_client()
        return await client.get(
            f"{self.app_base_url}{path}",
            headers=self._get_request_headers(
                {"Cookie": cookie_header, "User-Agent": BROWSER_USER_AGENT}
            ),
        )

    async def get_credit_consumption(
        self, app_session: str, group_by: str, granularity: str
    ) -> Dict[str, Any]:
        """
        Fetch credit consumption for the current billing cycle.

        Args:
            app_session: ``_session`` cookie value for the account app
            group_by: NONE or MODEL_NAME
            granularity: DAY or TOTAL

        Raises:
            ExternalServiceError: If the app answers with an error status
        """
        response = await self.get_app_resource(
            "/api/credit-consumption"
            f"?groupBy={group_by}&granularity={granularity}"
            "&billingCycle=CURRENT_BILLING_CYCLE",
            f"_session={quote(app_session, safe='')}",
        )
        if response.status_code != 200:
            raise ExternalServiceError(
                f"Credit consumption request failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return self._json(response)
