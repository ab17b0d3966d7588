"""
Session import: mint an access-token record from a browser session cookie.

The flow drives the Augment OAuth web pages the way a browser would:

1. Load the terms-accept page with the session cookie and a PKCE challenge.
2. Scrape the authorization code, state and tenant URL from the page.
3. Exchange the code for an access token at the tenant.
4. Best effort: read the account email and portal link from the account
   app, trying several cookie formats.
5. Store the token, remembering the session for credit reporting.

Every failure in steps 1-3 raises ``SessionImportError`` with a code from
``SessionImportFailure``; step 4 never fails the import.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, unquote

import httpx

from ..domain.entities import Token
from ..exceptions import (
    BadRequestError,
    SessionImportError,
    SessionImportFailure,
    UpstreamError,
)
from ..logging_config import get_logger, mask_secret
from ..metrics import track_session_import
from ..infrastructure.augment_client import AugmentClient
from ..schemas import MAX_BATCH_SESSIONS, TokenCreate
from ..security import generate_code_challenge, generate_random_string
from .credit_service import CreditService
from .token_service import BatchImportResult, TokenService

logger = get_logger(__name__)

CODE_VERIFIER_LENGTH = 32
STATE_LENGTH = 42

# Primary pattern first, then a looser fallback
OAUTH_PARAM_PATTERNS: Dict[str, Tuple[re.Pattern, re.Pattern]] = {
    "code": (
        re.compile(r'code:\s*"([^"]+)"'),
        re.compile(r'code["\s:]+([a-zA-Z0-9_-]+)'),
    ),
    "state": (
        re.compile(r'state:\s*"([^"]+)"'),
        re.compile(r'state["\s:]+([a-zA-Z0-9_-]+)'),
    ),
    "tenant_url": (
        re.compile(r'tenant_url:\s*"([^"]+)"'),
        re.compile(r'tenant_url["\s:]+(https?://[^"\'\s]+)'),
    ),
}

LOGIN_PAGE_MARKERS = ("login", "sign in", "Sign In")


@dataclass
class ExtractedToken:
    """What the OAuth flow and metadata lookup produced."""

    access_token: str
    tenant_url: str
    portal_url: Optional[str] = None
    email: Optional[str] = None


def normalize_session_cookie(raw: str) -> str:
    """Trim the cookie and undo URL encoding if present."""
    cookie = raw.strip()
    try:
        decoded = unquote(cookie, errors="strict")
    except UnicodeDecodeError:
        logger.debug("Session cookie has a malformed escape, using it as given")
        return cookie
    if decoded != cookie:
        logger.debug("Session cookie was URL encoded, using decoded value")
    return decoded


def extract_oauth_params(html: str) -> Dict[str, Optional[str]]:
    """
    Scrape ``code``, ``state`` and ``tenant_url`` from the terms page.

    Returns:
        Mapping of parameter name to value, None where nothing matched
    """
    params: Dict[str, Optional[str]] = {}
    for name, (primary, fallback) in OAUTH_PARAM_PATTERNS.items():
        match = primary.search(html) or fallback.search(html)
        params[name] = match.group(1) if match else None
    return params


def looks_like_login_page(html: str) -> bool:
    return any(marker in html for marker in LOGIN_PAGE_MARKERS)


def build_cookie_strategies(auth_session: str, app_session: Optional[str]) -> List[Tuple[str, str]]:
    """
    Cookie headers to try against the account app, in order.

    Returns:
        List of (strategy name, Cookie header value)
    """
    strategies = []
    if app_session:
        strategies.append(("app_session_encoded", f"_session={quote(app_session, safe='')}"))
        strategies.append(("app_session_raw", f"_session={app_session}"))
    strategies.append(("auth_session", f"session={auth_session}"))
    return strategies


class SessionImportService:
    """
    Converts browser session cookies into stored token records.

    Attributes:
        augment_client: Client for the auth server, tenants and account app
        token_service: Used to persist and refresh the resulting tokens
        credit_service: Provides cached app sessions for metadata lookups
    """

    def __init__(
        self,
        augment_client: AugmentClient,
        token_service: TokenService,
        credit_service: CreditService,
    ) -> None:
        self.augment_client = augment_client
        self.token_service = token_service
        self.credit_service = credit_service

    async def extract_token(self, session_token: str) -> ExtractedToken:
        """
        Run the OAuth flow for a session cookie.

        Raises:
            SessionImportError: If any step of the flow fails
        """
        session_cookie = normalize_session_cookie(session_token)
        code_verifier = generate_random_string(CODE_VERIFIER_LENGTH)
        code_challenge = generate_code_challenge(code_verifier)
        state = generate_random_string(STATE_LENGTH)

        logger.info(
            "Starting session import",
            extra={"extra_fields": {"session_length": len(session_cookie)}},
        )

        try:
            terms_response = await self.augment_client.fetch_terms_page(
                session_cookie, code_challenge, state
            )
            if not terms_response.is_success:
                logger.error(
                    "Terms page request failed",
                    extra={
                        "extra_fields": {
                            "status_code": terms_response.status_code,
                            "body": terms_response.text[:500],
                        }
                    },
                )
                raise SessionImportError(SessionImportFailure.TERMS_PAGE_ERROR)

            html = terms_response.text
            params = extract_oauth_params(html)
            if not all(params.values()):
                missing = [name for name, value in params.items() if not value]
                if looks_like_login_page(html):
                    logger.error("Received login page, session is invalid or expired")
                    raise SessionImportError(
                        SessionImportFailure.INVALID_SESSION, details={"missing": missing}
                    )
                logger.error(
                    "OAuth parameters not found in terms page",
                    extra={"extra_fields": {"missing": missing, "html_snippet": html[:200]}},
                )
                raise SessionImportError(
                    SessionImportFailure.PARAMS_NOT_FOUND, details={"missing": missing}
                )

            tenant_url = params["tenant_url"]
            token_response = await self.augment_client.exchange_code(
                tenant_url, params["code"], code_verifier
            )
        except httpx.HTTPError as e:
            logger.error(f"Session import network error: {e}")
            raise SessionImportError(SessionImportFailure.NETWORK_ERROR)

        if not token_response.is_success:
            logger.error(
                "Authorization code exchange failed",
                extra={
                    "extra_fields": {
                        "status_code": token_response.status_code,
                        "body": token_response.text[:500],
                    }
                },
            )
            raise SessionImportError(SessionImportFailure.TOKEN_EXCHANGE_FAILED)

        try:
            token_data = token_response.json()
        except ValueError:
            token_data = {}
        access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
        if not access_token:
            raise SessionImportError(
                SessionImportFailure.NO_ACCESS_TOKEN, "Invalid session: access token not found"
            )

        logger.info(
            "Extracted access token from session",
            extra={"extra_fields": {"tenant_url": tenant_url, "token": mask_secret(access_token)}},
        )
        return ExtractedToken(access_token=access_token, tenant_url=tenant_url)

    async def fetch_account_metadata(self, auth_session: str) -> Dict[str, Optional[str]]:
        """
        Look up the account email and portal link; never raises.

        Tries each cookie strategy until the account app accepts one.
        """
        metadata: Dict[str, Optional[str]] = {"email": None, "portal_url": None}

        try:
            app_session: Optional[str] = await self.credit_service.get_app_session(auth_session)
        except BadRequestError as e:
            logger.warning(f"No app session for metadata lookup: {e.message}")
            app_session = None

        for strategy, cookie_header in build_cookie_strategies(auth_session, app_session):
            try:
                user_response = await self.augment_client.get_app_resource("/api/user", cookie_header)
                if not user_response.is_success:
                    logger.debug(
                        f"Metadata strategy {strategy} rejected with HTTP {user_response.status_code}"
                    )
                    continue
                user_data = self._as_dict(user_response)
                metadata["email"] = user_data.get("email")

                subscription_response = await self.augment_client.get_app_resource(
                    "/api/subscription", cookie_header
                )
                if subscription_response.is_success:
                    subscription = self._as_dict(subscription_response)
                    metadata["portal_url"] = subscription.get("portalUrl") or subscription.get(
                        "portal_url"
                    )
                logger.info(f"Fetched account metadata using {strategy}")
                return metadata
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Metadata strategy {strategy} failed: {e}")

        logger.warning("Account metadata unavailable, continuing without it")
        return metadata

    @staticmethod
    def _as_dict(response: httpx.Response) -> Dict[str, Any]:
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object")
        return data

    async def import_session(
        self, session_token: Optional[str], email_note: Optional[str], user_id: str
    ) -> Token:
        """
        Import one session cookie as a token record.

        Raises:
            BadRequestError: If no session token is given
            SessionImportError: If the OAuth flow fails
        """
        if not session_token or not session_token.strip():
            raise BadRequestError("Session token is required")

        try:
            extracted = await self.extract_token(session_token)
        except SessionImportError as e:
            track_session_import(e.code.value)
            raise

        metadata = await self.fetch_account_metadata(normalize_session_cookie(session_token))
        extracted.email = metadata.get("email")
        extracted.portal_url = metadata.get("portal_url")

        token = await self.token_service.create_token(
            TokenCreate(
                tenant_url=extracted.tenant_url,
                access_token=extracted.access_token,
                portal_url=extracted.portal_url or None,
                email_note=email_note or extracted.email or "",
                auth_session=session_token,
            ),
            user_id,
        )

        if token.portal_url:
            try:
                token = await self.token_service.refresh_token_info(token)
            except UpstreamError as e:
                logger.warning(f"Portal refresh after import failed for {token.id}: {e.message}")

        track_session_import("success")
        return token

    async def batch_import(
        self, sessions: Optional[List[Any]], user_id: str
    ) -> BatchImportResult:
        """
        Import several session cookies; failures are reported per item.

        Raises:
            BadRequestError: If the batch itself is missing, empty or too large
        """
        if sessions is None:
            raise BadRequestError("Sessions array is required")
        if len(sessions) == 0:
            raise BadRequestError("At least one session is required")
        if len(sessions) > MAX_BATCH_SESSIONS:
            raise BadRequestError(f"Maximum {MAX_BATCH_SESSIONS} sessions allowed per batch")

        result = BatchImportResult(success=[], errors=[])
        for index, item in enumerate(sessions):
            item = item if isinstance(item, dict) else {}
            session_token = item.get("session_token")
            summary = {
                "email_note": item.get("email_note"),
                "session_token": mask_secret(session_token),
            }
            try:
                token = await self.import_session(session_token, item.get("email_note"), user_id)
                result.success.append(token)
            except SessionImportError:
                result.errors.append(
                    {
                        "index": index,
                        "session": summary,
                        "error": "Failed to extract valid token from session",
                    }
                )
            except BadRequestError as e:
                result.errors.append({"index": index, "session": summary, "error": e.message})

        return result
