"""
Shared plumbing for outbound HTTP clients.

Each partner client keeps one persistent ``httpx.AsyncClient`` with
connection pooling. A pre-built client can be injected, which is how tests
plug in ``httpx.MockTransport``.
"""

from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..logging_config import get_logger, get_request_id

logger = get_logger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class ExternalServiceError(Exception):
    """
    Raised when a partner service fails or answers with an error status.

    Attributes:
        message: Error message
        status_code: HTTP status code if the partner answered
        details: Additional error details
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class BaseHTTPClient:
    """
    Base class for partner clients.

    Attributes:
        service_name: Label used in logs
        timeout: Request timeout in seconds
    """

    service_name = "upstream"

    def __init__(
        self,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._client: Optional[httpx.AsyncClient] = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the persistent HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(
                    max_keepalive_connections=20,
                    max_connections=100,
                    keepalive_expiry=30.0,
                ),
            )
            logger.debug(f"Created HTTP client for {self.service_name}")
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release connections."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _get_request_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Common headers, including the request id for tracing."""
        headers = {"Accept": "application/json"}
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        """Decode a JSON object body, raising ExternalServiceError otherwise."""
        try:
            data = response.json()
        except ValueError:
            raise ExternalServiceError(
                "Invalid JSON in upstream response",
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )
        if not isinstance(data, dict):
            raise ExternalServiceError(
                "Unexpected upstream response shape", status_code=response.status_code
            )
        return data
