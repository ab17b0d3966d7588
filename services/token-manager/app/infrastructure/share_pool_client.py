"""
HTTP client for the public token pool.

The pool accepts token records, hands out recharge cards for them and can
deactivate a card in exchange for a new one.
"""

from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..logging_config import get_logger
from .http_client import BaseHTTPClient, ExternalServiceError

logger = get_logger(__name__)


class SharePoolClient(BaseHTTPClient):
    """Client for the public pool API."""

    service_name = "share-pool"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, http_client=http_client)
        self.base_url = (base_url or settings.SHARE_API_BASE_URL).rstrip("/")

    async def _post(self, path: str, payload: Any) -> Dict[str, Any]:
        client = await self._get_client()
        response = await client.post(
            f"{self.base_url}{path}",
            json=payload,
            headers=self._get_request_headers({"Content-Type": "application/json"}),
        )
        logger.info(
            f"Share pool {path} answered",
            extra={"extra_fields": {"status_code": response.status_code}},
        )
        if not response.is_success:
            raise ExternalServiceError(
                f"Share pool request {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )
        return self._json(response)

    async def import_tokens(self, tokens: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Submit tokens to the pool.

        Returns:
            Pool response: ``success``, ``skipped``, ``errors`` and
            ``email_card_pairs``
        """
        return await self._post("/api/import", tokens)

    async def search_by_email_notes(self, email_notes: List[str]) -> Dict[str, Any]:
        """Look up already-pooled tokens by email note."""
        return await self._post("/api/public/search", {"email_notes": email_notes})

    async def deactivate_card(self, email_note: str, deactivation_code: str) -> Dict[str, Any]:
        """Deactivate a recharge card; the pool issues a replacement."""
        return await self._post(
            "/api/public/deactivate-card",
            {"email_note": email_note, "deactivation_code": deactivation_code},
        )
