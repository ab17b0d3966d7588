"""
HTTP client for the Orb billing portal.

A token's ``portal_url`` is a customer portal link; its ``token`` query
parameter authorizes read access to the customer's credit ledger.
"""

from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import httpx

from ..config import settings
from ..domain.entities import isoformat, utcnow
from ..logging_config import get_logger
from .http_client import BaseHTTPClient, ExternalServiceError

logger = get_logger(__name__)


def extract_portal_token(portal_url: str) -> Optional[str]:
    """Return the ``token`` query parameter of a portal link."""
    values = parse_qs(urlparse(portal_url).query).get("token")
    return values[0] if values else None


class PortalClient(BaseHTTPClient):
    """Client for the customer portal API."""

    service_name = "portal"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, http_client=http_client)
        self.base_url = (base_url or settings.PORTAL_API_BASE_URL).rstrip("/")

    async def _get_json(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        client = await self._get_client()
        response = await client.get(
            f"{self.base_url}{path}", params=params, headers=self._get_request_headers()
        )
        if response.status_code != 200:
            raise ExternalServiceError(
                f"Portal request {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return self._json(response)

    async def get_portal_info(self, portal_url: str) -> Dict[str, Any]:
        """
        Read credit balance and expiry for a portal link.

        Args:
            portal_url: Customer portal URL containing a ``token`` parameter

        Returns:
            Dictionary with credits_balance, expiry_date, is_active, updated_at

        Raises:
            ExternalServiceError: If the link is malformed or the portal fails
        """
        token = extract_portal_token(portal_url)
        if not token:
            raise ExternalServiceError("Portal URL has no token parameter")

        customer_data = await self._get_json("/customer_from_link", {"token": token})
        customer = customer_data.get("customer") or {}
        if not isinstance(customer, dict):
            raise ExternalServiceError("Unexpected portal customer payload")
        customer_id = customer.get("id")
        if not customer_id:
            raise ExternalServiceError("Portal customer not found")

        pricing_units = customer.get("ledger_pricing_units") or []
        if not isinstance(pricing_units, list) or not all(
            isinstance(unit, dict) for unit in pricing_units
        ):
            raise ExternalServiceError("Unexpected portal pricing units payload")
        params = {"token": token}
        if pricing_units:
            params["pricing_unit_id"] = pricing_units[0].get("id", "")

        summary = await self._get_json(f"/customers/{customer_id}/ledger_summary", params)
        credit_blocks = summary.get("credit_blocks") or []
        if not isinstance(credit_blocks, list) or not all(
            isinstance(block, dict) for block in credit_blocks
        ):
            raise ExternalServiceError("Unexpected portal ledger summary payload")
        expiry_date = credit_blocks[0].get("expiry_date") if credit_blocks else None

        info = {
            "credits_balance": summary.get("credits_balance"),
            "expiry_date": expiry_date,
            "is_active": bool(credit_blocks) or bool(summary.get("credits_balance")),
            "updated_at": isoformat(utcnow()),
        }
        logger.info(
            "Fetched portal info",
            extra={"extra_fields": {"customer_id": customer_id, "credits": info["credits_balance"]}},
        )
        return info
