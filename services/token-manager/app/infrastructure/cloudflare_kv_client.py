"""
HTTP client for the Cloudflare Workers KV REST API.

Used by the KV-to-SQL migration to read records written by the Workers
deployment.
"""

from typing import AsyncIterator, Optional
from urllib.parse import quote

import httpx

from ..logging_config import get_logger
from .http_client import BaseHTTPClient, ExternalServiceError

logger = get_logger(__name__)

CLOUDFLARE_API_BASE_URL = "https://api.cloudflare.com/client/v4"
KEY_PAGE_SIZE = 1000


class CloudflareKVClient(BaseHTTPClient):
    """
    Read-only access to KV namespaces of one Cloudflare account.

    Attributes:
        account_id: Cloudflare account id
    """

    service_name = "cloudflare-kv"

    def __init__(
        self,
        account_id: str,
        api_token: str,
        base_url: str = CLOUDFLARE_API_BASE_URL,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, http_client=http_client)
        self.account_id = account_id
        self._api_token = api_token
        self.base_url = base_url.rstrip("/")

    def _namespace_url(self, namespace_id: str) -> str:
        return f"{self.base_url}/accounts/{self.account_id}/storage/kv/namespaces/{namespace_id}"

    def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self._api_token}"}

    async def list_keys(self, namespace_id: str, prefix: Optional[str] = None) -> AsyncIterator[str]:
        """
        Yield every key in a namespace, following the pagination cursor.

        Raises:
            ExternalServiceError: If Cloudflare rejects a listing request
        """
        client = await self._get_client()
        cursor: Optional[str] = None

        while True:
            params = {"limit": str(KEY_PAGE_SIZE)}
            if prefix:
                params["prefix"] = prefix
            if cursor:
                params["cursor"] = cursor

            response = await client.get(
                f"{self._namespace_url(namespace_id)}/keys",
                params=params,
                headers=self._auth_headers(),
            )
            if response.status_code != 200:
                raise ExternalServiceError(
                    f"Failed to list KV keys: HTTP {response.status_code}",
                    status_code=response.status_code,
                )

            data = self._json(response)
            for item in data.get("result") or []:
                yield item["name"]

            cursor = (data.get("result_info") or {}).get("cursor")
            if not cursor:
                break

    async def get_value(self, namespace_id: str, key: str) -> Optional[str]:
        """
        Fetch the raw value stored under ``key``.

        Returns:
            The value, or None if the key does not exist
        """
        client = await self._get_client()
        response = await client.get(
            f"{self._namespace_url(namespace_id)}/values/{quote(key, safe='')}",
            headers=self._auth_headers(),
        )
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ExternalServiceError(
                f"Failed to get KV value {key}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.text
