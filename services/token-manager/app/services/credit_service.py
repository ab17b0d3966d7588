"""
Credit consumption reporting.

Turns an auth-server session into an account-app session (cached for an
hour) and reads the current billing cycle's credit usage, both as a daily
series and as a per-model total.
"""

import asyncio
import hashlib
from threading import Lock
from typing import Any, Dict, List, Optional

import httpx
import redis.asyncio as redis
from cachetools import TTLCache  # type: ignore[import-untyped]

from ..config import settings
from ..exceptions import BadRequestError, UpstreamError
from ..infrastructure.augment_client import AugmentClient
from ..infrastructure.http_client import ExternalServiceError
from ..logging_config import get_logger

logger = get_logger(__name__)

APP_SESSION_KEY_PREFIX = "app_session:"
APP_SESSION_EXCHANGE_FAILED = (
    "Failed to exchange auth session for app session. "
    "Please ensure the auth session is valid."
)


class AppSessionCache:
    """
    TTL cache of app sessions keyed by the auth session they came from.

    Uses Redis when a client is given, so every instance shares the cache;
    otherwise an in-process ``cachetools.TTLCache``.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        redis_client: Optional[redis.Redis] = None,
        max_size: int = 1000,
    ) -> None:
        self.ttl_seconds = ttl_seconds or settings.APP_SESSION_CACHE_TTL
        self.redis = redis_client
        self._memory: TTLCache = TTLCache(maxsize=max_size, ttl=self.ttl_seconds)
        self._lock = Lock()

    @staticmethod
    def _key(auth_session: str) -> str:
        digest = hashlib.sha256(auth_session.encode("utf-8")).hexdigest()
        return f"{APP_SESSION_KEY_PREFIX}{digest}"

    async def get(self, auth_session: str) -> Optional[str]:
        key = self._key(auth_session)
        if self.redis is not None:
            return await self.redis.get(key)
        with self._lock:
            return self._memory.get(key)

    async def set(self, auth_session: str, app_session: str) -> None:
        key = self._key(auth_session)
        if self.redis is not None:
            await self.redis.setex(key, self.ttl_seconds, app_session)
            return
        with self._lock:
            self._memory[key] = app_session

    async def clear(self) -> None:
        with self._lock:
            self._memory.clear()


def map_data_points(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Normalize the ``dataPoints`` of a credit-consumption response."""
    points = []
    for point in payload.get("dataPoints") or []:
        date_range = point.get("dateRange")
        points.append(
            {
                "group_key": point.get("groupKey"),
                "date_range": {
                    "start_date_iso": date_range.get("startDateIso"),
                    "end_date_iso": date_range.get("endDateIso"),
                }
                if date_range
                else None,
                "credits_consumed": point.get("creditsConsumed") or "0",
            }
        )
    return points


class CreditService:
    """
    Reads credit usage for an Augment account.

    Attributes:
        augment_client: Account app client
        cache: App session cache
    """

    def __init__(self, augment_client: AugmentClient, cache: AppSessionCache) -> None:
        self.augment_client = augment_client
        self.cache = cache

    async def get_app_session(self, auth_session: str) -> str:
        """
        Return an app session for ``auth_session``, exchanging it if not cached.

        Raises:
            BadRequestError: If the account app does not issue a session
        """
        cached = await self.cache.get(auth_session)
        if cached:
            logger.debug("App session cache HIT")
            return cached

        try:
            app_session = await self.augment_client.exchange_app_session(auth_session)
        except httpx.HTTPError as e:
            logger.error(f"App session exchange failed: {e}")
            raise BadRequestError(APP_SESSION_EXCHANGE_FAILED)

        if not app_session:
            raise BadRequestError(APP_SESSION_EXCHANGE_FAILED)

        await self.cache.set(auth_session, app_session)
        return app_session

    async def get_consumption(self, auth_session: Optional[str]) -> Dict[str, Any]:
        """
        Credit usage for the current billing cycle.

        Returns:
            Dictionary with ``stats_data`` (daily, ungrouped) and
            ``chart_data`` (total per model)

        Raises:
            BadRequestError: If auth_session is missing or cannot be exchanged
            UpstreamError: If the account app fails
        """
        if not auth_session:
            raise BadRequestError("auth_session is required")

        app_session = await self.get_app_session(auth_session)

        try:
            stats, chart = await asyncio.gather(
                self.augment_client.get_credit_consumption(app_session, "NONE", "DAY"),
                self.augment_client.get_credit_consumption(app_session, "MODEL_NAME", "TOTAL"),
            )
        except ExternalServiceError as e:
            raise UpstreamError(
                f"Failed to fetch credit consumption: {e.message}", upstream_status=e.status_code
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to fetch credit consumption: {e}")

        return {
            "stats_data": {"data_points": map_data_points(stats)},
            "chart_data": {"data_points": map_data_points(chart)},
        }
