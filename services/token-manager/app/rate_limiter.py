"""
Rate limiting for the token manager API.

In-memory sliding window limiter keyed by client IP. The login endpoint has
its own strict limiter with a temporary block; all token and credit
endpoints share a general limiter configured from the settings.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException, Request, status

from .config import settings
from .logging_config import get_logger
from .metrics import track_rate_limit_hit

logger = get_logger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit rule."""

    max_requests: int
    window_seconds: float
    block_duration_seconds: int = 0  # 0 = no block, just enforce the window


@dataclass
class ClientState:
    """Request timestamps and block state for one client."""

    requests: List[float] = field(default_factory=list)
    blocked_until: float = 0.0


class RateLimiter:
    """
    Sliding window rate limiter.

    Thread-safe; state lives in process memory, so limits apply per
    instance.

    Attributes:
        name: Label used in logs and metrics
        config: Rate limit configuration
    """

    def __init__(self, config: RateLimitConfig, name: str = "api") -> None:
        self.name = name
        self.config = config
        self._clients: Dict[str, ClientState] = defaultdict(ClientState)
        self._lock = Lock()
        self._last_cleanup = time.time()
        self._cleanup_interval = 60.0

    def _cleanup_old_entries(self, now: float) -> None:
        """Drop clients with no activity inside the window and no active block."""
        if now - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = now
        cutoff = now - self.config.window_seconds - self.config.block_duration_seconds

        expired_clients = [
            ip
            for ip, state in self._clients.items()
            if (not state.requests or state.requests[-1] < cutoff) and state.blocked_until < now
        ]
        for ip in expired_clients:
            del self._clients[ip]

        if expired_clients:
            logger.debug(f"Cleaned up {len(expired_clients)} expired {self.name} rate limit entries")

    @staticmethod
    def get_client_ip(request: Request) -> str:
        """Client IP, honouring the first X-Forwarded-For hop."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    def hit(self, client_key: str, now: Optional[float] = None) -> Tuple[bool, Optional[int]]:
        """
        Record a request for a client and check the limit.

        Args:
            client_key: Identifier of the client (usually its IP)
            now: Current unix time, defaults to time.time()

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
        """
        now = time.time() if now is None else now

        with self._lock:
            self._cleanup_old_entries(now)
            state = self._clients[client_key]

            if state.blocked_until > now:
                return False, int(state.blocked_until - now) + 1

            window_start = now - self.config.window_seconds
            state.requests = [ts for ts in state.requests if ts > window_start]

            if len(state.requests) >= self.config.max_requests:
                if self.config.block_duration_seconds > 0:
                    state.blocked_until = now + self.config.block_duration_seconds
                    retry_after = self.config.block_duration_seconds
                else:
                    retry_after = int(state.requests[0] - window_start) + 1

                logger.warning(
                    "Rate limit exceeded",
                    extra={
                        "extra_fields": {
                            "limiter": self.name,
                            "client": client_key,
                            "requests_in_window": len(state.requests),
                            "retry_after_seconds": retry_after,
                        }
                    },
                )
                return False, retry_after

            state.requests.append(now)
            return True, None

    def check_rate_limit(self, request: Request) -> Tuple[bool, Optional[int]]:
        """Check the limit for the client that sent ``request``."""
        return self.hit(self.get_client_ip(request))

    def get_remaining(self, client_key: str, now: Optional[float] = None) -> int:
        """Remaining requests for a client in the current window."""
        now = time.time() if now is None else now
        with self._lock:
            state = self._clients.get(client_key)
            if not state:
                return self.config.max_requests
            if state.blocked_until > now:
                return 0
            window_start = now - self.config.window_seconds
            active = len([ts for ts in state.requests if ts > window_start])
            return max(0, self.config.max_requests - active)

    def reset(self) -> None:
        """Forget all clients."""
        with self._lock:
            self._clients.clear()


auth_rate_limiter = RateLimiter(
    RateLimitConfig(
        max_requests=settings.AUTH_RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
        block_duration_seconds=settings.AUTH_RATE_LIMIT_BLOCK_SECONDS,
    ),
    name="auth",
)

api_rate_limiter = RateLimiter(
    RateLimitConfig(
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_MS / 1000,
    ),
    name="api",
)


def _enforce(limiter: RateLimiter, request: Request, detail: str) -> None:
    is_allowed, retry_after = limiter.check_rate_limit(request)
    if not is_allowed:
        track_rate_limit_hit(limiter.name)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers={"Retry-After": str(retry_after)},
        )


def check_auth_rate_limit(request: Request) -> None:
    """
    FastAPI dependency enforcing the login rate limit.

    Raises:
        HTTPException: 429 Too Many Requests if limit exceeded
    """
    _enforce(auth_rate_limiter, request, "Too many login attempts, please try again later.")


def check_api_rate_limit(request: Request) -> None:
    """
    FastAPI dependency enforcing the general API rate limit.

    Raises:
        HTTPException: 429 Too Many Requests if limit exceeded
    """
    _enforce(api_rate_limiter, request, "Too many requests, please try again later.")
