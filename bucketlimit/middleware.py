"""Rate limiting middleware for Starlette/FastAPI applications.

Each request takes one token from the bucket of (request path, client).
Clients are identified by their API key when one is sent, otherwise by
IP address. Both are hashed so raw keys never reach the storage backend.
"""

import hashlib
import math
from functools import partial
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from bucketlimit.backends.base import RequestRateLimiter
from bucketlimit.core.config import settings
from bucketlimit.core.logging import get_log_context, get_logger
from bucketlimit.exceptions import (
    CapacityReachedError,
    NotConfiguredError,
    RateLimitError,
    StorageError,
)

logger = get_logger(__name__)

KeyFunc = Callable[[Request], tuple[str, str]]


def client_account_id(request: Request, trust_forwarded: bool = False) -> str:
    """Get the account identifier for the request.

    Uses the bearer API key if available, otherwise falls back to the
    client IP address. Values are hashed with SHA-256 and truncated to
    32 hex chars (128 bits).

    The first X-Forwarded-For hop is used only when ``trust_forwarded`` is
    set. Enable it only behind a proxy that overwrites the header; a client
    that can set it freely gets a fresh bucket per spoofed address.
    """
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        api_key = auth[7:].strip()
        key_hash = hashlib.sha256(api_key.encode()).hexdigest()[:32]
        return f"apikey:{key_hash}"

    forwarded = request.headers.get("X-Forwarded-For") if trust_forwarded else None
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    else:
        client_ip = request.client.host if request.client else "unknown"
    ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
    return f"ip:{ip_hash}"


def default_request_key(request: Request, trust_forwarded: bool = False) -> tuple[str, str]:
    """Limit each client separately on each path."""
    return request.url.path, client_account_id(request, trust_forwarded)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce token bucket limits on requests.

    Requests for which no limit has been set pass through unlimited.
    When the backend fails, requests pass (fail-open) unless fail_closed
    is set, in which case they are answered with 503. X-Forwarded-For is
    ignored unless trust_forwarded is set.
    """

    def __init__(
        self,
        app,
        limiter: RequestRateLimiter,
        key_func: Optional[KeyFunc] = None,
        fail_closed: Optional[bool] = None,
        trust_forwarded: Optional[bool] = None,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.fail_closed = settings.fail_closed if fail_closed is None else fail_closed
        self.trust_forwarded = (
            settings.trust_forwarded if trust_forwarded is None else trust_forwarded
        )
        self.key_func = key_func or partial(default_request_key, trust_forwarded=self.trust_forwarded)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        resource_name, account_id = self.key_func(request)
        try:
            await self.limiter.acquire(resource_name, account_id)
        except CapacityReachedError as e:
            retry_after = await self._retry_after(resource_name, account_id)
            return JSONResponse(
                status_code=e.status_code,
                content={
                    "error": "rate_limit_exceeded",
                    "message": "Rate limit exceeded. Please try again later.",
                    "retry_after": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )
        except NotConfiguredError:
            pass
        except StorageError as e:
            context = get_log_context(resource_name, account_id, backend=self.limiter.backend_name)
            if self.fail_closed:
                logger.warning(f"Rate limiting fail-closed triggered: {e}", extra=context)
                return JSONResponse(
                    status_code=e.status_code,
                    content={
                        "error": "rate_limit_unavailable",
                        "message": "Rate limiting is temporarily unavailable.",
                    },
                )
            logger.warning(
                f"Rate limiting fail-open triggered: {e}. Request allowed without rate limit check.",
                extra=context,
            )

        return await call_next(request)

    async def _retry_after(self, resource_name: str, account_id: str) -> int:
        """Seconds until the bucket regains one token."""
        try:
            limit, window_sec = await self.limiter.get_limit(resource_name, account_id)
        except RateLimitError:
            return 1
        return max(1, math.ceil(window_sec / limit))
