"""
In-memory sliding-window rate limiter for credential endpoints.
"""
import logging
import time
from typing import Dict, List
from fastapi import Request

from pathwise.core.errors import RateLimitError

logger = logging.getLogger(__name__)

# {scope:ip: [timestamps]}; keys with no recent calls are dropped
rate_limit_store: Dict[str, List[float]] = {}
# Idle keys are swept once the store tracks more clients than this
PRUNE_THRESHOLD = 1024


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def _prune(now: float, window_seconds: int) -> None:
    cutoff = now - window_seconds
    for key in list(rate_limit_store):
        recent = [ts for ts in rate_limit_store[key] if ts > cutoff]
        if recent:
            rate_limit_store[key] = recent
        else:
            del rate_limit_store[key]


def check_rate_limit(request: Request, scope: str, max_requests: int = 10, window_seconds: int = 60) -> None:
    """
    Raise 429 if the client made max_requests calls to scope within the window.
    """
    key = f"{scope}:{get_client_ip(request)}"
    now = time.time()
    cutoff = now - window_seconds
    recent = [ts for ts in rate_limit_store.get(key, []) if ts > cutoff]

    if len(recent) >= max_requests:
        rate_limit_store[key] = recent
        logger.warning(f"Rate limit exceeded: scope={scope}, requests={len(recent)}, window={window_seconds}s")
        raise RateLimitError(f"Too many attempts. Please wait {window_seconds} seconds and try again.")

    recent.append(now)
    rate_limit_store[key] = recent
    if len(rate_limit_store) > PRUNE_THRESHOLD:
        _prune(now, window_seconds)


def rate_limiter(scope: str, max_requests: int = 10, window_seconds: int = 60):
    """Dependency factory wrapping check_rate_limit for one endpoint."""
    def limiter(request: Request) -> None:
        check_rate_limit(request, scope, max_requests, window_seconds)

    return limiter


def reset_rate_limits() -> None:
    rate_limit_store.clear()
