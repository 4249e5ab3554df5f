"""In-memory per-caller request counter with idle expiry and LRU eviction."""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

DEFAULT_INTERVAL_MS = 60_000
DEFAULT_UNIQUE_TOKENS = 500
ANONYMOUS_IDENTIFIER = "anonymous"


class RateLimitExceeded(Exception):
    def __init__(self, identifier: str, limit: int):
        super().__init__("Rate limit exceeded")
        self.identifier = identifier
        self.limit = limit


@dataclass
class _Counter:
    count: int
    expires_at: float


def get_identifier(request, token: str | None = None) -> str:
    """
    Resolve the caller identity used as the counter key.

    Args:
        request: Any object exposing a `headers` mapping with `.get`.
        token (str | None): Explicit identity such as a user id.

    Returns:
        str: The token, else the forwarded or real client IP, else "anonymous".
    """
    if token:
        return token
    headers = getattr(request, "headers", None) or {}
    return (
        headers.get("x-forwarded-for")
        or headers.get("x-real-ip")
        or ANONYMOUS_IDENTIFIER
    )


class RateLimiter:
    """
    Counts admitted calls per identity.

    A counter resets once `interval` milliseconds pass without a call for
    that identity. At most `unique_token_per_interval` identities are kept;
    the least recently used one is evicted first.
    """

    def __init__(
        self,
        interval: int = DEFAULT_INTERVAL_MS,
        unique_token_per_interval: int = DEFAULT_UNIQUE_TOKENS,
        clock=time.monotonic,
    ) -> None:
        self.interval = interval or DEFAULT_INTERVAL_MS
        self.unique_token_per_interval = unique_token_per_interval or DEFAULT_UNIQUE_TOKENS
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: OrderedDict[str, _Counter] = OrderedDict()

    def __len__(self) -> int:
        return len(self._counters)

    def _increment(self, identifier: str) -> int:
        now = self._clock()
        ttl = self.interval / 1000.0
        with self._lock:
            counter = self._counters.get(identifier)
            if counter is None or counter.expires_at <= now:
                counter = _Counter(count=0, expires_at=now + ttl)
                self._counters[identifier] = counter
            self._counters.move_to_end(identifier)
            counter.count += 1
            counter.expires_at = now + ttl
            while len(self._counters) > self.unique_token_per_interval:
                self._counters.popitem(last=False)
            return counter.count

    def check(self, request, limit: int, token: str | None = None) -> None:
        """
        Count one call for the caller and reject it once the limit is passed.

        Raises:
            RateLimitExceeded: If the caller has made more than `limit` calls
            within the current window.
        """
        identifier = get_identifier(request, token)
        usage = self._increment(identifier)
        if usage > limit:
            logger.warning(f"Rate limit exceeded for '{identifier}' ({usage}/{limit})")
            raise RateLimitExceeded(identifier, limit)


def rate_limit(limiter: RateLimiter, limit: int, enabled: bool = True):
    """
    Build a FastAPI dependency that rejects callers over `limit` with a 429.
    """

    def _dependency(request: Request) -> None:
        if not enabled:
            return
        try:
            limiter.check(request, limit)
        except RateLimitExceeded as e:
            raise HTTPException(status_code=429, detail="Too many requests") from e

    return _dependency
