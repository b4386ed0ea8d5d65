"""
Per-client request counting over a moving time window.

The counters live in a ``limits`` storage selected by URI, so the
in-process ``memory://`` default can be replaced by ``redis://...``
without touching the pipeline.
"""

from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int


class RequestRateLimiter:
    def __init__(self, max_requests: int, window_seconds: int, storage_uri: str = "memory://"):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.storage = storage_from_string(storage_uri)
        self._item = RateLimitItemPerSecond(max_requests, window_seconds)
        self._strategy = MovingWindowRateLimiter(self.storage)

    def hit(self, key: str) -> RateLimitStatus:
        """Count one request for ``key`` and report whether it may proceed."""
        allowed = self._strategy.hit(self._item, key)
        stats = self._strategy.get_window_stats(self._item, key)
        return RateLimitStatus(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(stats.remaining, 0),
            reset_at=int(stats.reset_time),
        )

    def reset(self) -> None:
        self.storage.reset()
