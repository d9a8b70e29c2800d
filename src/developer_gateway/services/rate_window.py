"""Per-minute request windows used by the UsageLimiter.

Counting is delegated to the ``limits`` fixed-window strategy. ``hit`` is a
single increment-and-compare on the storage (a lock in memory, a Lua script
in Redis), so concurrent requests can never be admitted past the ceiling.
"""

import math
import time
from functools import lru_cache
from typing import NamedTuple, Optional

from limits import RateLimitItemPerMinute
from limits.storage import MemoryStorage, RedisStorage, Storage
from limits.strategies import FixedWindowRateLimiter

from ..config import settings
from ..exceptions import StoreUnavailable
from ..utils.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60


class RateSlot(NamedTuple):
    allowed: bool
    remaining: int
    reset_in_seconds: int


def seconds_until(reset_time: float, now: Optional[float] = None) -> int:
    """Whole seconds until ``reset_time``, clamped to one window."""
    now = time.time() if now is None else now
    return min(max(math.ceil(reset_time - now), 1), WINDOW_SECONDS)


class RateWindow:
    """Counts a developer's calls in the current minute."""

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage if storage is not None else MemoryStorage()
        self.strategy = FixedWindowRateLimiter(self.storage)

    def acquire(self, developer_id: str, rate_limit_per_minute: int) -> RateSlot:
        """Reserve one call in the current window, or report that it is full."""
        item = RateLimitItemPerMinute(rate_limit_per_minute)
        try:
            allowed = self.strategy.hit(item, developer_id)
            stats = self.strategy.get_window_stats(item, developer_id)
        except Exception as e:
            logger.error("rate_window_unavailable", developer_id=developer_id, error=str(e))
            raise StoreUnavailable()
        return RateSlot(allowed, stats.remaining, seconds_until(stats.reset_time))

    def release(self, developer_id: str, rate_limit_per_minute: int) -> None:
        """Give back a slot reserved by ``acquire`` for a call that was then denied."""
        item = RateLimitItemPerMinute(rate_limit_per_minute)
        try:
            self.storage.incr(item.key_for(developer_id), item.get_expiry(), amount=-1)
        except Exception as e:
            logger.warning("rate_slot_release_failed", developer_id=developer_id, error=str(e))

    def reset(self, developer_id: str, rate_limit_per_minute: int) -> None:
        """Forget the developer's current window."""
        try:
            self.strategy.clear(RateLimitItemPerMinute(rate_limit_per_minute), developer_id)
        except Exception as e:
            logger.warning("rate_window_reset_failed", developer_id=developer_id, error=str(e))


# Shared by every request in the process when Redis is not configured
_local_window = RateWindow()


@lru_cache(maxsize=None)
def _redis_window(redis_client) -> RateWindow:
    storage = RedisStorage(settings.redis_url, connection_pool=redis_client.connection_pool)
    return RateWindow(storage)


def get_rate_window(redis_client=None) -> RateWindow:
    """Redis-backed window shared by all workers, or the process-local one."""
    if redis_client is None:
        return _local_window
    return _redis_window(redis_client)
