from __future__ import annotations

import time
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from newsentiment.core.logger import get_logger
from newsentiment.core.models import SourceConfig

log = get_logger("rate_limiter")

# Budget share below which callers are asked to slow down
LOW_BUDGET_RATIO = 0.2
MIN_THROTTLED_DELAY = 5.0
DEFAULT_DELAY = 1.0


@dataclass
class TokenBucket:
    """Token bucket rate limiter.

    Tokens are added at a fixed rate up to a maximum capacity.
    Each request consumes one token. With ``capacity=1`` this simply
    spaces calls ``1 / refill_rate`` seconds apart.
    """

    capacity: float  # Maximum tokens
    refill_rate: float  # Tokens per second
    tokens: float = field(init=False)
    last_refill: float = field(init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        if self.refill_rate <= 0:
            raise ValueError(f"refill_rate must be > 0, got {self.refill_rate}")
        self.tokens = self.capacity
        self.last_refill = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def acquire(self, tokens: float = 1.0, timeout: Optional[float] = None) -> bool:
        """Take tokens, sleeping until they are available.

        Returns:
            True if tokens were acquired, False if ``timeout`` elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            with self._lock:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return True
                wait_time = (tokens - self.tokens) / self.refill_rate

            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                wait_time = min(wait_time, remaining)

            time.sleep(wait_time)

    def try_acquire(self, tokens: float = 1.0) -> bool:
        return self.acquire(tokens, timeout=0)


def spacing_bucket(delay_seconds: float) -> Optional[TokenBucket]:
    """Bucket that lets one call through every ``delay_seconds``; None disables spacing."""
    if delay_seconds <= 0:
        return None
    return TokenBucket(capacity=1.0, refill_rate=1.0 / delay_seconds)


@dataclass
class RateLimitCounter:
    """Requests made against one source in the current window."""

    source: str
    max_requests: int
    priority: int
    window_start: float
    requests_in_window: int = 0


class SourceRateLimiter:
    """Fixed-window request budget per news source.

    Admission only: nothing here sleeps or retries. Unknown sources are
    always refused.

    Usage:
        limiter = SourceRateLimiter.from_sources(settings.enabled_source_configs())
        if limiter.can_make_request("nse"):
            limiter.record_request("nse")
            ...
    """

    def __init__(
        self,
        window_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ):
        self.window_seconds = window_seconds
        self._clock = clock
        self._counters: Dict[str, RateLimitCounter] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_sources(
        cls,
        sources: Iterable[SourceConfig],
        window_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> "SourceRateLimiter":
        limiter = cls(window_seconds=window_seconds, clock=clock)
        for source in sources:
            limiter.add_source(source.name, source.max_requests_per_hour, source.priority)
        return limiter

    def add_source(self, source: str, max_requests: int, priority: int = 99) -> None:
        with self._lock:
            self._counters[source] = RateLimitCounter(
                source=source,
                max_requests=max_requests,
                priority=priority,
                window_start=self._clock(),
            )
        log.debug(
            f"Rate limit configured: {source} = {max_requests}/{self.window_seconds:.0f}s "
            f"(priority={priority})"
        )

    def _roll(self, counter: RateLimitCounter, now: float) -> None:
        # Caller holds the lock
        if now - counter.window_start >= self.window_seconds:
            counter.requests_in_window = 0
            counter.window_start = now

    def can_make_request(self, source: str) -> bool:
        with self._lock:
            counter = self._counters.get(source)
            if counter is None:
                log.warning(f"Unknown source: {source}, refusing request")
                return False
            self._roll(counter, self._clock())
            return counter.requests_in_window < counter.max_requests

    def record_request(self, source: str) -> None:
        with self._lock:
            counter = self._counters.get(source)
            if counter is None:
                log.warning(f"Request recorded for unknown source: {source}")
                return
            self._roll(counter, self._clock())
            counter.requests_in_window += 1
            used = counter.requests_in_window
            limit = counter.max_requests
        log.debug(f"{source}: {used}/{limit} requests used")

    def try_acquire(self, source: str) -> bool:
        """Check and record in one step, for callers running sources in parallel."""
        with self._lock:
            counter = self._counters.get(source)
            if counter is None:
                return False
            self._roll(counter, self._clock())
            if counter.requests_in_window >= counter.max_requests:
                return False
            counter.requests_in_window += 1
            return True

    def remaining(self, source: str) -> int:
        with self._lock:
            counter = self._counters.get(source)
            if counter is None:
                return 0
            self._roll(counter, self._clock())
            return max(0, counter.max_requests - counter.requests_in_window)

    def time_until_reset(self, source: str) -> float:
        """Seconds until the window of ``source`` rolls over."""
        with self._lock:
            counter = self._counters.get(source)
            if counter is None:
                return 0.0
            elapsed = self._clock() - counter.window_start
            return max(0.0, self.window_seconds - elapsed)

    def recommended_delay(self, source: str) -> float:
        """Seconds to wait before the next request to ``source``.

        Low remaining budget stretches the delay to a tenth of the time left
        in the window, never less than five seconds.
        """
        with self._lock:
            counter = self._counters.get(source)
            max_requests = counter.max_requests if counter else 0
        remaining = self.remaining(source)
        if remaining < max_requests * LOW_BUDGET_RATIO:
            return max(MIN_THROTTLED_DELAY, self.time_until_reset(source) / 10)
        return DEFAULT_DELAY

    def force_reset(self, source: Optional[str] = None) -> None:
        """Zero one counter, or all of them."""
        with self._lock:
            now = self._clock()
            if source is None:
                targets = list(self._counters.values())
            else:
                targets = [self._counters[source]] if source in self._counters else []
            for counter in targets:
                counter.requests_in_window = 0
                counter.window_start = now
        log.info(f"Rate limit reset: {source or 'all sources'}")

    def update_source_limit(self, source: str, max_requests: int) -> bool:
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        with self._lock:
            counter = self._counters.get(source)
            if counter is None:
                return False
            counter.max_requests = max_requests
        log.info(f"Rate limit for {source} updated to {max_requests}/window")
        return True

    def statuses(self) -> Dict[str, dict]:
        now = self._clock()
        with self._lock:
            out = {}
            for name, counter in self._counters.items():
                self._roll(counter, now)
                out[name] = {
                    "requests": counter.requests_in_window,
                    "maxRequests": counter.max_requests,
                    "remaining": max(0, counter.max_requests - counter.requests_in_window),
                    "priority": counter.priority,
                    "canMakeRequest": counter.requests_in_window < counter.max_requests,
                    "timeUntilReset": max(0.0, self.window_seconds - (now - counter.window_start)),
                }
            return out

    def available_sources(self) -> List[str]:
        """Sources with budget left, priority ascending."""
        statuses = self.statuses()
        ready = [name for name, s in statuses.items() if s["canMakeRequest"]]
        return sorted(ready, key=lambda name: statuses[name]["priority"])

    def has_available_sources(self) -> bool:
        return bool(self.available_sources())

    def statistics(self) -> dict:
        statuses = self.statuses()
        total_requests = sum(s["requests"] for s in statuses.values())
        total_capacity = sum(s["maxRequests"] for s in statuses.values())
        return {
            "totalSources": len(statuses),
            "availableSources": sum(1 for s in statuses.values() if s["canMakeRequest"]),
            "totalRequests": total_requests,
            "totalCapacity": total_capacity,
            "utilization": round(total_requests / total_capacity * 100, 1) if total_capacity else 0.0,
        }
