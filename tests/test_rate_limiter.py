"""Tests for per-source request budgets."""
import pytest

from newsentiment.core.models import SourceConfig
from newsentiment.core.rate_limiter import SourceRateLimiter, TokenBucket, spacing_bucket


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> SourceRateLimiter:
    sources = [
        SourceConfig("moneycontrol", "MoneyControl", "https://mc", "https://mc/search", 1, 5),
        SourceConfig("nse", "NSE", "https://nse", "https://nse/search", 4, 2),
    ]
    return SourceRateLimiter.from_sources(sources, window_seconds=3600, clock=clock)


class TestSourceRateLimiter:
    """Tests for SourceRateLimiter."""

    def test_window_budget(self, limiter: SourceRateLimiter):
        """Test that the call after max_requests accepted ones is refused."""
        for _ in range(5):
            assert limiter.can_make_request("moneycontrol") is True
            limiter.record_request("moneycontrol")

        assert limiter.can_make_request("moneycontrol") is False

    def test_window_expiry_resets(self, limiter: SourceRateLimiter, clock: FakeClock):
        """Test that budget returns once the window has elapsed."""
        for _ in range(2):
            limiter.record_request("nse")
        assert limiter.can_make_request("nse") is False

        clock.advance(3600)

        assert limiter.can_make_request("nse") is True
        assert limiter.remaining("nse") == 2

    def test_sources_are_independent(self, limiter: SourceRateLimiter):
        """Test that exhausting one source leaves the others alone."""
        limiter.record_request("nse")
        limiter.record_request("nse")

        assert limiter.can_make_request("nse") is False
        assert limiter.can_make_request("moneycontrol") is True

    def test_unknown_source_refused(self, limiter: SourceRateLimiter):
        """Test that a source without a counter is never admitted."""
        assert limiter.can_make_request("reuters") is False
        assert limiter.try_acquire("reuters") is False

    def test_try_acquire_counts(self, limiter: SourceRateLimiter):
        """Test that try_acquire checks and records in one step."""
        assert limiter.try_acquire("nse") is True
        assert limiter.try_acquire("nse") is True
        assert limiter.try_acquire("nse") is False
        assert limiter.remaining("nse") == 0

    def test_time_until_reset(self, limiter: SourceRateLimiter, clock: FakeClock):
        """Test the countdown to the next window."""
        clock.advance(600)
        assert limiter.time_until_reset("nse") == pytest.approx(3000)

    def test_recommended_delay_normal(self, limiter: SourceRateLimiter):
        """Test the default one second spacing with plenty of budget."""
        assert limiter.recommended_delay("moneycontrol") == 1.0

    def test_recommended_delay_low_budget(self, limiter: SourceRateLimiter, clock: FakeClock):
        """Test that a nearly spent budget stretches the delay."""
        for _ in range(5):
            limiter.record_request("moneycontrol")

        # 3600s left in the window -> a tenth of it
        assert limiter.recommended_delay("moneycontrol") == pytest.approx(360)

        clock.advance(3590)
        assert limiter.recommended_delay("moneycontrol") == 5.0

    def test_force_reset(self, limiter: SourceRateLimiter):
        """Test resetting one counter and then all of them."""
        limiter.record_request("nse")
        limiter.record_request("nse")
        limiter.record_request("moneycontrol")

        limiter.force_reset("nse")
        assert limiter.remaining("nse") == 2
        assert limiter.remaining("moneycontrol") == 4

        limiter.force_reset()
        assert limiter.remaining("moneycontrol") == 5

    def test_update_source_limit(self, limiter: SourceRateLimiter):
        """Test changing a budget at runtime."""
        assert limiter.update_source_limit("nse", 10) is True
        assert limiter.remaining("nse") == 10
        assert limiter.update_source_limit("reuters", 10) is False

        with pytest.raises(ValueError, match="max_requests must be >= 1"):
            limiter.update_source_limit("nse", 0)

    def test_available_sources_by_priority(self, limiter: SourceRateLimiter):
        """Test that available sources come back priority first."""
        assert limiter.available_sources() == ["moneycontrol", "nse"]

        limiter.record_request("nse")
        limiter.record_request("nse")
        assert limiter.available_sources() == ["moneycontrol"]
        assert limiter.has_available_sources() is True

    def test_statuses_and_statistics(self, limiter: SourceRateLimiter):
        """Test the reporting views."""
        limiter.record_request("moneycontrol")
        status = limiter.statuses()["moneycontrol"]

        assert status["requests"] == 1
        assert status["maxRequests"] == 5
        assert status["remaining"] == 4
        assert status["canMakeRequest"] is True

        stats = limiter.statistics()
        assert stats["totalSources"] == 2
        assert stats["totalRequests"] == 1
        assert stats["totalCapacity"] == 7


class TestTokenBucket:
    """Tests for TokenBucket."""

    def test_capacity_then_empty(self):
        """Test that a full bucket serves capacity tokens without waiting."""
        bucket = TokenBucket(capacity=2, refill_rate=0.001)

        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is False

    def test_refill_rate_must_be_positive(self):
        """Test that a zero refill rate is rejected."""
        with pytest.raises(ValueError, match="refill_rate must be > 0"):
            TokenBucket(capacity=1, refill_rate=0)

    def test_spacing_bucket(self):
        """Test the one-call-per-delay helper."""
        assert spacing_bucket(0) is None

        bucket = spacing_bucket(2.0)
        assert bucket.capacity == 1.0
        assert bucket.refill_rate == pytest.approx(0.5)
