"""
Unit tests for GitHub rate limiting and circuit breaking.

Why: The sweep must fail fast instead of exhausting the API budget or
     hammering GitHub during an outage.

What: Tests RateLimitInfo, RateLimitManager header tracking and buffer
      enforcement, and CircuitBreaker state transitions.

How: Builds headers and failure sequences directly and patches time where
     recovery depends on it.
"""

import time
from unittest.mock import patch

import pytest

from ptal_sync.github import GitHubRateLimitError
from ptal_sync.github.rate_limiting import (
    CircuitBreaker,
    RateLimitInfo,
    RateLimitManager,
)


def headers(remaining: int, reset: int | None = None) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": "5000",
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(reset or int(time.time()) + 3600),
        "X-RateLimit-Used": str(5000 - remaining),
    }


class TestRateLimitInfo:
    """Test RateLimitInfo data class."""

    def test_seconds_until_reset(self) -> None:
        info = RateLimitInfo(limit=5000, remaining=10, reset=int(time.time()) + 120)

        assert 100 < info.seconds_until_reset <= 120
        assert not info.is_exceeded

    def test_reset_in_the_past(self) -> None:
        info = RateLimitInfo(limit=5000, remaining=0, reset=int(time.time()) - 10)

        assert info.seconds_until_reset == 0
        assert info.is_exceeded


class TestRateLimitManager:
    """Test RateLimitManager tracking and enforcement."""

    def test_update_from_headers(self) -> None:
        manager = RateLimitManager()

        manager.update_rate_limit(headers(4321))

        info = manager.get_rate_limit()
        assert info is not None
        assert info.remaining == 4321
        assert info.used == 679

    def test_missing_headers_are_ignored(self) -> None:
        manager = RateLimitManager()

        manager.update_rate_limit({"Content-Type": "application/json"})

        assert manager.get_rate_limit() is None

    def test_malformed_headers_are_ignored(self) -> None:
        manager = RateLimitManager()

        manager.update_rate_limit({"X-RateLimit-Limit": "lots"})

        assert manager.get_rate_limit() is None

    async def test_allows_requests_without_info(self) -> None:
        await RateLimitManager().check_rate_limit()

    async def test_allows_requests_above_buffer(self) -> None:
        manager = RateLimitManager(buffer=100)
        manager.update_rate_limit(headers(101))

        await manager.check_rate_limit()

    async def test_refuses_requests_inside_buffer(self) -> None:
        """
        Why: The last calls of the hour are reserved for interactive creation
        What: Tests that a remaining budget at the buffer raises a rate limit error
        How: Records headers with remaining equal to the buffer
        """
        manager = RateLimitManager(buffer=100)
        manager.update_rate_limit(headers(100))

        with pytest.raises(GitHubRateLimitError) as exc_info:
            await manager.check_rate_limit()

        assert exc_info.value.remaining == 100
        assert exc_info.value.limit == 5000


class TestCircuitBreaker:
    """Test CircuitBreaker state transitions."""

    def test_opens_at_threshold(self) -> None:
        breaker = CircuitBreaker(failure_threshold=3)

        breaker.record_failure()
        breaker.record_failure()
        assert breaker.is_closed
        assert breaker.can_attempt_request()

        breaker.record_failure()
        assert breaker.is_open
        assert not breaker.can_attempt_request()
        assert 0 < breaker.get_wait_time() <= 60

    def test_success_closes(self) -> None:
        breaker = CircuitBreaker(failure_threshold=1)
        breaker.record_failure()

        breaker.record_success()

        assert breaker.is_closed
        assert breaker.get_wait_time() == 0

    def test_half_open_after_recovery_timeout(self) -> None:
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30)
        breaker.record_failure()
        later = time.time() + 31

        with patch("ptal_sync.github.rate_limiting.time.time", return_value=later):
            assert breaker.can_attempt_request()

        assert not breaker.is_open
        assert not breaker.is_closed
