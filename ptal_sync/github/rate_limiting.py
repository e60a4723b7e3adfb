"""Client-side protection for the GitHub API budget.

``RateLimitManager`` follows the ``X-RateLimit-*`` headers of every response
and refuses requests locally once the remaining budget is inside a reserved
buffer. ``CircuitBreaker`` stops calling GitHub for a while after repeated
connection or server failures.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import GitHubRateLimitError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitInfo:
    """Budget of one rate limit resource, as last reported by GitHub."""

    limit: int
    remaining: int
    reset: int  # Unix timestamp
    used: int = 0
    resource: str = "core"

    @property
    def seconds_until_reset(self) -> float:
        return max(0.0, self.reset - time.time())

    @property
    def is_exceeded(self) -> bool:
        return self.remaining <= 0


@dataclass
class RateLimitManager:
    """Tracks the budget per resource and enforces the reserved buffer.

    Failing fast inside the buffer turns a reconciliation into a transient
    failure instead of spending the last calls of the window.
    """

    buffer: int = 100
    _rate_limits: dict[str, RateLimitInfo] = field(default_factory=dict)

    def get_rate_limit(self, resource: str = "core") -> RateLimitInfo | None:
        return self._rate_limits.get(resource)

    def update_rate_limit(self, headers: dict[str, str]) -> None:
        """Record the budget advertised by a response; responses without it are ignored."""
        if "X-RateLimit-Limit" not in headers:
            return
        try:
            info = RateLimitInfo(
                limit=int(headers["X-RateLimit-Limit"]),
                remaining=int(headers.get("X-RateLimit-Remaining", 0)),
                reset=int(headers.get("X-RateLimit-Reset", 0)),
                used=int(headers.get("X-RateLimit-Used", 0)),
                resource=headers.get("X-RateLimit-Resource", "core"),
            )
        except (TypeError, ValueError):
            logger.debug("Ignoring malformed rate limit headers")
            return
        self._rate_limits[info.resource] = info

    async def check_rate_limit(self, resource: str = "core") -> None:
        """Refuse the request if the budget is inside the buffer.

        Raises:
            GitHubRateLimitError: If remaining calls are at or below the buffer
                and the window has not reset yet
        """
        info = self.get_rate_limit(resource)
        if info is None or info.remaining > self.buffer:
            return
        if info.seconds_until_reset <= 0:
            return

        raise GitHubRateLimitError(
            f"GitHub {resource} budget inside reserved buffer: "
            f"{info.remaining}/{info.limit} left, resets in "
            f"{info.seconds_until_reset:.0f}s",
            reset_time=info.reset,
            remaining=info.remaining,
            limit=info.limit,
        )


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Opens after consecutive failures; lets a probe through after a cool-down."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        """Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures that open the circuit
            recovery_timeout: Seconds the circuit stays open before a probe
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None

    @property
    def is_open(self) -> bool:
        return self._state is CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state is CircuitState.CLOSED

    def record_success(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._state is CircuitState.HALF_OPEN or (
            self._failure_count >= self.failure_threshold
        ):
            if not self.is_open:
                logger.warning(
                    f"GitHub circuit breaker opened after "
                    f"{self._failure_count} consecutive failures"
                )
            self._state = CircuitState.OPEN
            self._opened_at = time.time()

    def can_attempt_request(self) -> bool:
        if self._state is CircuitState.OPEN and self.get_wait_time() <= 0:
            self._state = CircuitState.HALF_OPEN
        return self._state is not CircuitState.OPEN

    def get_wait_time(self) -> float:
        """Seconds until the open circuit admits a probe; 0 when not open."""
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (time.time() - self._opened_at))
