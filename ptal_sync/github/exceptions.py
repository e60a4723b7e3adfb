"""Errors raised by the GitHub REST client.

Each error carries the HTTP status and decoded error body when GitHub sent
one. ``is_retryable`` tells the client's retry loop whether sending the same
request again could succeed.
"""

import time
from typing import Any, ClassVar


class GitHubError(Exception):
    """A GitHub request failed."""

    retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}

    @property
    def is_retryable(self) -> bool:
        return self.retryable


class GitHubAuthenticationError(GitHubError):
    """Credentials were rejected, or the token lacks access to the repository."""


class GitHubNotFoundError(GitHubError):
    """The pull request, repository or App installation does not exist."""


class GitHubValidationError(GitHubError):
    """GitHub rejected the request parameters (422)."""


class GitHubRateLimitError(GitHubError):
    """The API budget is spent, or inside the locally reserved buffer.

    Not retried by the client: the budget only comes back at ``reset_time``,
    and the next sweep tries again anyway.
    """

    def __init__(
        self,
        message: str,
        reset_time: int | None = None,
        remaining: int = 0,
        limit: int = 0,
        status_code: int = 403,
    ):
        super().__init__(message, status_code=status_code)
        self.reset_time = reset_time
        self.remaining = remaining
        self.limit = limit

    @property
    def seconds_until_reset(self) -> float:
        if self.reset_time is None:
            return 0.0
        return max(0.0, self.reset_time - time.time())


class GitHubServerError(GitHubError):
    """GitHub answered with a 5xx status."""

    retryable = True


class GitHubConnectionError(GitHubError):
    """No usable response: the connection failed or the circuit breaker is open."""

    retryable = True


class GitHubTimeoutError(GitHubConnectionError):
    """The request did not complete within the client timeout."""
