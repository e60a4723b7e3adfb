"""GitHub authentication handlers."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

import aiohttp
import jwt

from .exceptions import GitHubAuthenticationError, GitHubNotFoundError

logger = logging.getLogger(__name__)

# Installation tokens are refreshed this many seconds before GitHub expires them
TOKEN_EXPIRY_MARGIN = 60


@dataclass
class AuthToken:
    """Authentication token with metadata."""

    token: str
    token_type: str = "Bearer"
    expires_at: int | None = None

    @property
    def is_expired(self) -> bool:
        """Check if token is expired."""
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at

    def to_header(self) -> dict[str, str]:
        """Convert to authorization header."""
        return {"Authorization": f"{self.token_type} {self.token}"}


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    async def get_token(self) -> AuthToken:
        """Get a valid authentication token."""
        pass

    @abstractmethod
    async def refresh_token(self) -> AuthToken:
        """Force a new authentication token."""
        pass


class TokenAuth(AuthProvider):
    """Static token authentication (personal access token or fine-grained token)."""

    DEFAULT_TOKEN_TYPE = "Bearer"  # nosec B105

    def __init__(self, token: str, token_type: str | None = None):
        if not token:
            raise GitHubAuthenticationError("GitHub token is required")
        self._token = AuthToken(
            token=token, token_type=token_type or self.DEFAULT_TOKEN_TYPE
        )

    async def get_token(self) -> AuthToken:
        return self._token

    async def refresh_token(self) -> AuthToken:
        """Static tokens don't refresh."""
        return self._token


class GitHubAppAuth(AuthProvider):
    """GitHub App authentication provider.

    Signs a short-lived JWT with the app's private key and exchanges it for an
    installation access token, which is cached until shortly before expiry.
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        installation_id: str,
        base_url: str = "https://api.github.com",
        timeout: int = 30,
    ):
        """Initialize GitHub App authentication.

        Args:
            app_id: GitHub App ID
            private_key: PEM private key for JWT signing
            installation_id: Installation ID the service acts as
            base_url: GitHub API base URL
            timeout: Token exchange timeout in seconds
        """
        self.app_id = app_id
        self.private_key = private_key
        self.installation_id = installation_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._current_token: AuthToken | None = None
        self._refresh_lock = asyncio.Lock()

    def _generate_jwt(self) -> str:
        """Generate JWT for GitHub App authentication."""
        now = int(time.time())
        payload = {
            "iat": now - 60,  # Allow for clock drift
            "exp": now + 600,  # GitHub caps app JWTs at 10 minutes
            "iss": self.app_id,
        }

        try:
            token = jwt.encode(payload, self.private_key, algorithm="RS256")
            return token if isinstance(token, str) else token.decode("utf-8")
        except Exception as e:
            raise GitHubAuthenticationError(f"Failed to generate JWT: {e}") from e

    async def get_token(self) -> AuthToken:
        if self._current_token and not self._current_token.is_expired:
            return self._current_token

        async with self._refresh_lock:
            if self._current_token and not self._current_token.is_expired:
                return self._current_token
            return await self.refresh_token()

    async def refresh_token(self) -> AuthToken:
        """Exchange a fresh app JWT for an installation access token."""
        url = (
            f"{self.base_url}/app/installations/{self.installation_id}/access_tokens"
        )
        headers = {
            "Authorization": f"Bearer {self._generate_jwt()}",
            "Accept": "application/vnd.github+json",
        }

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, headers=headers) as response:
                    if response.status == 404:
                        raise GitHubNotFoundError(
                            f"Installation {self.installation_id} not found",
                            response.status,
                        )
                    if response.status != 201:
                        raise GitHubAuthenticationError(
                            f"Installation token exchange failed: HTTP {response.status}",
                            response.status,
                        )
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise GitHubAuthenticationError(
                f"Installation token exchange failed: {e}"
            ) from e

        expires_at = int(datetime.fromisoformat(data["expires_at"]).timestamp())
        self._current_token = AuthToken(
            token=data["token"],
            token_type="token",  # nosec B106
            expires_at=expires_at - TOKEN_EXPIRY_MARGIN,
        )
        logger.info(
            f"Obtained installation token for app {self.app_id}",
            extra={"installation_id": self.installation_id},
        )
        return self._current_token
