"""Discord REST API client for announcement messages.

Talks to the channel message endpoints of the Discord HTTP API directly; no
gateway connection is opened. Follows the same session, retry and error
translation structure as the GitHub client.
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any

import aiohttp

from .exceptions import (
    DiscordAuthenticationError,
    DiscordConnectionError,
    DiscordError,
    DiscordForbiddenError,
    DiscordNotFoundError,
    DiscordRateLimitError,
    DiscordServerError,
)

logger = logging.getLogger(__name__)

# Upper bound for a single 429 wait so a misbehaving header can't stall shutdown
MAX_RETRY_AFTER = 60.0


@dataclass
class DiscordClientConfig:
    """Configuration for Discord client."""

    bot_token: str
    base_url: str = "https://discord.com/api/v10"
    timeout: int = 30
    max_retries: int = 3
    retry_backoff_base: float = 1.0
    retry_backoff_factor: float = 2.0
    user_agent: str = "DiscordBot (https://github.com/ptal-sync, 1.0)"
    max_concurrent_requests: int = 10


class DiscordClient:
    """Async Discord REST client limited to channel message operations."""

    def __init__(self, config: DiscordClientConfig) -> None:
        self.config = config

        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()
        self._request_semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)

    async def __aenter__(self) -> "DiscordClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> None:
        if self._session is None or self._session.closed:
            async with self._session_lock:
                if self._session is None or self._session.closed:
                    self._session = aiohttp.ClientSession(
                        timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                        headers={
                            "Authorization": f"Bot {self.config.bot_token}",
                            "User-Agent": self.config.user_agent,
                        },
                    )

    async def close(self) -> None:
        """Close HTTP session and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def _request(
        self, method: str, path: str, data: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Make HTTP request with retry logic and error handling.

        429 responses wait for the advertised ``retry_after``; connection
        failures and 5xx responses back off exponentially. Other errors
        propagate immediately.

        Returns:
            Decoded JSON body, or None for 204 responses

        Raises:
            DiscordError: Various Discord API errors
        """
        correlation_id = str(uuid.uuid4())[:8]
        url = self._url(path)

        await self._ensure_session()
        if not self._session:
            raise DiscordConnectionError("Failed to initialize HTTP session")

        request_kwargs: dict[str, Any] = {}
        if data is not None:
            request_kwargs["json"] = data

        last_exception: DiscordError | None = None
        for attempt in range(self.config.max_retries + 1):
            wait_time: float | None = None
            try:
                async with self._request_semaphore:
                    start_time = time.time()
                    logger.debug(
                        f"Discord API request [{correlation_id}] {method} {path} "
                        f"(attempt {attempt + 1})"
                    )

                    async with self._session.request(
                        method, url, **request_kwargs
                    ) as response:
                        logger.debug(
                            f"Discord API response [{correlation_id}] "
                            f"{response.status} in {time.time() - start_time:.2f}s"
                        )

                        if response.status == 204:
                            return None
                        if 200 <= response.status < 300:
                            json_data: dict[str, Any] = await response.json()
                            return json_data

                        await self._handle_error_response(response, correlation_id)

            except TimeoutError:
                last_exception = DiscordConnectionError(
                    f"Request timeout for {method} {path}"
                )
            except aiohttp.ClientError as e:
                last_exception = DiscordConnectionError(
                    f"Connection error for {method} {path}: {e}"
                )
            except DiscordRateLimitError as e:
                last_exception = e
                wait_time = min(e.retry_after, MAX_RETRY_AFTER)
            except DiscordError as e:
                if not e.is_retryable:
                    raise
                last_exception = e

            if attempt < self.config.max_retries:
                if wait_time is None:
                    wait_time = (
                        self.config.retry_backoff_base
                        * self.config.retry_backoff_factor**attempt
                    )
                logger.warning(
                    f"Discord request [{correlation_id}] failed (attempt {attempt + 1}), "
                    f"retrying in {wait_time:.1f}s: {last_exception}"
                )
                await asyncio.sleep(wait_time)

        if last_exception:
            raise last_exception
        raise DiscordError(f"Request failed after {self.config.max_retries} retries")

    async def _handle_error_response(
        self, response: aiohttp.ClientResponse, correlation_id: str
    ) -> None:
        """Raise the exception matching an error response's status code."""
        try:
            error_data = await response.json()
        except (json.JSONDecodeError, aiohttp.ContentTypeError):
            error_data = {"message": await response.text()}
        if not isinstance(error_data, dict):
            error_data = {"message": str(error_data)}

        error_message = error_data.get("message", f"HTTP {response.status}")

        logger.warning(
            f"Discord API error [{correlation_id}] {response.status}: {error_message}"
        )

        if response.status == 401:
            raise DiscordAuthenticationError(error_message, response.status, error_data)
        elif response.status == 403:
            raise DiscordForbiddenError(error_message, response.status, error_data)
        elif response.status == 404:
            raise DiscordNotFoundError(error_message, response.status, error_data)
        elif response.status == 429:
            retry_after = error_data.get("retry_after")
            if retry_after is None:
                retry_after = response.headers.get("Retry-After", 1)
            raise DiscordRateLimitError(
                error_message,
                retry_after=float(retry_after),
                is_global=bool(error_data.get("global", False)),
            )
        elif 500 <= response.status < 600:
            raise DiscordServerError(error_message, response.status, error_data)
        else:
            raise DiscordError(error_message, response.status, error_data)

    async def get_message(self, channel_id: str, message_id: str) -> dict[str, Any]:
        """Fetch a message from a channel."""
        result = await self._request(
            "GET", f"/channels/{channel_id}/messages/{message_id}"
        )
        return result or {}

    async def create_message(
        self, channel_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """Post a new message and return it, including its assigned ``id``."""
        result = await self._request(
            "POST", f"/channels/{channel_id}/messages", payload
        )
        return result or {}

    async def edit_message(
        self, channel_id: str, message_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace the content, embeds and components of an existing message."""
        result = await self._request(
            "PATCH", f"/channels/{channel_id}/messages/{message_id}", payload
        )
        return result or {}

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        """Delete a message from a channel."""
        await self._request("DELETE", f"/channels/{channel_id}/messages/{message_id}")
