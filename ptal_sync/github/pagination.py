"""Link-header pagination for GitHub list endpoints.

GitHub pages list responses and advertises the following page in the
``Link`` header (``<url>; rel="next"``). The advertised URL already carries
every query parameter, so only the first request sends ``params``.
"""

import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

GITHUB_MAX_PER_PAGE = 100

_LINK_PATTERN = re.compile(r'<([^>]+)>;\s*rel="([^"]+)"')


class LinkHeader:
    """``rel -> url`` view of a ``Link`` header."""

    def __init__(self, link_header: str | None = None):
        self.links: dict[str, str] = {
            rel: url for url, rel in _LINK_PATTERN.findall(link_header or "")
        }

    @property
    def next_url(self) -> str | None:
        return self.links.get("next")

    @property
    def has_next(self) -> bool:
        return self.next_url is not None


@dataclass
class PaginatedResponse:
    """One page of a list endpoint."""

    data: list[dict[str, Any]]
    headers: dict[str, str]
    url: str
    link_header: LinkHeader = field(init=False)

    def __post_init__(self) -> None:
        self.link_header = LinkHeader(self.headers.get("Link"))

    @property
    def has_next_page(self) -> bool:
        return self.link_header.has_next

    @property
    def next_page_url(self) -> str | None:
        return self.link_header.next_url

    @property
    def items(self) -> list[dict[str, Any]]:
        return self.data


class AsyncPaginator:
    """Iterates the items of every page until GitHub stops linking a next one.

    Usage:
        reviews = await client.paginate("/repos/o/r/pulls/1/reviews").collect_all()
    """

    def __init__(
        self,
        client: Any,  # GitHubClient; typed loosely to avoid a circular import
        initial_url: str,
        params: dict[str, Any] | None = None,
        max_pages: int | None = None,
        per_page: int = GITHUB_MAX_PER_PAGE,
    ):
        """Initialize paginator.

        Args:
            client: Object providing ``_fetch_paginated(url, params)``
            initial_url: URL of the first page
            params: Query parameters for the first page
            max_pages: Stop after this many pages (None reads everything)
            per_page: Page size, capped at GitHub's maximum of 100
        """
        self.client = client
        self.initial_url = initial_url
        self.max_pages = max_pages
        self.per_page = min(per_page, GITHUB_MAX_PER_PAGE)
        self.params = {**(params or {}), "per_page": self.per_page}

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        url: str | None = self.initial_url
        pages = 0
        while url is not None:
            if self.max_pages is not None and pages >= self.max_pages:
                return
            page: PaginatedResponse = await self.client._fetch_paginated(
                url, self.params if pages == 0 else None
            )
            pages += 1
            url = page.next_page_url
            for item in page.items:
                yield item

    async def collect_all(self) -> list[dict[str, Any]]:
        return [item async for item in self]
