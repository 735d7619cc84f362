"""Async HTTP client shared by the provider adapters.

This module provides:
- Retry with exponential backoff on transport errors and 5xx responses
- Rate limit tracking for GitHub and GitLab headers
- Sequential pagination following a provider's continuation signal
- Mapping of HTTP failures onto codetree errors
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

import httpx

from codetree.config import CodeTreeConfig
from codetree.errors import MalformedResponse, NetworkFailure, decode_json, raise_for_status

logger = logging.getLogger(__name__)

# Longest rate-limit wait before giving up (15 minutes)
MAX_RATE_LIMIT_WAIT = 900

Continuation = Callable[[httpx.Response], Optional[httpx.URL]]


@dataclass
class RateLimitInfo:
    """API rate limit information."""

    limit: int = 60
    remaining: int = 60
    reset_at: float = 0.0

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> "RateLimitInfo":
        """Parse rate limit info from GitHub or GitLab response headers."""

        def pick(name: str, default: str) -> str:
            return headers.get(f"x-ratelimit-{name}") or headers.get(f"ratelimit-{name}") or default

        try:
            return cls(
                limit=int(pick("limit", "60")),
                remaining=int(pick("remaining", "60")),
                reset_at=float(pick("reset", "0")),
            )
        except ValueError:
            return cls()

    @property
    def is_exhausted(self) -> bool:
        """True once no requests remain in the window."""
        return self.remaining <= 0

    @property
    def seconds_until_reset(self) -> float:
        """Seconds left before the window reopens, never negative."""
        return max(0, self.reset_at - time.time())


def next_from_link_header(response: httpx.Response) -> Optional[httpx.URL]:
    """GitHub style: ``Link: <...>; rel="next"``."""
    url = response.links.get("next", {}).get("url")
    return httpx.URL(url) if url else None


def next_from_page_header(response: httpx.Response) -> Optional[httpx.URL]:
    """GitLab style: ``x-next-page`` holds the next page number, blank on the last."""
    next_page = (response.headers.get("x-next-page") or "").strip()
    if not next_page:
        return None
    return response.request.url.copy_set_param("page", next_page)


class ApiClient:
    """Client for a provider REST API with retry and rate limit handling."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        respect_rate_limit: bool = True,
        timeout: float = 30.0,
    ):
        """Set up the client.

        Args:
            base_url: API root, e.g. ``https://api.github.com``.
            headers: Extra headers, typically the provider's auth header.
            max_retries: How many times a failed request is repeated.
            retry_delay: Initial backoff in seconds, doubled per attempt.
            respect_rate_limit: Sleep until the window resets rather than raising.
            timeout: Transport timeout in seconds.
        """
        self.base_url = base_url
        self.headers = dict(headers or {})
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.respect_rate_limit = respect_rate_limit
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._rate_limit = RateLimitInfo()

    @classmethod
    def from_config(
        cls,
        base_url: str,
        headers: Optional[dict[str, str]],
        config: CodeTreeConfig,
    ) -> "ApiClient":
        return cls(
            base_url,
            headers=headers,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            respect_rate_limit=config.respect_rate_limit,
            timeout=config.timeout,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazily build the underlying ``httpx.AsyncClient``."""
        if self._client is None:
            headers = {
                "Accept": "application/json",
                "User-Agent": "codetree",
                **self.headers,
            }
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    @property
    def rate_limit(self) -> RateLimitInfo:
        """Current rate limit info."""
        return self._rate_limit

    async def close(self) -> None:
        """Release the transport."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def _wait_for_reset(self) -> bool:
        wait_time = self._rate_limit.seconds_until_reset + 1
        if 0 < wait_time < MAX_RATE_LIMIT_WAIT:
            logger.warning("Rate limited by %s, waiting %.0fs", self.base_url, wait_time)
            await asyncio.sleep(wait_time)
            return True
        return False

    async def _request_with_retry(
        self,
        method: str,
        url: Union[str, httpx.URL],
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request, retrying transport errors and 5xx answers.

        Returns the last response received; status handling is left to the
        caller. Transport errors that survive every retry become
        NetworkFailure.
        """
        for attempt in range(self.max_retries + 1):
            if self._rate_limit.is_exhausted and self.respect_rate_limit:
                await self._wait_for_reset()

            try:
                response = await self.client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                if attempt < self.max_retries:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.debug("%s %s failed (%s), retrying in %.1fs", method, url, e, delay)
                    await asyncio.sleep(delay)
                    continue
                raise NetworkFailure(f"{method} {url} failed: {e}") from e

            self._rate_limit = RateLimitInfo.from_headers(response.headers)

            if response.status_code in (403, 429) and "rate limit" in response.text.lower():
                if self.respect_rate_limit and attempt < self.max_retries and await self._wait_for_reset():
                    continue
                return response

            if response.status_code >= 500 and attempt < self.max_retries:
                delay = self.retry_delay * (2 ** attempt)
                logger.debug(
                    "%s %s returned %d, retrying in %.1fs",
                    method, url, response.status_code, delay,
                )
                await asyncio.sleep(delay)
                continue

            return response

        raise NetworkFailure(f"{method} {url} failed without response")

    async def get(self, url: Union[str, httpx.URL], **kwargs: Any) -> httpx.Response:
        """GET ``url`` and return the response."""
        response = await self._request_with_retry("GET", url, **kwargs)
        raise_for_status(response)
        return response

    async def get_json(self, url: Union[str, httpx.URL], **kwargs: Any) -> Any:
        response = await self.get(url, **kwargs)
        return decode_json(response)

    async def get_pages(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        continuation: Continuation = next_from_link_header,
        items: Optional[Callable[[Any], Any]] = None,
    ) -> list:
        """Fetch every page of a listing and return the concatenated items.

        Pages are requested one after another because each continuation
        depends on the previous response. Any failing page aborts the whole
        listing.
        """
        collected: list = []
        next_url: Union[str, httpx.URL, None] = url
        next_params = params
        page = 0

        while next_url is not None:
            response = await self.get(next_url, params=next_params)
            body = decode_json(response)
            page_items = items(body) if items else body
            if not isinstance(page_items, list):
                raise MalformedResponse(f"Expected a list from {response.request.url}")

            collected.extend(page_items)
            page += 1
            next_url = continuation(response)
            # The continuation URL already carries the query string
            next_params = None

        logger.debug("Fetched %d items in %d page(s) from %s", len(collected), page, url)
        return collected
