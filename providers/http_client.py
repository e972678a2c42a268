"""Provider HTTP Client.

Low-level aiohttp client shared by every provider. Handles bearer headers,
rate limiting, retries, pagination and error classification. Subclasses
supply the provider's pagination idiom (get_page) and binary export idiom
(get_binary).
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from core.errors import ProviderApiError, ProviderConnectionError
from core.observability.logging import get_logger
from core.observability.metrics import MetricsCollector, get_metrics
from core.utils.rate_limiter import RateLimitConfig, TokenBucketRateLimiter
from core.utils.retry import RetryOptions, with_retry

logger = get_logger(__name__)


def is_retryable_error(error: BaseException, attempt: int = 1) -> bool:
    """Retry rate limits, server errors and network failures; never auth/not-found."""
    if isinstance(error, ProviderApiError):
        if error.is_permanent:
            return False
        return error.status_code == 429 or error.status_code >= 500
    return isinstance(error, ProviderConnectionError)


@dataclass
class PageInfo:
    """Pagination metadata of one fetched page."""
    page: int
    total_pages: int
    total_count: Optional[int] = None

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


class ProviderHttpClient(ABC):
    """HTTP client for one provider API.

    Provides:
    - Bearer-authenticated JSON requests
    - A token-bucket rate limiter acquired before every attempt
    - Retries with capped exponential backoff on transient failures
    - Pagination draining via get_paginated

    One instance belongs to one provider adapter; the rate limiter is never
    shared across adapters.

    Usage:
        client = FortnoxClient(base_url, retry_options=settings.retry)
        data = await client.get(token, "/companyinformation")
        await client.close()
    """

    provider_name: str = "provider"
    display_name: str = "Provider"

    def __init__(
        self,
        base_url: str,
        rate_limit: RateLimitConfig,
        retry_options: Optional[RetryOptions] = None,
        timeout_seconds: int = 30,
        session: Optional[aiohttp.ClientSession] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize client.

        Args:
            base_url: API root, without trailing slash
            rate_limit: Provider's request budget
            retry_options: Backoff settings; classification is always is_retryable_error
            timeout_seconds: Total timeout per attempt
            session: Injected aiohttp session (not closed by close())
            metrics: Collector for retry counts (defaults to the global one)
        """
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = TokenBucketRateLimiter(rate_limit)
        self.timeout_seconds = timeout_seconds
        self.metrics = metrics or get_metrics()
        self.retry_options = replace(
            retry_options or RetryOptions(),
            should_retry=is_retryable_error,
            on_retry=self._record_retry,
        )
        self._session = session
        self._owns_session = session is None

    # =========================================================================
    # Session Handling
    # =========================================================================

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _record_retry(self, error: BaseException, attempt: int, delay_ms: float) -> None:
        self.metrics.record_http_retry(self.provider_name, attempt, str(error))

    # =========================================================================
    # Requests
    # =========================================================================

    def _headers(self, token: Optional[str], accept: str = "application/json") -> Dict[str, str]:
        headers = {"Accept": accept}
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
            headers["Content-Type"] = "application/json"
        return headers

    def _api_error(self, status: int, reason: Optional[str], body: str, prefix: str = "API error") -> ProviderApiError:
        message = f"{self.display_name} {prefix}: {status} {reason or ''}".rstrip()
        return ProviderApiError(message, status_code=status, body=body)

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
        binary: bool = False,
        error_prefix: str = "API error",
    ) -> Any:
        """Perform one attempt: acquire a token, send, classify the response."""
        await self.rate_limiter.acquire()

        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=body,
                timeout=timeout,
            ) as response:
                if response.status >= 300:
                    text = await response.text()
                    raise self._api_error(response.status, response.reason, text, error_prefix)

                if binary:
                    return await response.read()

                if response.status == 204:  # No content
                    return {}
                text = await response.text()
                return json.loads(text) if text else {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderConnectionError(
                f"{self.display_name} request failed: {type(e).__name__}: {e}"
            ) from e

    async def _request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
        binary: bool = False,
        error_prefix: str = "API error",
    ) -> Any:
        """Send with retries. Exhausted or permanent failures raise the last error."""
        return await with_retry(
            lambda: self._send(method, url, headers, params, body, binary, error_prefix),
            self.retry_options,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def get(self, token: str, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """GET a JSON document."""
        return await self._request("GET", self._url(path), self._headers(token), params=params)

    async def post(self, token: str, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON body and return the JSON response."""
        return await self._request("POST", self._url(path), self._headers(token), body=body)

    @abstractmethod
    async def get_binary(self, token: str, path: str) -> bytes:
        """Fetch the raw bytes of an export."""
        pass

    # =========================================================================
    # Pagination
    # =========================================================================

    @abstractmethod
    async def get_page(
        self,
        token: str,
        path: str,
        page: int = 1,
        **options,
    ) -> Tuple[List[Dict[str, Any]], PageInfo]:
        """Fetch one page of items plus its pagination metadata."""
        pass

    async def get_paginated(self, token: str, path: str, **options) -> List[Dict[str, Any]]:
        """Fetch every page from page 1 and return all items in page order."""
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            page_items, info = await self.get_page(token, path, page=page, **options)
            items.extend(page_items)
            if not info.has_more:
                break
            page += 1
        return items
