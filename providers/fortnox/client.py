"""Fortnox API client.

Fortnox pages with `page`/`limit` query parameters and reports paging in a
`MetaInformation` block:

    {"MetaInformation": {"@TotalResources": 250, "@TotalPages": 3, "@CurrentPage": 1},
     "Invoices": [...]}

Incremental fetches add `lastmodified`. SIE exports are served directly as
bytes.
"""

from typing import Any, Dict, List, Optional, Tuple

from core.config import FORTNOX_BASE_URL
from core.utils.rate_limiter import RateLimitConfig
from providers.http_client import PageInfo, ProviderHttpClient


# 25 requests per second per access token
FORTNOX_RATE_LIMIT = RateLimitConfig(max_requests=25, window_ms=1000)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class FortnoxClient(ProviderHttpClient):
    """HTTP client for the Fortnox REST API v3."""

    provider_name = "fortnox"
    display_name = "Fortnox"

    def __init__(self, base_url: str = FORTNOX_BASE_URL, rate_limit: RateLimitConfig = FORTNOX_RATE_LIMIT, **kwargs):
        super().__init__(base_url, rate_limit, **kwargs)

    async def get_binary(self, token: str, path: str) -> bytes:
        return await self._request(
            "GET",
            self._url(path),
            self._headers(token, accept="application/octet-stream"),
            binary=True,
        )

    async def get_page(
        self,
        token: str,
        path: str,
        page: int = 1,
        page_size: int = 100,
        modified_since: Optional[str] = None,
        list_key: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Tuple[List[Dict[str, Any]], PageInfo]:
        """Fetch one page.

        Args:
            list_key: Response key holding the items, e.g. "Invoices"
            params: Extra query parameters (fromdate, invoicenumber, ...)
        """
        query = dict(params or {})
        query["page"] = str(page)
        query["limit"] = str(page_size)
        if modified_since:
            query["lastmodified"] = modified_since

        data = await self.get(token, path, params=query)

        items = data.get(list_key, []) if list_key else []
        if not isinstance(items, list):
            items = [items]

        meta = data.get("MetaInformation") or {}
        info = PageInfo(
            page=_as_int(meta.get("@CurrentPage"), page),
            total_pages=_as_int(meta.get("@TotalPages"), page),
            total_count=_as_int(meta.get("@TotalResources"), len(items)),
        )
        return items, info
