"""Visma eAccounting API client.

Visma pages OData style with `$top`/`$skip` and wraps items in a
`Data` array next to a `Meta` block:

    {"Meta": {"CurrentPage": 1, "TotalNumberOfPages": 3, "TotalNumberOfResults": 250},
     "Data": [...]}

Incremental fetches add `$filter=<ModifiedField> gt <cursor>`. SIE exports
are a two-step download: the export endpoint returns a short-lived
TemporaryUrl which is then fetched without the bearer token.
"""

from typing import Any, Dict, List, Optional, Tuple

from core.config import VISMA_BASE_URL
from core.errors import ProviderApiError
from core.utils.rate_limiter import RateLimitConfig
from providers.http_client import PageInfo, ProviderHttpClient


# 10 requests per second
VISMA_RATE_LIMIT = RateLimitConfig(max_requests=10, window_ms=1000)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class VismaClient(ProviderHttpClient):
    """HTTP client for the Visma eAccounting API v2."""

    provider_name = "visma"
    display_name = "Visma"

    def __init__(self, base_url: str = VISMA_BASE_URL, rate_limit: RateLimitConfig = VISMA_RATE_LIMIT, **kwargs):
        super().__init__(base_url, rate_limit, **kwargs)

    async def get_binary(self, token: str, path: str) -> bytes:
        """Request an export link, then download it.

        Raises:
            ProviderApiError: If the export response has no TemporaryUrl
                (status 500, not retried) or the download fails
        """
        data = await self.get(token, path)
        temporary_url = data.get("TemporaryUrl") if isinstance(data, dict) else None
        if not temporary_url:
            raise ProviderApiError(
                "Visma SIE export response did not include a TemporaryUrl",
                status_code=500,
                body=str(data)[:500],
            )

        return await self._request(
            "GET",
            temporary_url,
            self._headers(None, accept="application/octet-stream"),
            binary=True,
            error_prefix="SIE download error",
        )

    async def get_page(
        self,
        token: str,
        path: str,
        page: int = 1,
        page_size: int = 100,
        modified_since: Optional[str] = None,
        modified_field: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Tuple[List[Dict[str, Any]], PageInfo]:
        """Fetch one page.

        Args:
            modified_field: Field compared against modified_since in $filter
            params: Extra query parameters
        """
        query = dict(params or {})
        query["$top"] = str(page_size)
        query["$skip"] = str((page - 1) * page_size)
        if modified_since and modified_field:
            query["$filter"] = f"{modified_field} gt {modified_since}"

        data = await self.get(token, path, params=query)

        if isinstance(data, list):
            # Unpaged endpoints return a bare array
            return data, PageInfo(page=page, total_pages=page, total_count=len(data))

        items = data.get("Data") or []
        meta = data.get("Meta") or {}
        info = PageInfo(
            page=_as_int(meta.get("CurrentPage"), page),
            total_pages=_as_int(meta.get("TotalNumberOfPages"), page),
            total_count=_as_int(meta.get("TotalNumberOfResults"), len(items)),
        )
        return items, info
