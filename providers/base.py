"""Abstract Accounting Provider Interface.

This module defines the interface every provider adapter implements. It is
intentionally provider-agnostic - no Fortnox or Visma specifics here.

Adapters implement this interface to:
1. Declare capabilities (entity types, SIE support, rate limits)
2. Validate credentials and read company information
3. Fetch entities page by page, mapped to canonical records
4. Fetch SIE exports

Key Design Principles:
- All methods return NORMALIZED objects (CanonicalEntityRecord, CompanyInfo, ...)
- The sync engine depends ONLY on this interface
- Provider-specific implementations live in provider subpackages

AccountingProviderV2 adds typed, on-demand resource access used by the
gateway. It bypasses the sync machinery entirely.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.errors import (
    ProviderConfigurationError,
    ProviderError,
    SIEDecodeError,
    UnsupportedResourceError,
)
from core.models.entity import (
    CanonicalEntityRecord,
    EntityType,
    FetchEntitiesOptions,
    FetchEntitiesResult,
    ProviderName,
)
from core.models.provider import CompanyInfo, FinancialYear, ProviderCapabilities
from core.models.resources import (
    PaginatedResponse,
    ResourceCapabilities,
    ResourceQueryOptions,
    ResourceType,
)
from core.models.sie import FetchSIEOptions, FetchSIEResult, SIEFile
from core.observability.logging import get_logger
from core.sie import decode_sie_bytes, parse_sie

logger = get_logger(__name__)


# (records fetched so far, total expected, entity type)
ProgressCallback = Callable[[int, int, EntityType], Any]


def latest_cursor(records: List[CanonicalEntityRecord]) -> Optional[str]:
    """Greatest last_modified among records, or None."""
    markers = [r.last_modified for r in records if r.last_modified]
    return max(markers) if markers else None


class AccountingProvider(ABC):
    """Abstract base class for provider adapters.

    Implementations:
    - providers/fortnox/provider.py
    - providers/visma/provider.py
    """

    name: ProviderName

    # =========================================================================
    # Capabilities & Company
    # =========================================================================

    @abstractmethod
    def get_capabilities(self) -> ProviderCapabilities:
        pass

    @abstractmethod
    async def validate_credentials(self, credentials) -> bool:
        """Return True if the credentials can read company information.

        Only 401/403 answers count as invalid. Other API and transport
        failures, and configuration errors (wrong provider variant), raise.
        """
        pass

    @abstractmethod
    async def get_company_info(self, credentials) -> CompanyInfo:
        pass

    @abstractmethod
    async def get_financial_years(self, credentials) -> List[FinancialYear]:
        pass

    # =========================================================================
    # Entities
    # =========================================================================

    @abstractmethod
    async def fetch_entities(self, credentials, options: FetchEntitiesOptions) -> FetchEntitiesResult:
        """Fetch and map a single page of one entity type."""
        pass

    async def fetch_all_entities(
        self,
        credentials,
        options: FetchEntitiesOptions,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[CanonicalEntityRecord]:
        """Drain all pages of one entity type.

        on_progress is called after every page. Errors raised by the callback
        are logged and never abort the fetch.
        """
        records: List[CanonicalEntityRecord] = []
        page = options.page

        while True:
            result = await self.fetch_entities(credentials, options.model_copy(update={"page": page}))
            records.extend(result.entities)

            total = result.total_count if result.total_count is not None else len(records)
            self._notify_progress(on_progress, len(records), total, options.entity_type)

            if not result.has_more:
                break
            page += 1

        return records

    @staticmethod
    def _notify_progress(
        on_progress: Optional[ProgressCallback],
        current: int,
        total: int,
        entity_type: EntityType,
    ) -> None:
        if on_progress is None:
            return
        try:
            on_progress(current, total, entity_type)
        except Exception as e:
            logger.warning(
                f"Progress callback failed: {e}",
                extra_fields={"entity_type": entity_type.value},
            )

    # =========================================================================
    # SIE
    # =========================================================================

    @abstractmethod
    async def fetch_sie(self, credentials, options: FetchSIEOptions) -> FetchSIEResult:
        """Fetch SIE exports. Years that fail are logged and skipped."""
        pass

    def _select_years(self, years: List[FinancialYear], options: FetchSIEOptions) -> List[FinancialYear]:
        if options.fiscal_years is None:
            return years
        wanted = set(options.fiscal_years)
        return [fy for fy in years if fy.year in wanted]

    async def _collect_sie_files(
        self,
        years: List[FinancialYear],
        sie_type: int,
        download: Callable[[FinancialYear], Awaitable[bytes]],
    ) -> FetchSIEResult:
        """Download, decode and parse one export per fiscal year."""
        files: List[SIEFile] = []
        for fy in years:
            try:
                data = await download(fy)
                content = decode_sie_bytes(data)
                files.append(SIEFile(
                    fiscal_year=fy.year,
                    sie_type=sie_type,
                    raw_content=content,
                    parsed=parse_sie(content),
                ))
            except (ProviderError, SIEDecodeError) as e:
                logger.warning(
                    f"Skipping SIE export for fiscal year {fy.year}: {e}",
                    extra_fields={"fiscal_year": fy.year, "sie_type": sie_type},
                )
        return FetchSIEResult(files=files)

    # =========================================================================
    # Helpers
    # =========================================================================

    def supports_entity_type(self, entity_type: EntityType) -> bool:
        return entity_type in self.get_capabilities().supported_entity_types

    def access_token(self, credentials) -> str:
        """Extract the bearer token after checking the credential variant."""
        provider = getattr(credentials, "provider", None)
        if provider != self.name.value:
            raise ProviderConfigurationError(
                f"{self.name.value} provider received credentials for {provider!r}"
            )
        token = getattr(credentials, "access_token", "")
        if not token:
            raise ProviderConfigurationError(f"{self.name.value} credentials have no access token")
        return token

    async def close(self) -> None:
        """Release the adapter's HTTP resources."""
        return None


class AccountingProviderV2(AccountingProvider):
    """Provider with typed CRUD access to individual resources."""

    @abstractmethod
    def get_resource_capabilities(self) -> ResourceCapabilities:
        pass

    @abstractmethod
    async def list_resource(
        self,
        credentials,
        resource_type: ResourceType,
        options: Optional[ResourceQueryOptions] = None,
    ) -> PaginatedResponse:
        pass

    @abstractmethod
    async def get_resource(self, credentials, resource_type: ResourceType, resource_id: str) -> Optional[Any]:
        """Fetch one resource; None when the provider answers 404."""
        pass

    @abstractmethod
    async def create_resource(self, credentials, resource_type: ResourceType, data: Dict[str, Any]) -> Any:
        pass

    async def list_sub_resource(
        self,
        credentials,
        parent_type: ResourceType,
        parent_id: str,
        sub_type: ResourceType,
        options: Optional[ResourceQueryOptions] = None,
    ) -> PaginatedResponse:
        raise UnsupportedResourceError(
            f"Sub-resource {sub_type.value!r} is not supported for {parent_type.value!r} on {self.name.value}"
        )

    async def create_sub_resource(
        self,
        credentials,
        parent_type: ResourceType,
        parent_id: str,
        sub_type: ResourceType,
        data: Dict[str, Any],
    ) -> Any:
        raise UnsupportedResourceError(
            f"Sub-resource {sub_type.value!r} creation is not supported for {parent_type.value!r} on {self.name.value}"
        )

    def check_readable(self, resource_type: ResourceType) -> None:
        if resource_type not in self.get_resource_capabilities().read:
            raise UnsupportedResourceError(
                f"Resource type {resource_type.value!r} is not supported by {self.name.value}"
            )

    def check_writable(self, resource_type: ResourceType) -> None:
        if resource_type not in self.get_resource_capabilities().write:
            raise UnsupportedResourceError(
                f"Creating {resource_type.value!r} is not supported by {self.name.value}"
            )
