"""Visma eAccounting provider adapter."""

from typing import Any, Dict, List, Optional

from core.errors import ProviderApiError, ProviderConfigurationError
from core.models.entity import (
    EntityType,
    FetchEntitiesOptions,
    FetchEntitiesResult,
    ProviderName,
)
from core.models.provider import CompanyInfo, FinancialYear, ProviderCapabilities, RateLimits
from core.models.resources import (
    PaginatedResponse,
    ResourceCapabilities,
    ResourceQueryOptions,
    ResourceType,
)
from core.models.sie import FetchSIEOptions, FetchSIEResult
from core.observability.logging import get_logger
from providers.base import AccountingProviderV2, latest_cursor
from providers.mapper import EntityFieldConfig, map_entities
from providers.visma.client import VISMA_RATE_LIMIT, VismaClient
from providers.visma.config import SIE_TYPES, VISMA_ENTITIES
from providers.visma.resources import VISMA_RESOURCES, WRITABLE_RESOURCES, VismaResourceConfig

logger = get_logger(__name__)


class VismaProvider(AccountingProviderV2):
    """Visma eAccounting adapter: entity sync, SIE 4 exports and typed resources."""

    name = ProviderName.VISMA

    def __init__(self, client: Optional[VismaClient] = None):
        self.client = client or VismaClient()

    async def close(self) -> None:
        await self.client.close()

    # =========================================================================
    # Capabilities & Company
    # =========================================================================

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            name=self.name,
            display_name="Visma eAccounting",
            supported_entity_types=list(VISMA_ENTITIES),
            supports_sie=True,
            sie_types=SIE_TYPES,
            supports_incremental_sync=True,
            incremental_sync_entities=[t for t, c in VISMA_ENTITIES.items() if c.incremental],
            rate_limits=RateLimits(
                max_requests=VISMA_RATE_LIMIT.max_requests,
                window_ms=VISMA_RATE_LIMIT.window_ms,
            ),
        )

    async def validate_credentials(self, credentials) -> bool:
        token = self.access_token(credentials)
        try:
            await self.client.get(token, "/companysettings")
            return True
        except ProviderApiError as e:
            if e.status_code not in (401, 403):
                raise
            logger.warning(f"Visma credential check failed: {e}")
            return False

    async def get_company_info(self, credentials) -> CompanyInfo:
        token = self.access_token(credentials)
        raw = await self.client.get(token, "/companysettings")
        return CompanyInfo(
            company_name=raw.get("Name") or "",
            organization_number=raw.get("CorporateIdentityNumber"),
            address=raw.get("Address1"),
            city=raw.get("City"),
            country=raw.get("CountryCode"),
            email=raw.get("Email"),
            phone=raw.get("Phone"),
            raw=raw,
        )

    async def get_financial_years(self, credentials) -> List[FinancialYear]:
        token = self.access_token(credentials)
        items = await self.client.get_paginated(token, "/fiscalyears")
        return [
            FinancialYear(
                id=item.get("Id"),
                from_date=(item.get("StartDate") or "")[:10],
                to_date=item["EndDate"][:10],
                year=int(item["EndDate"][:4]),
            )
            for item in items
            if item.get("EndDate")
        ]

    # =========================================================================
    # Entities
    # =========================================================================

    def _entity_config(self, entity_type: EntityType) -> EntityFieldConfig:
        config = VISMA_ENTITIES.get(entity_type)
        if config is None:
            raise ProviderConfigurationError(f"Visma does not support entity type {entity_type.value!r}")
        return config

    async def fetch_entities(self, credentials, options: FetchEntitiesOptions) -> FetchEntitiesResult:
        token = self.access_token(credentials)
        config = self._entity_config(options.entity_type)

        if config.singleton:
            raw = await self.client.get(token, config.endpoint)
            entities = map_entities([raw] if raw else [], options.entity_type, self.name, config)
            return FetchEntitiesResult(entities=entities, total_count=len(entities))

        items, info = await self.client.get_page(
            token,
            config.endpoint,
            page=options.page,
            page_size=options.page_size,
            modified_since=options.last_modified_cursor if config.incremental else None,
            modified_field=config.modified_field,
        )
        entities = map_entities(items, options.entity_type, self.name, config)

        return FetchEntitiesResult(
            entities=entities,
            next_cursor=latest_cursor(entities),
            total_count=info.total_count,
            has_more=info.has_more,
            page=info.page,
            total_pages=info.total_pages,
        )

    # =========================================================================
    # SIE
    # =========================================================================

    async def fetch_sie(self, credentials, options: FetchSIEOptions) -> FetchSIEResult:
        token = self.access_token(credentials)
        if options.sie_type not in SIE_TYPES:
            raise ProviderConfigurationError(f"Visma only exports SIE type 4, not {options.sie_type}")

        years = self._select_years(await self.get_financial_years(credentials), options)

        async def download(fy: FinancialYear) -> bytes:
            return await self.client.get_binary(token, f"/sie4export/{fy.from_date}/{fy.to_date}")

        return await self._collect_sie_files(years, options.sie_type, download)

    # =========================================================================
    # Typed Resources
    # =========================================================================

    def get_resource_capabilities(self) -> ResourceCapabilities:
        return ResourceCapabilities(read=list(VISMA_RESOURCES), write=list(WRITABLE_RESOURCES))

    def _resource_config(self, resource_type: ResourceType) -> VismaResourceConfig:
        self.check_readable(resource_type)
        return VISMA_RESOURCES[resource_type]

    async def list_resource(
        self,
        credentials,
        resource_type: ResourceType,
        options: Optional[ResourceQueryOptions] = None,
    ) -> PaginatedResponse:
        token = self.access_token(credentials)
        config = self._resource_config(resource_type)
        opts = options or ResourceQueryOptions()

        if config.singleton:
            raw = await self.client.get(token, config.endpoint)
            items = [config.to_dto(raw)] if raw else []
            return PaginatedResponse(data=items, page=1, page_size=len(items), total_count=len(items))

        items, info = await self.client.get_page(
            token,
            config.endpoint,
            page=opts.page,
            page_size=opts.page_size,
            modified_since=opts.last_modified,
            modified_field=config.modified_field,
            params=dict(opts.filter),
        )
        return PaginatedResponse(
            data=[config.to_dto(item) for item in items],
            page=info.page,
            page_size=opts.page_size,
            total_count=info.total_count or 0,
            has_more=info.has_more,
        )

    async def get_resource(self, credentials, resource_type: ResourceType, resource_id: str) -> Optional[Any]:
        token = self.access_token(credentials)
        config = self._resource_config(resource_type)
        try:
            raw = await self.client.get(token, config.detail_endpoint(resource_id))
        except ProviderApiError as e:
            if e.status_code == 404:
                return None
            raise
        return config.to_dto(raw) if raw else None

    async def create_resource(self, credentials, resource_type: ResourceType, data: Dict[str, Any]) -> Any:
        token = self.access_token(credentials)
        self.check_writable(resource_type)
        config = self._resource_config(resource_type)
        raw = await self.client.post(token, config.endpoint, data)
        return config.to_dto(raw)
