"""Fortnox provider adapter."""

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
from providers.fortnox.client import FORTNOX_RATE_LIMIT, FortnoxClient
from providers.fortnox.config import FORTNOX_ENTITIES, SIE_TYPES
from providers.fortnox.resources import (
    FORTNOX_PAYMENTS,
    FORTNOX_RESOURCES,
    WRITABLE_RESOURCES,
    FortnoxResourceConfig,
    payment_to_dto,
)
from providers.mapper import EntityFieldConfig, map_entities

logger = get_logger(__name__)


def _date_params(from_date: Optional[str], to_date: Optional[str]) -> Dict[str, str]:
    params = {}
    if from_date:
        params["fromdate"] = from_date
    if to_date:
        params["todate"] = to_date
    return params


class FortnoxProvider(AccountingProviderV2):
    """Fortnox adapter: entity sync, SIE exports and typed resources.

    Usage:
        provider = FortnoxProvider(FortnoxClient(settings.fortnox_base_url))
        info = await provider.get_company_info(credentials)
        await provider.close()
    """

    name = ProviderName.FORTNOX

    def __init__(self, client: Optional[FortnoxClient] = None):
        self.client = client or FortnoxClient()

    async def close(self) -> None:
        await self.client.close()

    # =========================================================================
    # Capabilities & Company
    # =========================================================================

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            name=self.name,
            display_name="Fortnox",
            supported_entity_types=list(FORTNOX_ENTITIES),
            supports_sie=True,
            sie_types=SIE_TYPES,
            supports_incremental_sync=True,
            incremental_sync_entities=[t for t, c in FORTNOX_ENTITIES.items() if c.incremental],
            rate_limits=RateLimits(
                max_requests=FORTNOX_RATE_LIMIT.max_requests,
                window_ms=FORTNOX_RATE_LIMIT.window_ms,
            ),
        )

    async def validate_credentials(self, credentials) -> bool:
        token = self.access_token(credentials)
        try:
            await self.client.get(token, "/companyinformation")
            return True
        except ProviderApiError as e:
            if e.status_code not in (401, 403):
                raise
            logger.warning(f"Fortnox credential check failed: {e}")
            return False

    async def get_company_info(self, credentials) -> CompanyInfo:
        token = self.access_token(credentials)
        data = await self.client.get(token, "/companyinformation")
        raw = data.get("CompanyInformation") or {}
        return CompanyInfo(
            company_name=raw.get("CompanyName") or "",
            organization_number=raw.get("OrganizationNumber"),
            address=raw.get("Address"),
            city=raw.get("City"),
            country=raw.get("Country"),
            email=raw.get("Email"),
            phone=raw.get("Phone1"),
            raw=raw,
        )

    async def get_financial_years(self, credentials) -> List[FinancialYear]:
        token = self.access_token(credentials)
        items = await self.client.get_paginated(token, "/financialyears", list_key="FinancialYears")
        return [
            FinancialYear(
                id=item.get("Id"),
                from_date=item.get("FromDate", ""),
                to_date=item.get("ToDate", ""),
                year=int(item["ToDate"][:4]),
            )
            for item in items
            if item.get("ToDate")
        ]

    # =========================================================================
    # Entities
    # =========================================================================

    def _entity_config(self, entity_type: EntityType) -> EntityFieldConfig:
        config = FORTNOX_ENTITIES.get(entity_type)
        if config is None:
            raise ProviderConfigurationError(f"Fortnox does not support entity type {entity_type.value!r}")
        return config

    async def fetch_entities(self, credentials, options: FetchEntitiesOptions) -> FetchEntitiesResult:
        token = self.access_token(credentials)
        config = self._entity_config(options.entity_type)

        if config.singleton:
            data = await self.client.get(token, config.endpoint)
            raw = data.get(config.list_key)
            items = [raw] if raw else []
            entities = map_entities(items, options.entity_type, self.name, config)
            return FetchEntitiesResult(entities=entities, total_count=len(entities))

        items, info = await self.client.get_page(
            token,
            config.endpoint,
            page=options.page,
            page_size=options.page_size,
            modified_since=options.last_modified_cursor if config.incremental else None,
            list_key=config.list_key,
            params=_date_params(options.from_date, options.to_date),
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
            raise ProviderConfigurationError(f"Fortnox does not export SIE type {options.sie_type}")

        years = self._select_years(await self.get_financial_years(credentials), options)

        async def download(fy: FinancialYear) -> bytes:
            return await self.client.get_binary(token, f"/sie/{options.sie_type}?financialyear={fy.id}")

        return await self._collect_sie_files(years, options.sie_type, download)

    # =========================================================================
    # Typed Resources
    # =========================================================================

    def get_resource_capabilities(self) -> ResourceCapabilities:
        return ResourceCapabilities(
            read=list(FORTNOX_RESOURCES),
            write=list(WRITABLE_RESOURCES),
            sub_resources={parent: [ResourceType.PAYMENTS] for parent in FORTNOX_PAYMENTS},
        )

    def _resource_config(self, resource_type: ResourceType) -> FortnoxResourceConfig:
        self.check_readable(resource_type)
        return FORTNOX_RESOURCES[resource_type]

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
            data = await self.client.get(token, config.list_endpoint)
            raw = data.get(config.detail_key)
            items = [config.to_dto(raw)] if raw else []
            return PaginatedResponse(data=items, page=1, page_size=len(items), total_count=len(items))

        params = _date_params(opts.from_date, opts.to_date)
        params.update(opts.filter)
        items, info = await self.client.get_page(
            token,
            config.list_endpoint,
            page=opts.page,
            page_size=opts.page_size,
            modified_since=opts.last_modified if config.supports_last_modified else None,
            list_key=config.list_key,
            params=params,
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
            data = await self.client.get(token, config.detail_endpoint(resource_id))
        except ProviderApiError as e:
            if e.status_code == 404:
                return None
            raise
        raw = data.get(config.detail_key)
        return config.to_dto(raw) if raw else None

    async def create_resource(self, credentials, resource_type: ResourceType, data: Dict[str, Any]) -> Any:
        token = self.access_token(credentials)
        self.check_writable(resource_type)
        config = self._resource_config(resource_type)
        response = await self.client.post(token, config.list_endpoint, {config.detail_key: data})
        return config.to_dto(response.get(config.detail_key) or {})

    def _payment_config(self, parent_type: ResourceType, sub_type: ResourceType):
        config = FORTNOX_PAYMENTS.get(parent_type)
        if config is None or sub_type != ResourceType.PAYMENTS:
            return None
        return config

    async def list_sub_resource(
        self,
        credentials,
        parent_type: ResourceType,
        parent_id: str,
        sub_type: ResourceType,
        options: Optional[ResourceQueryOptions] = None,
    ) -> PaginatedResponse:
        config = self._payment_config(parent_type, sub_type)
        if config is None:
            return await super().list_sub_resource(credentials, parent_type, parent_id, sub_type, options)

        token = self.access_token(credentials)
        opts = options or ResourceQueryOptions()
        items, info = await self.client.get_page(
            token,
            config.endpoint,
            page=opts.page,
            page_size=opts.page_size,
            list_key=config.list_key,
            params={config.invoice_param: str(parent_id)},
        )
        return PaginatedResponse(
            data=[payment_to_dto(item) for item in items],
            page=info.page,
            page_size=opts.page_size,
            total_count=info.total_count or 0,
            has_more=info.has_more,
        )

    async def create_sub_resource(
        self,
        credentials,
        parent_type: ResourceType,
        parent_id: str,
        sub_type: ResourceType,
        data: Dict[str, Any],
    ) -> Any:
        config = self._payment_config(parent_type, sub_type)
        if config is None:
            return await super().create_sub_resource(credentials, parent_type, parent_id, sub_type, data)

        token = self.access_token(credentials)
        body = {config.detail_key: {config.invoice_field: parent_id, **data}}
        response = await self.client.post(token, config.endpoint, body)
        return payment_to_dto(response.get(config.detail_key) or {})
