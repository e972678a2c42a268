"""On-demand resource gateway.

Forwards typed resource calls straight to a provider adapter. Nothing is
diffed or stored; each call gets a fresh adapter that is closed afterwards.

Usage:
    gateway = GatewayHandler(registry)
    page = await gateway.list_resource(
        ProviderName.FORTNOX, credentials, ResourceType.SALES_INVOICES,
    )
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from core.errors import ProviderConfigurationError
from core.models.entity import ProviderName
from core.models.resources import PaginatedResponse, ResourceQueryOptions, ResourceType
from core.observability.logging import get_logger, with_correlation
from providers.base import AccountingProviderV2
from providers.registry import ProviderRegistry

logger = get_logger(__name__)


class GatewayHandler:
    """Routes resource requests to V2 provider adapters."""

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    @asynccontextmanager
    async def _provider(self, provider_name: ProviderName) -> AsyncIterator[AccountingProviderV2]:
        provider = self.registry.create(provider_name)
        try:
            if not isinstance(provider, AccountingProviderV2):
                raise ProviderConfigurationError(
                    f"Provider {ProviderName(provider_name).value} does not support resource access"
                )
            with with_correlation(provider=ProviderName(provider_name).value, stage="gateway"):
                yield provider
        finally:
            await provider.close()

    async def list_resource(
        self,
        provider_name: ProviderName,
        credentials,
        resource_type: ResourceType,
        options: Optional[ResourceQueryOptions] = None,
    ) -> PaginatedResponse:
        async with self._provider(provider_name) as provider:
            logger.debug(f"Listing {resource_type.value}")
            return await provider.list_resource(credentials, resource_type, options)

    async def get_resource(
        self,
        provider_name: ProviderName,
        credentials,
        resource_type: ResourceType,
        resource_id: str,
    ) -> Optional[Any]:
        """Fetch one resource; None when the provider does not have it."""
        async with self._provider(provider_name) as provider:
            logger.debug(f"Fetching {resource_type.value} {resource_id}")
            return await provider.get_resource(credentials, resource_type, resource_id)

    async def create_resource(
        self,
        provider_name: ProviderName,
        credentials,
        resource_type: ResourceType,
        data: Dict[str, Any],
    ) -> Any:
        async with self._provider(provider_name) as provider:
            logger.info(f"Creating {resource_type.value}")
            return await provider.create_resource(credentials, resource_type, data)

    async def list_sub_resource(
        self,
        provider_name: ProviderName,
        credentials,
        parent_type: ResourceType,
        parent_id: str,
        sub_type: ResourceType,
        options: Optional[ResourceQueryOptions] = None,
    ) -> PaginatedResponse:
        async with self._provider(provider_name) as provider:
            return await provider.list_sub_resource(credentials, parent_type, parent_id, sub_type, options)

    async def create_sub_resource(
        self,
        provider_name: ProviderName,
        credentials,
        parent_type: ResourceType,
        parent_id: str,
        sub_type: ResourceType,
        data: Dict[str, Any],
    ) -> Any:
        async with self._provider(provider_name) as provider:
            logger.info(f"Creating {sub_type.value} on {parent_type.value} {parent_id}")
            return await provider.create_sub_resource(credentials, parent_type, parent_id, sub_type, data)
