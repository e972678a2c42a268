"""Provider registry.

An explicit mapping from provider name to adapter factory. The registry is
built once at startup and handed to the sync engine and gateway; nothing
registers itself on import.

Usage:
    registry = build_default_registry(load_settings())
    provider = registry.create(ProviderName.FORTNOX)
"""

from typing import Callable, Dict, List, Optional

from core.config import Settings
from core.errors import ProviderConfigurationError
from core.models.entity import ProviderName
from providers.base import AccountingProvider
from providers.fortnox import FortnoxClient, FortnoxProvider
from providers.visma import VismaClient, VismaProvider


ProviderFactory = Callable[[], AccountingProvider]


class ProviderRegistry:
    """Creates a fresh adapter per lookup.

    Every adapter owns its HTTP client and rate limiter, so two jobs never
    share a limiter.
    """

    def __init__(self, factories: Optional[Dict[ProviderName, ProviderFactory]] = None):
        self._factories: Dict[ProviderName, ProviderFactory] = dict(factories or {})

    def register(self, name: ProviderName, factory: ProviderFactory) -> None:
        self._factories[ProviderName(name)] = factory

    def create(self, name: ProviderName) -> AccountingProvider:
        """Create an adapter for a provider.

        Raises:
            ProviderConfigurationError: If no factory is registered for name
        """
        try:
            factory = self._factories[ProviderName(name)]
        except (KeyError, ValueError):
            available = [p.value for p in self._factories]
            raise ProviderConfigurationError(
                f"Unknown provider: {getattr(name, 'value', name)}. Available: {available}"
            )
        return factory()

    def is_registered(self, name: ProviderName) -> bool:
        return name in self._factories

    def list_providers(self) -> List[ProviderName]:
        return list(self._factories)


def build_default_registry(settings: Settings) -> ProviderRegistry:
    """Registry with the Fortnox and Visma adapters configured from settings."""
    client_options = {
        "retry_options": settings.retry,
        "timeout_seconds": settings.http_timeout_seconds,
    }
    return ProviderRegistry({
        ProviderName.FORTNOX: lambda: FortnoxProvider(
            FortnoxClient(settings.fortnox_base_url, **client_options)
        ),
        ProviderName.VISMA: lambda: VismaProvider(
            VismaClient(settings.visma_base_url, **client_options)
        ),
    })
