"""Accounting provider adapters.

Each provider sub-package supplies an HTTP client with the provider's paging
idiom, a declarative entity configuration and an AccountingProviderV2
adapter. The registry maps provider names to adapter factories.
"""

from providers.base import AccountingProvider, AccountingProviderV2
from providers.fortnox import FortnoxProvider
from providers.registry import ProviderRegistry, build_default_registry
from providers.visma import VismaProvider

__all__ = [
    "AccountingProvider",
    "AccountingProviderV2",
    "FortnoxProvider",
    "VismaProvider",
    "ProviderRegistry",
    "build_default_registry",
]
