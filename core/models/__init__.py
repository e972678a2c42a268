"""Core data models - provider-neutral canonical types.

This package contains the canonical entity record, sync job/progress/state
models, SIE models and the typed resource DTOs. None of them depend on a
specific accounting platform.
"""

from core.models.entity import (
    EntityType,
    ProviderName,
    CanonicalEntityRecord,
    FetchEntitiesOptions,
    FetchEntitiesResult,
)

from core.models.provider import (
    FortnoxCredentials,
    VismaCredentials,
    ProviderCredentials,
    RateLimits,
    ProviderCapabilities,
    CompanyInfo,
    FinancialYear,
)

from core.models.sync import (
    SyncStatus,
    SyncJob,
    SIESyncOptions,
    EntitySyncResult,
    SIESyncResult,
    SyncProgress,
    SyncState,
    ConnectionRecord,
    UpsertResult,
    GetEntitiesOptions,
)

from core.models.sie import (
    SIEMetadata,
    SIEAccount,
    SIEDimension,
    SIEBalance,
    SIETransaction,
    SIEParseResult,
    SIEFile,
    FetchSIEOptions,
    FetchSIEResult,
    SIEData,
    SIEUpload,
)

from core.models.resources import (
    ResourceType,
    ResourceQueryOptions,
    ResourceCapabilities,
    PaginatedResponse,
    AmountType,
    PostalAddress,
    Contact,
    PartyIdentification,
    PartyLegalEntity,
    PartyDto,
    InvoiceDto,
    PaymentDto,
    CompanyInformationDto,
)

__all__ = [
    # Entities
    "EntityType",
    "ProviderName",
    "CanonicalEntityRecord",
    "FetchEntitiesOptions",
    "FetchEntitiesResult",

    # Providers
    "FortnoxCredentials",
    "VismaCredentials",
    "ProviderCredentials",
    "RateLimits",
    "ProviderCapabilities",
    "CompanyInfo",
    "FinancialYear",

    # Sync
    "SyncStatus",
    "SyncJob",
    "SIESyncOptions",
    "EntitySyncResult",
    "SIESyncResult",
    "SyncProgress",
    "SyncState",
    "ConnectionRecord",
    "UpsertResult",
    "GetEntitiesOptions",

    # SIE
    "SIEMetadata",
    "SIEAccount",
    "SIEDimension",
    "SIEBalance",
    "SIETransaction",
    "SIEParseResult",
    "SIEFile",
    "FetchSIEOptions",
    "FetchSIEResult",
    "SIEData",
    "SIEUpload",

    # Resources
    "ResourceType",
    "ResourceQueryOptions",
    "ResourceCapabilities",
    "PaginatedResponse",
    "AmountType",
    "PostalAddress",
    "Contact",
    "PartyIdentification",
    "PartyLegalEntity",
    "PartyDto",
    "InvoiceDto",
    "PaymentDto",
    "CompanyInformationDto",
]
