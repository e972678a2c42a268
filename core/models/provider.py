"""Provider-facing models: credentials, capabilities, company info."""

from __future__ import annotations

from typing import Optional, Any, Literal, Union

from pydantic import BaseModel, Field
from typing_extensions import Annotated

from core.models.entity import EntityType, ProviderName


# =============================================================================
# Credentials
# =============================================================================

class FortnoxCredentials(BaseModel):
    """OAuth2 bearer credentials for Fortnox."""
    provider: Literal["fortnox"] = "fortnox"
    access_token: str = Field(..., description="OAuth2 access token")


class VismaCredentials(BaseModel):
    """OAuth2 bearer credentials for Visma eAccounting."""
    provider: Literal["visma"] = "visma"
    access_token: str = Field(..., description="OAuth2 access token")


ProviderCredentials = Annotated[
    Union[FortnoxCredentials, VismaCredentials],
    Field(discriminator="provider"),
]


# =============================================================================
# Capabilities
# =============================================================================

class RateLimits(BaseModel):
    """Published request budget of a provider."""
    max_requests: int
    window_ms: int


class ProviderCapabilities(BaseModel):
    """What a provider adapter can do."""
    name: ProviderName
    display_name: str
    supported_entity_types: list[EntityType] = Field(default_factory=list)
    supports_sie: bool = False
    sie_types: list[int] = Field(default_factory=list)
    supports_incremental_sync: bool = False
    incremental_sync_entities: list[EntityType] = Field(default_factory=list)
    auth_type: str = "oauth2"
    rate_limits: RateLimits


class CompanyInfo(BaseModel):
    company_name: str = ""
    organization_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class FinancialYear(BaseModel):
    """A provider fiscal year. year is the calendar year of to_date."""
    id: Any
    from_date: str
    to_date: str
    year: int
