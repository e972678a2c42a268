"""Typed resource models for on-demand (gateway) access.

These DTOs are what V2 provider adapters return from list/get/create calls.
Each carries the provider payload in `raw` so callers can reach fields the
DTO does not model.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional, Any

from pydantic import BaseModel, Field


class ResourceType(str, Enum):
    SALES_INVOICES = "salesinvoices"
    SUPPLIER_INVOICES = "supplierinvoices"
    CUSTOMERS = "customers"
    SUPPLIERS = "suppliers"
    COMPANY_INFORMATION = "companyinformation"
    PAYMENTS = "payments"


class ResourceQueryOptions(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=100, ge=1)
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    last_modified: Optional[str] = None
    filter: dict[str, str] = Field(default_factory=dict)


class ResourceCapabilities(BaseModel):
    """Which resources a provider can read, write and nest."""
    read: list[ResourceType] = Field(default_factory=list)
    write: list[ResourceType] = Field(default_factory=list)
    sub_resources: dict[ResourceType, list[ResourceType]] = Field(default_factory=dict)


class PaginatedResponse(BaseModel):
    data: list[Any] = Field(default_factory=list)
    page: int = 1
    page_size: int = 0
    total_count: int = 0
    has_more: bool = False


# =============================================================================
# DTOs
# =============================================================================

class AmountType(BaseModel):
    value: Decimal
    currency_code: str = "SEK"


class PostalAddress(BaseModel):
    street_name: Optional[str] = None
    additional_street_name: Optional[str] = None
    city_name: Optional[str] = None
    postal_zone: Optional[str] = None
    country_code: Optional[str] = None


class Contact(BaseModel):
    name: Optional[str] = None
    telephone: Optional[str] = None
    email: Optional[str] = None


class PartyIdentification(BaseModel):
    id: str
    scheme_id: Optional[str] = Field(None, description="e.g. 'SE:ORGNR'")


class PartyLegalEntity(BaseModel):
    registration_name: str
    company_id: Optional[str] = Field(None, description="Organization number")


class PartyDto(BaseModel):
    """A customer, supplier or invoice counterparty."""
    name: str = ""
    identifications: list[PartyIdentification] = Field(default_factory=list)
    postal_address: Optional[PostalAddress] = None
    legal_entity: Optional[PartyLegalEntity] = None
    contact: Optional[Contact] = None
    active: Optional[bool] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class InvoiceDto(BaseModel):
    """Sales or supplier invoice header."""
    id: str
    invoice_number: str
    issue_date: Optional[str] = None
    due_date: Optional[str] = None
    currency_code: str = "SEK"
    status: str = "draft"
    counterparty: PartyDto = Field(default_factory=PartyDto)
    total: Optional[AmountType] = None
    balance: Optional[AmountType] = None
    paid: bool = False
    updated_at: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class PaymentDto(BaseModel):
    id: str
    invoice_id: str
    payment_date: Optional[str] = None
    amount: Optional[AmountType] = None
    reference: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class CompanyInformationDto(BaseModel):
    company_name: str = ""
    organization_number: Optional[str] = None
    legal_entity: Optional[PartyLegalEntity] = None
    address: Optional[PostalAddress] = None
    contact: Optional[Contact] = None
    vat_number: Optional[str] = None
    base_currency: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)
