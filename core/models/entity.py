"""Canonical entity records shared by every provider.

A CanonicalEntityRecord is the provider-neutral shape of one accounting
entity (invoice, customer, ...). The raw provider payload is kept verbatim in
raw_data and content_hash is derived from it, so two fetches of an unchanged
record always hash the same.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional, Any

from pydantic import BaseModel, Field, ConfigDict


class EntityType(str, Enum):
    """Entity types that can be synced."""
    INVOICE = "invoice"
    INVOICE_PAYMENT = "invoice_payment"
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    SUPPLIER_INVOICE = "supplier_invoice"
    SUPPLIER_INVOICE_PAYMENT = "supplier_invoice_payment"
    CONTRACT = "contract"
    ORDER = "order"
    EMPLOYEE = "employee"
    ASSET = "asset"
    COMPANY_INFO = "company_info"


class ProviderName(str, Enum):
    """Accounting platforms known to the system."""
    FORTNOX = "fortnox"
    VISMA = "visma"
    BRIOX = "briox"
    BOKIO = "bokio"
    BJORNLUNDEN = "bjornlunden"


class CanonicalEntityRecord(BaseModel):
    """One entity normalized into the canonical schema.

    Attributes:
        external_id: Provider's identifier for the entity
        fiscal_year: Year component of document_date, None when undated
        amount: Total amount parsed to Decimal
        raw_data: Provider payload, unmodified
        last_modified: Provider-native modification marker, used as cursor
        content_hash: SHA-256 over canonical JSON of raw_data
    """
    model_config = ConfigDict(use_enum_values=False)

    external_id: str = Field(..., description="Provider's identifier")
    entity_type: EntityType = Field(..., description="Canonical entity type")
    provider: ProviderName = Field(..., description="Source provider")
    fiscal_year: Optional[int] = Field(None, description="Fiscal year of the document date")
    document_date: Optional[str] = Field(None, description="Document date (provider format, ISO date)")
    due_date: Optional[str] = Field(None, description="Due date")
    counterparty_number: Optional[str] = Field(None, description="Customer/supplier number")
    counterparty_name: Optional[str] = Field(None, description="Customer/supplier name")
    amount: Optional[Decimal] = Field(None, description="Total amount")
    currency: str = Field(default="SEK", description="ISO currency code")
    status: Optional[str] = Field(None, description="Derived canonical status")
    raw_data: dict[str, Any] = Field(default_factory=dict, description="Raw provider payload")
    last_modified: Optional[str] = Field(None, description="Provider modification marker")
    content_hash: str = Field(..., description="SHA-256 of canonical raw_data JSON")


class FetchEntitiesOptions(BaseModel):
    """Options for fetching one entity type from a provider."""
    entity_type: EntityType
    last_modified_cursor: Optional[str] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    fiscal_year: Optional[int] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=100, ge=1)


class FetchEntitiesResult(BaseModel):
    """One page of mapped entities."""
    entities: list[CanonicalEntityRecord] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    total_count: Optional[int] = None
    has_more: bool = False
    page: int = 1
    total_pages: int = 1
