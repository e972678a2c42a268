"""SIE (Standard Import Export) models for Swedish accounting exports.

SIE files carry the chart of accounts, opening/closing balances and
verifications of one fiscal year. The parser flattens verifications so each
transaction row stands alone with its verification context.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from core.models.sync import utcnow


class SIEMetadata(BaseModel):
    company_name: str = ""
    currency: str = "SEK"
    generated_date: Optional[str] = None
    sie_type: Optional[str] = None
    fiscal_year_start: Optional[str] = None
    fiscal_year_end: Optional[str] = None
    org_number: Optional[str] = None
    # Date of last transaction (#OMFATTN), set for partial years
    omfattn_date: Optional[str] = None


class SIEAccount(BaseModel):
    account_number: str
    account_name: str
    account_group: str = Field(..., description="BAS account group, e.g. '1 - Tillgångar'")
    tax_code: Optional[str] = Field(None, description="SRU tax reporting code")


class SIEDimension(BaseModel):
    dimension_type: int
    code: str
    name: str


class SIEBalance(BaseModel):
    """Opening (IB), closing (UB) or result (RES) balance of one account."""
    account_number: str
    balance_type: str = Field(..., pattern="^(IB|UB|RES)$")
    year_index: int = Field(..., description="0 = current year, -1 = previous year")
    amount: Decimal
    quantity: Optional[Decimal] = None


class SIETransaction(BaseModel):
    """One #TRANS row together with its #VER context."""
    verification_series: str
    verification_number: str
    verification_date: str
    verification_text: str = ""
    account_number: str
    amount: Decimal
    cost_center: str = ""
    project: str = ""
    row_text: str = ""
    quantity: Optional[Decimal] = None
    registration_date: Optional[str] = None


class SIEParseResult(BaseModel):
    metadata: SIEMetadata = Field(default_factory=SIEMetadata)
    accounts: list[SIEAccount] = Field(default_factory=list)
    dimensions: list[SIEDimension] = Field(default_factory=list)
    transactions: list[SIETransaction] = Field(default_factory=list)
    balances: list[SIEBalance] = Field(default_factory=list)


class SIEFile(BaseModel):
    """One decoded and parsed SIE export."""
    fiscal_year: int
    sie_type: int
    raw_content: str
    parsed: SIEParseResult


class FetchSIEOptions(BaseModel):
    sie_type: int = Field(default=4, ge=1, le=4)
    fiscal_years: Optional[list[int]] = None


class FetchSIEResult(BaseModel):
    files: list[SIEFile] = Field(default_factory=list)


class SIEData(BaseModel):
    """A parsed SIE export ready to be stored for a connection."""
    upload_id: Optional[str] = None
    connection_id: str
    fiscal_year: int
    sie_type: int
    parsed: SIEParseResult
    raw_content: Optional[str] = None


class SIEUpload(BaseModel):
    """Summary row of a stored SIE export."""
    upload_id: str
    connection_id: str
    fiscal_year: int
    sie_type: int
    file_name: Optional[str] = None
    account_count: int = 0
    transaction_count: int = 0
    uploaded_at: datetime = Field(default_factory=utcnow)
