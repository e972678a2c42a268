"""Visma typed resources: resource configs and DTO mappers."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from core.models.entity import EntityType
from core.models.resources import (
    AmountType,
    CompanyInformationDto,
    Contact,
    InvoiceDto,
    PartyDto,
    PartyIdentification,
    PartyLegalEntity,
    PostalAddress,
    ResourceType,
)
from providers.mapper import DEFAULT_CURRENCY, derive_status, to_decimal
from providers.visma.config import VISMA_ENTITIES


@dataclass(frozen=True)
class VismaResourceConfig:
    endpoint: str
    id_field: str
    to_dto: Callable[[Dict[str, Any]], Any]
    modified_field: Optional[str] = None
    singleton: bool = False

    def detail_endpoint(self, resource_id: str) -> str:
        if self.singleton:
            return self.endpoint
        return f"{self.endpoint}/{resource_id}"


def _str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _money(value: Any, currency: Optional[str]) -> Optional[AmountType]:
    amount = to_decimal(value)
    if amount is None:
        return None
    return AmountType(value=amount, currency_code=currency or DEFAULT_CURRENCY)


def _invoice(raw: Dict[str, Any], entity_type: EntityType, name_field: str, number_field: str) -> InvoiceDto:
    currency = raw.get("CurrencyCode") or DEFAULT_CURRENCY
    status = derive_status(raw, VISMA_ENTITIES[entity_type]) or "unknown"
    number = _str(raw.get(number_field))
    return InvoiceDto(
        id=str(raw.get("Id", "")),
        invoice_number=str(raw.get("InvoiceNumber", "")),
        issue_date=_str(raw.get("InvoiceDate")),
        due_date=_str(raw.get("DueDate")),
        currency_code=currency,
        status=status,
        counterparty=PartyDto(
            name=raw.get(name_field) or "",
            identifications=[PartyIdentification(id=number)] if number else [],
        ),
        total=_money(raw.get("TotalAmount"), currency),
        balance=_money(raw.get("RemainingAmount"), currency),
        paid=status == "paid",
        updated_at=_str(raw.get("ModifiedUtc")),
        raw=raw,
    )


def sales_invoice_to_dto(raw: Dict[str, Any]) -> InvoiceDto:
    return _invoice(raw, EntityType.INVOICE, "InvoiceCustomerName", "CustomerNumber")


def supplier_invoice_to_dto(raw: Dict[str, Any]) -> InvoiceDto:
    return _invoice(raw, EntityType.SUPPLIER_INVOICE, "SupplierName", "SupplierNumber")


def _party(raw: Dict[str, Any], number_field: str, address_prefix: str = "") -> PartyDto:
    name = raw.get("Name") or ""
    number = _str(raw.get(number_field))
    org_number = _str(raw.get("CorporateIdentityNumber"))
    return PartyDto(
        name=name,
        identifications=[PartyIdentification(id=number)] if number else [],
        postal_address=PostalAddress(
            street_name=_str(raw.get(f"{address_prefix}Address1")),
            additional_street_name=_str(raw.get(f"{address_prefix}Address2")),
            city_name=_str(raw.get(f"{address_prefix}City")),
            postal_zone=_str(raw.get(f"{address_prefix}PostalCode")),
            country_code=_str(raw.get(f"{address_prefix}CountryCode")),
        ),
        legal_entity=PartyLegalEntity(registration_name=name, company_id=org_number) if org_number else None,
        contact=Contact(telephone=_str(raw.get("Telephone")), email=_str(raw.get("EmailAddress"))),
        active=raw.get("IsActive"),
        raw=raw,
    )


def customer_to_dto(raw: Dict[str, Any]) -> PartyDto:
    return _party(raw, "CustomerNumber", address_prefix="Invoice")


def supplier_to_dto(raw: Dict[str, Any]) -> PartyDto:
    return _party(raw, "SupplierNumber")


def company_information_to_dto(raw: Dict[str, Any]) -> CompanyInformationDto:
    name = raw.get("Name") or ""
    org_number = _str(raw.get("CorporateIdentityNumber"))
    return CompanyInformationDto(
        company_name=name,
        organization_number=org_number,
        legal_entity=PartyLegalEntity(registration_name=name, company_id=org_number) if name else None,
        address=PostalAddress(
            street_name=_str(raw.get("Address1")),
            additional_street_name=_str(raw.get("Address2")),
            city_name=_str(raw.get("City")),
            postal_zone=_str(raw.get("PostalCode")),
            country_code=_str(raw.get("CountryCode")),
        ),
        contact=Contact(telephone=_str(raw.get("Phone")), email=_str(raw.get("Email"))),
        vat_number=_str(raw.get("VatNumber")),
        base_currency=_str(raw.get("CurrencyCode")),
        raw=raw,
    )


VISMA_RESOURCES: Dict[ResourceType, VismaResourceConfig] = {
    ResourceType.SALES_INVOICES: VismaResourceConfig(
        endpoint="/customerinvoices",
        id_field="Id",
        to_dto=sales_invoice_to_dto,
        modified_field="ModifiedUtc",
    ),
    ResourceType.SUPPLIER_INVOICES: VismaResourceConfig(
        endpoint="/supplierinvoices",
        id_field="Id",
        to_dto=supplier_invoice_to_dto,
        modified_field="ModifiedUtc",
    ),
    ResourceType.CUSTOMERS: VismaResourceConfig(
        endpoint="/customers",
        id_field="Id",
        to_dto=customer_to_dto,
        modified_field="ChangedUtc",
    ),
    ResourceType.SUPPLIERS: VismaResourceConfig(
        endpoint="/suppliers",
        id_field="Id",
        to_dto=supplier_to_dto,
        modified_field="ModifiedUtc",
    ),
    ResourceType.COMPANY_INFORMATION: VismaResourceConfig(
        endpoint="/companysettings",
        id_field="CorporateIdentityNumber",
        to_dto=company_information_to_dto,
        singleton=True,
    ),
}

WRITABLE_RESOURCES = [ResourceType.SALES_INVOICES]
