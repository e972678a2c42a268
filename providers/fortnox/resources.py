"""Fortnox typed resources.

Resource configs for on-demand access plus mappers from raw Fortnox
payloads to the shared DTOs.
"""

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
    PaymentDto,
    PostalAddress,
    ResourceType,
)
from providers.fortnox.config import FORTNOX_ENTITIES
from providers.mapper import DEFAULT_CURRENCY, to_decimal, derive_status


@dataclass(frozen=True)
class FortnoxResourceConfig:
    list_endpoint: str
    list_key: str
    detail_key: str
    id_field: str
    to_dto: Callable[[Dict[str, Any]], Any]
    supports_last_modified: bool = False
    singleton: bool = False

    def detail_endpoint(self, resource_id: str) -> str:
        if self.singleton:
            return self.list_endpoint
        return f"{self.list_endpoint}/{resource_id}"


@dataclass(frozen=True)
class FortnoxPaymentConfig:
    endpoint: str
    list_key: str
    detail_key: str
    # Query parameter and body field that link a payment to its invoice
    invoice_param: str = "invoicenumber"
    invoice_field: str = "InvoiceNumber"


# =============================================================================
# Mappers
# =============================================================================

def _str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _money(value: Any, currency: Optional[str]) -> Optional[AmountType]:
    amount = to_decimal(value)
    if amount is None:
        return None
    return AmountType(value=amount, currency_code=currency or DEFAULT_CURRENCY)


def _party(raw: Dict[str, Any], number_field: str) -> PartyDto:
    name = raw.get("Name") or ""
    number = _str(raw.get(number_field))
    org_number = _str(raw.get("OrganisationNumber"))
    return PartyDto(
        name=name,
        identifications=[PartyIdentification(id=number)] if number else [],
        postal_address=PostalAddress(
            street_name=_str(raw.get("Address1")),
            additional_street_name=_str(raw.get("Address2")),
            city_name=_str(raw.get("City")),
            postal_zone=_str(raw.get("ZipCode")),
            country_code=_str(raw.get("CountryCode")),
        ),
        legal_entity=PartyLegalEntity(registration_name=name, company_id=org_number) if org_number else None,
        contact=Contact(telephone=_str(raw.get("Phone1")), email=_str(raw.get("Email"))),
        active=raw.get("Active"),
        raw=raw,
    )


def customer_to_dto(raw: Dict[str, Any]) -> PartyDto:
    return _party(raw, "CustomerNumber")


def supplier_to_dto(raw: Dict[str, Any]) -> PartyDto:
    return _party(raw, "SupplierNumber")


def sales_invoice_to_dto(raw: Dict[str, Any]) -> InvoiceDto:
    currency = raw.get("Currency") or DEFAULT_CURRENCY
    status = derive_status(raw, FORTNOX_ENTITIES[EntityType.INVOICE]) or "draft"
    number = _str(raw.get("CustomerNumber"))
    return InvoiceDto(
        id=str(raw.get("DocumentNumber", "")),
        invoice_number=str(raw.get("DocumentNumber", "")),
        issue_date=_str(raw.get("InvoiceDate")),
        due_date=_str(raw.get("DueDate")),
        currency_code=currency,
        status=status,
        counterparty=PartyDto(
            name=raw.get("CustomerName") or "",
            identifications=[PartyIdentification(id=number)] if number else [],
        ),
        total=_money(raw.get("Total"), currency),
        balance=_money(raw.get("Balance"), currency),
        paid=status == "paid",
        updated_at=_str(raw.get("@LastModified")),
        raw=raw,
    )


def supplier_invoice_to_dto(raw: Dict[str, Any]) -> InvoiceDto:
    currency = raw.get("Currency") or DEFAULT_CURRENCY
    status = derive_status(raw, FORTNOX_ENTITIES[EntityType.SUPPLIER_INVOICE]) or "draft"
    number = _str(raw.get("SupplierNumber"))
    return InvoiceDto(
        id=str(raw.get("GivenNumber", "")),
        invoice_number=str(raw.get("InvoiceNumber") or raw.get("GivenNumber", "")),
        issue_date=_str(raw.get("InvoiceDate")),
        due_date=_str(raw.get("DueDate")),
        currency_code=currency,
        status=status,
        counterparty=PartyDto(
            name=raw.get("SupplierName") or "",
            identifications=[PartyIdentification(id=number)] if number else [],
        ),
        total=_money(raw.get("Total"), currency),
        balance=_money(raw.get("Balance"), currency),
        paid=status == "paid",
        updated_at=_str(raw.get("@LastModified")),
        raw=raw,
    )


def company_information_to_dto(raw: Dict[str, Any]) -> CompanyInformationDto:
    name = raw.get("CompanyName") or ""
    org_number = _str(raw.get("OrganizationNumber"))
    return CompanyInformationDto(
        company_name=name,
        organization_number=org_number,
        legal_entity=PartyLegalEntity(registration_name=name, company_id=org_number) if name else None,
        address=PostalAddress(
            street_name=_str(raw.get("Address")),
            city_name=_str(raw.get("City")),
            postal_zone=_str(raw.get("ZipCode")),
            country_code=_str(raw.get("CountryCode")),
        ),
        contact=Contact(telephone=_str(raw.get("Phone1")), email=_str(raw.get("Email"))),
        vat_number=_str(raw.get("VATNumber")),
        base_currency=DEFAULT_CURRENCY,
        raw=raw,
    )


def payment_to_dto(raw: Dict[str, Any]) -> PaymentDto:
    currency = raw.get("Currency") or DEFAULT_CURRENCY
    return PaymentDto(
        id=str(raw.get("Number", "")),
        invoice_id=str(raw.get("InvoiceNumber", "")),
        payment_date=_str(raw.get("PaymentDate")),
        amount=_money(raw.get("Amount"), currency),
        reference=_str(raw.get("Source")),
        raw=raw,
    )


# =============================================================================
# Resource Configs
# =============================================================================

FORTNOX_RESOURCES: Dict[ResourceType, FortnoxResourceConfig] = {
    ResourceType.SALES_INVOICES: FortnoxResourceConfig(
        list_endpoint="/invoices",
        list_key="Invoices",
        detail_key="Invoice",
        id_field="DocumentNumber",
        to_dto=sales_invoice_to_dto,
        supports_last_modified=True,
    ),
    ResourceType.SUPPLIER_INVOICES: FortnoxResourceConfig(
        list_endpoint="/supplierinvoices",
        list_key="SupplierInvoices",
        detail_key="SupplierInvoice",
        id_field="GivenNumber",
        to_dto=supplier_invoice_to_dto,
        supports_last_modified=True,
    ),
    ResourceType.CUSTOMERS: FortnoxResourceConfig(
        list_endpoint="/customers",
        list_key="Customers",
        detail_key="Customer",
        id_field="CustomerNumber",
        to_dto=customer_to_dto,
        supports_last_modified=True,
    ),
    ResourceType.SUPPLIERS: FortnoxResourceConfig(
        list_endpoint="/suppliers",
        list_key="Suppliers",
        detail_key="Supplier",
        id_field="SupplierNumber",
        to_dto=supplier_to_dto,
        supports_last_modified=True,
    ),
    ResourceType.COMPANY_INFORMATION: FortnoxResourceConfig(
        list_endpoint="/companyinformation",
        list_key="CompanyInformation",
        detail_key="CompanyInformation",
        id_field="OrganizationNumber",
        to_dto=company_information_to_dto,
        singleton=True,
    ),
}

WRITABLE_RESOURCES = [ResourceType.SALES_INVOICES, ResourceType.SUPPLIER_INVOICES]

# Payments nested under their invoice type
FORTNOX_PAYMENTS: Dict[ResourceType, FortnoxPaymentConfig] = {
    ResourceType.SALES_INVOICES: FortnoxPaymentConfig(
        endpoint="/invoicepayments",
        list_key="InvoicePayments",
        detail_key="InvoicePayment",
    ),
    ResourceType.SUPPLIER_INVOICES: FortnoxPaymentConfig(
        endpoint="/supplierinvoicepayments",
        list_key="SupplierInvoicePayments",
        detail_key="SupplierInvoicePayment",
    ),
}
