"""Fortnox entity configuration.

One EntityFieldConfig per synced entity type. Endpoint paths are relative to
the v3 base URL; list keys name the array in list responses.
"""

from typing import Dict

from core.models.entity import EntityType
from providers.mapper import EntityFieldConfig, StatusRule, all_of, always, flag, is_zero


SIE_TYPES = [1, 2, 3, 4]

LAST_MODIFIED = "@LastModified"


INVOICE_STATUS_RULES = (
    StatusRule("cancelled", flag("Cancelled")),
    StatusRule("paid", flag("FullyPaid")),
    StatusRule("paid", all_of(is_zero("Balance"), flag("Booked"))),
    StatusRule("booked", flag("Booked")),
    StatusRule("sent", flag("Sent")),
    StatusRule("draft", always),
)

SUPPLIER_INVOICE_STATUS_RULES = (
    StatusRule("cancelled", flag("Cancelled")),
    StatusRule("paid", all_of(is_zero("Balance"), flag("Booked"))),
    StatusRule("booked", flag("Booked")),
    StatusRule("draft", always),
)


FORTNOX_ENTITIES: Dict[EntityType, EntityFieldConfig] = {
    EntityType.INVOICE: EntityFieldConfig(
        endpoint="/invoices",
        list_key="Invoices",
        id_field="DocumentNumber",
        incremental=True,
        modified_field=LAST_MODIFIED,
        date_field="InvoiceDate",
        due_date_field="DueDate",
        counterparty_number_field="CustomerNumber",
        counterparty_name_field="CustomerName",
        amount_field="Total",
        currency_field="Currency",
        status_rules=INVOICE_STATUS_RULES,
    ),
    EntityType.CUSTOMER: EntityFieldConfig(
        endpoint="/customers",
        list_key="Customers",
        id_field="CustomerNumber",
        incremental=True,
        modified_field=LAST_MODIFIED,
        counterparty_number_field="CustomerNumber",
        counterparty_name_field="Name",
    ),
    EntityType.SUPPLIER: EntityFieldConfig(
        endpoint="/suppliers",
        list_key="Suppliers",
        id_field="SupplierNumber",
        incremental=True,
        modified_field=LAST_MODIFIED,
        counterparty_number_field="SupplierNumber",
        counterparty_name_field="Name",
    ),
    EntityType.SUPPLIER_INVOICE: EntityFieldConfig(
        endpoint="/supplierinvoices",
        list_key="SupplierInvoices",
        id_field="GivenNumber",
        incremental=True,
        modified_field=LAST_MODIFIED,
        date_field="InvoiceDate",
        due_date_field="DueDate",
        counterparty_number_field="SupplierNumber",
        counterparty_name_field="SupplierName",
        amount_field="Total",
        currency_field="Currency",
        status_rules=SUPPLIER_INVOICE_STATUS_RULES,
    ),
    EntityType.INVOICE_PAYMENT: EntityFieldConfig(
        endpoint="/invoicepayments",
        list_key="InvoicePayments",
        id_field="Number",
        date_field="PaymentDate",
        amount_field="Amount",
        currency_field="Currency",
    ),
    EntityType.SUPPLIER_INVOICE_PAYMENT: EntityFieldConfig(
        endpoint="/supplierinvoicepayments",
        list_key="SupplierInvoicePayments",
        id_field="Number",
        date_field="PaymentDate",
        amount_field="Amount",
        currency_field="Currency",
    ),
    EntityType.EMPLOYEE: EntityFieldConfig(
        endpoint="/employees",
        list_key="Employees",
        id_field="EmployeeId",
        counterparty_name_field="FullName",
    ),
    EntityType.ASSET: EntityFieldConfig(
        endpoint="/assets",
        list_key="Assets",
        id_field="Number",
        date_field="AcquisitionDate",
        amount_field="AcquisitionValue",
    ),
    EntityType.COMPANY_INFO: EntityFieldConfig(
        endpoint="/companyinformation",
        list_key="CompanyInformation",
        id_field="OrganizationNumber",
        counterparty_name_field="CompanyName",
        singleton=True,
    ),
}
