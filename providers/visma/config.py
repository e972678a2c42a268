"""Visma eAccounting entity configuration."""

from typing import Dict

from core.models.entity import EntityType
from providers.mapper import EntityFieldConfig, StatusRule, always, is_positive, is_zero


SIE_TYPES = [4]


REMAINING_AMOUNT_RULES = (
    StatusRule("paid", is_zero("RemainingAmount")),
    StatusRule("unpaid", is_positive("RemainingAmount")),
    StatusRule("unknown", always),
)

ORDER_STATUSES = {
    0: "draft",
    1: "active",
    2: "invoiced",
    3: "expired",
}


VISMA_ENTITIES: Dict[EntityType, EntityFieldConfig] = {
    EntityType.INVOICE: EntityFieldConfig(
        endpoint="/customerinvoices",
        id_field="InvoiceNumber",
        incremental=True,
        modified_field="ModifiedUtc",
        date_field="InvoiceDate",
        due_date_field="DueDate",
        counterparty_number_field="CustomerNumber",
        counterparty_name_field="InvoiceCustomerName",
        amount_field="TotalAmount",
        currency_field="CurrencyCode",
        status_rules=REMAINING_AMOUNT_RULES,
    ),
    EntityType.CUSTOMER: EntityFieldConfig(
        endpoint="/customers",
        id_field="CustomerNumber",
        incremental=True,
        modified_field="ChangedUtc",
        counterparty_number_field="CustomerNumber",
        counterparty_name_field="Name",
    ),
    EntityType.SUPPLIER: EntityFieldConfig(
        endpoint="/suppliers",
        id_field="SupplierNumber",
        incremental=True,
        modified_field="ModifiedUtc",
        counterparty_number_field="SupplierNumber",
        counterparty_name_field="Name",
    ),
    EntityType.SUPPLIER_INVOICE: EntityFieldConfig(
        endpoint="/supplierinvoices",
        id_field="InvoiceNumber",
        incremental=True,
        modified_field="ModifiedUtc",
        date_field="InvoiceDate",
        due_date_field="DueDate",
        counterparty_number_field="SupplierNumber",
        counterparty_name_field="SupplierName",
        amount_field="TotalAmount",
        currency_field="CurrencyCode",
        status_rules=REMAINING_AMOUNT_RULES,
    ),
    EntityType.ORDER: EntityFieldConfig(
        endpoint="/orders",
        id_field="Number",
        incremental=True,
        modified_field="ModifiedUtc",
        date_field="OrderDate",
        amount_field="Amount",
        currency_field="CurrencyCode",
        status_field="Status",
        status_values=ORDER_STATUSES,
    ),
    EntityType.COMPANY_INFO: EntityFieldConfig(
        endpoint="/companysettings",
        id_field="CorporateIdentityNumber",
        counterparty_name_field="Name",
        singleton=True,
    ),
}
