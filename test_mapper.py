"""
Entity Mapper Tests

Covers the declarative mapping for both providers: field extraction,
status derivation, fiscal year and error reporting.
"""

from decimal import Decimal

import pytest

from core.errors import EntityMappingError
from core.models.entity import EntityType, ProviderName
from core.utils.hashing import content_hash
from providers.fortnox.config import FORTNOX_ENTITIES
from providers.mapper import extract_fiscal_year, map_entities, map_entity
from providers.visma.config import VISMA_ENTITIES


def fortnox(entity_type, raw):
    return map_entity(raw, entity_type, ProviderName.FORTNOX, FORTNOX_ENTITIES[entity_type])


def visma(entity_type, raw):
    return map_entity(raw, entity_type, ProviderName.VISMA, VISMA_ENTITIES[entity_type])


class TestFortnoxInvoice:

    def test_fully_mapped_invoice(self):
        raw = {
            "DocumentNumber": "1001",
            "InvoiceDate": "2024-03-15",
            "DueDate": "2024-04-14",
            "CustomerNumber": "42",
            "CustomerName": "Acme AB",
            "Total": 12500.75,
            "Currency": "EUR",
            "Balance": 12500.75,
            "Booked": True,
            "@LastModified": "2024-03-16T08:00:00",
        }
        record = fortnox(EntityType.INVOICE, raw)

        assert record.external_id == "1001"
        assert record.provider == ProviderName.FORTNOX
        assert record.entity_type == EntityType.INVOICE
        assert record.document_date == "2024-03-15"
        assert record.due_date == "2024-04-14"
        assert record.fiscal_year == 2024
        assert record.counterparty_number == "42"
        assert record.counterparty_name == "Acme AB"
        assert record.amount == Decimal("12500.75")
        assert record.currency == "EUR"
        assert record.status == "booked"
        assert record.last_modified == "2024-03-16T08:00:00"
        assert record.raw_data == raw
        assert record.content_hash == content_hash(raw)

    def test_paid_and_sent_example(self):
        """Booked with zero balance is paid; sent but unbooked is sent."""
        paid = fortnox(EntityType.INVOICE, {"DocumentNumber": "1", "Balance": 0, "Booked": True})
        sent = fortnox(EntityType.INVOICE, {"DocumentNumber": "2", "Balance": 500, "Booked": False, "Sent": True})
        assert paid.status == "paid"
        assert sent.status == "sent"

    @pytest.mark.parametrize("raw, expected", [
        ({"Cancelled": True, "FullyPaid": True}, "cancelled"),
        ({"FullyPaid": True, "Balance": 100}, "paid"),
        ({"Booked": True, "Balance": "0.00"}, "paid"),
        ({"Booked": True, "Balance": 10}, "booked"),
        ({"Sent": True}, "sent"),
        ({}, "draft"),
    ])
    def test_status_precedence(self, raw, expected):
        record = fortnox(EntityType.INVOICE, {"DocumentNumber": "9", **raw})
        assert record.status == expected

    def test_all_optional_fields_absent(self):
        """Missing fields map to None; currency falls back to SEK."""
        record = fortnox(EntityType.INVOICE, {"DocumentNumber": 7})
        assert record.external_id == "7"
        assert record.document_date is None
        assert record.due_date is None
        assert record.fiscal_year is None
        assert record.counterparty_number is None
        assert record.counterparty_name is None
        assert record.amount is None
        assert record.last_modified is None
        assert record.currency == "SEK"

    def test_unparseable_amount_raises(self):
        with pytest.raises(EntityMappingError, match="Total"):
            fortnox(EntityType.INVOICE, {"DocumentNumber": "1", "Total": "twelve"})

    def test_missing_id_raises(self):
        with pytest.raises(EntityMappingError, match="DocumentNumber"):
            fortnox(EntityType.INVOICE, {"Total": 10})

    def test_non_dict_record_raises(self):
        with pytest.raises(EntityMappingError):
            fortnox(EntityType.INVOICE, ["not", "a", "record"])


class TestFortnoxOtherTypes:

    def test_supplier_invoice_has_no_sent_state(self):
        record = fortnox(EntityType.SUPPLIER_INVOICE, {"GivenNumber": "55", "Sent": True})
        assert record.status == "draft"

    def test_supplier_invoice_paid(self):
        record = fortnox(EntityType.SUPPLIER_INVOICE, {
            "GivenNumber": "55", "Booked": True, "Balance": 0,
            "SupplierNumber": "S1", "SupplierName": "Leverantör AB", "Total": "999.50",
        })
        assert record.status == "paid"
        assert record.counterparty_name == "Leverantör AB"
        assert record.amount == Decimal("999.50")

    def test_customer_has_no_status(self):
        record = fortnox(EntityType.CUSTOMER, {"CustomerNumber": "10", "Name": "Kund AB"})
        assert record.status is None
        assert record.counterparty_number == "10"
        assert record.counterparty_name == "Kund AB"

    def test_asset_uses_acquisition_fields(self):
        record = fortnox(EntityType.ASSET, {"Number": "A1", "AcquisitionDate": "2022-06-01", "AcquisitionValue": 50000})
        assert record.fiscal_year == 2022
        assert record.amount == Decimal("50000")


class TestVisma:

    def test_invoice_mapping(self):
        record = visma(EntityType.INVOICE, {
            "InvoiceNumber": 3001,
            "InvoiceDate": "2023-11-01",
            "CustomerNumber": "C9",
            "InvoiceCustomerName": "Visma Kund",
            "TotalAmount": 800,
            "CurrencyCode": "NOK",
            "RemainingAmount": 0,
            "ModifiedUtc": "2023-11-02T10:00:00Z",
        })
        assert record.external_id == "3001"
        assert record.counterparty_name == "Visma Kund"
        assert record.currency == "NOK"
        assert record.status == "paid"
        assert record.last_modified == "2023-11-02T10:00:00Z"

    @pytest.mark.parametrize("remaining, expected", [(0, "paid"), (120.5, "unpaid"), (None, "unknown")])
    def test_remaining_amount_status(self, remaining, expected):
        raw = {"InvoiceNumber": "1"}
        if remaining is not None:
            raw["RemainingAmount"] = remaining
        assert visma(EntityType.SUPPLIER_INVOICE, raw).status == expected

    @pytest.mark.parametrize("code, expected", [(0, "draft"), (1, "active"), (2, "invoiced"), (3, "expired"), (7, "status_7")])
    def test_order_status_codes(self, code, expected):
        record = visma(EntityType.ORDER, {"Number": "O1", "Status": code})
        assert record.status == expected

    def test_customer_modified_field(self):
        record = visma(EntityType.CUSTOMER, {"CustomerNumber": "1", "ChangedUtc": "2024-01-01T00:00:00Z"})
        assert record.last_modified == "2024-01-01T00:00:00Z"


class TestHelpers:

    def test_extract_fiscal_year(self):
        assert extract_fiscal_year("2024-01-31") == 2024
        assert extract_fiscal_year(None) is None
        assert extract_fiscal_year("") is None
        assert extract_fiscal_year("31/01/2024") is None

    def test_map_entities_reports_index(self):
        items = [{"DocumentNumber": "1"}, {"Total": 5}]
        with pytest.raises(EntityMappingError, match="Record #1"):
            map_entities(items, EntityType.INVOICE, ProviderName.FORTNOX, FORTNOX_ENTITIES[EntityType.INVOICE])

    def test_mapping_is_deterministic(self):
        raw = {"DocumentNumber": "1", "Total": 10, "Booked": False}
        assert fortnox(EntityType.INVOICE, raw) == fortnox(EntityType.INVOICE, dict(raw))


ALL_CONFIGS = [
    (ProviderName.FORTNOX, entity_type, config) for entity_type, config in FORTNOX_ENTITIES.items()
] + [
    (ProviderName.VISMA, entity_type, config) for entity_type, config in VISMA_ENTITIES.items()
]


class TestOptionalFieldsEveryEntity:
    """A record carrying only its id maps for every provider and entity type."""

    OPTIONAL_FIELDS = {
        "document_date": "date_field",
        "due_date": "due_date_field",
        "counterparty_number": "counterparty_number_field",
        "counterparty_name": "counterparty_name_field",
        "amount": "amount_field",
        "last_modified": "modified_field",
    }

    @pytest.mark.parametrize(
        "provider, entity_type, config",
        ALL_CONFIGS,
        ids=[f"{p.value}-{t.value}" for p, t, _ in ALL_CONFIGS],
    )
    def test_id_only_record(self, provider, entity_type, config):
        record = map_entity({config.id_field: "42"}, entity_type, provider, config)

        assert record.external_id == "42"
        assert record.fiscal_year is None
        assert record.currency == "SEK"
        for attr, config_field in self.OPTIONAL_FIELDS.items():
            if getattr(config, config_field) == config.id_field:
                assert getattr(record, attr) == "42"
            else:
                assert getattr(record, attr) is None, attr

        if config.status_rules:
            # Only the catch-all rule can match an empty record
            assert record.status == config.status_rules[-1].status
        else:
            assert record.status is None
