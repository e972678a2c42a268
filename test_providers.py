"""
Provider Adapter Tests

Fortnox and Visma adapters against scripted HTTP sessions: company info,
fiscal years, entity pages, SIE exports and typed resource access.
"""

import asyncio
from decimal import Decimal

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession, error_response, json_response
from core.config import Settings
from core.errors import (
    ProviderApiError,
    ProviderConfigurationError,
    ProviderConnectionError,
    UnsupportedResourceError,
)
from core.models.entity import EntityType, FetchEntitiesOptions, ProviderName
from core.models.provider import FortnoxCredentials, VismaCredentials
from core.models.resources import ResourceQueryOptions, ResourceType
from core.models.sie import FetchSIEOptions
from providers import FortnoxProvider, VismaProvider, build_default_registry
from providers.registry import ProviderRegistry


FORTNOX = FortnoxCredentials(access_token="fx-token")
VISMA = VismaCredentials(access_token="vs-token")

SIE_BYTES = "#FLAGGA 0\n#SIETYP 4\n#FNAMN \"Åkeri AB\"\n#KONTO 1930 \"Bank\"\n".encode("cp437")


def fortnox_page(key, items, page=1, total_pages=1):
    return json_response({
        "MetaInformation": {"@CurrentPage": page, "@TotalPages": total_pages, "@TotalResources": len(items)},
        key: items,
    })


def visma_page(items, page=1, total_pages=1):
    return json_response({
        "Meta": {"CurrentPage": page, "TotalNumberOfPages": total_pages, "TotalNumberOfResults": len(items)},
        "Data": items,
    })


# =============================================================================
# Fortnox
# =============================================================================

class TestFortnoxCompany:

    def test_company_info(self, make_fortnox):
        session = FakeSession([json_response({"CompanyInformation": {
            "CompanyName": "Åkeri AB",
            "OrganizationNumber": "556677-8899",
            "City": "Umeå",
            "Phone1": "090-123",
        }})])
        provider = make_fortnox(session)

        info = asyncio.run(provider.get_company_info(FORTNOX))

        assert info.company_name == "Åkeri AB"
        assert info.organization_number == "556677-8899"
        assert info.city == "Umeå"
        assert info.phone == "090-123"
        assert session.requests[0].headers["Authorization"] == "Bearer fx-token"

    def test_validate_credentials_false_on_401(self, make_fortnox):
        provider = make_fortnox(FakeSession([error_response(401)]))
        assert asyncio.run(provider.validate_credentials(FORTNOX)) is False

    def test_validate_credentials_raises_on_outage(self, make_fortnox):
        session = FakeSession([error_response(503)] * 3)
        provider = make_fortnox(session)

        with pytest.raises(ProviderApiError, match="503 Service Unavailable"):
            asyncio.run(provider.validate_credentials(FORTNOX))
        assert len(session.requests) == 3

    def test_validate_credentials_raises_on_network_error(self, make_visma):
        session = FakeSession([aiohttp.ClientConnectionError("reset")] * 3)
        with pytest.raises(ProviderConnectionError):
            asyncio.run(make_visma(session).validate_credentials(VISMA))

    def test_validate_credentials_true(self, make_fortnox):
        provider = make_fortnox(FakeSession([json_response({"CompanyInformation": {}})]))
        assert asyncio.run(provider.validate_credentials(FORTNOX)) is True

    def test_credential_mismatch_is_configuration_error(self, make_fortnox):
        session = FakeSession()
        provider = make_fortnox(session)
        with pytest.raises(ProviderConfigurationError):
            asyncio.run(provider.validate_credentials(VISMA))
        assert session.requests == []

    def test_financial_years(self, make_fortnox):
        session = FakeSession([fortnox_page("FinancialYears", [
            {"Id": 1, "FromDate": "2022-07-01", "ToDate": "2023-06-30"},
            {"Id": 2, "FromDate": "2023-07-01", "ToDate": "2024-06-30"},
        ])])
        years = asyncio.run(make_fortnox(session).get_financial_years(FORTNOX))
        assert [(y.id, y.year) for y in years] == [(1, 2023), (2, 2024)]


class TestFortnoxEntities:

    def test_incremental_page_sends_lastmodified(self, make_fortnox):
        session = FakeSession([fortnox_page("Invoices", [
            {"DocumentNumber": "1", "Total": 10, "@LastModified": "2024-02-01 10:00"},
            {"DocumentNumber": "2", "Total": 20, "@LastModified": "2024-03-01 10:00"},
        ], page=1, total_pages=2)])
        options = FetchEntitiesOptions(
            entity_type=EntityType.INVOICE,
            last_modified_cursor="2024-01-01 00:00",
            from_date="2024-01-01",
        )

        result = asyncio.run(make_fortnox(session).fetch_entities(FORTNOX, options))

        params = session.requests[0].params
        assert params["lastmodified"] == "2024-01-01 00:00"
        assert params["fromdate"] == "2024-01-01"
        assert params["page"] == "1"
        assert result.has_more is True
        assert result.next_cursor == "2024-03-01 10:00"
        assert [e.external_id for e in result.entities] == ["1", "2"]

    def test_full_sync_type_ignores_cursor(self, make_fortnox):
        session = FakeSession([fortnox_page("Employees", [{"EmployeeId": "E1", "FullName": "Anna"}])])
        options = FetchEntitiesOptions(entity_type=EntityType.EMPLOYEE, last_modified_cursor="2024-01-01")

        result = asyncio.run(make_fortnox(session).fetch_entities(FORTNOX, options))

        assert "lastmodified" not in session.requests[0].params
        assert result.entities[0].counterparty_name == "Anna"

    def test_company_info_singleton(self, make_fortnox):
        session = FakeSession([json_response({"CompanyInformation": {
            "CompanyName": "Åkeri AB", "OrganizationNumber": "556677-8899",
        }})])
        options = FetchEntitiesOptions(entity_type=EntityType.COMPANY_INFO)

        result = asyncio.run(make_fortnox(session).fetch_entities(FORTNOX, options))

        assert len(result.entities) == 1
        assert result.entities[0].external_id == "556677-8899"
        assert result.has_more is False

    def test_capabilities(self, make_fortnox):
        provider = make_fortnox(FakeSession())
        capabilities = provider.get_capabilities()

        assert capabilities.sie_types == [1, 2, 3, 4]
        assert capabilities.rate_limits.max_requests == 25
        assert EntityType.EMPLOYEE not in capabilities.incremental_sync_entities
        assert provider.supports_entity_type(EntityType.ASSET)
        assert not provider.supports_entity_type(EntityType.ORDER)

    def test_unsupported_entity_type(self, make_fortnox):
        options = FetchEntitiesOptions(entity_type=EntityType.CONTRACT)
        with pytest.raises(ProviderConfigurationError):
            asyncio.run(make_fortnox(FakeSession()).fetch_entities(FORTNOX, options))

    def test_progress_callback_errors_are_swallowed(self, make_fortnox):
        session = FakeSession([
            fortnox_page("Customers", [{"CustomerNumber": "1"}], page=1, total_pages=2),
            fortnox_page("Customers", [{"CustomerNumber": "2"}], page=2, total_pages=2),
        ])
        calls = []

        def on_progress(current, total, entity_type):
            calls.append((current, total))
            raise RuntimeError("ui went away")

        records = asyncio.run(make_fortnox(session).fetch_all_entities(
            FORTNOX, FetchEntitiesOptions(entity_type=EntityType.CUSTOMER), on_progress,
        ))

        assert [r.external_id for r in records] == ["1", "2"]
        assert len(calls) == 2


class TestFortnoxSie:

    def test_failing_year_is_skipped(self, make_fortnox):
        def handler(request):
            if request.path.endswith("/financialyears"):
                return fortnox_page("FinancialYears", [
                    {"Id": 1, "FromDate": "2023-01-01", "ToDate": "2023-12-31"},
                    {"Id": 2, "FromDate": "2024-01-01", "ToDate": "2024-12-31"},
                ])
            if "financialyear=1" in request.url:
                return error_response(404)
            return FakeResponse(body=SIE_BYTES)

        session = FakeSession(handler=handler)
        result = asyncio.run(make_fortnox(session).fetch_sie(FORTNOX, FetchSIEOptions(sie_type=4)))

        assert [f.fiscal_year for f in result.files] == [2024]
        assert result.files[0].parsed.metadata.company_name == "Åkeri AB"
        assert session.requests[-1].headers["Accept"] == "application/octet-stream"

    def test_selected_years_only(self, make_fortnox):
        def handler(request):
            if request.path.endswith("/financialyears"):
                return fortnox_page("FinancialYears", [
                    {"Id": 1, "FromDate": "2023-01-01", "ToDate": "2023-12-31"},
                    {"Id": 2, "FromDate": "2024-01-01", "ToDate": "2024-12-31"},
                ])
            return FakeResponse(body=SIE_BYTES)

        session = FakeSession(handler=handler)
        result = asyncio.run(make_fortnox(session).fetch_sie(
            FORTNOX, FetchSIEOptions(sie_type=2, fiscal_years=[2023]),
        ))

        assert [(f.fiscal_year, f.sie_type) for f in result.files] == [(2023, 2)]
        assert len(session.requests) == 2


class TestFortnoxResources:

    def test_list_sales_invoices(self, make_fortnox):
        session = FakeSession([fortnox_page("Invoices", [
            {"DocumentNumber": "7", "CustomerNumber": "1", "CustomerName": "Acme",
             "Total": "1250.00", "Balance": 0, "Booked": True, "Currency": "SEK"},
        ])])
        page = asyncio.run(make_fortnox(session).list_resource(
            FORTNOX, ResourceType.SALES_INVOICES, ResourceQueryOptions(filter={"filter": "unpaid"}),
        ))

        invoice = page.data[0]
        assert invoice.invoice_number == "7"
        assert invoice.status == "paid"
        assert invoice.paid is True
        assert invoice.total.value == Decimal("1250.00")
        assert session.requests[0].params["filter"] == "unpaid"

    def test_list_company_information(self, make_fortnox):
        session = FakeSession([json_response({"CompanyInformation": {"CompanyName": "Åkeri AB"}})])
        page = asyncio.run(make_fortnox(session).list_resource(FORTNOX, ResourceType.COMPANY_INFORMATION))
        assert page.total_count == 1
        assert page.data[0].company_name == "Åkeri AB"

    def test_get_resource_not_found(self, make_fortnox):
        session = FakeSession([error_response(404)])
        result = asyncio.run(make_fortnox(session).get_resource(FORTNOX, ResourceType.CUSTOMERS, "99"))
        assert result is None
        assert session.requests[0].path == "/3/customers/99"

    def test_get_resource_other_errors_raise(self, make_fortnox):
        session = FakeSession([error_response(403)])
        with pytest.raises(ProviderApiError):
            asyncio.run(make_fortnox(session).get_resource(FORTNOX, ResourceType.CUSTOMERS, "1"))

    def test_create_sales_invoice(self, make_fortnox):
        session = FakeSession([json_response({"Invoice": {"DocumentNumber": "101", "CustomerNumber": "1"}})])
        created = asyncio.run(make_fortnox(session).create_resource(
            FORTNOX, ResourceType.SALES_INVOICES, {"CustomerNumber": "1"},
        ))

        request = session.requests[0]
        assert request.method == "POST"
        assert request.json == {"Invoice": {"CustomerNumber": "1"}}
        assert created.id == "101"

    def test_create_customer_not_writable(self, make_fortnox):
        session = FakeSession()
        with pytest.raises(UnsupportedResourceError):
            asyncio.run(make_fortnox(session).create_resource(FORTNOX, ResourceType.CUSTOMERS, {"Name": "X"}))
        assert session.requests == []

    def test_list_payments_of_invoice(self, make_fortnox):
        session = FakeSession([fortnox_page("InvoicePayments", [
            {"Number": "5", "InvoiceNumber": "7", "Amount": 100, "PaymentDate": "2024-02-01"},
        ])])
        page = asyncio.run(make_fortnox(session).list_sub_resource(
            FORTNOX, ResourceType.SALES_INVOICES, "7", ResourceType.PAYMENTS,
        ))

        assert session.requests[0].path == "/3/invoicepayments"
        assert session.requests[0].params["invoicenumber"] == "7"
        assert page.data[0].invoice_id == "7"
        assert page.data[0].amount.value == Decimal("100")

    def test_create_supplier_invoice_payment(self, make_fortnox):
        session = FakeSession([json_response({"SupplierInvoicePayment": {"Number": "9", "InvoiceNumber": "42"}})])
        payment = asyncio.run(make_fortnox(session).create_sub_resource(
            FORTNOX, ResourceType.SUPPLIER_INVOICES, "42", ResourceType.PAYMENTS, {"Amount": 50},
        ))

        assert session.requests[0].json == {"SupplierInvoicePayment": {"InvoiceNumber": "42", "Amount": 50}}
        assert payment.id == "9"

    def test_unknown_sub_resource(self, make_fortnox):
        with pytest.raises(UnsupportedResourceError):
            asyncio.run(make_fortnox(FakeSession()).list_sub_resource(
                FORTNOX, ResourceType.CUSTOMERS, "1", ResourceType.PAYMENTS,
            ))


# =============================================================================
# Visma
# =============================================================================

class TestVisma:

    def test_company_info(self, make_visma):
        session = FakeSession([json_response({
            "Name": "Fjällbolaget AB",
            "CorporateIdentityNumber": "559000-1111",
            "CountryCode": "SE",
        })])
        info = asyncio.run(make_visma(session).get_company_info(VISMA))
        assert info.company_name == "Fjällbolaget AB"
        assert info.organization_number == "559000-1111"
        assert info.country == "SE"
        assert session.requests[0].path == "/v2/companysettings"

    def test_fiscal_years(self, make_visma):
        session = FakeSession([visma_page([
            {"Id": "a1", "StartDate": "2024-01-01T00:00:00", "EndDate": "2024-12-31T00:00:00"},
        ])])
        years = asyncio.run(make_visma(session).get_financial_years(VISMA))
        assert years[0].from_date == "2024-01-01"
        assert years[0].to_date == "2024-12-31"
        assert years[0].year == 2024

    def test_incremental_filter_uses_entity_field(self, make_visma):
        session = FakeSession([visma_page([
            {"CustomerNumber": "10", "Name": "Kund", "ChangedUtc": "2024-05-01T10:00:00Z"},
        ], page=2, total_pages=2)])
        options = FetchEntitiesOptions(
            entity_type=EntityType.CUSTOMER,
            last_modified_cursor="2024-04-01T00:00:00Z",
            page=2,
            page_size=50,
        )

        result = asyncio.run(make_visma(session).fetch_entities(VISMA, options))

        params = session.requests[0].params
        assert params["$filter"] == "ChangedUtc gt 2024-04-01T00:00:00Z"
        assert params["$skip"] == "50"
        assert params["$top"] == "50"
        assert result.has_more is False
        assert result.next_cursor == "2024-05-01T10:00:00Z"

    def test_order_status_lookup(self, make_visma):
        session = FakeSession([visma_page([{"Number": "3", "Status": 2, "Amount": 10}])])
        result = asyncio.run(make_visma(session).fetch_entities(
            VISMA, FetchEntitiesOptions(entity_type=EntityType.ORDER),
        ))
        assert result.entities[0].status == "invoiced"

    def test_sie_type_other_than_4_rejected(self, make_visma):
        with pytest.raises(ProviderConfigurationError):
            asyncio.run(make_visma(FakeSession()).fetch_sie(VISMA, FetchSIEOptions(sie_type=1)))

    def test_sie_two_step_download(self, make_visma):
        def handler(request):
            if request.path.endswith("/fiscalyears"):
                return visma_page([{"Id": "a1", "StartDate": "2024-01-01", "EndDate": "2024-12-31"}])
            if request.path.startswith("/v2/sie4export"):
                return json_response({"TemporaryUrl": "https://files.visma.test/export.se"})
            return FakeResponse(body=SIE_BYTES)

        session = FakeSession(handler=handler)
        result = asyncio.run(make_visma(session).fetch_sie(VISMA, FetchSIEOptions()))

        assert session.requests[1].path == "/v2/sie4export/2024-01-01/2024-12-31"
        assert "Authorization" not in session.requests[2].headers
        assert result.files[0].parsed.accounts[0].account_number == "1930"

    def test_no_sub_resources(self, make_visma):
        with pytest.raises(UnsupportedResourceError):
            asyncio.run(make_visma(FakeSession()).list_sub_resource(
                VISMA, ResourceType.SALES_INVOICES, "1", ResourceType.PAYMENTS,
            ))

    def test_customers_not_writable(self, make_visma):
        with pytest.raises(UnsupportedResourceError):
            asyncio.run(make_visma(FakeSession()).create_resource(VISMA, ResourceType.CUSTOMERS, {}))

    def test_get_customer_dto(self, make_visma):
        session = FakeSession([json_response({
            "Id": "c-1", "CustomerNumber": "10", "Name": "Kund AB",
            "InvoiceCity": "Kiruna", "EmailAddress": "kund@example.se",
        })])
        customer = asyncio.run(make_visma(session).get_resource(VISMA, ResourceType.CUSTOMERS, "c-1"))
        assert customer.name == "Kund AB"
        assert customer.postal_address.city_name == "Kiruna"
        assert customer.contact.email == "kund@example.se"


# =============================================================================
# Registry
# =============================================================================

class TestRegistry:

    def test_default_registry_creates_fresh_adapters(self):
        registry = build_default_registry(Settings())
        first = registry.create(ProviderName.FORTNOX)
        second = registry.create(ProviderName.FORTNOX)

        assert isinstance(first, FortnoxProvider)
        assert first is not second
        assert first.client.rate_limiter is not second.client.rate_limiter
        assert isinstance(registry.create(ProviderName.VISMA), VismaProvider)

    def test_unknown_provider(self):
        registry = ProviderRegistry()
        with pytest.raises(ProviderConfigurationError, match="Unknown provider: briox"):
            registry.create(ProviderName.BRIOX)

    def test_register(self):
        registry = ProviderRegistry()
        registry.register(ProviderName.VISMA, VismaProvider)
        assert registry.is_registered(ProviderName.VISMA)
        assert registry.list_providers() == [ProviderName.VISMA]
