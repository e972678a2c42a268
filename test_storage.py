"""
Storage Adapter Tests

The same behavioural checks run against the in-memory and SQLite adapters.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.errors import StorageError
from core.models.entity import CanonicalEntityRecord, EntityType, ProviderName
from core.models.sie import SIEAccount, SIEData, SIEParseResult
from core.models.sync import ConnectionRecord, GetEntitiesOptions, SyncProgress, SyncStatus
from core.storage import InMemoryStorageAdapter, SQLiteStorageAdapter
from core.utils.hashing import content_hash


@pytest.fixture(params=["memory", "sqlite"])
def adapter(request, tmp_path):
    if request.param == "memory":
        yield InMemoryStorageAdapter()
    else:
        store = SQLiteStorageAdapter(tmp_path / "sync.db")
        yield store
        asyncio.run(store.close())


def record(external_id: str, date: str = "2024-01-15", total: str = "100.00", **raw_extra) -> CanonicalEntityRecord:
    raw = {"DocumentNumber": external_id, "InvoiceDate": date, "Total": total, **raw_extra}
    return CanonicalEntityRecord(
        external_id=external_id,
        entity_type=EntityType.INVOICE,
        provider=ProviderName.FORTNOX,
        fiscal_year=int(date[:4]),
        document_date=date,
        amount=Decimal(total),
        status="booked",
        raw_data=raw,
        last_modified=f"{date} 12:00",
        content_hash=content_hash(raw),
    )


class TestEntities:

    def test_upsert_classifies_by_hash(self, adapter):
        async def run():
            first = await adapter.upsert_entities("c1", EntityType.INVOICE, [record("1"), record("2")])
            second = await adapter.upsert_entities(
                "c1", EntityType.INVOICE, [record("1"), record("2", total="250.00"), record("3")],
            )
            return first, second

        first, second = asyncio.run(run())
        assert (first.inserted, first.updated, first.unchanged) == (2, 0, 0)
        assert (second.inserted, second.updated, second.unchanged) == (1, 1, 1)

    def test_round_trip_preserves_fields(self, adapter):
        async def run():
            await adapter.upsert_entities("c1", EntityType.INVOICE, [record("7", Kund="Åkesson")])
            return await adapter.get_entities("c1", EntityType.INVOICE)

        [stored] = asyncio.run(run())
        assert stored == record("7", Kund="Åkesson")
        assert stored.amount == Decimal("100.00")

    def test_hashes_are_scoped_by_connection_and_type(self, adapter):
        async def run():
            await adapter.upsert_entities("c1", EntityType.INVOICE, [record("1")])
            await adapter.upsert_entities("c2", EntityType.INVOICE, [record("2")])
            return (
                await adapter.get_entity_hashes("c1", EntityType.INVOICE),
                await adapter.get_entity_hashes("c1", EntityType.CUSTOMER),
            )

        invoices, customers = asyncio.run(run())
        assert invoices == {"1": record("1").content_hash}
        assert customers == {}

    def test_query_options(self, adapter):
        async def run():
            await adapter.upsert_entities("c1", EntityType.INVOICE, [
                record("1", "2023-12-30"),
                record("2", "2024-01-05"),
                record("3", "2024-02-10"),
                record("4", "2024-03-01"),
            ])
            by_year = await adapter.get_entities("c1", EntityType.INVOICE, GetEntitiesOptions(fiscal_year=2024))
            newest_first = await adapter.get_entities("c1", EntityType.INVOICE, GetEntitiesOptions(
                order_by="document_date", order_direction="desc", page_size=2,
            ))
            page_two = await adapter.get_entities("c1", EntityType.INVOICE, GetEntitiesOptions(page=2, page_size=3))
            ranged = await adapter.get_entities("c1", EntityType.INVOICE, GetEntitiesOptions(
                from_date="2024-01-01", to_date="2024-02-28",
            ))
            return by_year, newest_first, page_two, ranged

        by_year, newest_first, page_two, ranged = asyncio.run(run())
        assert [r.external_id for r in by_year] == ["2", "3", "4"]
        assert [r.external_id for r in newest_first] == ["4", "3"]
        assert [r.external_id for r in page_two] == ["4"]
        assert [r.external_id for r in ranged] == ["2", "3"]

    def test_entity_count(self, adapter):
        async def run():
            await adapter.upsert_entities("c1", EntityType.INVOICE, [record("1"), record("2")])
            return (
                await adapter.get_entity_count("c1", EntityType.INVOICE),
                await adapter.get_entity_count("c1"),
                await adapter.get_entity_count("other"),
            )

        assert asyncio.run(run()) == (2, 2, 0)


class TestSyncState:

    def test_partial_updates_merge(self, adapter):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        async def run():
            await adapter.update_sync_state(
                "c1", EntityType.INVOICE, last_sync_at=now, last_modified_cursor="2024-04-30 10:00",
                records_fetched=5,
            )
            await adapter.update_sync_state("c1", EntityType.INVOICE, last_error="boom", last_error_at=now)
            return await adapter.get_sync_state("c1", EntityType.INVOICE)

        state = asyncio.run(run())
        assert state.last_modified_cursor == "2024-04-30 10:00"
        assert state.records_fetched == 5
        assert state.last_error == "boom"
        assert state.last_sync_at == now

    def test_missing_state_is_none(self, adapter):
        assert asyncio.run(adapter.get_sync_state("c1", EntityType.CUSTOMER)) is None

    def test_unknown_field_rejected(self, adapter):
        with pytest.raises(ValueError):
            asyncio.run(adapter.update_sync_state("c1", EntityType.INVOICE, cursor="x"))


class TestProgress:

    def test_progress_round_trip_and_history(self, adapter):
        async def run():
            older = SyncProgress(
                job_id="j1", connection_id="c1", provider=ProviderName.FORTNOX,
                started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            )
            newer = SyncProgress(
                job_id="j2", connection_id="c1", provider=ProviderName.FORTNOX,
                started_at=datetime(2024, 2, 1, tzinfo=timezone.utc),
            )
            await adapter.upsert_sync_progress(older)
            await adapter.upsert_sync_progress(newer)
            newer.status = SyncStatus.COMPLETED
            newer.progress = 100
            await adapter.upsert_sync_progress(newer)
            return await adapter.get_sync_progress("j2"), await adapter.get_sync_history("c1", limit=10)

        stored, history = asyncio.run(run())
        assert stored.status == SyncStatus.COMPLETED
        assert stored.progress == 100
        assert [p.job_id for p in history] == ["j2", "j1"]


class TestSIEAndConnections:

    def test_sie_upload(self, adapter):
        parsed = SIEParseResult(accounts=[
            SIEAccount(account_number="1930", account_name="Företagskonto", account_group="1 - Tillgångar"),
        ])

        async def run():
            upload_id = await adapter.store_sie_data(
                "c1", SIEData(connection_id="c1", fiscal_year=2024, sie_type=4, parsed=parsed, raw_content="#FLAGGA 0"),
            )
            return upload_id, await adapter.get_sie_uploads("c1"), await adapter.get_sie_data(upload_id)

        upload_id, uploads, data = asyncio.run(run())
        assert uploads[0].upload_id == upload_id
        assert uploads[0].account_count == 1
        assert data.parsed.accounts[0].account_name == "Företagskonto"

    def test_connection_lifecycle(self, adapter):
        synced_at = datetime(2024, 6, 1, tzinfo=timezone.utc)

        async def run():
            await adapter.upsert_connection(ConnectionRecord(
                connection_id="c1", provider=ProviderName.VISMA, display_name="Bolaget",
                metadata={"region": "se"},
            ))
            await adapter.upsert_entities("c1", EntityType.INVOICE, [record("1")])
            await adapter.update_sync_state("c1", EntityType.INVOICE, last_modified_cursor="x")
            await adapter.touch_connection("c1", synced_at)
            touched = await adapter.get_connection("c1")
            visma = await adapter.get_connections(ProviderName.VISMA)
            await adapter.delete_connection("c1")
            return (
                touched,
                visma,
                await adapter.get_connection("c1"),
                await adapter.get_entity_count("c1"),
                await adapter.get_sync_state("c1", EntityType.INVOICE),
            )

        touched, visma, deleted, count, state = asyncio.run(run())
        assert touched.last_sync_at == synced_at
        assert touched.metadata == {"region": "se"}
        assert [c.connection_id for c in visma] == ["c1"]
        assert deleted is None
        assert count == 0
        assert state is None


class TestSQLiteErrors:

    def test_unwritable_path_raises_storage_error(self, tmp_path):
        store = SQLiteStorageAdapter(tmp_path / "missing" / "sync.db")
        with pytest.raises(StorageError):
            asyncio.run(store.initialize())
