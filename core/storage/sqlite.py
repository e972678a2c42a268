"""
SQLite Storage Adapter

Persists entities, sync state, job progress, SIE exports and connections in
one SQLite file. sqlite3 calls are blocking, so every operation runs in a
worker thread through asyncio.to_thread against a single shared connection
guarded by a lock.

Tables:
- connections: one row per connection
- entities: canonical records keyed by (connection_id, entity_type, external_id)
- sync_state: incremental cursor per (connection_id, entity_type)
- sync_progress: job progress, serialized as JSON
- sie_uploads: parsed SIE exports
"""

import asyncio
import json
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from core.errors import StorageError
from core.models.entity import CanonicalEntityRecord, EntityType, ProviderName
from core.models.sie import SIEData, SIEParseResult, SIEUpload
from core.models.sync import (
    ConnectionRecord,
    GetEntitiesOptions,
    SyncProgress,
    SyncState,
    UpsertResult,
    utcnow,
)
from core.observability.logging import get_logger
from core.storage.base import StorageAdapter, check_sync_state_changes

logger = get_logger(__name__)


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS connections (
        connection_id TEXT PRIMARY KEY,
        provider TEXT NOT NULL,
        display_name TEXT NOT NULL,
        organization_number TEXT,
        last_sync_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        metadata TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entities (
        connection_id TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        external_id TEXT NOT NULL,
        provider TEXT NOT NULL,
        fiscal_year INTEGER,
        document_date TEXT,
        due_date TEXT,
        counterparty_number TEXT,
        counterparty_name TEXT,
        amount TEXT,
        currency TEXT NOT NULL,
        status TEXT,
        raw_data TEXT NOT NULL,
        last_modified TEXT,
        content_hash TEXT NOT NULL,
        synced_at TEXT NOT NULL,
        PRIMARY KEY (connection_id, entity_type, external_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_entities_fiscal_year
    ON entities(connection_id, entity_type, fiscal_year)
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_state (
        connection_id TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        last_sync_at TEXT,
        last_modified_cursor TEXT,
        records_fetched INTEGER NOT NULL DEFAULT 0,
        records_updated INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        last_error_at TEXT,
        PRIMARY KEY (connection_id, entity_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_progress (
        job_id TEXT PRIMARY KEY,
        connection_id TEXT NOT NULL,
        status TEXT NOT NULL,
        started_at TEXT NOT NULL,
        payload TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_sync_progress_connection
    ON sync_progress(connection_id, started_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS sie_uploads (
        upload_id TEXT PRIMARY KEY,
        connection_id TEXT NOT NULL,
        fiscal_year INTEGER NOT NULL,
        sie_type INTEGER NOT NULL,
        file_name TEXT,
        account_count INTEGER NOT NULL,
        transaction_count INTEGER NOT NULL,
        uploaded_at TEXT NOT NULL,
        parsed TEXT NOT NULL,
        raw_content TEXT
    )
    """,
]

ENTITY_COLUMNS = (
    "external_id", "entity_type", "provider", "fiscal_year", "document_date",
    "due_date", "counterparty_number", "counterparty_name", "amount", "currency",
    "status", "raw_data", "last_modified", "content_hash",
)

ORDER_COLUMNS = {"document_date", "last_modified", "external_id"}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _entity_value(entity_type: EntityType) -> str:
    return EntityType(entity_type).value


class SQLiteStorageAdapter(StorageAdapter):
    """
    StorageAdapter backed by a SQLite file.

    Usage:
        storage = SQLiteStorageAdapter("sync.db")
        await storage.initialize()
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    # =========================================================================
    # Connection Handling
    # =========================================================================

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()
            self._conn = conn
        return self._conn

    def _call(self, fn: Callable[[sqlite3.Connection], Any]) -> Any:
        with self._lock:
            conn = self._connect()
            with conn:
                return fn(conn)

    async def _run(self, fn: Callable[[sqlite3.Connection], Any]) -> Any:
        """Run fn(conn) in a worker thread inside one transaction."""
        try:
            return await asyncio.to_thread(self._call, fn)
        except sqlite3.Error as e:
            logger.error(f"SQLite operation failed: {e}", extra_fields={"db_path": self.db_path})
            raise StorageError(f"SQLite storage error: {e}") from e

    async def initialize(self) -> None:
        """Create tables if they do not exist."""
        await self._run(lambda conn: None)

    async def close(self) -> None:
        def _close():
            with self._lock:
                if self._conn is not None:
                    self._conn.close()
                    self._conn = None

        await asyncio.to_thread(_close)

    # =========================================================================
    # Entities
    # =========================================================================

    async def upsert_entities(
        self,
        connection_id: str,
        entity_type: EntityType,
        records: List[CanonicalEntityRecord],
    ) -> UpsertResult:
        type_value = _entity_value(entity_type)

        def _upsert(conn: sqlite3.Connection) -> UpsertResult:
            existing = {
                row["external_id"]: row["content_hash"]
                for row in conn.execute(
                    "SELECT external_id, content_hash FROM entities "
                    "WHERE connection_id = ? AND entity_type = ?",
                    (connection_id, type_value),
                )
            }
            result = UpsertResult()
            synced_at = utcnow().isoformat()

            for record in records:
                stored_hash = existing.get(record.external_id)
                if stored_hash is None:
                    result.inserted += 1
                elif stored_hash == record.content_hash:
                    result.unchanged += 1
                    continue
                else:
                    result.updated += 1

                conn.execute(
                    """
                    INSERT INTO entities (
                        connection_id, entity_type, external_id, provider, fiscal_year,
                        document_date, due_date, counterparty_number, counterparty_name,
                        amount, currency, status, raw_data, last_modified, content_hash, synced_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(connection_id, entity_type, external_id) DO UPDATE SET
                        provider = excluded.provider,
                        fiscal_year = excluded.fiscal_year,
                        document_date = excluded.document_date,
                        due_date = excluded.due_date,
                        counterparty_number = excluded.counterparty_number,
                        counterparty_name = excluded.counterparty_name,
                        amount = excluded.amount,
                        currency = excluded.currency,
                        status = excluded.status,
                        raw_data = excluded.raw_data,
                        last_modified = excluded.last_modified,
                        content_hash = excluded.content_hash,
                        synced_at = excluded.synced_at
                    """,
                    (
                        connection_id,
                        type_value,
                        record.external_id,
                        record.provider.value,
                        record.fiscal_year,
                        record.document_date,
                        record.due_date,
                        record.counterparty_number,
                        record.counterparty_name,
                        str(record.amount) if record.amount is not None else None,
                        record.currency,
                        record.status,
                        json.dumps(record.raw_data, default=str),
                        record.last_modified,
                        record.content_hash,
                        synced_at,
                    ),
                )
                existing[record.external_id] = record.content_hash

            return result

        return await self._run(_upsert)

    async def get_entity_hashes(self, connection_id: str, entity_type: EntityType) -> Dict[str, str]:
        type_value = _entity_value(entity_type)

        def _hashes(conn: sqlite3.Connection) -> Dict[str, str]:
            rows = conn.execute(
                "SELECT external_id, content_hash FROM entities "
                "WHERE connection_id = ? AND entity_type = ?",
                (connection_id, type_value),
            )
            return {row["external_id"]: row["content_hash"] for row in rows}

        return await self._run(_hashes)

    async def get_entities(
        self,
        connection_id: str,
        entity_type: EntityType,
        options: Optional[GetEntitiesOptions] = None,
    ) -> List[CanonicalEntityRecord]:
        opts = options or GetEntitiesOptions()
        if opts.order_by not in ORDER_COLUMNS:
            raise ValueError(f"Cannot order entities by {opts.order_by!r}")

        query = f"SELECT {', '.join(ENTITY_COLUMNS)} FROM entities WHERE connection_id = ? AND entity_type = ?"
        params: List[Any] = [connection_id, _entity_value(entity_type)]
        if opts.fiscal_year is not None:
            query += " AND fiscal_year = ?"
            params.append(opts.fiscal_year)
        if opts.from_date:
            query += " AND document_date >= ?"
            params.append(opts.from_date)
        if opts.to_date:
            query += " AND document_date <= ?"
            params.append(opts.to_date)
        direction = "DESC" if opts.order_direction == "desc" else "ASC"
        query += f" ORDER BY {opts.order_by} {direction} LIMIT ? OFFSET ?"
        params.extend([opts.page_size, (opts.page - 1) * opts.page_size])

        def _select(conn: sqlite3.Connection) -> List[CanonicalEntityRecord]:
            records = []
            for row in conn.execute(query, params):
                data = dict(row)
                data["raw_data"] = json.loads(data["raw_data"])
                records.append(CanonicalEntityRecord(**data))
            return records

        return await self._run(_select)

    async def get_entity_count(self, connection_id: str, entity_type: Optional[EntityType] = None) -> int:
        def _count(conn: sqlite3.Connection) -> int:
            if entity_type is None:
                row = conn.execute(
                    "SELECT COUNT(*) FROM entities WHERE connection_id = ?",
                    (connection_id,),
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM entities WHERE connection_id = ? AND entity_type = ?",
                    (connection_id, _entity_value(entity_type)),
                ).fetchone()
            return row[0]

        return await self._run(_count)

    # =========================================================================
    # Sync State
    # =========================================================================

    @staticmethod
    def _read_sync_state(conn: sqlite3.Connection, connection_id: str, type_value: str) -> Optional[SyncState]:
        row = conn.execute(
            "SELECT * FROM sync_state WHERE connection_id = ? AND entity_type = ?",
            (connection_id, type_value),
        ).fetchone()
        return SyncState(**dict(row)) if row else None

    async def get_sync_state(self, connection_id: str, entity_type: EntityType) -> Optional[SyncState]:
        type_value = _entity_value(entity_type)
        return await self._run(lambda conn: self._read_sync_state(conn, connection_id, type_value))

    async def update_sync_state(self, connection_id: str, entity_type: EntityType, **changes) -> SyncState:
        check_sync_state_changes(changes)
        type_value = _entity_value(entity_type)

        def _update(conn: sqlite3.Connection) -> SyncState:
            state = self._read_sync_state(conn, connection_id, type_value) or SyncState(
                connection_id=connection_id,
                entity_type=entity_type,
            )
            state = state.model_copy(update=changes)
            conn.execute(
                """
                INSERT INTO sync_state (
                    connection_id, entity_type, last_sync_at, last_modified_cursor,
                    records_fetched, records_updated, last_error, last_error_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(connection_id, entity_type) DO UPDATE SET
                    last_sync_at = excluded.last_sync_at,
                    last_modified_cursor = excluded.last_modified_cursor,
                    records_fetched = excluded.records_fetched,
                    records_updated = excluded.records_updated,
                    last_error = excluded.last_error,
                    last_error_at = excluded.last_error_at
                """,
                (
                    connection_id,
                    type_value,
                    _iso(state.last_sync_at),
                    state.last_modified_cursor,
                    state.records_fetched,
                    state.records_updated,
                    state.last_error,
                    _iso(state.last_error_at),
                ),
            )
            return state

        return await self._run(_update)

    # =========================================================================
    # Sync Progress
    # =========================================================================

    async def upsert_sync_progress(self, progress: SyncProgress) -> None:
        payload = progress.model_dump_json()

        def _upsert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO sync_progress (job_id, connection_id, status, started_at, payload)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(job_id) DO UPDATE SET
                    status = excluded.status,
                    payload = excluded.payload
                """,
                (
                    progress.job_id,
                    progress.connection_id,
                    progress.status.value,
                    progress.started_at.isoformat(),
                    payload,
                ),
            )

        await self._run(_upsert)

    async def get_sync_progress(self, job_id: str) -> Optional[SyncProgress]:
        def _get(conn: sqlite3.Connection) -> Optional[SyncProgress]:
            row = conn.execute("SELECT payload FROM sync_progress WHERE job_id = ?", (job_id,)).fetchone()
            return SyncProgress.model_validate_json(row["payload"]) if row else None

        return await self._run(_get)

    async def get_sync_history(self, connection_id: str, limit: int = 20) -> List[SyncProgress]:
        def _history(conn: sqlite3.Connection) -> List[SyncProgress]:
            rows = conn.execute(
                "SELECT payload FROM sync_progress WHERE connection_id = ? "
                "ORDER BY started_at DESC LIMIT ?",
                (connection_id, limit),
            )
            return [SyncProgress.model_validate_json(row["payload"]) for row in rows]

        return await self._run(_history)

    # =========================================================================
    # SIE
    # =========================================================================

    async def store_sie_data(self, connection_id: str, data: SIEData) -> str:
        upload_id = data.upload_id or str(uuid.uuid4())

        def _store(conn: sqlite3.Connection) -> str:
            conn.execute(
                """
                INSERT OR REPLACE INTO sie_uploads (
                    upload_id, connection_id, fiscal_year, sie_type, file_name,
                    account_count, transaction_count, uploaded_at, parsed, raw_content
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    upload_id,
                    connection_id,
                    data.fiscal_year,
                    data.sie_type,
                    None,
                    len(data.parsed.accounts),
                    len(data.parsed.transactions),
                    utcnow().isoformat(),
                    data.parsed.model_dump_json(),
                    data.raw_content,
                ),
            )
            return upload_id

        return await self._run(_store)

    async def get_sie_uploads(self, connection_id: str) -> List[SIEUpload]:
        def _uploads(conn: sqlite3.Connection) -> List[SIEUpload]:
            rows = conn.execute(
                """
                SELECT upload_id, connection_id, fiscal_year, sie_type, file_name,
                       account_count, transaction_count, uploaded_at
                FROM sie_uploads WHERE connection_id = ? ORDER BY uploaded_at DESC
                """,
                (connection_id,),
            )
            return [SIEUpload(**dict(row)) for row in rows]

        return await self._run(_uploads)

    async def get_sie_data(self, upload_id: str) -> Optional[SIEData]:
        def _get(conn: sqlite3.Connection) -> Optional[SIEData]:
            row = conn.execute("SELECT * FROM sie_uploads WHERE upload_id = ?", (upload_id,)).fetchone()
            if row is None:
                return None
            return SIEData(
                upload_id=row["upload_id"],
                connection_id=row["connection_id"],
                fiscal_year=row["fiscal_year"],
                sie_type=row["sie_type"],
                parsed=SIEParseResult.model_validate_json(row["parsed"]),
                raw_content=row["raw_content"],
            )

        return await self._run(_get)

    # =========================================================================
    # Connections
    # =========================================================================

    @staticmethod
    def _connection_from_row(row: sqlite3.Row) -> ConnectionRecord:
        data = dict(row)
        data["metadata"] = json.loads(data["metadata"]) if data["metadata"] else {}
        return ConnectionRecord(**data)

    async def upsert_connection(self, connection: ConnectionRecord) -> None:
        def _upsert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO connections (
                    connection_id, provider, display_name, organization_number,
                    last_sync_at, created_at, updated_at, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(connection_id) DO UPDATE SET
                    provider = excluded.provider,
                    display_name = excluded.display_name,
                    organization_number = excluded.organization_number,
                    last_sync_at = excluded.last_sync_at,
                    updated_at = excluded.updated_at,
                    metadata = excluded.metadata
                """,
                (
                    connection.connection_id,
                    connection.provider.value,
                    connection.display_name,
                    connection.organization_number,
                    _iso(connection.last_sync_at),
                    connection.created_at.isoformat(),
                    utcnow().isoformat(),
                    json.dumps(connection.metadata, default=str),
                ),
            )

        await self._run(_upsert)

    async def get_connection(self, connection_id: str) -> Optional[ConnectionRecord]:
        def _get(conn: sqlite3.Connection) -> Optional[ConnectionRecord]:
            row = conn.execute("SELECT * FROM connections WHERE connection_id = ?", (connection_id,)).fetchone()
            return self._connection_from_row(row) if row else None

        return await self._run(_get)

    async def get_connections(self, provider: Optional[ProviderName] = None) -> List[ConnectionRecord]:
        def _list(conn: sqlite3.Connection) -> List[ConnectionRecord]:
            if provider is None:
                rows = conn.execute("SELECT * FROM connections ORDER BY connection_id")
            else:
                rows = conn.execute(
                    "SELECT * FROM connections WHERE provider = ? ORDER BY connection_id",
                    (ProviderName(provider).value,),
                )
            return [self._connection_from_row(row) for row in rows]

        return await self._run(_list)

    async def touch_connection(self, connection_id: str, last_sync_at) -> None:
        def _touch(conn: sqlite3.Connection) -> None:
            conn.execute(
                "UPDATE connections SET last_sync_at = ?, updated_at = ? WHERE connection_id = ?",
                (_iso(last_sync_at), utcnow().isoformat(), connection_id),
            )

        await self._run(_touch)

    async def delete_connection(self, connection_id: str) -> None:
        def _delete(conn: sqlite3.Connection) -> None:
            for table in ("entities", "sync_state", "sync_progress", "sie_uploads", "connections"):
                conn.execute(f"DELETE FROM {table} WHERE connection_id = ?", (connection_id,))

        await self._run(_delete)
