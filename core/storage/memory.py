"""In-memory storage adapter for tests and local development."""

import uuid
from typing import Dict, List, Optional, Tuple

from core.models.entity import CanonicalEntityRecord, EntityType, ProviderName
from core.models.sie import SIEData, SIEUpload
from core.models.sync import (
    ConnectionRecord,
    GetEntitiesOptions,
    SyncProgress,
    SyncState,
    UpsertResult,
    utcnow,
)
from core.storage.base import StorageAdapter, check_sync_state_changes


EntityKey = Tuple[str, str]  # (connection_id, entity_type)


def select_entities(
    records: List[CanonicalEntityRecord],
    options: GetEntitiesOptions,
) -> List[CanonicalEntityRecord]:
    """Filter, order and page records per GetEntitiesOptions."""
    selected = records
    if options.fiscal_year is not None:
        selected = [r for r in selected if r.fiscal_year == options.fiscal_year]
    if options.from_date:
        selected = [r for r in selected if r.document_date and r.document_date >= options.from_date]
    if options.to_date:
        selected = [r for r in selected if r.document_date and r.document_date <= options.to_date]

    key = options.order_by
    selected = sorted(selected, key=lambda r: getattr(r, key) or "")
    if options.order_direction == "desc":
        selected.reverse()

    start = (options.page - 1) * options.page_size
    return selected[start:start + options.page_size]


class InMemoryStorageAdapter(StorageAdapter):
    """
    Dict-backed StorageAdapter.

    Stored models are copied on the way in and out so callers can never
    mutate persisted state by accident.
    """

    def __init__(self):
        self._entities: Dict[EntityKey, Dict[str, CanonicalEntityRecord]] = {}
        self._sync_states: Dict[EntityKey, SyncState] = {}
        self._progress: Dict[str, SyncProgress] = {}
        self._sie: Dict[str, SIEData] = {}
        self._sie_uploads: Dict[str, SIEUpload] = {}
        self._connections: Dict[str, ConnectionRecord] = {}

    @staticmethod
    def _key(connection_id: str, entity_type: EntityType) -> EntityKey:
        return connection_id, EntityType(entity_type).value

    # =========================================================================
    # Entities
    # =========================================================================

    async def upsert_entities(
        self,
        connection_id: str,
        entity_type: EntityType,
        records: List[CanonicalEntityRecord],
    ) -> UpsertResult:
        stored = self._entities.setdefault(self._key(connection_id, entity_type), {})
        result = UpsertResult()

        for record in records:
            existing = stored.get(record.external_id)
            if existing is None:
                result.inserted += 1
            elif existing.content_hash == record.content_hash:
                result.unchanged += 1
                continue
            else:
                result.updated += 1
            stored[record.external_id] = record.model_copy(deep=True)

        return result

    async def get_entity_hashes(self, connection_id: str, entity_type: EntityType) -> Dict[str, str]:
        stored = self._entities.get(self._key(connection_id, entity_type), {})
        return {external_id: r.content_hash for external_id, r in stored.items()}

    async def get_entities(
        self,
        connection_id: str,
        entity_type: EntityType,
        options: Optional[GetEntitiesOptions] = None,
    ) -> List[CanonicalEntityRecord]:
        stored = self._entities.get(self._key(connection_id, entity_type), {})
        selected = select_entities(list(stored.values()), options or GetEntitiesOptions())
        return [r.model_copy(deep=True) for r in selected]

    async def get_entity_count(self, connection_id: str, entity_type: Optional[EntityType] = None) -> int:
        if entity_type is not None:
            return len(self._entities.get(self._key(connection_id, entity_type), {}))
        return sum(
            len(records)
            for (conn_id, _), records in self._entities.items()
            if conn_id == connection_id
        )

    # =========================================================================
    # Sync State
    # =========================================================================

    async def get_sync_state(self, connection_id: str, entity_type: EntityType) -> Optional[SyncState]:
        state = self._sync_states.get(self._key(connection_id, entity_type))
        return state.model_copy() if state else None

    async def update_sync_state(self, connection_id: str, entity_type: EntityType, **changes) -> SyncState:
        check_sync_state_changes(changes)
        key = self._key(connection_id, entity_type)
        state = self._sync_states.get(key) or SyncState(
            connection_id=connection_id,
            entity_type=entity_type,
        )
        state = state.model_copy(update=changes)
        self._sync_states[key] = state
        return state.model_copy()

    # =========================================================================
    # Sync Progress
    # =========================================================================

    async def upsert_sync_progress(self, progress: SyncProgress) -> None:
        self._progress[progress.job_id] = progress.model_copy(deep=True)

    async def get_sync_progress(self, job_id: str) -> Optional[SyncProgress]:
        progress = self._progress.get(job_id)
        return progress.model_copy(deep=True) if progress else None

    async def get_sync_history(self, connection_id: str, limit: int = 20) -> List[SyncProgress]:
        jobs = [p for p in self._progress.values() if p.connection_id == connection_id]
        jobs.sort(key=lambda p: p.started_at, reverse=True)
        return [p.model_copy(deep=True) for p in jobs[:limit]]

    # =========================================================================
    # SIE
    # =========================================================================

    async def store_sie_data(self, connection_id: str, data: SIEData) -> str:
        upload_id = data.upload_id or str(uuid.uuid4())
        stored = data.model_copy(update={"upload_id": upload_id, "connection_id": connection_id}, deep=True)
        self._sie[upload_id] = stored
        self._sie_uploads[upload_id] = SIEUpload(
            upload_id=upload_id,
            connection_id=connection_id,
            fiscal_year=data.fiscal_year,
            sie_type=data.sie_type,
            account_count=len(data.parsed.accounts),
            transaction_count=len(data.parsed.transactions),
            uploaded_at=utcnow(),
        )
        return upload_id

    async def get_sie_uploads(self, connection_id: str) -> List[SIEUpload]:
        uploads = [u for u in self._sie_uploads.values() if u.connection_id == connection_id]
        uploads.sort(key=lambda u: u.uploaded_at, reverse=True)
        return [u.model_copy() for u in uploads]

    async def get_sie_data(self, upload_id: str) -> Optional[SIEData]:
        data = self._sie.get(upload_id)
        return data.model_copy(deep=True) if data else None

    # =========================================================================
    # Connections
    # =========================================================================

    async def upsert_connection(self, connection: ConnectionRecord) -> None:
        existing = self._connections.get(connection.connection_id)
        stored = connection.model_copy(deep=True)
        if existing is not None:
            stored.created_at = existing.created_at
        stored.updated_at = utcnow()
        self._connections[connection.connection_id] = stored

    async def get_connection(self, connection_id: str) -> Optional[ConnectionRecord]:
        connection = self._connections.get(connection_id)
        return connection.model_copy(deep=True) if connection else None

    async def get_connections(self, provider: Optional[ProviderName] = None) -> List[ConnectionRecord]:
        return [
            c.model_copy(deep=True)
            for c in self._connections.values()
            if provider is None or c.provider == provider
        ]

    async def touch_connection(self, connection_id: str, last_sync_at) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        connection.last_sync_at = last_sync_at
        connection.updated_at = utcnow()

    async def delete_connection(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)
        for key in [k for k in self._entities if k[0] == connection_id]:
            del self._entities[key]
        for key in [k for k in self._sync_states if k[0] == connection_id]:
            del self._sync_states[key]
        for job_id in [j for j, p in self._progress.items() if p.connection_id == connection_id]:
            del self._progress[job_id]
        for upload_id in [u for u, d in self._sie.items() if d.connection_id == connection_id]:
            del self._sie[upload_id]
            del self._sie_uploads[upload_id]
