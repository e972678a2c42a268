"""
Storage Adapter Contract

Abstract interface the sync engine persists through. Adapters own
transactional discipline; the engine only relies on each call being applied
as a whole or raising StorageError.

Implementations:
- InMemoryStorageAdapter: tests and local development
- SQLiteStorageAdapter: single-file persistence via sqlite3
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from core.models.entity import CanonicalEntityRecord, EntityType, ProviderName
from core.models.sie import SIEData, SIEUpload
from core.models.sync import (
    ConnectionRecord,
    GetEntitiesOptions,
    SyncProgress,
    SyncState,
    UpsertResult,
)


# Fields of SyncState the engine is allowed to change
SYNC_STATE_FIELDS = (
    "last_sync_at",
    "last_modified_cursor",
    "records_fetched",
    "records_updated",
    "last_error",
    "last_error_at",
)


class StorageAdapter(ABC):
    """
    Abstract base class for sync storage.

    All methods are coroutines. Failures are raised as
    core.errors.StorageError.
    """

    # =========================================================================
    # Entities
    # =========================================================================

    @abstractmethod
    async def upsert_entities(
        self,
        connection_id: str,
        entity_type: EntityType,
        records: List[CanonicalEntityRecord],
    ) -> UpsertResult:
        """
        Insert or update records keyed by (connection, entity type, external_id).

        Records whose stored content_hash equals the incoming one are counted
        as unchanged and left untouched.
        """
        pass

    @abstractmethod
    async def get_entity_hashes(
        self,
        connection_id: str,
        entity_type: EntityType,
    ) -> Dict[str, str]:
        """Snapshot of stored content hashes: external_id -> content_hash."""
        pass

    @abstractmethod
    async def get_entities(
        self,
        connection_id: str,
        entity_type: EntityType,
        options: Optional[GetEntitiesOptions] = None,
    ) -> List[CanonicalEntityRecord]:
        pass

    @abstractmethod
    async def get_entity_count(
        self,
        connection_id: str,
        entity_type: Optional[EntityType] = None,
    ) -> int:
        pass

    # =========================================================================
    # Sync State
    # =========================================================================

    @abstractmethod
    async def get_sync_state(
        self,
        connection_id: str,
        entity_type: EntityType,
    ) -> Optional[SyncState]:
        pass

    @abstractmethod
    async def update_sync_state(
        self,
        connection_id: str,
        entity_type: EntityType,
        **changes,
    ) -> SyncState:
        """
        Apply changes to the sync state, creating it on first use.

        Only keys in SYNC_STATE_FIELDS are accepted.
        """
        pass

    # =========================================================================
    # Sync Progress
    # =========================================================================

    @abstractmethod
    async def upsert_sync_progress(self, progress: SyncProgress) -> None:
        pass

    @abstractmethod
    async def get_sync_progress(self, job_id: str) -> Optional[SyncProgress]:
        pass

    @abstractmethod
    async def get_sync_history(
        self,
        connection_id: str,
        limit: int = 20,
    ) -> List[SyncProgress]:
        """Jobs for the connection, most recently started first."""
        pass

    # =========================================================================
    # SIE
    # =========================================================================

    @abstractmethod
    async def store_sie_data(self, connection_id: str, data: SIEData) -> str:
        """Store a parsed SIE export and return its upload id."""
        pass

    @abstractmethod
    async def get_sie_uploads(self, connection_id: str) -> List[SIEUpload]:
        pass

    @abstractmethod
    async def get_sie_data(self, upload_id: str) -> Optional[SIEData]:
        pass

    # =========================================================================
    # Connections
    # =========================================================================

    @abstractmethod
    async def upsert_connection(self, connection: ConnectionRecord) -> None:
        pass

    @abstractmethod
    async def get_connection(self, connection_id: str) -> Optional[ConnectionRecord]:
        pass

    @abstractmethod
    async def get_connections(
        self,
        provider: Optional[ProviderName] = None,
    ) -> List[ConnectionRecord]:
        pass

    @abstractmethod
    async def touch_connection(self, connection_id: str, last_sync_at) -> None:
        """Set last_sync_at on an existing connection. Unknown ids are ignored."""
        pass

    @abstractmethod
    async def delete_connection(self, connection_id: str) -> None:
        """Remove the connection with its entities, sync state and SIE data."""
        pass

    async def close(self) -> None:
        """Release resources held by the adapter."""
        return None


def check_sync_state_changes(changes: Dict) -> None:
    """Reject sync state keys the engine does not own."""
    unknown = set(changes) - set(SYNC_STATE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown sync state fields: {', '.join(sorted(unknown))}")
