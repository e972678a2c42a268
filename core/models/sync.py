"""Sync job, progress and per-connection state models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any

from pydantic import BaseModel, Field

from core.models.entity import EntityType, ProviderName
from core.models.provider import ProviderCredentials


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncStatus(str, Enum):
    """Lifecycle of a sync job: pending -> running -> completed|failed|cancelled."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SIESyncOptions(BaseModel):
    """Which SIE exports to fetch. fiscal_years=None means all years."""
    sie_type: int = Field(default=4, ge=1, le=4)
    fiscal_years: Optional[list[int]] = None


class SyncJob(BaseModel):
    """A request to sync one connection.

    Attributes:
        entity_types: Types to sync in order; None syncs every supported type
        include_sie: Also fetch and store SIE exports
    """
    connection_id: str = Field(..., description="Connection being synced")
    provider: ProviderName = Field(..., description="Provider of the connection")
    credentials: ProviderCredentials
    entity_types: Optional[list[EntityType]] = None
    include_sie: bool = False
    sie_options: SIESyncOptions = Field(default_factory=SIESyncOptions)


class EntitySyncResult(BaseModel):
    """Outcome of syncing one entity type within a job."""
    entity_type: EntityType
    records_fetched: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_unchanged: int = 0
    success: bool = True
    error: Optional[str] = None
    duration_ms: int = 0


class SIESyncResult(BaseModel):
    """Outcome of the SIE step of a job."""
    fiscal_years_processed: int = 0
    accounts_stored: int = 0
    transactions_stored: int = 0
    success: bool = True
    error: Optional[str] = None
    duration_ms: int = 0


class SyncProgress(BaseModel):
    """Persisted progress of one sync job."""
    job_id: str
    connection_id: str
    provider: ProviderName
    status: SyncStatus = SyncStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    entity_results: list[EntitySyncResult] = Field(default_factory=list)
    sie_result: Optional[SIESyncResult] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    total_duration_ms: Optional[int] = None


class SyncState(BaseModel):
    """Incremental sync state for one (connection, entity type)."""
    connection_id: str
    entity_type: EntityType
    last_sync_at: Optional[datetime] = None
    last_modified_cursor: Optional[str] = None
    # Running totals over every successful sync of this entity type
    records_fetched: int = 0
    records_updated: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None


class ConnectionRecord(BaseModel):
    """A configured link to one company in one provider."""
    connection_id: str
    provider: ProviderName
    display_name: str
    organization_number: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpsertResult(BaseModel):
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0


class GetEntitiesOptions(BaseModel):
    """Query options for reading stored entities."""
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=100, ge=1)
    fiscal_year: Optional[int] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    order_by: str = Field(default="external_id", pattern="^(document_date|last_modified|external_id)$")
    order_direction: str = Field(default="asc", pattern="^(asc|desc)$")
