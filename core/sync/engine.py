"""Incremental sync engine.

Runs one sync job for one connection:

    pending -> running -> completed | failed | cancelled

For each requested entity type the engine fetches every page from the
provider (from the stored cursor when the type supports incremental sync),
compares content hashes against one snapshot of stored hashes, writes only
new and changed records, and advances the cursor. A failing entity type is
recorded and the job moves on to the next one; storage failures fail the
whole job. Progress is persisted after every step so callers can poll it.

Usage:
    engine = SyncEngine(storage, build_default_registry(settings))
    progress = await engine.execute_sync(SyncJob(...))
"""

import asyncio
import time
import uuid
from typing import Dict, List, Optional, Tuple

from core.errors import ProviderConfigurationError, StorageError, SyncError
from core.models.entity import CanonicalEntityRecord, EntityType, FetchEntitiesOptions
from core.models.provider import ProviderCapabilities
from core.models.sie import FetchSIEOptions, SIEData
from core.models.sync import (
    EntitySyncResult,
    SIESyncResult,
    SyncJob,
    SyncProgress,
    SyncStatus,
    UpsertResult,
    utcnow,
)
from core.observability.logging import get_logger, log_job_event, with_correlation
from core.observability.metrics import MetricsCollector, get_metrics
from core.storage.base import StorageAdapter
from providers.base import AccountingProvider, latest_cursor
from providers.registry import ProviderRegistry

logger = get_logger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def classify_records(
    records: List[CanonicalEntityRecord],
    stored_hashes: Dict[str, str],
) -> Tuple[List[CanonicalEntityRecord], UpsertResult]:
    """Split fetched records against stored hashes.

    Returns the records that must be written (new or changed) and the
    insert/update/unchanged counts. A record id seen twice in one fetch is
    compared against its earlier occurrence.
    """
    hashes = dict(stored_hashes)
    counts = UpsertResult()
    changed: List[CanonicalEntityRecord] = []

    for record in records:
        stored = hashes.get(record.external_id)
        if stored is None:
            counts.inserted += 1
        elif stored != record.content_hash:
            counts.updated += 1
        else:
            counts.unchanged += 1
            continue
        hashes[record.external_id] = record.content_hash
        changed.append(record)

    return changed, counts


class SyncEngine:
    """Executes sync jobs against a storage adapter and provider registry."""

    def __init__(
        self,
        storage: StorageAdapter,
        registry: ProviderRegistry,
        metrics: Optional[MetricsCollector] = None,
        page_size: int = 100,
    ):
        self.storage = storage
        self.registry = registry
        self.metrics = metrics or get_metrics()
        self.page_size = page_size

    # =========================================================================
    # Job Lifecycle
    # =========================================================================

    async def create_job(self, job: SyncJob, job_id: Optional[str] = None) -> SyncProgress:
        """Persist a pending job and return its progress record."""
        progress = SyncProgress(
            job_id=job_id or str(uuid.uuid4()),
            connection_id=job.connection_id,
            provider=job.provider,
        )
        await self.storage.upsert_sync_progress(progress)
        log_job_event(
            "sync_job_created",
            job_id=progress.job_id,
            connection_id=job.connection_id,
            provider=job.provider.value,
        )
        return progress

    async def execute_sync(self, job: SyncJob, job_id: Optional[str] = None) -> SyncProgress:
        """Create and run a job in one call."""
        progress = await self.create_job(job, job_id)
        return await self.run_job(progress, job)

    async def run_job(self, progress: SyncProgress, job: SyncJob) -> SyncProgress:
        """Run a created job to a terminal state.

        Returns the final progress. Raises asyncio.CancelledError after
        recording the cancellation.
        """
        with with_correlation(
            job_id=progress.job_id,
            connection_id=job.connection_id,
            provider=job.provider.value,
        ):
            started = time.monotonic()
            self.metrics.record_job_started(job.provider.value, progress.job_id)
            provider: Optional[AccountingProvider] = None

            try:
                provider = self.registry.create(job.provider)
                capabilities = provider.get_capabilities()
                entity_types = self._plan_entity_types(provider, capabilities, job)

                if not await provider.validate_credentials(job.credentials):
                    return await self._finish_failed(
                        progress,
                        f"Invalid credentials for {capabilities.display_name} connection {job.connection_id}",
                        started,
                    )

                progress.status = SyncStatus.RUNNING
                await self._save(progress)
                logger.info(
                    f"Sync started: {len(entity_types)} entity types",
                    extra_fields={"entity_types": [t.value for t in entity_types], "include_sie": job.include_sie},
                )

                total_steps = len(entity_types) + (1 if job.include_sie else 0)
                done = 0

                for entity_type in entity_types:
                    result = await self._sync_entity_type(provider, capabilities, job, entity_type)
                    progress.entity_results.append(result)
                    done += 1
                    progress.progress = self._percent(done, total_steps)
                    await self._save(progress)

                if job.include_sie:
                    progress.sie_result = await self._sync_sie(provider, job)
                    done += 1
                    progress.progress = self._percent(done, total_steps)
                    await self._save(progress)

                failure = self._job_failure(progress)
                if failure:
                    return await self._finish_failed(progress, failure, started)
                return await self._finish_completed(progress, started)

            except asyncio.CancelledError:
                await self._finish_cancelled(progress, started)
                raise
            except SyncError as e:
                logger.error(f"Sync failed: {e}", exc_info=True)
                return await self._finish_failed(progress, str(e), started)
            except Exception as e:
                logger.exception(f"Sync failed with unexpected error: {e}")
                return await self._finish_failed(progress, f"Unexpected error: {type(e).__name__}: {e}", started)
            finally:
                if provider is not None:
                    await provider.close()

    # =========================================================================
    # Planning
    # =========================================================================

    def _plan_entity_types(
        self,
        provider: AccountingProvider,
        capabilities: ProviderCapabilities,
        job: SyncJob,
    ) -> List[EntityType]:
        """Check the job against the provider before any network call.

        Raises:
            ProviderConfigurationError: On credential/provider mismatch, an
                unsupported entity type or an unsupported SIE request
        """
        if job.credentials.provider != job.provider.value:
            raise ProviderConfigurationError(
                f"Credentials for {job.credentials.provider!r} cannot be used with provider {job.provider.value!r}"
            )
        provider.access_token(job.credentials)

        if job.entity_types is None:
            entity_types = list(capabilities.supported_entity_types)
        else:
            entity_types = list(job.entity_types)
            unsupported = [t.value for t in entity_types if t not in capabilities.supported_entity_types]
            if unsupported:
                raise ProviderConfigurationError(
                    f"{capabilities.display_name} does not support entity types: {', '.join(unsupported)}"
                )

        if job.include_sie:
            if not capabilities.supports_sie:
                raise ProviderConfigurationError(f"{capabilities.display_name} does not support SIE export")
            if job.sie_options.sie_type not in capabilities.sie_types:
                raise ProviderConfigurationError(
                    f"{capabilities.display_name} does not support SIE type {job.sie_options.sie_type}"
                )

        return entity_types

    @staticmethod
    def _percent(done: int, total: int) -> int:
        if total <= 0:
            return 100
        return min(100, int(done * 100 / total))

    @staticmethod
    def _job_failure(progress: SyncProgress) -> Optional[str]:
        """Message when every step of the job failed, else None."""
        failed = [r for r in progress.entity_results if not r.success]
        steps = len(progress.entity_results)
        if progress.sie_result is not None:
            steps += 1
            sie_failed = not progress.sie_result.success
        else:
            sie_failed = False

        if steps == 0 or len(failed) + int(sie_failed) < steps:
            return None

        errors = [f"{r.entity_type.value}: {r.error}" for r in failed]
        if sie_failed:
            errors.append(f"sie: {progress.sie_result.error}")
        return "All sync steps failed: " + "; ".join(errors)

    # =========================================================================
    # Entity Types
    # =========================================================================

    async def _sync_entity_type(
        self,
        provider: AccountingProvider,
        capabilities: ProviderCapabilities,
        job: SyncJob,
        entity_type: EntityType,
    ) -> EntitySyncResult:
        """Sync one entity type. Only storage errors escape."""
        with with_correlation(entity_type=entity_type.value):
            started = time.monotonic()
            result = EntitySyncResult(entity_type=entity_type)
            connection_id = job.connection_id

            try:
                state = await self.storage.get_sync_state(connection_id, entity_type)
                cursor = None
                if state is not None and entity_type in capabilities.incremental_sync_entities:
                    cursor = state.last_modified_cursor

                records = await provider.fetch_all_entities(
                    job.credentials,
                    FetchEntitiesOptions(
                        entity_type=entity_type,
                        last_modified_cursor=cursor,
                        page_size=self.page_size,
                    ),
                    on_progress=self._log_fetch_progress,
                )

                stored_hashes = await self.storage.get_entity_hashes(connection_id, entity_type)
                changed, counts = classify_records(records, stored_hashes)
                if changed:
                    await self.storage.upsert_entities(connection_id, entity_type, changed)

                await self.storage.update_sync_state(
                    connection_id,
                    entity_type,
                    last_sync_at=utcnow(),
                    last_modified_cursor=latest_cursor(records) or cursor,
                    records_fetched=(state.records_fetched if state else 0) + len(records),
                    records_updated=(state.records_updated if state else 0) + counts.updated,
                    last_error=None,
                    last_error_at=None,
                )

                result.records_fetched = len(records)
                result.records_inserted = counts.inserted
                result.records_updated = counts.updated
                result.records_unchanged = counts.unchanged
                result.duration_ms = _elapsed_ms(started)

                self.metrics.record_entity_result(
                    entity_type.value,
                    inserted=counts.inserted,
                    updated=counts.updated,
                    unchanged=counts.unchanged,
                    duration_ms=result.duration_ms,
                )
                logger.info(
                    f"Synced {entity_type.value}: {counts.inserted} inserted, "
                    f"{counts.updated} updated, {counts.unchanged} unchanged",
                    extra_fields={"records_fetched": len(records), "duration_ms": result.duration_ms},
                )

            except StorageError:
                raise
            except Exception as e:
                result.success = False
                result.error = str(e)
                result.duration_ms = _elapsed_ms(started)
                self.metrics.record_entity_failed(entity_type.value, str(e))
                logger.error(f"Sync of {entity_type.value} failed: {e}", exc_info=True)
                await self.storage.update_sync_state(
                    connection_id,
                    entity_type,
                    last_error=str(e),
                    last_error_at=utcnow(),
                )

            return result

    def _log_fetch_progress(self, current: int, total: int, entity_type: EntityType) -> None:
        logger.debug(
            f"Fetched {current}/{total} {entity_type.value} records",
            extra_fields={"current": current, "total": total},
        )

    # =========================================================================
    # SIE
    # =========================================================================

    async def _sync_sie(self, provider: AccountingProvider, job: SyncJob) -> SIESyncResult:
        with with_correlation(stage="sie"):
            started = time.monotonic()
            result = SIESyncResult()

            try:
                fetched = await provider.fetch_sie(
                    job.credentials,
                    FetchSIEOptions(
                        sie_type=job.sie_options.sie_type,
                        fiscal_years=job.sie_options.fiscal_years,
                    ),
                )
                for sie_file in fetched.files:
                    await self.storage.store_sie_data(
                        job.connection_id,
                        SIEData(
                            connection_id=job.connection_id,
                            fiscal_year=sie_file.fiscal_year,
                            sie_type=sie_file.sie_type,
                            parsed=sie_file.parsed,
                            raw_content=sie_file.raw_content,
                        ),
                    )
                    result.fiscal_years_processed += 1
                    result.accounts_stored += len(sie_file.parsed.accounts)
                    result.transactions_stored += len(sie_file.parsed.transactions)

                logger.info(
                    f"Stored SIE exports for {result.fiscal_years_processed} fiscal years",
                    extra_fields={"transactions": result.transactions_stored},
                )
            except StorageError:
                raise
            except Exception as e:
                result.success = False
                result.error = str(e)
                logger.error(f"SIE sync failed: {e}", exc_info=True)

            result.duration_ms = _elapsed_ms(started)
            self.metrics.record_processing_time("sie", result.duration_ms)
            return result

    # =========================================================================
    # Terminal States
    # =========================================================================

    async def _save(self, progress: SyncProgress) -> None:
        await self.storage.upsert_sync_progress(progress)

    def _stamp(self, progress: SyncProgress, status: SyncStatus, started: float) -> None:
        progress.status = status
        progress.completed_at = utcnow()
        progress.total_duration_ms = _elapsed_ms(started)

    async def _save_terminal(self, progress: SyncProgress) -> None:
        try:
            await self._save(progress)
        except StorageError as e:
            logger.error(
                f"Could not persist {progress.status.value} state of job {progress.job_id}: {e}",
                exc_info=True,
            )

    async def _finish_completed(self, progress: SyncProgress, started: float) -> SyncProgress:
        self._stamp(progress, SyncStatus.COMPLETED, started)
        progress.progress = 100
        await self._save(progress)
        await self.storage.touch_connection(progress.connection_id, progress.completed_at)
        self.metrics.record_job_completed(progress.provider.value, progress.job_id, progress.total_duration_ms)
        log_job_event(
            "sync_job_completed",
            job_id=progress.job_id,
            duration_ms=progress.total_duration_ms,
            failed_entity_types=[r.entity_type.value for r in progress.entity_results if not r.success],
        )
        return progress

    async def _finish_failed(self, progress: SyncProgress, error: str, started: float) -> SyncProgress:
        self._stamp(progress, SyncStatus.FAILED, started)
        progress.error = error
        await self._save_terminal(progress)
        self.metrics.record_job_failed(progress.provider.value, progress.job_id, error)
        log_job_event("sync_job_failed", job_id=progress.job_id, error=error)
        return progress

    async def _finish_cancelled(self, progress: SyncProgress, started: float) -> None:
        self._stamp(progress, SyncStatus.CANCELLED, started)
        progress.error = "Sync job was cancelled"
        await self._save_terminal(progress)
        self.metrics.record_job_cancelled(progress.provider.value, progress.job_id)
        log_job_event("sync_job_cancelled", job_id=progress.job_id)
