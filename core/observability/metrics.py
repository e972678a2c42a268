"""
Metrics Collection for the Sync Engine

Collects and exposes metrics for:
- Sync job lifecycle (started, completed, failed, cancelled)
- Entity type outcomes (succeeded, failed)
- Record change detection (inserted, updated, unchanged)
- HTTP retries per provider
- Processing times (average, p95) per stage

Metrics are kept in-memory; the engine receives a collector explicitly so
tests can use a private instance.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class JobMetrics:
    """Metrics for sync job execution."""
    started: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    in_progress: int = 0

    # By provider
    by_provider: Dict[str, Dict[str, int]] = field(
        default_factory=lambda: defaultdict(lambda: {"started": 0, "completed": 0, "failed": 0, "cancelled": 0})
    )


@dataclass
class EntityMetrics:
    """Metrics for per-entity-type sync results."""
    succeeded: int = 0
    failed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_unchanged: int = 0

    # By entity type
    by_type: Dict[str, Dict[str, int]] = field(
        default_factory=lambda: defaultdict(lambda: {
            "succeeded": 0, "failed": 0, "inserted": 0, "updated": 0, "unchanged": 0,
        })
    )


@dataclass
class HttpMetrics:
    """Metrics for provider HTTP traffic."""
    retries: int = 0
    by_provider: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    # Raw timing samples (keep last N for percentile calculations)
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    # By stage
    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: Optional[str] = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: Optional[str] = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: Optional[str] = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector for sync jobs.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_job_started("fortnox", job_id)
        metrics.record_entity_result("invoice", inserted=3, updated=1, unchanged=10)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.jobs = JobMetrics()
        self.entities = EntityMetrics()
        self.http = HttpMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    # =========================================================================
    # Job Metrics
    # =========================================================================

    def record_job_started(self, provider: str, job_id: str):
        """Record a sync job start."""
        with self._lock:
            self.jobs.started += 1
            self.jobs.in_progress += 1
            self.jobs.by_provider[provider]["started"] += 1

    def record_job_completed(self, provider: str, job_id: str, duration_ms: Optional[float] = None):
        """Record a sync job completion."""
        with self._lock:
            self.jobs.completed += 1
            self.jobs.in_progress = max(0, self.jobs.in_progress - 1)
            self.jobs.by_provider[provider]["completed"] += 1

            if duration_ms:
                self.timings.add_sample(duration_ms, f"job.{provider}")

    def record_job_failed(self, provider: str, job_id: str, error: Optional[str] = None):
        """Record a sync job failure."""
        with self._lock:
            self.jobs.failed += 1
            self.jobs.in_progress = max(0, self.jobs.in_progress - 1)
            self.jobs.by_provider[provider]["failed"] += 1

    def record_job_cancelled(self, provider: str, job_id: str):
        """Record a cancelled sync job."""
        with self._lock:
            self.jobs.cancelled += 1
            self.jobs.in_progress = max(0, self.jobs.in_progress - 1)
            self.jobs.by_provider[provider]["cancelled"] += 1

    # =========================================================================
    # Entity Metrics
    # =========================================================================

    def record_entity_result(
        self,
        entity_type: str,
        inserted: int = 0,
        updated: int = 0,
        unchanged: int = 0,
        duration_ms: Optional[float] = None,
    ):
        """Record a successful entity type sync."""
        with self._lock:
            self.entities.succeeded += 1
            self.entities.records_inserted += inserted
            self.entities.records_updated += updated
            self.entities.records_unchanged += unchanged

            by_type = self.entities.by_type[entity_type]
            by_type["succeeded"] += 1
            by_type["inserted"] += inserted
            by_type["updated"] += updated
            by_type["unchanged"] += unchanged

            if duration_ms:
                self.timings.add_sample(duration_ms, f"entity.{entity_type}")

    def record_entity_failed(self, entity_type: str, error: Optional[str] = None):
        """Record a failed entity type sync."""
        with self._lock:
            self.entities.failed += 1
            self.entities.by_type[entity_type]["failed"] += 1

    # =========================================================================
    # HTTP Metrics
    # =========================================================================

    def record_http_retry(self, provider: str, attempt: int, error: Optional[str] = None):
        """Record a retried provider request."""
        with self._lock:
            self.http.retries += 1
            self.http.by_provider[provider] += 1

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "jobs": {
                    "started": self.jobs.started,
                    "completed": self.jobs.completed,
                    "failed": self.jobs.failed,
                    "cancelled": self.jobs.cancelled,
                    "in_progress": self.jobs.in_progress,
                    "by_provider": {k: dict(v) for k, v in self.jobs.by_provider.items()},
                },
                "entities": {
                    "succeeded": self.entities.succeeded,
                    "failed": self.entities.failed,
                    "records_inserted": self.entities.records_inserted,
                    "records_updated": self.entities.records_updated,
                    "records_unchanged": self.entities.records_unchanged,
                    "by_type": {k: dict(v) for k, v in self.entities.by_type.items()},
                },
                "http": {
                    "retries": self.http.retries,
                    "by_provider": dict(self.http.by_provider),
                },
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }

    def reset(self):
        """Clear all collected metrics."""
        with self._lock:
            self.jobs = JobMetrics()
            self.entities = EntityMetrics()
            self.http = HttpMetrics()
            self.timings = TimingMetrics()


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()
