"""Sync engine and background job runner."""

from core.sync.engine import SyncEngine, classify_records
from core.sync.runner import SyncJobRunner

__all__ = ["SyncEngine", "SyncJobRunner", "classify_records"]
