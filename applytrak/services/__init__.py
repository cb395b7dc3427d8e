"""Application services."""

from applytrak.services.backup_manager import BackupManager
from applytrak.services.conflict_detector import ConflictDetector
from applytrak.services.record_store import RecordStore, RecordWriter
from applytrak.services.recovery_orchestrator import RecoveryOrchestrator
from applytrak.services.resolution_engine import ResolutionEngine

__all__ = [
    "BackupManager",
    "ConflictDetector",
    "RecordStore",
    "RecordWriter",
    "RecoveryOrchestrator",
    "ResolutionEngine",
]
