"""Pydantic schemas for request/response validation."""

from applytrak.schemas.application import (
    ApplicationCreate,
    ApplicationRecord,
    ApplicationStatus,
    ApplicationUpdate,
    Attachment,
    WorkArrangement,
)
from applytrak.schemas.backup import (
    BackupOrigin,
    BackupReason,
    BackupSnapshot,
    RecoveryOutcome,
    RecoveryStats,
)
from applytrak.schemas.conflict import (
    ConflictResolutionResult,
    ConflictResolutionStrategy,
    DataConflict,
    StrategyKind,
)

__all__ = [
    "ApplicationCreate",
    "ApplicationRecord",
    "ApplicationStatus",
    "ApplicationUpdate",
    "Attachment",
    "BackupOrigin",
    "BackupReason",
    "BackupSnapshot",
    "ConflictResolutionResult",
    "ConflictResolutionStrategy",
    "DataConflict",
    "RecoveryOutcome",
    "RecoveryStats",
    "StrategyKind",
    "WorkArrangement",
]
