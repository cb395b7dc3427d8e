"""Schemas for backup snapshots and recovery."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from applytrak.schemas.application import ApplicationRecord


class BackupOrigin(str, Enum):
    """Where a snapshot is kept."""

    LOCAL_CACHE = "local-cache"
    DATABASE = "database"


class BackupReason(str, Enum):
    """Why a snapshot was taken."""

    MANUAL = "manual"
    SAFETY = "safety"
    SCHEDULED = "scheduled"


class RecoveryStatus(str, Enum):
    """Whether every record of a restore made it into the store."""

    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class BackupSnapshot(BaseModel):
    """Immutable point-in-time copy of the record collection."""

    model_config = ConfigDict(frozen=True)

    id: str
    origin: BackupOrigin
    reason: BackupReason = BackupReason.MANUAL
    created_at: datetime
    record_count: int = Field(..., ge=0)
    last_modified: datetime
    records: list[ApplicationRecord] = Field(default_factory=list)


class BackupSummary(BaseModel):
    """Snapshot metadata without the records, for listings."""

    id: str
    origin: BackupOrigin
    reason: BackupReason
    created_at: datetime
    record_count: int
    last_modified: datetime

    @classmethod
    def from_snapshot(cls, snapshot: BackupSnapshot) -> "BackupSummary":
        return cls(**snapshot.model_dump(exclude={"records"}))


class RecoveryFailure(BaseModel):
    """One record that could not be restored."""

    company: str
    position: str
    reason: str


class RecoveryOutcome(BaseModel):
    """Structured result of a restore."""

    snapshot_id: str
    safety_backup_id: str
    restored_count: int = 0
    restored_ids: list[str] = Field(default_factory=list)
    failures: list[RecoveryFailure] = Field(default_factory=list)
    skipped_duplicates: int = 0

    @computed_field
    @property
    def status(self) -> RecoveryStatus:
        if not self.failures:
            return RecoveryStatus.COMPLETE
        if self.restored_count == 0:
            return RecoveryStatus.FAILED
        return RecoveryStatus.PARTIAL


class RecoveryStats(BaseModel):
    """Aggregate view over every recovery option."""

    total_options: int
    total_records: int
    origins: list[BackupOrigin]
    latest_backup: datetime | None


class BulkDeleteRequest(BaseModel):
    """Request to delete many records at once."""

    ids: list[str] = Field(..., min_length=1)


class BulkDeleteResult(BaseModel):
    """Outcome of a bulk delete."""

    safety_backup_id: str
    deleted_ids: list[str]
    missing_ids: list[str]
