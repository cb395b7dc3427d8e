"""Schemas for sync conflicts and their resolution."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from applytrak.core.storage import utc_now
from applytrak.schemas.application import ApplicationRecord


class StrategyKind(str, Enum):
    """Policy for resolving one or many conflicts."""

    LOCAL_WINS = "local-wins"
    REMOTE_WINS = "remote-wins"
    MERGE = "merge"


class ConflictResolutionStrategy(BaseModel):
    """A user's strategy choice. Transient, never persisted."""

    strategy: StrategyKind
    chosen_at: datetime = Field(default_factory=utc_now)


class DataConflict(BaseModel):
    """Divergence between a local and a remote record sharing one identity."""

    model_config = ConfigDict(frozen=True)

    id: str
    local_data: ApplicationRecord
    remote_data: ApplicationRecord
    conflict_fields: list[str] = Field(..., description="Differing fields, canonical order")
    detected_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_shape(self) -> "DataConflict":
        if not self.conflict_fields:
            raise ValueError("a conflict needs at least one differing field")
        if "id" in self.conflict_fields:
            raise ValueError("identity cannot be a conflict field")
        if self.local_data.id != self.remote_data.id:
            raise ValueError(
                f"records do not share an identity: "
                f"{self.local_data.id} != {self.remote_data.id}"
            )
        return self

    @property
    def record_id(self) -> str:
        return self.local_data.id


class ResolveRequest(BaseModel):
    """Request to resolve a single conflict."""

    strategy: StrategyKind


class ResolveAllRequest(BaseModel):
    """Request to apply one strategy to many conflicts."""

    strategy: StrategyKind
    conflict_ids: list[str] | None = Field(
        default=None, description="Defaults to every unresolved conflict"
    )


class ConflictResolution(BaseModel):
    """Outcome of resolving one conflict."""

    conflict_id: str
    strategy: StrategyKind
    resolved_record: ApplicationRecord
    committed_record: ApplicationRecord


class ConflictResolutionResult(BaseModel):
    """Outcome of a bulk resolution."""

    resolved_records: list[ApplicationRecord]
    strategy: StrategyKind
    conflicts_resolved: int
    conflicts_remaining: int
