"""Coordination of conflict resolution, backups and recovery."""

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence

from applytrak.core.config import Settings, settings
from applytrak.core.exceptions import NotFoundError
from applytrak.schemas.application import BUSINESS_FIELDS, ApplicationRecord
from applytrak.schemas.backup import (
    BackupReason,
    BackupSnapshot,
    BulkDeleteResult,
    RecoveryOutcome,
    RecoveryStats,
)
from applytrak.schemas.conflict import (
    ConflictResolution,
    ConflictResolutionResult,
    DataConflict,
    StrategyKind,
)
from applytrak.services.backup_manager import (
    BackupManager,
    backup_manager,
    run_to_completion,
)
from applytrak.services.cloud_client import CloudClient
from applytrak.services.conflict_detector import ConflictDetector
from applytrak.services.record_store import RecordStore, record_store
from applytrak.services.resolution_engine import (
    ResolutionEngine,
    StrategyLike,
    strategy_kind,
)

logger = logging.getLogger(__name__)

_COMMITTED_FIELDS = {*BUSINESS_FIELDS, "synced_at"}


def _commit_patch(record: ApplicationRecord) -> dict:
    """Fields of a resolved record that are written back through the store."""
    return record.model_dump(include=_COMMITTED_FIELDS)


class RecoveryOrchestrator:
    """Single owner of the session's conflict state.

    Conflicts found by detection are held here until resolved; callers only
    change that state through the methods below. Destructive compound
    operations hold the record store's lock for their whole duration.
    """

    def __init__(
        self,
        store: RecordStore,
        backups: BackupManager,
        detector: ConflictDetector | None = None,
        engine: ResolutionEngine | None = None,
        cloud_client_factory: Callable[[], CloudClient] = CloudClient,
        config: Settings = settings,
    ):
        self.store = store
        self.backups = backups
        self.detector = detector or ConflictDetector()
        self.engine = engine or ResolutionEngine()
        self._cloud_client_factory = cloud_client_factory
        self._settings = config
        self._default_strategy = strategy_kind(config.default_strategy)
        self._conflicts: dict[str, DataConflict] = {}
        self._resolutions: dict[str, ConflictResolution] = {}
        self._session_lock = asyncio.Lock()

    @property
    def default_strategy(self) -> StrategyKind:
        """Strategy used by ``auto_resolve``. Lives for the session only."""
        return self._default_strategy

    @default_strategy.setter
    def default_strategy(self, strategy: StrategyLike) -> None:
        self._default_strategy = strategy_kind(strategy)
        logger.info(f"Default conflict strategy set to {self._default_strategy.value}")

    # Conflicts

    async def detect_conflicts(
        self, remote_records: Iterable[ApplicationRecord]
    ) -> list[DataConflict]:
        """Compare the live collection with remote records.

        A fresh detection replaces every conflict still awaiting resolution;
        resolved conflicts keep their cached results.
        """
        local_records = await self.store.get_all()
        conflicts = self.detector.detect_all(local_records, remote_records)

        async with self._session_lock:
            self._conflicts = {
                conflict_id: conflict
                for conflict_id, conflict in self._conflicts.items()
                if conflict_id in self._resolutions
            }
            for conflict in conflicts:
                self._conflicts[conflict.id] = conflict

        return conflicts

    async def pull_conflicts(self) -> list[DataConflict]:
        """Fetch the cloud collection and detect conflicts against it."""
        async with self._cloud_client_factory() as client:
            remote_records = await client.fetch_applications()
        return await self.detect_conflicts(remote_records)

    def unresolved_conflicts(self) -> list[DataConflict]:
        return [
            conflict
            for conflict_id, conflict in self._conflicts.items()
            if conflict_id not in self._resolutions
        ]

    def get_resolution(self, conflict_id: str) -> ConflictResolution | None:
        return self._resolutions.get(conflict_id)

    async def resolve_conflict(
        self, conflict_id: str, strategy: StrategyLike
    ) -> ConflictResolution:
        """Resolve one conflict and commit the result.

        Resolving an already-resolved conflict returns the earlier result.
        """
        kind = strategy_kind(strategy)

        async with self._session_lock:
            cached = self._resolutions.get(conflict_id)
            if cached is not None:
                if cached.strategy is not kind:
                    logger.info(
                        f"Conflict {conflict_id} already resolved with "
                        f"{cached.strategy.value}, ignoring {kind.value}"
                    )
                return cached

            conflict = self._conflicts.get(conflict_id)
            if conflict is None:
                raise NotFoundError(conflict_id, kind="Conflict")

            resolved = self.engine.resolve(conflict, kind)
            committed = await self.store.update(
                conflict.record_id, _commit_patch(resolved)
            )

            resolution = ConflictResolution(
                conflict_id=conflict_id,
                strategy=kind,
                resolved_record=resolved,
                committed_record=committed,
            )
            self._resolutions[conflict_id] = resolution

        logger.info(f"Resolved conflict {conflict_id} with {kind.value}")
        return resolution

    async def resolve_all(
        self,
        strategy: StrategyLike,
        conflict_ids: Sequence[str] | None = None,
    ) -> ConflictResolutionResult:
        """Apply one strategy to many conflicts in a single transaction.

        Defaults to every unresolved conflict. Conflicts already resolved are
        left as they are. Any unknown id or malformed conflict aborts the batch.
        """
        kind = strategy_kind(strategy)

        async with self._session_lock:
            if conflict_ids is None:
                targets = self.unresolved_conflicts()
            else:
                missing = [cid for cid in conflict_ids if cid not in self._conflicts]
                if missing:
                    raise NotFoundError(missing[0], kind="Conflict")
                targets = [
                    self._conflicts[cid]
                    for cid in dict.fromkeys(conflict_ids)
                    if cid not in self._resolutions
                ]

            resolved = self.engine.resolve_all(targets, kind)
            committed = []
            if targets:
                committed = await self.store.update_many(
                    {
                        conflict.record_id: _commit_patch(record)
                        for conflict, record in zip(targets, resolved)
                    }
                )

            committed_by_id = {record.id: record for record in committed}
            for conflict, record in zip(targets, resolved):
                self._resolutions[conflict.id] = ConflictResolution(
                    conflict_id=conflict.id,
                    strategy=kind,
                    resolved_record=record,
                    committed_record=committed_by_id[conflict.record_id],
                )

            remaining = len(self.unresolved_conflicts())

        logger.info(
            f"Resolved {len(targets)} conflicts with {kind.value}, {remaining} remaining"
        )
        return ConflictResolutionResult(
            resolved_records=resolved,
            strategy=kind,
            conflicts_resolved=len(targets),
            conflicts_remaining=remaining,
        )

    async def auto_resolve(self) -> ConflictResolutionResult:
        """Resolve every unresolved conflict with the default strategy."""
        return await self.resolve_all(self._default_strategy)

    async def clear_resolved(self) -> int:
        """Forget resolved conflicts, returning how many were dropped."""
        async with self._session_lock:
            resolved_ids = list(self._resolutions)
            for conflict_id in resolved_ids:
                self._conflicts.pop(conflict_id, None)
            self._resolutions.clear()

        logger.info(f"Cleared {len(resolved_ids)} resolved conflicts")
        return len(resolved_ids)

    # Backups and recovery

    async def create_backup(self) -> BackupSnapshot:
        return await self.backups.create_backup(reason=BackupReason.MANUAL)

    async def list_recovery_options(self) -> list[BackupSnapshot]:
        return await self.backups.list_recovery_options()

    async def recovery_stats(self) -> RecoveryStats:
        return await self.backups.get_recovery_stats()

    async def recover(self, snapshot_id: str) -> RecoveryOutcome:
        """Restore a snapshot with no other mutation interleaved."""
        snapshot = await self.backups.get_backup(snapshot_id)

        async def locked_recover() -> RecoveryOutcome:
            async with self.store.exclusive() as writer:
                return await self.backups.restore(snapshot, writer=writer)

        return await run_to_completion(locked_recover)

    async def bulk_delete(self, record_ids: Sequence[str]) -> BulkDeleteResult:
        """Delete many records after a safety backup.

        Ids that do not exist are reported back instead of failing the batch.
        """

        async def locked_delete() -> BulkDeleteResult:
            async with self.store.exclusive() as writer:
                safety = await self.backups.create_backup(
                    reason=BackupReason.SAFETY, reader=writer
                )
                deleted, missing = [], []
                for record_id in dict.fromkeys(record_ids):
                    try:
                        await writer.remove(record_id)
                    except NotFoundError:
                        missing.append(record_id)
                        continue
                    deleted.append(record_id)
                return BulkDeleteResult(
                    safety_backup_id=safety.id,
                    deleted_ids=deleted,
                    missing_ids=missing,
                )

        result = await run_to_completion(locked_delete)
        if result.missing_ids:
            logger.warning(
                f"Bulk delete skipped {len(result.missing_ids)} unknown applications"
            )
        logger.info(
            f"Bulk deleted {len(result.deleted_ids)} applications "
            f"(safety backup {result.safety_backup_id})"
        )
        return result


# Global orchestrator instance
orchestrator = RecoveryOrchestrator(record_store, backup_manager)


async def get_orchestrator() -> RecoveryOrchestrator:
    """Dependency to get the recovery orchestrator."""
    return orchestrator
