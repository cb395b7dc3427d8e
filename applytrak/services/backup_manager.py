"""Backup snapshots and recovery for the application collection."""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta
from typing import TypeVar

from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from applytrak.core.config import Settings, settings
from applytrak.core.exceptions import InvariantViolation, NotFoundError, StorageFailure
from applytrak.core.redis_client import LocalBackupCache
from applytrak.core.storage import async_session, utc_now
from applytrak.models.backup import BackupRow
from applytrak.schemas.application import ApplicationRecord
from applytrak.schemas.backup import (
    BackupOrigin,
    BackupReason,
    BackupSnapshot,
    RecoveryFailure,
    RecoveryOutcome,
    RecoveryStats,
    RecoveryStatus,
)
from applytrak.services.record_store import RecordStore, RecordWriter, record_store
from applytrak.utils.filters import RestoreFilter
from applytrak.utils.validators import ValidationResult, validate_snapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_to_completion(operation: Callable[[], Awaitable[T]]) -> T:
    """Run ``operation`` so that cancelling the caller does not abandon it mid-write."""
    task = asyncio.ensure_future(operation())
    return await asyncio.shield(task)


class BackupManager:
    """Creates, inventories and restores point-in-time snapshots."""

    def __init__(
        self,
        store: RecordStore,
        session_factory=async_session,
        local_cache: LocalBackupCache | None = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self._session_factory = session_factory
        self.local_cache = local_cache or LocalBackupCache()
        self._settings = config
        self._clock = clock

    def _snapshot(
        self,
        records: Sequence[ApplicationRecord],
        origin: BackupOrigin,
        reason: BackupReason,
    ) -> BackupSnapshot:
        now = self._clock()
        return BackupSnapshot(
            id=str(uuid.uuid4()),
            origin=origin,
            reason=reason,
            created_at=now,
            record_count=len(records),
            last_modified=max((r.updated_at for r in records), default=now),
            records=list(records),
        )

    def _cutoff(self) -> datetime | None:
        if self._settings.backup_max_age_days <= 0:
            return None
        return self._clock() - timedelta(days=self._settings.backup_max_age_days)

    async def create_backup(
        self,
        reason: BackupReason = BackupReason.MANUAL,
        reader: RecordWriter | None = None,
    ) -> BackupSnapshot:
        """Persist a database-origin snapshot of the live collection."""
        records = await (reader or self.store).get_all()
        snapshot = self._snapshot(records, BackupOrigin.DATABASE, reason)

        row = BackupRow(
            id=snapshot.id,
            reason=reason.value,
            created_at=snapshot.created_at,
            record_count=snapshot.record_count,
            last_modified=snapshot.last_modified,
            payload=[record.model_dump(mode="json") for record in records],
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist {reason.value} backup: {e}")
            raise StorageFailure("backup", str(e)) from e

        logger.info(
            f"Created {reason.value} backup {snapshot.id} "
            f"({snapshot.record_count} applications)"
        )
        return snapshot

    async def cache_local_snapshot(
        self,
        reason: BackupReason = BackupReason.SCHEDULED,
        reader: RecordWriter | None = None,
    ) -> BackupSnapshot:
        """Write a compressed snapshot to the local cache.

        Attachments are dropped and notes truncated to keep the slots small.
        """
        records = await (reader or self.store).get_all()
        limit = self._settings.local_cache_notes_limit
        compressed = [
            record.model_copy(
                update={
                    "attachments": [],
                    "notes": record.notes[:limit] if record.notes else record.notes,
                }
            )
            for record in records
        ]
        snapshot = self._snapshot(compressed, BackupOrigin.LOCAL_CACHE, reason)

        try:
            await self.local_cache.push(snapshot.model_dump_json())
        except RedisError as e:
            logger.error(f"Failed to write local backup: {e}")
            raise StorageFailure("local backup", str(e)) from e

        logger.info(
            f"Cached local backup {snapshot.id} ({snapshot.record_count} applications)"
        )
        return snapshot

    async def _local_options(self) -> list[BackupSnapshot]:
        try:
            entries = await self.local_cache.entries()
        except RedisError as e:
            logger.warning(f"Local backup cache unavailable: {e}")
            return []

        snapshots = []
        for index, payload in enumerate(entries):
            try:
                snapshots.append(BackupSnapshot.model_validate_json(payload))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable local backup {index}: {e}")
        return snapshots

    def _row_to_snapshot(self, row: BackupRow) -> BackupSnapshot:
        return BackupSnapshot(
            id=row.id,
            origin=BackupOrigin.DATABASE,
            reason=BackupReason(row.reason),
            created_at=row.created_at,
            record_count=row.record_count,
            last_modified=row.last_modified,
            records=[ApplicationRecord.model_validate(item) for item in row.payload],
        )

    async def _database_options(self) -> list[BackupSnapshot]:
        query = select(BackupRow).order_by(BackupRow.created_at.desc())
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.warning(f"Database backups unavailable: {e}")
            return []

        snapshots = []
        for row in rows:
            try:
                snapshots.append(self._row_to_snapshot(row))
            except (ValidationError, ValueError) as e:
                logger.warning(f"Skipping unreadable database backup {row.id}: {e}")
        return snapshots

    async def list_recovery_options(self) -> list[BackupSnapshot]:
        """Every known backup from every origin, newest first. Never raises."""
        options = [*await self._local_options(), *await self._database_options()]

        cutoff = self._cutoff()
        if cutoff is not None:
            fresh = [s for s in options if s.created_at >= cutoff]
            if len(fresh) < len(options):
                logger.info(f"Skipping {len(options) - len(fresh)} expired backups")
            options = fresh

        options.sort(key=lambda s: s.created_at, reverse=True)
        logger.info(f"Found {len(options)} recovery options")
        return options

    async def get_recovery_stats(self) -> RecoveryStats:
        options = await self.list_recovery_options()
        origins = []
        for option in options:
            if option.origin not in origins:
                origins.append(option.origin)
        return RecoveryStats(
            total_options=len(options),
            total_records=sum(option.record_count for option in options),
            origins=origins,
            latest_backup=options[0].created_at if options else None,
        )

    async def get_backup(self, snapshot_id: str) -> BackupSnapshot:
        """Look up one snapshot in either origin."""
        try:
            async with self._session_factory() as session:
                row = await session.get(BackupRow, snapshot_id)
        except SQLAlchemyError as e:
            raise StorageFailure("read backup", str(e)) from e
        if row is not None:
            return self._row_to_snapshot(row)

        for snapshot in await self._local_options():
            if snapshot.id == snapshot_id:
                return snapshot

        raise NotFoundError(snapshot_id, kind="Backup")

    async def delete_backup(self, snapshot_id: str) -> None:
        """Delete one snapshot on explicit user request."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(BackupRow).where(BackupRow.id == snapshot_id)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageFailure("delete backup", str(e)) from e
        if result.rowcount:
            logger.info(f"Deleted database backup {snapshot_id}")
            return

        try:
            for payload in await self.local_cache.entries():
                try:
                    entry_id = BackupSnapshot.model_validate_json(payload).id
                except ValidationError:
                    continue
                if entry_id == snapshot_id:
                    await self.local_cache.remove(payload)
                    logger.info(f"Deleted local backup {snapshot_id}")
                    return
        except RedisError as e:
            raise StorageFailure("delete backup", str(e)) from e

        raise NotFoundError(snapshot_id, kind="Backup")

    async def clear_local_backups(self) -> None:
        try:
            await self.local_cache.clear()
        except RedisError as e:
            raise StorageFailure("clear local backups", str(e)) from e

    def validate_snapshot(self, snapshot: BackupSnapshot) -> ValidationResult:
        return validate_snapshot(snapshot)

    async def restore(
        self, snapshot: BackupSnapshot, writer: RecordWriter | None = None
    ) -> RecoveryOutcome:
        """Insert every snapshot record as a fresh record after a safety backup.

        Callers already holding the store's lock pass their ``writer``;
        otherwise the lock is taken here for the whole operation.
        """
        if writer is not None:
            return await self._restore(snapshot, writer)

        async def locked_restore() -> RecoveryOutcome:
            async with self.store.exclusive() as held:
                return await self._restore(snapshot, held)

        return await run_to_completion(locked_restore)

    async def _restore(
        self, snapshot: BackupSnapshot, writer: RecordWriter
    ) -> RecoveryOutcome:
        validation = self.validate_snapshot(snapshot)
        if not validation.is_valid:
            raise InvariantViolation(
                f"snapshot {snapshot.id} cannot be restored: {validation.error}"
            )
        for warning in validation.warnings:
            logger.warning(f"Restoring {snapshot.id}: {warning}")

        logger.info(f"Starting recovery from {snapshot.origin.value} backup {snapshot.id}")

        # Fail closed: a StorageFailure here aborts before anything is inserted
        safety = await self.create_backup(reason=BackupReason.SAFETY, reader=writer)

        dedupe = self._settings.restore_dedupe_by_business_key
        live = await writer.get_all() if dedupe else []
        restore_filter = RestoreFilter(live, dedupe_by_business_key=dedupe)

        restored_ids = []
        failures = []
        skipped = 0
        for record in snapshot.records:
            should_restore, reason = restore_filter.should_restore(record)
            if not should_restore:
                skipped += 1
                logger.debug(f"Skipping {record.id}: {reason}")
                continue

            try:
                created = await writer.add(record.to_create())
            except (StorageFailure, ValidationError) as e:
                logger.error(f"Failed to import: {record.company} - {record.position}: {e}")
                failures.append(
                    RecoveryFailure(
                        company=record.company,
                        position=record.position,
                        reason=str(e),
                    )
                )
                continue

            restored_ids.append(created.id)
            restore_filter.mark_restored(record)

        outcome = RecoveryOutcome(
            snapshot_id=snapshot.id,
            safety_backup_id=safety.id,
            restored_count=len(restored_ids),
            restored_ids=restored_ids,
            failures=failures,
            skipped_duplicates=skipped,
        )

        if outcome.status is RecoveryStatus.FAILED:
            logger.error(
                f"Failed to import any applications from {snapshot.id}: "
                f"{len(failures)} errors"
            )
        elif failures:
            logger.warning(
                f"Recovery completed with {len(failures)} errors: "
                f"{outcome.restored_count}/{snapshot.record_count} applications restored"
            )
        else:
            logger.info(
                f"Successfully recovered {outcome.restored_count}/"
                f"{snapshot.record_count} applications"
            )
        return outcome


# Global backup manager instance
backup_manager = BackupManager(record_store)


async def get_backup_manager() -> BackupManager:
    """Dependency to get the backup manager."""
    return backup_manager
