"""Integration tests for the recovery and conflict orchestrator."""

import asyncio
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from applytrak.core.exceptions import InvariantViolation, NotFoundError, StorageFailure
from applytrak.schemas.application import ApplicationCreate, ApplicationRecord
from applytrak.schemas.backup import BackupReason, RecoveryStatus
from applytrak.schemas.conflict import StrategyKind
from applytrak.services.recovery_orchestrator import RecoveryOrchestrator


async def _add(store, company="Acme", **overrides):
    values = {
        "company": company,
        "position": "Backend Engineer",
        "date_applied": date(2024, 2, 20),
    }
    values.update(overrides)
    return await store.add(ApplicationCreate(**values))


def _remote(record, **changes):
    """Remote copy of ``record``, edited later than the local one."""
    changes.setdefault("updated_at", record.updated_at + timedelta(minutes=5))
    return ApplicationRecord.model_validate({**record.model_dump(), **changes})


def _gate_restore(orchestrator, monkeypatch):
    """Pause restores once the store lock is held until ``release`` is set."""
    started, release = asyncio.Event(), asyncio.Event()
    original = orchestrator.backups.restore

    async def gated_restore(snapshot, writer=None):
        started.set()
        await release.wait()
        return await original(snapshot, writer=writer)

    monkeypatch.setattr(orchestrator.backups, "restore", gated_restore)
    return started, release


class TestConflictSession:
    """Tests for detection and the session's conflict state."""

    @pytest.mark.asyncio
    async def test_detect_registers_conflicts(self, store, orchestrator):
        local = await _add(store)
        await _add(store, "Globex")

        conflicts = await orchestrator.detect_conflicts([_remote(local, status="Interview")])

        assert len(conflicts) == 1
        assert conflicts[0].conflict_fields == ["status", "updated_at"]
        assert orchestrator.unresolved_conflicts() == conflicts

    @pytest.mark.asyncio
    async def test_redetection_replaces_unresolved(self, store, orchestrator):
        local = await _add(store)

        first = await orchestrator.detect_conflicts([_remote(local, status="Offer")])
        second = await orchestrator.detect_conflicts([_remote(local, status="Rejected")])

        assert orchestrator.unresolved_conflicts() == second
        assert first[0].id not in {c.id for c in orchestrator.unresolved_conflicts()}

    @pytest.mark.asyncio
    async def test_pull_uses_cloud_client(self, store, backup_manager, test_settings):
        local = await _add(store)
        client = MagicMock()
        client.fetch_applications = AsyncMock(return_value=[_remote(local, notes="cloud")])
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=None)
        orchestrator = RecoveryOrchestrator(
            store, backup_manager, cloud_client_factory=lambda: client, config=test_settings
        )

        conflicts = await orchestrator.pull_conflicts()

        assert conflicts[0].conflict_fields == ["notes", "updated_at"]
        client.__aexit__.assert_awaited_once()


class TestResolveConflict:
    """Tests for single conflict resolution."""

    @pytest.mark.asyncio
    async def test_merge_commits_newer_remote_value(self, store, orchestrator):
        local = await _add(store)
        [conflict] = await orchestrator.detect_conflicts([_remote(local, status="Interview")])

        resolution = await orchestrator.resolve_conflict(conflict.id, "merge")

        assert resolution.resolved_record.status.value == "Interview"
        stored = await store.get(local.id)
        assert stored.status.value == "Interview"
        assert stored.updated_at > local.updated_at
        assert resolution.committed_record == stored
        assert orchestrator.unresolved_conflicts() == []

    @pytest.mark.asyncio
    async def test_local_wins_marks_synced(self, store, orchestrator):
        local = await _add(store, notes="mine")
        [conflict] = await orchestrator.detect_conflicts([_remote(local, notes="theirs")])

        await orchestrator.resolve_conflict(conflict.id, StrategyKind.LOCAL_WINS)

        stored = await store.get(local.id)
        assert stored.notes == "mine"
        assert stored.synced_at is not None

    @pytest.mark.asyncio
    async def test_remote_wins_clears_fields_absent_remotely(self, store, orchestrator):
        local = await _add(store, salary="90k")
        [conflict] = await orchestrator.detect_conflicts([_remote(local, salary=None)])

        await orchestrator.resolve_conflict(conflict.id, "remote-wins")

        assert (await store.get(local.id)).salary is None

    @pytest.mark.asyncio
    async def test_re_resolving_returns_cached_result(self, store, orchestrator, monkeypatch):
        local = await _add(store)
        [conflict] = await orchestrator.detect_conflicts([_remote(local, status="Offer")])
        first = await orchestrator.resolve_conflict(conflict.id, "merge")

        engine = MagicMock()
        monkeypatch.setattr(orchestrator, "engine", engine)
        again = await orchestrator.resolve_conflict(conflict.id, "merge")
        other = await orchestrator.resolve_conflict(conflict.id, "local-wins")

        assert again == first
        assert other == first
        engine.resolve.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_conflict(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.resolve_conflict("missing", "merge")

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, store, orchestrator):
        local = await _add(store)
        [conflict] = await orchestrator.detect_conflicts([_remote(local, status="Offer")])

        with pytest.raises(InvariantViolation):
            await orchestrator.resolve_conflict(conflict.id, "newest-wins")

        assert orchestrator.unresolved_conflicts() == [conflict]

    @pytest.mark.asyncio
    async def test_record_deleted_since_detection(self, store, orchestrator):
        local = await _add(store)
        [conflict] = await orchestrator.detect_conflicts([_remote(local, status="Offer")])
        await store.remove(local.id)

        with pytest.raises(NotFoundError):
            await orchestrator.resolve_conflict(conflict.id, "merge")

        assert orchestrator.unresolved_conflicts() == [conflict]


class TestResolveAll:
    """Tests for bulk resolution."""

    @pytest.mark.asyncio
    async def test_resolves_every_unresolved_conflict(self, store, orchestrator):
        first = await _add(store, "Acme")
        second = await _add(store, "Globex")
        await orchestrator.detect_conflicts(
            [_remote(first, status="Offer"), _remote(second, location="Remote")]
        )

        result = await orchestrator.resolve_all("remote-wins")

        assert result.conflicts_resolved == 2
        assert result.conflicts_remaining == 0
        assert result.strategy is StrategyKind.REMOTE_WINS
        assert (await store.get(first.id)).status.value == "Offer"
        assert (await store.get(second.id)).location == "Remote"

    @pytest.mark.asyncio
    async def test_selected_ids_only(self, store, orchestrator):
        first = await _add(store, "Acme")
        second = await _add(store, "Globex")
        conflicts = await orchestrator.detect_conflicts(
            [_remote(first, status="Offer"), _remote(second, status="Rejected")]
        )

        result = await orchestrator.resolve_all("merge", [conflicts[1].id])

        assert result.conflicts_resolved == 1
        assert result.conflicts_remaining == 1
        assert orchestrator.unresolved_conflicts() == [conflicts[0]]

    @pytest.mark.asyncio
    async def test_unknown_id_aborts_batch(self, store, orchestrator):
        local = await _add(store)
        [conflict] = await orchestrator.detect_conflicts([_remote(local, status="Offer")])

        with pytest.raises(NotFoundError):
            await orchestrator.resolve_all("merge", [conflict.id, "missing"])

        assert (await store.get(local.id)).status.value == "Applied"

    @pytest.mark.asyncio
    async def test_missing_record_aborts_batch(self, store, orchestrator):
        first = await _add(store, "Acme")
        second = await _add(store, "Globex")
        await orchestrator.detect_conflicts(
            [_remote(first, status="Offer"), _remote(second, status="Offer")]
        )
        await store.remove(second.id)

        with pytest.raises(NotFoundError):
            await orchestrator.resolve_all("merge")

        assert len(orchestrator.unresolved_conflicts()) == 2
        assert (await store.get(first.id)).status.value == "Applied"

    @pytest.mark.asyncio
    async def test_auto_resolve_uses_default_strategy(self, store, orchestrator):
        local = await _add(store, notes="mine")
        await orchestrator.detect_conflicts([_remote(local, notes="theirs")])

        result = await orchestrator.auto_resolve()

        assert result.strategy is StrategyKind.LOCAL_WINS
        assert (await store.get(local.id)).notes == "mine"

    @pytest.mark.asyncio
    async def test_changed_default_strategy_drives_auto_resolve(self, store, orchestrator):
        local = await _add(store, notes="mine")
        await orchestrator.detect_conflicts([_remote(local, notes="theirs")])

        orchestrator.default_strategy = "remote-wins"
        result = await orchestrator.auto_resolve()

        assert orchestrator.default_strategy is StrategyKind.REMOTE_WINS
        assert result.strategy is StrategyKind.REMOTE_WINS
        assert (await store.get(local.id)).notes == "theirs"

    @pytest.mark.asyncio
    async def test_unknown_default_strategy_rejected(self, orchestrator):
        with pytest.raises(InvariantViolation):
            orchestrator.default_strategy = "newest-wins"
        assert orchestrator.default_strategy is StrategyKind.LOCAL_WINS

    @pytest.mark.asyncio
    async def test_clear_resolved(self, store, orchestrator):
        first = await _add(store, "Acme")
        second = await _add(store, "Globex")
        conflicts = await orchestrator.detect_conflicts(
            [_remote(first, status="Offer"), _remote(second, status="Offer")]
        )
        await orchestrator.resolve_conflict(conflicts[0].id, "merge")

        cleared = await orchestrator.clear_resolved()

        assert cleared == 1
        assert orchestrator.unresolved_conflicts() == [conflicts[1]]
        with pytest.raises(NotFoundError):
            await orchestrator.resolve_conflict(conflicts[0].id, "merge")


class TestRecovery:
    """Tests for recovery and destructive operations."""

    @pytest.mark.asyncio
    async def test_recover_by_snapshot_id(self, store, orchestrator):
        await _add(store)
        snapshot = await orchestrator.create_backup()

        outcome = await orchestrator.recover(snapshot.id)

        assert outcome.status is RecoveryStatus.COMPLETE
        assert outcome.restored_count == 1
        assert len(await store.get_all()) == 2

    @pytest.mark.asyncio
    async def test_recover_unknown_snapshot(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.recover("missing")

    @pytest.mark.asyncio
    async def test_concurrent_update_is_not_interleaved(
        self, store, orchestrator, monkeypatch
    ):
        """A concurrent update lands wholly before or after the restore."""
        local = await _add(store)
        snapshot = await orchestrator.create_backup()

        started, release = _gate_restore(orchestrator, monkeypatch)

        recover = asyncio.create_task(orchestrator.recover(snapshot.id))
        await started.wait()
        update = asyncio.create_task(store.update(local.id, {"status": "Offer"}))
        await asyncio.sleep(0.05)
        assert not update.done()
        release.set()
        outcome, _ = await asyncio.gather(recover, update)

        safety = await orchestrator.backups.get_backup(outcome.safety_backup_id)
        assert [r.status.value for r in safety.records] == ["Applied"]
        assert (await store.get(local.id)).status.value == "Offer"
        assert len(await store.get_all()) == 2

    @pytest.mark.asyncio
    async def test_recovery_survives_caller_cancellation(
        self, store, orchestrator, monkeypatch
    ):
        await _add(store)
        snapshot = await orchestrator.create_backup()
        started, release = _gate_restore(orchestrator, monkeypatch)

        task = asyncio.create_task(orchestrator.recover(snapshot.id))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        release.set()

        async with store.exclusive() as writer:
            records = await writer.get_all()
        assert len(records) == 2

    @pytest.mark.asyncio
    async def test_bulk_delete_takes_safety_backup(self, store, orchestrator):
        first = await _add(store, "Acme")
        second = await _add(store, "Globex")
        keep = await _add(store, "Initech")

        result = await orchestrator.bulk_delete([first.id, second.id, "missing"])

        assert result.deleted_ids == [first.id, second.id]
        assert result.missing_ids == ["missing"]
        assert [r.id for r in await store.get_all()] == [keep.id]
        safety = await orchestrator.backups.get_backup(result.safety_backup_id)
        assert safety.reason is BackupReason.SAFETY
        assert safety.record_count == 3

    @pytest.mark.asyncio
    async def test_bulk_delete_fails_closed(self, store, orchestrator, monkeypatch):
        await _add(store)
        monkeypatch.setattr(
            orchestrator.backups,
            "create_backup",
            AsyncMock(side_effect=StorageFailure("backup", "disk full")),
        )

        with pytest.raises(StorageFailure):
            await orchestrator.bulk_delete([(await store.get_all())[0].id])

        assert len(await store.get_all()) == 1

    @pytest.mark.asyncio
    async def test_recovery_options_and_stats(self, store, orchestrator):
        await _add(store)
        await orchestrator.create_backup()

        options = await orchestrator.list_recovery_options()
        stats = await orchestrator.recovery_stats()

        assert len(options) == 1
        assert stats.total_options == 1
        assert stats.total_records == 1
