"""API routes for backups and recovery."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from applytrak.core.exceptions import ApplyTrakError, to_http_exception
from applytrak.schemas.backup import (
    BackupReason,
    BackupSnapshot,
    BackupSummary,
    RecoveryOutcome,
    RecoveryStats,
    RecoveryStatus,
)
from applytrak.services.auto_backup_service import (
    AutoBackupService,
    get_auto_backup_service,
)
from applytrak.services.backup_manager import BackupManager, get_backup_manager
from applytrak.services.recovery_orchestrator import (
    RecoveryOrchestrator,
    get_orchestrator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/backups", tags=["backups"])


@router.get("", response_model=list[BackupSummary])
async def list_recovery_options(
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """List every recovery option, newest first."""
    options = await orchestrator.list_recovery_options()
    return [BackupSummary.from_snapshot(option) for option in options]


@router.get("/stats", response_model=RecoveryStats)
async def get_recovery_stats(
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.recovery_stats()


@router.get("/schedule")
async def get_auto_backup_status(
    auto_backup: AutoBackupService = Depends(get_auto_backup_service),
):
    """Get the scheduled local backup status."""
    return auto_backup.get_status()


@router.get("/{snapshot_id}", response_model=BackupSnapshot)
async def get_backup(
    snapshot_id: str,
    backups: BackupManager = Depends(get_backup_manager),
):
    try:
        return await backups.get_backup(snapshot_id)
    except ApplyTrakError as e:
        logger.error(f"Failed to read backup {snapshot_id}: {e}")
        raise to_http_exception(e)


@router.post("", response_model=BackupSummary, status_code=status.HTTP_201_CREATED)
async def create_backup(
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Take a manual database backup of the live collection."""
    try:
        snapshot = await orchestrator.create_backup()
    except ApplyTrakError as e:
        logger.error(f"Manual backup failed: {e}")
        raise to_http_exception(e)
    return BackupSummary.from_snapshot(snapshot)


@router.post("/local", response_model=BackupSummary, status_code=status.HTTP_201_CREATED)
async def create_local_backup(
    backups: BackupManager = Depends(get_backup_manager),
):
    """Write a compressed snapshot to the local cache."""
    try:
        snapshot = await backups.cache_local_snapshot(reason=BackupReason.MANUAL)
    except ApplyTrakError as e:
        logger.error(f"Local backup failed: {e}")
        raise to_http_exception(e)
    return BackupSummary.from_snapshot(snapshot)


@router.post(
    "/{snapshot_id}/restore",
    response_model=RecoveryOutcome,
    responses={
        207: {"model": RecoveryOutcome, "description": "Partial recovery"},
        500: {"model": RecoveryOutcome, "description": "No record could be restored"},
    },
)
async def restore_backup(
    snapshot_id: str,
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Restore a snapshot as fresh records after a safety backup."""
    try:
        outcome = await orchestrator.recover(snapshot_id)
    except ApplyTrakError as e:
        logger.error(f"Recovery from {snapshot_id} aborted: {e}")
        raise to_http_exception(e)

    if outcome.status is RecoveryStatus.FAILED:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=outcome.model_dump(mode="json"),
        )
    if outcome.status is RecoveryStatus.PARTIAL:
        return JSONResponse(
            status_code=status.HTTP_207_MULTI_STATUS,
            content=outcome.model_dump(mode="json"),
        )
    return outcome


@router.delete("/local", status_code=status.HTTP_204_NO_CONTENT)
async def clear_local_backups(
    backups: BackupManager = Depends(get_backup_manager),
):
    try:
        await backups.clear_local_backups()
    except ApplyTrakError as e:
        logger.error(f"Failed to clear local backups: {e}")
        raise to_http_exception(e)


@router.delete("/{snapshot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_backup(
    snapshot_id: str,
    backups: BackupManager = Depends(get_backup_manager),
):
    try:
        await backups.delete_backup(snapshot_id)
    except ApplyTrakError as e:
        logger.error(f"Failed to delete backup {snapshot_id}: {e}")
        raise to_http_exception(e)
