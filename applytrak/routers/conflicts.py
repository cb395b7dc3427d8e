"""API routes for detecting and resolving sync conflicts."""

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from applytrak.core.exceptions import ApplyTrakError, to_http_exception
from applytrak.schemas.application import ApplicationRecord
from applytrak.schemas.conflict import (
    ConflictResolution,
    ConflictResolutionResult,
    DataConflict,
    ResolveAllRequest,
    ResolveRequest,
)
from applytrak.services.cloud_client import CloudAPIError
from applytrak.services.recovery_orchestrator import (
    RecoveryOrchestrator,
    get_orchestrator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conflicts", tags=["conflicts"])


@router.post("/detect", response_model=list[DataConflict])
async def detect_conflicts(
    remote_records: list[ApplicationRecord],
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Compare the live collection against the given remote records."""
    try:
        return await orchestrator.detect_conflicts(remote_records)
    except ApplyTrakError as e:
        logger.error(f"Conflict detection failed: {e}")
        raise to_http_exception(e)


@router.post("/pull", response_model=list[DataConflict])
async def pull_conflicts(
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Fetch the cloud collection and detect conflicts against it."""
    try:
        return await orchestrator.pull_conflicts()
    except CloudAPIError as e:
        logger.error(f"Cloud fetch failed: {e.status_code} - {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except httpx.RequestError as e:
        logger.error(f"Cloud unreachable: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Cloud data source unreachable: {e!s}",
        )
    except ApplyTrakError as e:
        logger.error(f"Conflict detection failed: {e}")
        raise to_http_exception(e)


@router.get("", response_model=list[DataConflict])
async def list_unresolved_conflicts(
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.unresolved_conflicts()


@router.get("/default-strategy", response_model=ResolveRequest)
async def get_default_strategy(
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Get the strategy used by auto-resolve."""
    return ResolveRequest(strategy=orchestrator.default_strategy)


@router.put("/default-strategy", response_model=ResolveRequest)
async def set_default_strategy(
    request: ResolveRequest,
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Change the auto-resolve strategy for this session."""
    orchestrator.default_strategy = request.strategy
    return ResolveRequest(strategy=orchestrator.default_strategy)


@router.post("/resolve-all", response_model=ConflictResolutionResult)
async def resolve_all_conflicts(
    request: ResolveAllRequest,
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Apply one strategy to every unresolved (or listed) conflict."""
    try:
        return await orchestrator.resolve_all(request.strategy, request.conflict_ids)
    except ApplyTrakError as e:
        logger.error(f"Bulk resolution aborted: {e}")
        raise to_http_exception(e)


@router.post("/auto-resolve", response_model=ConflictResolutionResult)
async def auto_resolve_conflicts(
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Resolve every unresolved conflict with the configured default strategy."""
    try:
        return await orchestrator.auto_resolve()
    except ApplyTrakError as e:
        logger.error(f"Auto resolution aborted: {e}")
        raise to_http_exception(e)


@router.post("/{conflict_id}/resolve", response_model=ConflictResolution)
async def resolve_conflict(
    conflict_id: str,
    request: ResolveRequest,
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.resolve_conflict(conflict_id, request.strategy)
    except ApplyTrakError as e:
        logger.error(f"Failed to resolve conflict {conflict_id}: {e}")
        raise to_http_exception(e)


@router.delete("/resolved")
async def clear_resolved_conflicts(
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    cleared = await orchestrator.clear_resolved()
    return {"status": "success", "cleared": cleared}
