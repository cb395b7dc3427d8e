"""API routes for the live application collection."""

import logging

from fastapi import APIRouter, Depends, status

from applytrak.core.exceptions import ApplyTrakError, to_http_exception
from applytrak.schemas.application import (
    ApplicationCreate,
    ApplicationRecord,
    ApplicationUpdate,
)
from applytrak.schemas.backup import BulkDeleteRequest, BulkDeleteResult
from applytrak.services.record_store import RecordStore, get_record_store
from applytrak.services.recovery_orchestrator import (
    RecoveryOrchestrator,
    get_orchestrator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/applications", tags=["applications"])


@router.get("", response_model=list[ApplicationRecord])
async def list_applications(store: RecordStore = Depends(get_record_store)):
    """List every application, oldest first."""
    try:
        return await store.get_all()
    except ApplyTrakError as e:
        logger.error(f"Failed to list applications: {e}")
        raise to_http_exception(e)


@router.post("", response_model=ApplicationRecord, status_code=status.HTTP_201_CREATED)
async def create_application(
    data: ApplicationCreate,
    store: RecordStore = Depends(get_record_store),
):
    try:
        record = await store.add(data)
    except ApplyTrakError as e:
        logger.error(f"Failed to add application: {e}")
        raise to_http_exception(e)

    logger.info(f"Added application {record.id}: {record.company} - {record.position}")
    return record


@router.patch("/{record_id}", response_model=ApplicationRecord)
async def update_application(
    record_id: str,
    patch: ApplicationUpdate,
    store: RecordStore = Depends(get_record_store),
):
    """Apply a partial update to one application."""
    try:
        return await store.update(record_id, patch)
    except ApplyTrakError as e:
        logger.error(f"Failed to update application {record_id}: {e}")
        raise to_http_exception(e)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_application(
    record_id: str,
    store: RecordStore = Depends(get_record_store),
):
    try:
        await store.remove(record_id)
    except ApplyTrakError as e:
        logger.error(f"Failed to delete application {record_id}: {e}")
        raise to_http_exception(e)


@router.post("/bulk-delete", response_model=BulkDeleteResult)
async def bulk_delete_applications(
    request: BulkDeleteRequest,
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Delete many applications after taking a safety backup."""
    try:
        return await orchestrator.bulk_delete(request.ids)
    except ApplyTrakError as e:
        logger.error(f"Bulk delete aborted: {e}")
        raise to_http_exception(e)
