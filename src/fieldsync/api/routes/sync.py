"""Sync trigger and status routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from fieldsync.api.main import get_field_app
from fieldsync.app import FieldSyncApp
from fieldsync.errors import (
    AuthRequiredError,
    OfflineError,
    SyncInProgressError,
    SyncRejectedError,
)
from fieldsync.models.audit import utcnow
from fieldsync.sync.status import describe, format_last_sync

router = APIRouter()

_REJECTION_STATUS = {
    SyncInProgressError: 409,
    OfflineError: 503,
    AuthRequiredError: 401,
}


class SyncStatusResponse(BaseModel):
    label: str
    text: str
    pending_count: int
    last_sync_time: Optional[datetime]
    last_sync_text: str
    is_syncing: bool


class SyncTriggerResponse(BaseModel):
    outcome: str
    message: str
    audits_synced: int
    job_cards_pushed: int
    cache_failures: List[str]
    retry_in_seconds: Optional[float]


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(field_app: FieldSyncApp = Depends(get_field_app)):
    """Current status label plus the metadata a UI needs to paint it."""
    snapshot = field_app.engine.status_snapshot()
    return SyncStatusResponse(
        **snapshot.to_dict(),
        text=describe(snapshot),
        last_sync_text=format_last_sync(snapshot.last_sync_time, utcnow()),
    )


@router.post("/trigger", response_model=SyncTriggerResponse)
async def trigger_sync(field_app: FieldSyncApp = Depends(get_field_app)):
    """
    Manual "Sync now". Runs one pass and reports its outcome.
    Rejections map to 409 (already syncing), 503 (offline), 401 (not logged in).
    """
    try:
        result = await field_app.engine.request_manual_sync()
    except SyncRejectedError as exc:
        raise HTTPException(
            status_code=_REJECTION_STATUS.get(type(exc), 400),
            detail=exc.user_message,
        )

    messages = {
        "success": "All data synced successfully",
        "failed": "Sync failed",
        "skipped": "Sync already in progress",
    }
    return SyncTriggerResponse(
        outcome=result.outcome.value,
        message=messages[result.outcome.value],
        audits_synced=result.audits_synced,
        job_cards_pushed=result.job_cards_pushed,
        cache_failures=result.cache_failures,
        retry_in_seconds=result.retry_in_seconds,
    )
