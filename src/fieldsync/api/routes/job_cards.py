"""Cached job card routes, including offline edits."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException

from fieldsync.api.main import get_field_app
from fieldsync.app import FieldSyncApp
from fieldsync.errors import NotFoundError

router = APIRouter()


@router.get("/", response_model=List[Dict[str, Any]])
def list_job_cards(
    status: Optional[str] = None,
    field_app: FieldSyncApp = Depends(get_field_app),
):
    """Cached job cards, most recently updated first."""
    return field_app.store.get_job_cards(status=status)


@router.get("/{job_number}", response_model=Dict[str, Any])
def get_job_card(job_number: str, field_app: FieldSyncApp = Depends(get_field_app)):
    try:
        return field_app.store.get_job_card(job_number)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Job card not found")


@router.patch("/{job_number}", response_model=Dict[str, Any])
def update_job_card(
    job_number: str,
    patch: Dict[str, Any],
    field_app: FieldSyncApp = Depends(get_field_app),
):
    """Edit a cached job card locally; the change is pushed on the next sync."""
    try:
        return field_app.store.update_job_card(job_number, patch)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Job card not found")
