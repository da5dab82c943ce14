"""Audit queue routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from fieldsync.api.main import get_field_app
from fieldsync.app import FieldSyncApp
from fieldsync.errors import NotFoundError
from fieldsync.models.audit import Audit, AuditStatus, PhotoRef

router = APIRouter()


class AuditCreate(BaseModel):
    title: str
    notes: str = ""
    photos: List[PhotoRef] = []


class AuditRead(BaseModel):
    id: int
    title: str
    notes: str
    photos: List[PhotoRef]
    status: str
    created_at: datetime
    synced_at: Optional[datetime]
    server_id: Optional[int]
    last_error: Optional[str]

    @classmethod
    def from_row(cls, audit: Audit) -> "AuditRead":
        return cls(
            id=audit.id,
            title=audit.title,
            notes=audit.notes,
            photos=audit.photo_refs(),
            status=audit.status,
            created_at=audit.created_at,
            synced_at=audit.synced_at,
            server_id=audit.server_id,
            last_error=audit.last_error,
        )


@router.post("/", response_model=AuditRead, status_code=201)
def create_audit(body: AuditCreate, field_app: FieldSyncApp = Depends(get_field_app)):
    """Queue a new audit for upload."""
    audit = field_app.store.create_audit(body.title, body.notes, body.photos)
    return AuditRead.from_row(audit)


@router.get("/", response_model=List[AuditRead])
def list_audits(
    status: Optional[AuditStatus] = None,
    field_app: FieldSyncApp = Depends(get_field_app),
):
    """List audits newest first, optionally by status."""
    audits = field_app.store.get_audits(status=status.value if status else None)
    return [AuditRead.from_row(a) for a in audits]


@router.get("/{audit_id}", response_model=AuditRead)
def get_audit(audit_id: int, field_app: FieldSyncApp = Depends(get_field_app)):
    try:
        return AuditRead.from_row(field_app.store.get_audit(audit_id))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Audit not found")
