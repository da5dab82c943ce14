"""Audit model: locally created field audits queued for upload."""
import json
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite stores datetimes without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AuditStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class PhotoRef(BaseModel):
    """A captured photo as handed over by the capture layer."""

    data_url: str
    timestamp: Optional[datetime] = None


class Audit(SQLModel, table=True):
    """One row per locally created audit."""

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    notes: str = ""

    # Ordered JSON list of PhotoRef dicts; upload order follows list order
    photos_json: str = "[]"

    status: str = Field(default=AuditStatus.PENDING.value, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    synced_at: Optional[datetime] = None
    server_id: Optional[int] = None
    last_error: Optional[str] = None

    def photo_refs(self) -> List[PhotoRef]:
        return [PhotoRef(**p) for p in json.loads(self.photos_json or "[]")]
