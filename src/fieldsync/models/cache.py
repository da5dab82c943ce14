"""Cached server collections: schedules, job cards, earnings."""
import json
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from fieldsync.models.audit import utcnow


class Schedule(SQLModel, table=True):
    """Read-only mirror of one scheduled job. Key: (date, job_title)."""

    __table_args__ = (UniqueConstraint("date", "job_title"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    date: str = Field(index=True)  # "YYYY-MM-DD" as the server sends it
    job_title: str
    location: str = ""

    # Full server record, returned verbatim by get_schedules()
    data_json: str = "{}"
    last_synced_at: datetime = Field(default_factory=utcnow, index=True)


class JobCard(SQLModel, table=True):
    """
    Cached job card. Also the queue entry for a local edit: status="pending"
    with synced_at=None marks it dirty until pushed.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    job_number: str = Field(unique=True, index=True)
    client: str = ""
    data_json: str = "{}"
    status: str = "active"  # "active", "pending", or whatever the server sends
    updated_at: datetime = Field(default_factory=utcnow)
    synced_at: Optional[datetime] = None

    def data(self) -> Dict[str, Any]:
        return json.loads(self.data_json or "{}")


class Earning(SQLModel, table=True):
    """Earnings line; the table is fully replaced on every fetch."""

    id: Optional[int] = Field(default=None, primary_key=True)
    amount: float
    period: str
    description: str = ""
    last_synced_at: datetime = Field(default_factory=utcnow)
