"""Status projection: {syncing, online, pending} → one user-facing label."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class StatusLabel(str, Enum):
    SYNCING = "syncing"
    OFFLINE = "offline"
    ONLINE_SYNCED = "online-synced"
    ONLINE = "online"


def project(syncing: bool, online: bool, pending_total: int) -> StatusLabel:
    """Syncing wins over offline, offline over the pending check."""
    if syncing:
        return StatusLabel.SYNCING
    if not online:
        return StatusLabel.OFFLINE
    if pending_total == 0:
        return StatusLabel.ONLINE_SYNCED
    return StatusLabel.ONLINE


@dataclass(frozen=True)
class StatusSnapshot:
    """The whole contract a UI layer needs to paint sync status."""

    label: StatusLabel
    pending_count: int
    last_sync_time: Optional[datetime]
    is_syncing: bool

    def to_dict(self) -> dict:
        return {
            "label": self.label.value,
            "pending_count": self.pending_count,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "is_syncing": self.is_syncing,
        }


def describe(snapshot: StatusSnapshot) -> str:
    """Short status text, e.g. "Online (3 pending)"."""
    pending = snapshot.pending_count
    if snapshot.label is StatusLabel.SYNCING:
        return "Syncing"
    if snapshot.label is StatusLabel.ONLINE_SYNCED:
        return "Online & Synced"
    if snapshot.label is StatusLabel.OFFLINE:
        return f"Offline ({pending} pending)" if pending else "Offline"
    return f"Online ({pending} pending)" if pending else "Online"


def format_last_sync(last_sync: Optional[datetime], now: datetime) -> str:
    if last_sync is None:
        return "Never synced"

    seconds = (now - last_sync).total_seconds()
    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        minutes = int(seconds // 60)
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    if seconds < 86400:
        hours = int(seconds // 3600)
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    return last_sync.strftime("%Y-%m-%d %H:%M")
