"""
Typed events and the observer bus that carries them.

Producers (connectivity tracker, pending-mutation store, sync engine)
publish dataclass events; consumers subscribe per event type. Handlers run
synchronously inside publish(), in subscription order. A handler that
raises is logged and skipped so it can never corrupt the publisher's state
or starve the remaining handlers.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, DefaultDict, List, Optional, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncNeeded:
    reason: str  # "audit_created", "job_card_updated"


@dataclass(frozen=True)
class ConnectivityChanged:
    online: bool
    connection_type: Optional[str] = None


@dataclass(frozen=True)
class ConnectionRestored:
    connection_type: Optional[str] = None


@dataclass(frozen=True)
class SyncStarted:
    message: str = "Syncing data..."


@dataclass(frozen=True)
class SyncSucceeded:
    finished_at: datetime
    message: str = "All data synced successfully"


@dataclass(frozen=True)
class SyncFailed:
    message: str = "Sync failed"
    retry_in_seconds: Optional[float] = None


@dataclass(frozen=True)
class StatusChanged:
    snapshot: "object"  # fieldsync.sync.status.StatusSnapshot


Handler = Callable[[object], None]


class EventBus:
    """Synchronous fan-out keyed on event class."""

    def __init__(self):
        self._handlers: DefaultDict[Type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Handler) -> Callable[[], None]:
        """Register handler for event_type. Returns an unsubscribe callable."""
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers[event_type]
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: object) -> None:
        # Copy so a handler may unsubscribe itself mid-dispatch
        for handler in list(self._handlers[type(event)]):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler %r failed for %s", handler, type(event).__name__
                )
