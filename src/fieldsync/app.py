"""
FieldSyncApp: composition root.

Builds exactly one of each component and hands dependencies in through
constructors, so tests can assemble the same graph around an in-memory
database, a ManualProbe and a mocked API client.

Wiring done in initialize():
  - connection restored        → engine.schedule_auto_sync()
  - ConnectivityChanged event  → status snapshot recomputed
  - SyncNeeded event           → status snapshot recomputed
  - initial pass if online and logged in
"""
import logging
from typing import Callable, List, Optional

from fieldsync.config import Settings, get_settings
from fieldsync.connectivity.probe import ConnectivityProbe, HttpConnectivityProbe
from fieldsync.connectivity.tracker import ConnectivityTracker
from fieldsync.db.engine import get_engine
from fieldsync.events import ConnectivityChanged, EventBus, SyncNeeded
from fieldsync.remote.auth import CredentialStore
from fieldsync.remote.client import RemoteApiClient
from fieldsync.store.pending import PendingMutationStore
from fieldsync.sync.engine import SyncEngine, SyncResult

logger = logging.getLogger(__name__)


class FieldSyncApp:
    def __init__(
        self,
        bus: EventBus,
        credentials: CredentialStore,
        store: PendingMutationStore,
        client: RemoteApiClient,
        tracker: ConnectivityTracker,
        engine: SyncEngine,
    ):
        self.bus = bus
        self.credentials = credentials
        self.store = store
        self.client = client
        self.tracker = tracker
        self.engine = engine
        self._initialized = False
        self._unsubscribers: List[Callable[[], None]] = []

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        db_engine=None,
        probe: Optional[ConnectivityProbe] = None,
        client: Optional[RemoteApiClient] = None,
    ) -> "FieldSyncApp":
        """
        Args:
            settings: Defaults to get_settings().
            db_engine: SQLAlchemy engine; defaults to the module-level engine.
            probe: Connectivity probe; defaults to an HTTP probe of the API.
            client: API client; defaults to one built from settings.
        """
        settings = settings or get_settings()
        bus = EventBus()
        credentials = CredentialStore(settings.credentials_dir)
        store = PendingMutationStore(
            db_engine if db_engine is not None else get_engine(),
            bus=bus,
            schedule_retention_days=settings.schedule_retention_days,
        )
        client = client or RemoteApiClient(
            settings.api_base_url,
            credentials,
            timeout=settings.request_timeout_seconds,
        )
        tracker = ConnectivityTracker(
            probe or HttpConnectivityProbe(settings.api_base_url), bus=bus
        )
        engine = SyncEngine(
            store,
            client,
            tracker,
            credentials,
            bus=bus,
            max_retries=settings.max_retries,
            retry_delays=settings.retry_delays,
        )
        return cls(bus, credentials, store, client, tracker, engine)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self, auto_start: bool = True) -> Optional[SyncResult]:
        """Start connectivity tracking, wire triggers, run the initial pass."""
        if self._initialized:
            logger.info("Already initialized")
            return None

        await self.tracker.initialize()
        self._unsubscribers = [
            self.tracker.on_connection_restored(self.engine.schedule_auto_sync),
            self.bus.subscribe(ConnectivityChanged, self._on_state_change),
            self.bus.subscribe(SyncNeeded, self._on_state_change),
        ]
        self._initialized = True
        logger.info("Initialization complete")

        if auto_start:
            return await self.engine.start()
        self.engine.refresh_status()
        return None

    def _on_state_change(self, event) -> None:
        logger.debug("State change: %s", event)
        self.engine.refresh_status()

    async def on_foreground(self) -> Optional[SyncResult]:
        logger.info("App came to foreground")
        return await self.engine.handle_foreground()

    def logout(self) -> None:
        """Forget the token and wipe every local table."""
        self.engine.cancel_pending_retry()
        self.credentials.clear()
        self.store.clear_all_data()
        self.engine.refresh_status()

    async def shutdown(self) -> None:
        await self.engine.shutdown()
        await self.tracker.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await self.client.close()
        self._initialized = False
