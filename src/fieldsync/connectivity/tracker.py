"""
ConnectivityTracker: last known network state plus change fan-out.

The tracker never raises: probe failures are logged and the tracker
assumes it is online (fail-open) so a broken probe cannot block the app.
Listener exceptions are logged and isolated from other listeners.

Two kinds of subscriber:
  - add_listener(fn): called with a ConnectivityStatus on every change
    notification, duplicates included.
  - on_connection_restored(fn): called with no arguments, only on the
    offline → online transition. Used to trigger auto-sync.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from fieldsync.connectivity.probe import ConnectivityProbe
from fieldsync.events import ConnectionRestored, ConnectivityChanged, EventBus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectivityStatus:
    online: bool
    connection_type: Optional[str] = None

    @property
    def offline(self) -> bool:
        return not self.online


class ConnectivityTracker:
    def __init__(self, probe: ConnectivityProbe, bus: Optional[EventBus] = None):
        self.probe = probe
        self.bus = bus or EventBus()
        self._online = True
        self._connection_type: Optional[str] = None
        self._listeners: List[Callable[[ConnectivityStatus], None]] = []
        self._restored_callbacks: List[Callable[[], None]] = []
        self._unsubscribe_probe: Optional[Callable[[], None]] = None

    @property
    def is_listening(self) -> bool:
        return self._unsubscribe_probe is not None

    async def initialize(self) -> None:
        """Read the initial state and subscribe to probe changes. Idempotent."""
        if self.is_listening:
            return

        try:
            self._online = await self.probe.is_connected()
            logger.info("Initial network status: %s", "online" if self._online else "offline")
            self._unsubscribe_probe = self.probe.subscribe(self.handle_change)
            logger.info("Network monitoring started")
        except Exception:
            logger.exception("Connectivity probe failed to initialize; assuming online")
            self._online = True

    def get_status(self) -> ConnectivityStatus:
        return ConnectivityStatus(online=self._online, connection_type=self._connection_type)

    async def check_status(self) -> ConnectivityStatus:
        """Re-probe now. On probe failure the last observed value is returned."""
        try:
            self._online = await self.probe.is_connected()
        except Exception:
            logger.exception("Error checking network status")
        return self.get_status()

    def handle_change(self, online: bool, connection_type: Optional[str] = None) -> None:
        """Apply a change notification from the probe."""
        was_online = self._online
        self._online = online
        self._connection_type = connection_type
        logger.info(
            "Network status changed: %s -> %s (%s)",
            "online" if was_online else "offline",
            "online" if online else "offline",
            connection_type,
        )

        status = self.get_status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Error in connectivity listener %r", listener)
        self.bus.publish(ConnectivityChanged(online=online, connection_type=connection_type))

        if not was_online and online:
            logger.info("Connection restored - triggering auto-sync")
            for callback in list(self._restored_callbacks):
                try:
                    callback()
                except Exception:
                    logger.exception("Error in connection-restored callback %r", callback)
            self.bus.publish(ConnectionRestored(connection_type=connection_type))

    def add_listener(self, listener: Callable[[ConnectivityStatus], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._remove(self._listeners, listener)

    def on_connection_restored(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._restored_callbacks.append(callback)
        return lambda: self._remove(self._restored_callbacks, callback)

    @staticmethod
    def _remove(callbacks: list, callback) -> None:
        if callback in callbacks:
            callbacks.remove(callback)

    async def stop(self) -> None:
        if self._unsubscribe_probe is not None:
            self._unsubscribe_probe()
            self._unsubscribe_probe = None
            logger.info("Network monitoring stopped")
