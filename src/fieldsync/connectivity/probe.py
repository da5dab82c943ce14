"""
Connectivity probes: the primitive the tracker wraps.

A probe answers "are we connected?" and notifies subscribers when the
answer changes. Two implementations:

  - ManualProbe: the host environment pushes state (OS callbacks, tests).
  - HttpConnectivityProbe: issues a HEAD to the API base URL; poll() is
    called periodically (see fieldsync.scheduler.jobs) and notifies on
    change.
"""
import logging
from typing import Callable, List, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

ProbeCallback = Callable[[bool, Optional[str]], None]


class ConnectivityProbe(Protocol):
    async def is_connected(self) -> bool:
        ...

    def subscribe(self, callback: ProbeCallback) -> Callable[[], None]:
        ...


class _Subscribers:
    def __init__(self):
        self._callbacks: List[ProbeCallback] = []

    def subscribe(self, callback: ProbeCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _emit(self, connected: bool, connection_type: Optional[str]) -> None:
        for callback in list(self._callbacks):
            callback(connected, connection_type)


class ManualProbe(_Subscribers):
    """State is set from outside; every set_connected() call is forwarded."""

    def __init__(self, connected: bool = True, connection_type: Optional[str] = None):
        super().__init__()
        self.connected = connected
        self.connection_type = connection_type

    async def is_connected(self) -> bool:
        return self.connected

    def set_connected(self, connected: bool, connection_type: Optional[str] = None) -> None:
        # Duplicate notifications are forwarded on purpose; the tracker
        # decides what counts as a transition.
        self.connected = connected
        self.connection_type = connection_type
        self._emit(connected, connection_type)


class HttpConnectivityProbe(_Subscribers):
    """Reachability of the API server, checked with a HEAD request."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._last: Optional[bool] = None

    async def is_connected(self) -> bool:
        # Any HTTP answer, even an error status, means the network path works
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                await client.head(self.url)
        except httpx.RequestError as exc:
            logger.debug("Connectivity probe to %s failed: %r", self.url, exc)
            return False
        return True

    async def poll(self) -> bool:
        """Probe once; notify subscribers if the result differs from the last poll."""
        connected = await self.is_connected()
        if connected != self._last:
            self._last = connected
            self._emit(connected, "http")
        return connected
