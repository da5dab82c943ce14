"""
SyncEngine: one sync pass at a time, with exponential-backoff retries.

A pass (perform_sync):
  1. Mark in progress, publish SyncStarted and a status snapshot
  2. Re-queue audits left in "error" by an earlier pass
  3. Upload pending audits oldest first, one at a time:
       photos in list order → audit record → mark synced (server id)
     Any failure marks that audit "error" and aborts the pass
  4. Push locally edited job cards (same abort rule)
  5. Refresh schedules, job cards, earnings; each fetch fails on its own
  6. Success: last_sync_time = now, retry_count = 0
     Failure: publish SyncFailed; while retry_count < max_retries, arm a
     retry task after retry_delays[retry_count] seconds and increment
  7. Always: clear in progress, publish a status snapshot

The in_progress flag is checked and set before the first await, so it is
the only mutual exclusion needed on a single event loop. A request made
while a pass runs is dropped, not queued.

The pending retry is an asyncio.Task. Any other pass that starts cancels it
(that pass covers the same work), as do cancel_pending_retry() and
shutdown().
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Set

from fieldsync.connectivity.tracker import ConnectivityTracker
from fieldsync.errors import (
    AuthRequiredError,
    FieldSyncError,
    NetworkError,
    OfflineError,
    StorageError,
    SyncInProgressError,
)
from fieldsync.events import EventBus, StatusChanged, SyncFailed, SyncStarted, SyncSucceeded
from fieldsync.models.audit import Audit, AuditStatus, PhotoRef, utcnow
from fieldsync.remote import client as endpoints
from fieldsync.remote.auth import CredentialStore
from fieldsync.remote.client import RemoteApiClient
from fieldsync.store.pending import PendingMutationStore
from fieldsync.sync.status import StatusSnapshot, project

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAYS = (1.0, 2.0, 4.0, 8.0)


class SyncOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"  # another pass was already running


@dataclass(frozen=True)
class SyncResult:
    outcome: SyncOutcome
    audits_synced: int = 0
    job_cards_pushed: int = 0
    cache_failures: List[str] = field(default_factory=list)
    error: Optional[str] = None  # for logs only, never shown to the user
    retry_in_seconds: Optional[float] = None


class SyncEngine:
    """Orchestrates upload of pending mutations and refresh of caches."""

    def __init__(
        self,
        store: PendingMutationStore,
        client: RemoteApiClient,
        tracker: ConnectivityTracker,
        credentials: CredentialStore,
        bus: Optional[EventBus] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            store: Pending-mutation store (queue + caches).
            client: Remote API client (or AsyncMock in tests).
            tracker: Connectivity tracker, read for manual/foreground checks.
            credentials: Token store; only presence is checked here.
            bus: Event bus for SyncStarted/SyncSucceeded/SyncFailed/StatusChanged.
            max_retries: Automatic retries per failing streak.
            retry_delays: Seconds to wait before retry n, indexed by retry_count.
            sleep: Awaitable delay used by the retry task.
        """
        if len(retry_delays) < max_retries:
            raise ValueError("retry_delays needs at least max_retries entries")

        self.store = store
        self.client = client
        self.tracker = tracker
        self.credentials = credentials
        self.bus = bus or EventBus()
        self.max_retries = max_retries
        self.retry_delays = tuple(retry_delays)
        self._sleep = sleep

        self._in_progress = False
        self._retry_count = 0
        self._last_sync_time: Optional[datetime] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._trigger_tasks: Set[asyncio.Task] = set()

    # ─── State ────────────────────────────────────────────────────────────────

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def last_sync_time(self) -> Optional[datetime]:
        return self._last_sync_time

    @property
    def retry_task(self) -> Optional[asyncio.Task]:
        return self._retry_task

    def status_snapshot(self) -> StatusSnapshot:
        pending = self.store.get_pending_sync_count().total
        online = self.tracker.get_status().online
        return StatusSnapshot(
            label=project(self._in_progress, online, pending),
            pending_count=pending,
            last_sync_time=self._last_sync_time,
            is_syncing=self._in_progress,
        )

    def refresh_status(self) -> Optional[StatusSnapshot]:
        """Recompute the snapshot and publish it. Storage errors are logged."""
        try:
            snapshot = self.status_snapshot()
        except StorageError:
            logger.exception("Error updating sync status")
            return None
        self.bus.publish(StatusChanged(snapshot=snapshot))
        return snapshot

    # ─── Triggers ─────────────────────────────────────────────────────────────

    async def start(self) -> Optional[SyncResult]:
        """Initial pass at app start, if online and logged in."""
        self.refresh_status()
        if self.tracker.get_status().online and self.credentials.has_token():
            return await self.perform_sync()
        return None

    async def auto_sync(self) -> SyncResult:
        """Connectivity restored or app foregrounded."""
        if self._in_progress:
            logger.info("Sync already in progress")
            return SyncResult(outcome=SyncOutcome.SKIPPED)
        logger.info("Auto-sync triggered")
        return await self.perform_sync()

    def schedule_auto_sync(self) -> asyncio.Task:
        """Fire-and-track auto_sync() from a synchronous callback."""
        task = asyncio.get_running_loop().create_task(self.auto_sync())
        self._trigger_tasks.add(task)
        task.add_done_callback(self._trigger_tasks.discard)
        return task

    async def handle_foreground(self) -> Optional[SyncResult]:
        if self.tracker.get_status().offline:
            return None
        return await self.auto_sync()

    async def request_manual_sync(self) -> SyncResult:
        """
        User pressed "Sync now".

        Raises (checked in this order):
            SyncInProgressError: a pass is already running.
            OfflineError: the tracker reports no connectivity.
            AuthRequiredError: no API token is stored.
        """
        if self._in_progress:
            raise SyncInProgressError()
        if self.tracker.get_status().offline:
            raise OfflineError()
        if not self.credentials.has_token():
            raise AuthRequiredError()

        logger.info("Manual sync triggered")
        return await self.perform_sync()

    # ─── Pass ─────────────────────────────────────────────────────────────────

    async def perform_sync(self) -> SyncResult:
        if self._in_progress:
            logger.info("Sync already in progress; request dropped")
            return SyncResult(outcome=SyncOutcome.SKIPPED)

        self._in_progress = True
        try:
            self.cancel_pending_retry()
            self.bus.publish(SyncStarted())
            self.refresh_status()
            logger.info("Starting sync...")

            try:
                audits_synced = await self._upload_audits()
                job_cards_pushed = await self._push_job_cards()
            except FieldSyncError as exc:
                return self._handle_failure(exc)

            cache_failures = await self._refresh_caches()

            self._last_sync_time = utcnow()
            self._retry_count = 0
            self.bus.publish(SyncSucceeded(finished_at=self._last_sync_time))
            logger.info(
                "Sync completed: %d audits, %d job cards uploaded",
                audits_synced,
                job_cards_pushed,
            )
            return SyncResult(
                outcome=SyncOutcome.SUCCESS,
                audits_synced=audits_synced,
                job_cards_pushed=job_cards_pushed,
                cache_failures=cache_failures,
            )
        finally:
            self._in_progress = False
            self.refresh_status()

    def _handle_failure(self, exc: FieldSyncError) -> SyncResult:
        logger.error("Sync failed: %s", exc)

        delay = None
        if self._retry_count < self.max_retries:
            delay = self.retry_delays[self._retry_count]
            self._retry_count += 1
            logger.info(
                "Retrying sync in %ss (attempt %d/%d)",
                delay,
                self._retry_count,
                self.max_retries,
            )
            self._retry_task = asyncio.get_running_loop().create_task(
                self._retry_after(delay)
            )
        else:
            logger.warning(
                "Sync failed after %d retries; waiting for the next trigger",
                self._retry_count,
            )

        self.bus.publish(SyncFailed(retry_in_seconds=delay))
        return SyncResult(outcome=SyncOutcome.FAILED, error=str(exc), retry_in_seconds=delay)

    async def _retry_after(self, delay: float) -> None:
        """Retry task body. Unexpected errors are logged; nobody awaits this task."""
        await self._sleep(delay)
        try:
            await self.perform_sync()
        except Exception:
            logger.exception("Unexpected error during sync retry")
            self.bus.publish(SyncFailed())

    def cancel_pending_retry(self) -> bool:
        """Cancel an armed retry. A retry task never cancels itself."""
        task = self._retry_task
        if task is None or task.done() or task is asyncio.current_task():
            return False
        task.cancel()
        self._retry_task = None
        logger.info("Pending sync retry cancelled")
        return True

    async def shutdown(self) -> None:
        self.cancel_pending_retry()
        tasks = [t for t in self._trigger_tasks if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ─── Upload ───────────────────────────────────────────────────────────────

    async def _upload_audits(self) -> int:
        self.store.requeue_failed_audits()
        pending = sorted(self.store.get_pending_audits(), key=lambda a: (a.created_at, a.id))
        logger.info("Found %d pending audits", len(pending))

        for audit in pending:
            await self._sync_audit(audit)
        return len(pending)

    async def _sync_audit(self, audit: Audit) -> None:
        logger.info("Syncing audit %s...", audit.id)
        try:
            photo_urls = []
            for photo in audit.photo_refs():
                photo_urls.append(await self._upload_photo(photo))

            response = await self.client.send(
                endpoints.SYNC_AUDITS,
                "POST",
                {
                    "title": audit.title,
                    "notes": audit.notes,
                    "photos": photo_urls,
                    "created_at": audit.created_at.isoformat(),
                },
            )
            server_id = response.get("id") if isinstance(response, dict) else None
            if server_id is None:
                raise NetworkError(f"Audit upload response has no id: {response!r}")

            self.store.update_audit_sync_status(
                audit.id, AuditStatus.SYNCED.value, server_id=server_id
            )
            logger.info("Audit %s synced as %s", audit.id, server_id)

        except FieldSyncError as exc:
            logger.error("Failed to sync audit %s: %s", audit.id, exc)
            self.store.update_audit_sync_status(
                audit.id, AuditStatus.ERROR.value, None, str(exc)
            )
            raise

    async def _upload_photo(self, photo: PhotoRef) -> str:
        response = await self.client.send(
            endpoints.UPLOAD_PHOTO,
            "POST",
            {
                "photo": photo.data_url,
                "timestamp": photo.timestamp.isoformat() if photo.timestamp else None,
            },
        )
        url = response.get("url") if isinstance(response, dict) else None
        if not url:
            raise NetworkError(f"Photo upload response has no url: {response!r}")
        return url

    async def _push_job_cards(self) -> int:
        cards = self.store.get_dirty_job_cards()
        for card in cards:
            logger.info("Pushing job card %s...", card.job_number)
            await self.client.send(
                endpoints.SYNC_JOB_CARDS,
                "POST",
                {
                    "job_number": card.job_number,
                    "data": card.data(),
                    "updated_at": card.updated_at.isoformat(),
                },
            )
            self.store.mark_job_card_synced(card.job_number)
        return len(cards)

    # ─── Download ─────────────────────────────────────────────────────────────

    async def _refresh_caches(self) -> List[str]:
        """Fetch each read cache independently. Returns names that failed."""
        resources = (
            ("schedules", endpoints.USER_SCHEDULE, "schedules", self.store.cache_schedules),
            ("job cards", endpoints.USER_JOB_CARDS, "jobCards", self.store.cache_job_cards),
            ("earnings", endpoints.USER_EARNINGS, "earnings", self.store.cache_earnings),
        )
        failures = []
        for name, endpoint, key, cache in resources:
            logger.info("Fetching %s...", name)
            try:
                response = await self.client.send(endpoint, "GET")
                cache(response[key])
            except (FieldSyncError, KeyError, TypeError) as exc:
                # Isolated: the remaining resources are still fetched
                logger.error("Failed to fetch %s: %s", name, exc)
                failures.append(name)
        return failures
