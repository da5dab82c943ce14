"""
APScheduler jobs for the long-running client process.

The HTTP connectivity probe has no push notifications, so an interval job
polls it; each change it sees flows into the ConnectivityTracker, which in
turn fires the connection-restored auto-sync.

The scheduler runs inside the same event loop as the sync engine (wired in
fieldsync.__main__).
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from fieldsync.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(probe) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        probe: HttpConnectivityProbe (anything with an async poll()).

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _poll_connectivity,
        trigger="interval",
        seconds=settings.connectivity_poll_seconds,
        id="connectivity_poll",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"probe": probe},
    )

    return scheduler


async def _poll_connectivity(probe) -> None:
    """Interval job: probe once. Exceptions are logged so the job stays scheduled."""
    try:
        await probe.poll()
    except Exception as exc:
        logger.error("Connectivity poll failed: %s", exc)
