"""
Main entrypoint: the long-running sync client plus one-shot commands.

Usage:
    python -m fieldsync login       # store the API token
    python -m fieldsync logout      # forget the token, wipe local data
    python -m fieldsync sync        # one manual sync pass
    python -m fieldsync status      # print the current sync status
    python -m fieldsync seed-demo   # fill the caches with demo data
    python -m fieldsync [serve]     # tracker + connectivity polling + local API
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _run_login() -> None:
    from fieldsync.scripts.login import run_login
    run_login()


def _run_logout() -> None:
    from fieldsync.app import FieldSyncApp

    field_app = FieldSyncApp.from_settings()
    field_app.logout()
    print("Logged out. Local data cleared.")


def _run_status() -> None:
    from fieldsync.app import FieldSyncApp
    from fieldsync.models.audit import utcnow
    from fieldsync.sync.status import describe, format_last_sync

    field_app = FieldSyncApp.from_settings()
    snapshot = field_app.engine.status_snapshot()
    counts = field_app.store.get_pending_sync_count()
    print(describe(snapshot))
    print(f"  audits pending:    {counts.audits}")
    print(f"  job cards pending: {counts.job_cards}")
    print(f"  logged in:         {'yes' if field_app.credentials.has_token() else 'no'}")
    print(f"  last sync:         {format_last_sync(snapshot.last_sync_time, utcnow())}")


def _run_seed_demo() -> None:
    from fieldsync.app import FieldSyncApp
    from fieldsync.scripts.seed_demo import seed_demo_data

    seed_demo_data(FieldSyncApp.from_settings().store)


async def _run_sync() -> int:
    from fieldsync.app import FieldSyncApp
    from fieldsync.errors import SyncRejectedError
    from fieldsync.sync.engine import SyncOutcome

    field_app = FieldSyncApp.from_settings()
    await field_app.initialize(auto_start=False)
    try:
        result = await field_app.engine.request_manual_sync()
    except SyncRejectedError as exc:
        print(exc.user_message)
        return 1
    finally:
        # A one-shot run does not wait for backoff retries
        await field_app.shutdown()

    if result.outcome is SyncOutcome.SUCCESS:
        print(
            f"All data synced successfully "
            f"({result.audits_synced} audits, {result.job_cards_pushed} job cards)"
        )
        return 0
    print("Sync failed. Pending items stay queued for the next sync.")
    return 1


async def _run_serve() -> None:
    import uvicorn

    from fieldsync.api.main import create_app
    from fieldsync.app import FieldSyncApp
    from fieldsync.config import get_settings
    from fieldsync.connectivity.probe import HttpConnectivityProbe
    from fieldsync.scheduler.jobs import build_scheduler

    settings = get_settings()
    probe = HttpConnectivityProbe(settings.api_base_url)
    field_app = FieldSyncApp.from_settings(probe=probe)

    if not field_app.credentials.has_token():
        logger.warning("No API token stored; run `python -m fieldsync login` to enable sync.")

    await field_app.initialize()

    scheduler = build_scheduler(probe)
    scheduler.start()
    logger.info(
        "Scheduler started (connectivity poll every %ds)",
        settings.connectivity_poll_seconds,
    )

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(field_app),
            host=settings.api_host,
            port=settings.api_port,
            log_level="info",
        )
    )
    logger.info("Local API on http://%s:%d", settings.api_host, settings.api_port)

    try:
        await server.serve()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        await field_app.shutdown()
        logger.info("Goodbye.")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="fieldsync")
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=["serve", "login", "logout", "sync", "status", "seed-demo"],
    )
    args = parser.parse_args(argv)

    if args.command == "login":
        _run_login()
    elif args.command == "logout":
        _run_logout()
    elif args.command == "status":
        _run_status()
    elif args.command == "seed-demo":
        _run_seed_demo()
    elif args.command == "sync":
        return asyncio.run(_run_sync())
    else:
        asyncio.run(_run_serve())
    return 0


if __name__ == "__main__":
    sys.exit(main())
