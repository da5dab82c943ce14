"""
PendingMutationStore: durable queue of local mutations plus read caches.

Audits and dirty job cards are the pending mutations the sync engine
uploads. Schedules, job cards and earnings are also mirrored here so the
app can read them offline.

Every public method opens its own Session. A SQLAlchemy failure rolls the
session back and is re-raised as StorageError, so a batch call (e.g.
cache_schedules) either lands completely or not at all.
"""
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from fieldsync.errors import NotFoundError, StorageError
from fieldsync.events import EventBus, SyncNeeded
from fieldsync.models.audit import Audit, AuditStatus, PhotoRef, utcnow
from fieldsync.models.cache import Earning, JobCard, Schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingCount:
    audits: int
    job_cards: int

    @property
    def total(self) -> int:
        return self.audits + self.job_cards


class PendingMutationStore:
    """SQLModel-backed store for audits, job cards, schedules and earnings."""

    def __init__(
        self,
        engine,
        bus: Optional[EventBus] = None,
        schedule_retention_days: int = 90,
    ):
        """
        Args:
            engine: SQLAlchemy engine (see fieldsync.db.engine.build_engine).
            bus: Event bus receiving SyncNeeded notifications.
            schedule_retention_days: Cached schedules written longer ago than
                this are purged on the next cache_schedules() call.
        """
        self.engine = engine
        self.bus = bus or EventBus()
        self.schedule_retention = timedelta(days=schedule_retention_days)

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        try:
            with Session(self.engine) as s:
                yield s
        except SQLAlchemyError as exc:
            logger.error("Storage error while %s: %s", action, exc)
            raise StorageError(f"{action} failed: {exc}") from exc

    @staticmethod
    def _require_keys(rows: Iterable[Mapping[str, Any]], keys: Iterable[str], action: str) -> None:
        """Reject a batch before writing if any row lacks a key field."""
        for index, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise StorageError(f"{action} failed: row {index} is not a record")
            missing = [k for k in keys if row.get(k) is None]
            if missing:
                raise StorageError(
                    f"{action} failed: row {index} is missing {', '.join(missing)}"
                )

    def _notify_sync_needed(self, reason: str) -> None:
        logger.info("Sync needed: %s", reason)
        self.bus.publish(SyncNeeded(reason=reason))

    # ─── Audits ───────────────────────────────────────────────────────────────

    def create_audit(
        self,
        title: str,
        notes: str = "",
        photos: Iterable[Union[PhotoRef, Mapping[str, Any]]] = (),
    ) -> Audit:
        """Queue a new audit with status=pending and announce it."""
        refs = [p if isinstance(p, PhotoRef) else PhotoRef(**p) for p in photos]
        audit = Audit(
            title=title,
            notes=notes or "",
            photos_json=json.dumps([r.model_dump(mode="json") for r in refs]),
            status=AuditStatus.PENDING.value,
            created_at=utcnow(),
        )
        with self._session("creating audit") as s:
            s.add(audit)
            s.commit()
            s.refresh(audit)

        logger.info("Audit created locally: %s", audit.id)
        self._notify_sync_needed("audit_created")
        return audit

    def get_audits(self, status: Optional[str] = None) -> List[Audit]:
        """Audits newest first, optionally filtered by status."""
        with self._session("reading audits") as s:
            query = select(Audit)
            if status is not None:
                query = query.where(Audit.status == status)
            query = query.order_by(Audit.created_at.desc(), Audit.id.desc())
            return list(s.exec(query).all())

    def get_pending_audits(self) -> List[Audit]:
        return self.get_audits(status=AuditStatus.PENDING.value)

    def get_audit(self, audit_id: int) -> Audit:
        with self._session("reading audit") as s:
            audit = s.get(Audit, audit_id)
        if audit is None:
            raise NotFoundError(f"Audit {audit_id} not found")
        return audit

    def update_audit_sync_status(
        self,
        audit_id: int,
        status: str,
        server_id: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> Audit:
        """
        Record the outcome of an upload attempt.

        synced_at is set to now only when status is "synced". A synced audit
        only accepts another "synced" write (to attach a server id).
        """
        status = AuditStatus(status).value
        with self._session("updating audit status") as s:
            audit = s.get(Audit, audit_id)
            if audit is None:
                raise NotFoundError(f"Audit {audit_id} not found")
            if audit.status == AuditStatus.SYNCED.value and status != audit.status:
                raise ValueError(f"Audit {audit_id} is already synced")

            audit.status = status
            audit.server_id = server_id
            audit.last_error = error_message
            audit.synced_at = utcnow() if status == AuditStatus.SYNCED.value else None
            s.add(audit)
            s.commit()
            s.refresh(audit)

        logger.info("Audit %s status updated to %s", audit_id, status)
        return audit

    def requeue_failed_audits(self) -> int:
        """Move every error audit back to pending. Returns how many moved."""
        with self._session("re-queueing failed audits") as s:
            failed = s.exec(
                select(Audit).where(Audit.status == AuditStatus.ERROR.value)
            ).all()
            for audit in failed:
                audit.status = AuditStatus.PENDING.value
                audit.last_error = None
                s.add(audit)
            s.commit()

        if failed:
            logger.info("Re-queued %d failed audits", len(failed))
        return len(failed)

    # ─── Schedules ────────────────────────────────────────────────────────────

    def cache_schedules(self, schedules: List[Dict[str, Any]]) -> None:
        """Purge stale rows, then upsert each schedule by (date, job_title)."""
        self._require_keys(schedules, ("date", "job_title"), "caching schedules")
        now = utcnow()
        cutoff = now - self.schedule_retention

        with self._session("caching schedules") as s:
            stale = s.exec(select(Schedule).where(Schedule.last_synced_at < cutoff)).all()
            for row in stale:
                s.delete(row)
            s.flush()

            for item in schedules:
                existing = s.exec(
                    select(Schedule).where(
                        Schedule.date == item["date"],
                        Schedule.job_title == item["job_title"],
                    )
                ).first()
                row = existing or Schedule(date=item["date"], job_title=item["job_title"])
                row.location = item.get("location") or ""
                row.data_json = json.dumps(item)
                row.last_synced_at = now
                s.add(row)
            s.commit()

        logger.info("Cached %d schedules", len(schedules))

    def get_schedules(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Cached schedule records ordered by date, within an optional range."""
        with self._session("reading schedules") as s:
            query = select(Schedule)
            if start_date:
                query = query.where(Schedule.date >= start_date)
            if end_date:
                query = query.where(Schedule.date <= end_date)
            rows = s.exec(query.order_by(Schedule.date)).all()
        return [json.loads(r.data_json) for r in rows]

    # ─── Job cards ────────────────────────────────────────────────────────────

    def cache_job_cards(self, job_cards: List[Dict[str, Any]]) -> None:
        """Upsert job cards wholesale by job_number (server copy wins)."""
        self._require_keys(job_cards, ("job_number",), "caching job cards")
        now = utcnow()
        with self._session("caching job cards") as s:
            for item in job_cards:
                existing = s.exec(
                    select(JobCard).where(JobCard.job_number == item["job_number"])
                ).first()
                card = existing or JobCard(job_number=item["job_number"])
                card.client = item.get("client") or ""
                card.data_json = json.dumps(item)
                card.status = item.get("status") or "active"
                card.updated_at = now
                card.synced_at = now
                s.add(card)
            s.commit()

        logger.info("Cached %d job cards", len(job_cards))

    def get_job_cards(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Job card records, most recently updated first."""
        with self._session("reading job cards") as s:
            query = select(JobCard)
            if status is not None:
                query = query.where(JobCard.status == status)
            rows = s.exec(query.order_by(JobCard.updated_at.desc())).all()
        return [r.data() for r in rows]

    def get_job_card(self, job_number: str) -> Dict[str, Any]:
        with self._session("reading job card") as s:
            card = s.exec(select(JobCard).where(JobCard.job_number == job_number)).first()
        if card is None:
            raise NotFoundError(f"Job card {job_number} not found")
        return card.data()

    def update_job_card(self, job_number: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        """Shallow-merge patch into a cached job card and mark it dirty."""
        with self._session("updating job card") as s:
            card = s.exec(select(JobCard).where(JobCard.job_number == job_number)).first()
            if card is None:
                raise NotFoundError(f"Job card {job_number} not found")

            merged = {**card.data(), **patch}
            card.data_json = json.dumps(merged)
            card.client = merged.get("client") or card.client
            card.updated_at = utcnow()
            card.synced_at = None
            card.status = "pending"
            s.add(card)
            s.commit()

        logger.info("Job card %s updated locally", job_number)
        self._notify_sync_needed("job_card_updated")
        return merged

    def get_dirty_job_cards(self) -> List[JobCard]:
        """Locally edited job cards not yet pushed, oldest edit first."""
        with self._session("reading dirty job cards") as s:
            return list(
                s.exec(
                    select(JobCard)
                    .where(JobCard.status == "pending", JobCard.synced_at.is_(None))
                    .order_by(JobCard.updated_at)
                ).all()
            )

    def mark_job_card_synced(self, job_number: str) -> None:
        with self._session("marking job card synced") as s:
            card = s.exec(select(JobCard).where(JobCard.job_number == job_number)).first()
            if card is None:
                raise NotFoundError(f"Job card {job_number} not found")
            card.status = "active"
            card.synced_at = utcnow()
            s.add(card)
            s.commit()

    # ─── Earnings ─────────────────────────────────────────────────────────────

    def cache_earnings(self, earnings: List[Dict[str, Any]]) -> None:
        """Replace the earnings table. Clear and insert share one transaction."""
        self._require_keys(earnings, ("amount", "period"), "caching earnings")
        now = utcnow()
        with self._session("caching earnings") as s:
            for row in s.exec(select(Earning)).all():
                s.delete(row)
            s.flush()

            for item in earnings:
                s.add(
                    Earning(
                        amount=item["amount"],
                        period=item["period"],
                        description=item.get("description") or "",
                        last_synced_at=now,
                    )
                )
            s.commit()

        logger.info("Cached %d earnings", len(earnings))

    def get_earnings(self) -> List[Earning]:
        with self._session("reading earnings") as s:
            return list(s.exec(select(Earning).order_by(Earning.period.desc())).all())

    # ─── Queue bookkeeping ────────────────────────────────────────────────────

    def get_pending_sync_count(self) -> PendingCount:
        """Pending audits plus job cards edited locally and not yet pushed."""
        with self._session("counting pending items") as s:
            audits = s.exec(
                select(func.count())
                .select_from(Audit)
                .where(Audit.status == AuditStatus.PENDING.value)
            ).one()
            job_cards = s.exec(
                select(func.count())
                .select_from(JobCard)
                .where(JobCard.status == "pending", JobCard.synced_at.is_(None))
            ).one()
        return PendingCount(audits=audits, job_cards=job_cards)

    def clear_all_data(self) -> None:
        """Wipe every table (logout)."""
        with self._session("clearing local data") as s:
            for model in (Audit, Schedule, JobCard, Earning):
                for row in s.exec(select(model)).all():
                    s.delete(row)
            s.commit()
        logger.info("All local data cleared")

    def close(self) -> None:
        self.engine.dispose()
