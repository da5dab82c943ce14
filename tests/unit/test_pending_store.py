"""Tests for PendingMutationStore against in-memory SQLite."""
import json
from datetime import timedelta

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from fieldsync.db.engine import build_engine
from fieldsync.errors import NotFoundError, StorageError
from fieldsync.events import SyncNeeded
from fieldsync.models.audit import Audit, PhotoRef, utcnow
from fieldsync.models.cache import Earning, JobCard, Schedule
from fieldsync.store.pending import PendingMutationStore


def _job_card(job_number: str, **extra) -> dict:
    return {"job_number": job_number, "client": "ABC Construction Co.", "status": "active", **extra}


# ─── Audits ───────────────────────────────────────────────────────────────────

class TestCreateAudit:
    def test_new_audit_is_pending(self, store):
        audit = store.create_audit("Site walk", "All good", [])
        assert audit.id is not None
        assert audit.status == "pending"
        assert audit.created_at is not None

    def test_round_trip_through_pending_audits(self, store):
        store.create_audit("Site walk", "Cracked kerb", [])
        pending = store.get_pending_audits()
        assert len(pending) == 1
        assert pending[0].title == "Site walk"
        assert pending[0].notes == "Cracked kerb"
        assert pending[0].status == "pending"

    def test_photos_keep_their_order(self, store):
        photos = [
            PhotoRef(data_url="data:image/jpeg;base64,AAA"),
            {"data_url": "data:image/jpeg;base64,BBB"},
        ]
        audit = store.create_audit("Photos", "", photos)
        refs = store.get_audit(audit.id).photo_refs()
        assert [r.data_url for r in refs] == [
            "data:image/jpeg;base64,AAA",
            "data:image/jpeg;base64,BBB",
        ]

    def test_publishes_sync_needed(self, store, bus):
        seen = []
        bus.subscribe(SyncNeeded, seen.append)
        store.create_audit("Site walk")
        assert seen == [SyncNeeded(reason="audit_created")]

    def test_failing_listener_does_not_break_create(self, store, bus):
        def boom(event):
            raise RuntimeError("listener bug")

        bus.subscribe(SyncNeeded, boom)
        audit = store.create_audit("Site walk")
        assert audit.id is not None


class TestGetAudits:
    def test_newest_first(self, store):
        first = store.create_audit("first")
        second = store.create_audit("second")
        ids = [a.id for a in store.get_audits()]
        assert ids == [second.id, first.id]

    def test_filter_by_status(self, store):
        a = store.create_audit("a")
        store.create_audit("b")
        store.update_audit_sync_status(a.id, "synced", server_id=7)
        synced = store.get_audits(status="synced")
        assert [s.id for s in synced] == [a.id]
        assert synced[0].server_id == 7

    def test_get_audit_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.get_audit(999)


class TestUpdateAuditSyncStatus:
    def test_synced_sets_synced_at(self, store):
        audit = store.create_audit("a")
        updated = store.update_audit_sync_status(audit.id, "synced", server_id=42)
        assert updated.status == "synced"
        assert updated.server_id == 42
        assert updated.synced_at is not None
        assert updated.last_error is None

    def test_error_clears_synced_at_and_records_message(self, store):
        audit = store.create_audit("a")
        updated = store.update_audit_sync_status(audit.id, "error", None, "HTTP 500")
        assert updated.status == "error"
        assert updated.synced_at is None
        assert updated.last_error == "HTTP 500"

    def test_synced_audit_cannot_go_back_to_pending(self, store):
        audit = store.create_audit("a")
        store.update_audit_sync_status(audit.id, "synced", server_id=1)
        with pytest.raises(ValueError):
            store.update_audit_sync_status(audit.id, "pending")

    def test_unknown_status_rejected(self, store):
        audit = store.create_audit("a")
        with pytest.raises(ValueError):
            store.update_audit_sync_status(audit.id, "archived")

    def test_unknown_id_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.update_audit_sync_status(123, "synced", server_id=1)


class TestRequeueFailedAudits:
    def test_error_audits_return_to_pending(self, store):
        a = store.create_audit("a")
        b = store.create_audit("b")
        store.update_audit_sync_status(a.id, "error", None, "boom")
        store.update_audit_sync_status(b.id, "synced", server_id=5)

        moved = store.requeue_failed_audits()

        assert moved == 1
        assert store.get_audit(a.id).status == "pending"
        assert store.get_audit(a.id).last_error is None
        assert store.get_audit(b.id).status == "synced"


# ─── Pending count ────────────────────────────────────────────────────────────

class TestPendingSyncCount:
    def test_empty_store(self, store):
        counts = store.get_pending_sync_count()
        assert (counts.audits, counts.job_cards, counts.total) == (0, 0, 0)

    def test_counts_pending_audits_and_dirty_job_cards(self, store):
        """pending/synced/error audits + pending/active job cards → total 2."""
        pending = store.create_audit("pending")
        synced = store.create_audit("synced")
        errored = store.create_audit("errored")
        store.update_audit_sync_status(synced.id, "synced", server_id=1)
        store.update_audit_sync_status(errored.id, "error", None, "boom")

        store.cache_job_cards([_job_card("JOB-1"), _job_card("JOB-2")])
        store.update_job_card("JOB-1", {"progress": 80})

        counts = store.get_pending_sync_count()
        assert counts.audits == 1
        assert counts.job_cards == 1
        assert counts.total == 2
        assert store.get_audit(pending.id).status == "pending"

    def test_server_pending_status_with_synced_at_not_counted(self, store):
        """A card the server itself reports as "pending" is not a local edit."""
        store.cache_job_cards([_job_card("JOB-1", status="pending")])
        assert store.get_pending_sync_count().job_cards == 0


# ─── Job cards ────────────────────────────────────────────────────────────────

class TestJobCards:
    def test_cache_upserts_by_job_number(self, store, engine):
        store.cache_job_cards([_job_card("JOB-1", title="v1")])
        store.cache_job_cards([_job_card("JOB-1", title="v2")])
        with Session(engine) as s:
            rows = s.exec(select(JobCard)).all()
        assert len(rows) == 1
        assert rows[0].data()["title"] == "v2"

    def test_cache_defaults_status_to_active(self, store):
        store.cache_job_cards([{"job_number": "JOB-9"}])
        assert store.get_job_cards(status="active")[0]["job_number"] == "JOB-9"

    def test_update_merges_shallowly_and_marks_dirty(self, store, engine):
        store.cache_job_cards([_job_card("JOB-1", progress=10, notes="old")])
        merged = store.update_job_card("JOB-1", {"progress": 65})

        assert merged["progress"] == 65
        assert merged["notes"] == "old"
        with Session(engine) as s:
            card = s.exec(select(JobCard).where(JobCard.job_number == "JOB-1")).one()
        assert card.status == "pending"
        assert card.synced_at is None

    def test_update_missing_job_card_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update_job_card("NOPE", {"progress": 1})

    def test_update_publishes_sync_needed(self, store, bus):
        store.cache_job_cards([_job_card("JOB-1")])
        seen = []
        bus.subscribe(SyncNeeded, seen.append)
        store.update_job_card("JOB-1", {"progress": 1})
        assert seen == [SyncNeeded(reason="job_card_updated")]

    def test_fetch_overwrites_local_edit(self, store):
        """Last write wins: a server fetch replaces the dirty local copy."""
        store.cache_job_cards([_job_card("JOB-1", progress=10)])
        store.update_job_card("JOB-1", {"progress": 50})
        store.cache_job_cards([_job_card("JOB-1", progress=20)])

        assert store.get_job_card("JOB-1")["progress"] == 20
        assert store.get_pending_sync_count().job_cards == 0

    def test_dirty_job_cards_and_mark_synced(self, store):
        store.cache_job_cards([_job_card("JOB-1"), _job_card("JOB-2")])
        store.update_job_card("JOB-2", {"progress": 5})

        dirty = store.get_dirty_job_cards()
        assert [c.job_number for c in dirty] == ["JOB-2"]

        store.mark_job_card_synced("JOB-2")
        assert store.get_dirty_job_cards() == []
        assert store.get_pending_sync_count().total == 0


# ─── Schedules ────────────────────────────────────────────────────────────────

class TestSchedules:
    def test_upsert_by_date_and_job_title(self, store, engine):
        item = {"date": "2024-01-15", "job_title": "Renovation", "location": "Main St"}
        store.cache_schedules([item])
        store.cache_schedules([{**item, "location": "Elm St"}])
        with Session(engine) as s:
            rows = s.exec(select(Schedule)).all()
        assert len(rows) == 1
        assert rows[0].location == "Elm St"

    def test_get_schedules_ordered_and_filtered(self, store):
        store.cache_schedules([
            {"date": "2024-01-17", "job_title": "C"},
            {"date": "2024-01-15", "job_title": "A"},
            {"date": "2024-01-16", "job_title": "B"},
        ])
        assert [s["job_title"] for s in store.get_schedules()] == ["A", "B", "C"]
        assert [s["job_title"] for s in store.get_schedules("2024-01-16")] == ["B", "C"]
        assert [s["job_title"] for s in store.get_schedules(end_date="2024-01-15")] == ["A"]

    def test_stale_rows_purged_on_next_write(self, store, engine):
        with Session(engine) as s:
            s.add(Schedule(
                date="2023-01-01",
                job_title="Ancient",
                data_json=json.dumps({"date": "2023-01-01", "job_title": "Ancient"}),
                last_synced_at=utcnow() - timedelta(days=91),
            ))
            s.commit()

        store.cache_schedules([{"date": "2024-01-15", "job_title": "Fresh"}])

        assert [s["job_title"] for s in store.get_schedules()] == ["Fresh"]

    def test_batch_with_bad_row_lands_nothing(self, store):
        store.cache_schedules([{"date": "2024-01-15", "job_title": "Keep"}])
        with pytest.raises(StorageError, match="job_title"):
            store.cache_schedules([
                {"date": "2024-01-16", "job_title": "New"},
                {"date": "2024-01-17"},  # missing job_title
            ])
        assert [s["job_title"] for s in store.get_schedules()] == ["Keep"]

    def test_malformed_job_card_batch_rejected(self, store):
        store.cache_job_cards([_job_card("JOB-1")])
        with pytest.raises(StorageError, match="job_number"):
            store.cache_job_cards([_job_card("JOB-2"), {"client": "No number"}])
        assert [c["job_number"] for c in store.get_job_cards()] == ["JOB-1"]

    def test_malformed_earnings_keep_previous_rows(self, store):
        store.cache_earnings([{"amount": 10.0, "period": "2024-01"}])
        with pytest.raises(StorageError, match="amount"):
            store.cache_earnings([{"period": "2024-02"}])
        assert [e.period for e in store.get_earnings()] == ["2024-01"]

    def test_non_record_row_rejected(self, store):
        with pytest.raises(StorageError):
            store.cache_schedules(["2024-01-15"])


# ─── Earnings ─────────────────────────────────────────────────────────────────

class TestEarnings:
    def test_full_replace(self, store):
        store.cache_earnings([{"amount": 10.0, "period": "2024-01"}])
        store.cache_earnings([
            {"amount": 20.0, "period": "2024-02"},
            {"amount": 30.0, "period": "2024-03", "description": "March"},
        ])
        earnings = store.get_earnings()
        assert [e.period for e in earnings] == ["2024-03", "2024-02"]
        assert earnings[0].description == "March"


# ─── Housekeeping & errors ────────────────────────────────────────────────────

class TestHousekeeping:
    def test_clear_all_data(self, store, engine):
        store.create_audit("a")
        store.cache_job_cards([_job_card("JOB-1")])
        store.cache_schedules([{"date": "2024-01-15", "job_title": "A"}])
        store.cache_earnings([{"amount": 1.0, "period": "2024-01"}])

        store.clear_all_data()

        with Session(engine) as s:
            for model in (Audit, JobCard, Schedule, Earning):
                assert s.exec(select(model)).all() == []

    def test_queue_survives_close_and_reopen(self, tmp_path):
        """Pending audits persist across a restart of the process."""
        url = f"sqlite:///{tmp_path / 'fieldsync.db'}"
        first = PendingMutationStore(build_engine(url))
        first.create_audit("Captured before restart")
        first.close()

        second = PendingMutationStore(build_engine(url))
        pending = second.get_pending_audits()
        second.close()

        assert [a.title for a in pending] == ["Captured before restart"]


class TestStorageErrors:
    @pytest.fixture
    def tableless_store(self):
        """Store over a database whose tables were never created."""
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        return PendingMutationStore(engine)

    def test_read_failure_becomes_storage_error(self, tableless_store):
        with pytest.raises(StorageError):
            tableless_store.get_audits()

    def test_write_failure_becomes_storage_error(self, tableless_store):
        with pytest.raises(StorageError):
            tableless_store.create_audit("a")

    def test_no_sync_needed_when_write_fails(self, tableless_store):
        seen = []
        tableless_store.bus.subscribe(SyncNeeded, seen.append)
        with pytest.raises(StorageError):
            tableless_store.create_audit("a")
        assert seen == []
