"""Tests for the job record state machine."""

import threading
from datetime import datetime, timedelta

import pytest

from conftest import TickingClock
from photogen.errors import ConflictError, NotFoundError
from photogen.models.product import JobStatus, StagingProduct
from photogen.services.job_records import JobRecordStore


def _row(session_factory, record_id):
    with session_factory() as db:
        record = db.get(StagingProduct, record_id)
        db.expunge(record)
        return record


def test_create_queued(records):
    """Test new products start queued with no errors."""
    record = records.create(record_id="p1", title="white t-shirt")

    assert record.status == JobStatus.QUEUED.value
    assert record.error_count == 0
    assert records.get("p1").title == "white t-shirt"


def test_get_missing(records):
    """Test loading an unknown product raises NotFoundError."""
    with pytest.raises(NotFoundError):
        records.get("nope")


def test_claim_once(records, session_factory):
    """Test only the first claim wins and losers do not write."""
    records.create(record_id="p1")

    assert records.try_claim("p1") is True
    after_first = _row(session_factory, "p1")
    assert after_first.status == JobStatus.PROCESSING.value
    assert after_first.started_at is not None

    assert records.try_claim("p1") is False
    after_second = _row(session_factory, "p1")
    assert after_second.updated_at == after_first.updated_at
    assert after_second.started_at == after_first.started_at


def test_concurrent_claims(records):
    """Test concurrent duplicate deliveries produce exactly one winner."""
    records.create(record_id="p1")
    barrier = threading.Barrier(8)
    results = []
    lock = threading.Lock()

    def deliver():
        barrier.wait()
        won = records.try_claim("p1")
        with lock:
            results.append(won)

    threads = [threading.Thread(target=deliver) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert results.count(False) == 7


def test_claim_missing_record(records):
    """Test claiming an unknown product raises NotFoundError."""
    with pytest.raises(NotFoundError):
        records.try_claim("ghost")


def test_claim_resolved_records(records):
    """Test done and errored products are not claimable."""
    records.create(record_id="done")
    records.try_claim("done")
    records.complete("done", "bucket", "generated/done.png", "https://x/o?token=t")
    records.create(record_id="err")
    records.try_claim("err")
    records.fail("err", "boom")

    assert records.try_claim("done") is False
    assert records.try_claim("err") is False


def test_stuck_job_left_alone_by_default(records):
    """Test an in-flight attempt is never reclaimed without a staleness policy."""
    records.create(record_id="p1")
    records.try_claim("p1")

    assert records.try_claim("p1") is False


def test_stale_job_reclaimed_with_policy(session_factory):
    """Test an attempt older than the staleness threshold can be reclaimed."""
    now = {"value": datetime(2026, 1, 1, 12, 0, 0)}
    store = JobRecordStore(session_factory, stale_after=timedelta(minutes=10), clock=lambda: now["value"])
    store.create(record_id="p1")
    assert store.try_claim("p1") is True

    now["value"] += timedelta(minutes=5)
    assert store.try_claim("p1") is False

    now["value"] += timedelta(minutes=6)
    assert store.try_claim("p1") is True


def test_mark_generating(records):
    """Test the generating status and resolved prompt are recorded."""
    records.create(record_id="p1")
    records.try_claim("p1")

    records.mark_generating("p1", "a prompt")

    record = records.get("p1")
    assert record.status == JobStatus.GENERATING.value
    assert record.prompt == "a prompt"


def test_mark_generating_failure_is_not_fatal():
    """Test a failing status write is swallowed."""

    def broken_factory():
        raise RuntimeError("database down")

    JobRecordStore(broken_factory).mark_generating("p1", "prompt")


def test_complete_is_idempotent(records, session_factory):
    """Test completing twice with the same outputs leaves the record unchanged."""
    records.create(record_id="p1")
    records.try_claim("p1")

    assert records.complete("p1", "bucket", "generated/p1.png", "https://x/o?token=t") is True
    first = _row(session_factory, "p1")
    assert records.complete("p1", "bucket", "generated/p1.png", "https://x/o?token=t") is True
    second = _row(session_factory, "p1")

    assert first.status == JobStatus.DONE.value
    assert first.error is None
    assert second.updated_at == first.updated_at
    assert second.completed_at == first.completed_at


def test_complete_vanished_record(records):
    """Test completing a deleted product drops the update."""
    assert records.complete("ghost", "bucket", "generated/ghost.png", "https://x") is False


def test_fail_is_idempotent(records, session_factory):
    """Test failing twice with the same message counts once."""
    records.create(record_id="p1")
    records.try_claim("p1")

    assert records.fail("p1", "No image returned") is True
    first = _row(session_factory, "p1")
    assert records.fail("p1", "No image returned") is True
    second = _row(session_factory, "p1")

    assert first.status == JobStatus.ERROR.value
    assert first.error_count == 1
    assert second.error_count == 1
    assert second.updated_at == first.updated_at


def test_error_count_accumulates_and_resets_on_success(records, session_factory):
    """Test failures across attempts accumulate until a successful completion."""
    records.create(record_id="p1")
    records.try_claim("p1")
    records.fail("p1", "quota exceeded")

    # external re-queue
    with session_factory() as db:
        db.get(StagingProduct, "p1").status = JobStatus.QUEUED.value
        db.commit()

    records.try_claim("p1")
    records.fail("p1", "quota exceeded")
    assert records.get("p1").error_count == 2

    with session_factory() as db:
        db.get(StagingProduct, "p1").status = JobStatus.QUEUED.value
        db.commit()

    records.try_claim("p1")
    records.complete("p1", "bucket", "generated/p1.png", "https://x/o?token=t")
    record = records.get("p1")
    assert record.error_count == 0
    assert record.error is None


def test_fail_never_raises():
    """Test a failure to record a failure is logged, not raised."""

    def broken_factory():
        raise RuntimeError("database down")

    assert JobRecordStore(broken_factory).fail("p1", "boom") is False


def test_fail_vanished_record(records):
    """Test failing a deleted product reports False."""
    assert records.fail("ghost", "boom") is False


def test_list_claimable(session_factory):
    """Test queued ids come back oldest first."""
    store = JobRecordStore(session_factory, clock=TickingClock())
    store.create(record_id="a")
    store.create(record_id="b")
    store.create(record_id="c")
    store.try_claim("b")

    assert store.list_claimable() == ["a", "c"]
    assert store.list_claimable(limit=1) == ["a"]


def test_create_duplicate_id(records):
    """Test inserting an existing id raises ConflictError and keeps the original."""
    records.create(record_id="p1", title="mug")

    with pytest.raises(ConflictError):
        records.create(record_id="p1", title="lamp")

    assert records.get("p1").title == "mug"


def test_list_claimable_includes_stale_attempts(session_factory):
    """Test stale in-flight records are listed only under a staleness policy."""
    now = {"value": datetime(2026, 1, 1, 12, 0, 0)}
    store = JobRecordStore(session_factory, stale_after=timedelta(minutes=10), clock=lambda: now["value"])
    store.create(record_id="stuck")
    store.try_claim("stuck")

    assert store.list_claimable() == []

    now["value"] += timedelta(minutes=11)
    assert store.list_claimable() == ["stuck"]
    assert JobRecordStore(session_factory, clock=lambda: now["value"]).list_claimable() == []
