"""Repair drift between a record's stored outcome and the blob store."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from photogen.models.product import UNRESOLVED_STATUSES, JobStatus
from photogen.services.blob_store import BlobStore, url_needs_refresh
from photogen.services.job_records import JobRecordStore

logger = logging.getLogger(__name__)

MISSING_OUTPUT_PATH = "missing output path"
ARTIFACT_MISSING = "artifact missing"
ATTEMPT_PENDING = "attempt pending"


@dataclass
class ReconcileResult:
    ok: bool
    reason: Optional[str] = None
    status: Optional[str] = None
    url: Optional[str] = None


class StatusReconciler:
    """Verifies a record's artifact and URL, repairing only what changed."""

    def __init__(
        self,
        records: JobRecordStore,
        blob_store: BlobStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.records = records
        self.blob_store = blob_store
        self.clock = clock

    def reconcile(self, record_id: str) -> ReconcileResult:
        """
        Check one record against the blob store.

        Missing paths and missing artifacts are reported as non-ok results;
        neither is repaired. Records that are queued or owned by a running
        attempt are reported as they are, without writes. Otherwise a stale or
        unusable URL is reissued and a record with a verified artifact is
        normalized to done. A consistent record causes no writes.

        Raises:
            NotFoundError: If the record does not exist
        """
        record = self.records.get(record_id)

        if not record.output_path:
            logger.warning(f"Reconcile {record_id}: {MISSING_OUTPUT_PATH}")
            return ReconcileResult(ok=False, reason=MISSING_OUTPUT_PATH, status=record.status, url=record.output_url)

        if record.status in UNRESOLVED_STATUSES:
            return self._pending(record_id, record.status, record.output_url)

        store = self.blob_store
        if record.output_bucket:
            store = store.for_bucket(record.output_bucket)

        if not store.exists(record.output_path):
            logger.warning(f"Reconcile {record_id}: {ARTIFACT_MISSING} at {record.output_path}")
            return ReconcileResult(ok=False, reason=ARTIFACT_MISSING, status=record.status, url=record.output_url)

        url = record.output_url
        if url_needs_refresh(url, self.clock()):
            url = store.refresh_url(record.output_path)
            self.records.set_output_url(record_id, url)
            logger.info(f"Reconcile {record_id}: output URL refreshed")

        status = record.status
        if status != JobStatus.DONE.value:
            if not self.records.normalize_done(record_id):
                live = self.records.get(record_id)
                return self._pending(record_id, live.status, live.output_url)
            logger.info(f"Reconcile {record_id}: status {status} -> done")
            status = JobStatus.DONE.value

        return ReconcileResult(ok=True, status=status, url=url)

    def _pending(self, record_id: str, status: str, url: Optional[str]) -> ReconcileResult:
        logger.info(f"Reconcile {record_id}: {ATTEMPT_PENDING} (status: {status})")
        return ReconcileResult(ok=False, reason=ATTEMPT_PENDING, status=status, url=url)
