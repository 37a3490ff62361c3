"""Job state machine over product records.

Status moves queued -> processing -> generating -> done | error within one
attempt. The claim is a single conditional UPDATE so that duplicate trigger
deliveries cannot both proceed; every later write is performed only by the
claim owner and is last-writer-wins.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from photogen.errors import ConflictError, NotFoundError
from photogen.models.product import IN_FLIGHT_STATUSES, UNRESOLVED_STATUSES, JobStatus, StagingProduct, utcnow

logger = logging.getLogger(__name__)


class JobRecordStore:
    """Reads and transitions product records in the record store."""

    def __init__(
        self,
        session_factory: sessionmaker,
        stale_after: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            session_factory: Factory producing SQLAlchemy sessions
            stale_after: Age after which an in-flight attempt may be reclaimed;
                None never reclaims
            clock: Source of naive UTC timestamps
        """
        self.session_factory = session_factory
        self.stale_after = stale_after
        self.clock = clock

    def _session(self) -> Session:
        return self.session_factory()

    def create(
        self,
        record_id: Optional[str] = None,
        title: Optional[str] = None,
        prompt: Optional[str] = None,
        size: Optional[str] = None,
        source_bucket: Optional[str] = None,
        source_path: Optional[str] = None,
    ) -> StagingProduct:
        """
        Insert a new queued record.

        Raises:
            ConflictError: If a record with the same id exists
        """
        now = self.clock()
        record_id = record_id or uuid.uuid4().hex
        record = StagingProduct(
            id=record_id,
            title=title,
            status=JobStatus.QUEUED.value,
            prompt_override=prompt,
            size=size,
            source_bucket=source_bucket,
            source_path=source_path,
            error_count=0,
            created_at=now,
            updated_at=now,
        )
        with self._session() as db:
            db.add(record)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise ConflictError(f"Product {record_id} already exists") from e
            db.refresh(record)
            db.expunge(record)

        logger.info(f"Created product {record.id} (status: queued)")
        return record

    def get(self, record_id: str) -> StagingProduct:
        """Load a detached copy of a record."""
        with self._session() as db:
            record = db.get(StagingProduct, record_id)
            if record is None:
                raise NotFoundError(f"Product {record_id} not found")
            db.expunge(record)
            return record

    def _claimable(self, now: datetime):
        claimable = StagingProduct.status == JobStatus.QUEUED.value
        if self.stale_after is not None:
            claimable = or_(
                claimable,
                and_(
                    StagingProduct.status.in_(IN_FLIGHT_STATUSES),
                    StagingProduct.started_at < now - self.stale_after,
                ),
            )
        return claimable

    def list_claimable(self, limit: int = 10) -> List[str]:
        """Ids of queued records, plus stale in-flight ones under a staleness policy; oldest first."""
        with self._session() as db:
            rows = (
                db.query(StagingProduct.id)
                .filter(self._claimable(self.clock()))
                .order_by(StagingProduct.created_at)
                .limit(limit)
                .all()
            )
            return [row.id for row in rows]

    def try_claim(self, record_id: str) -> bool:
        """
        Atomically move a queued record to processing.

        Returns:
            True for the single winner; False when the record is not queued
            (another attempt owns it or it is already resolved)

        Raises:
            NotFoundError: If the record does not exist
        """
        now = self.clock()
        stmt = (
            update(StagingProduct)
            .where(StagingProduct.id == record_id, self._claimable(now))
            .values(
                status=JobStatus.PROCESSING.value,
                started_at=now,
                completed_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        with self._session() as db:
            result = db.execute(stmt)
            db.commit()
            if result.rowcount == 1:
                logger.info(f"Claimed product {record_id}")
                return True

            status = db.query(StagingProduct.status).filter(StagingProduct.id == record_id).scalar()

        if status is None:
            raise NotFoundError(f"Product {record_id} not found")

        logger.info(f"Product {record_id} not claimable (status: {status})")
        return False

    def mark_generating(self, record_id: str, prompt: Optional[str] = None) -> None:
        """Record that the generation call is starting. Failures are not fatal."""
        try:
            now = self.clock()
            values = {"status": JobStatus.GENERATING.value, "updated_at": now}
            if prompt is not None:
                values["prompt"] = prompt
            with self._session() as db:
                db.execute(
                    update(StagingProduct)
                    .where(
                        StagingProduct.id == record_id,
                        StagingProduct.status == JobStatus.PROCESSING.value,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
        except Exception as e:
            logger.warning(f"Could not mark product {record_id} as generating: {e}")

    def complete(
        self,
        record_id: str,
        output_bucket: str,
        output_path: str,
        output_url: str,
    ) -> bool:
        """
        Mark a record done with its output location.

        Repeating the call with the same outputs writes nothing.

        Returns:
            False if the record vanished (the update is dropped)
        """
        with self._session() as db:
            record = db.get(StagingProduct, record_id)
            if record is None:
                logger.error(f"Product {record_id} vanished before completion, dropping update")
                return False

            if (
                record.status == JobStatus.DONE.value
                and record.error is None
                and record.output_bucket == output_bucket
                and record.output_path == output_path
                and record.output_url == output_url
            ):
                return True

            now = self.clock()
            record.status = JobStatus.DONE.value
            record.output_bucket = output_bucket
            record.output_path = output_path
            record.output_url = output_url
            record.error = None
            record.error_count = 0
            record.completed_at = now
            record.updated_at = now
            db.commit()

        logger.info(f"Product {record_id} done: {output_bucket}/{output_path}")
        return True

    def fail(self, record_id: str, message: str) -> bool:
        """
        Mark a record as errored and bump its error counter.

        Repeating the call with the same message while the record is still in
        error writes nothing. Never raises.

        Returns:
            True if the failure is recorded
        """
        message = message or "unknown error"
        try:
            with self._session() as db:
                record = db.get(StagingProduct, record_id)
                if record is None:
                    logger.error(f"Product {record_id} vanished, could not record failure: {message}")
                    return False

                if record.status == JobStatus.ERROR.value and record.error == message:
                    return True

                record.status = JobStatus.ERROR.value
                record.error = message
                record.error_count = (record.error_count or 0) + 1
                record.updated_at = self.clock()
                db.commit()
                count = record.error_count

            logger.error(f"Product {record_id} failed ({count}): {message}")
            return True
        except Exception:
            logger.exception(f"Could not record failure for product {record_id}")
            return False

    def set_output_url(self, record_id: str, output_url: str) -> None:
        """Persist a reissued output URL."""
        with self._session() as db:
            record = db.get(StagingProduct, record_id)
            if record is None:
                raise NotFoundError(f"Product {record_id} not found")
            record.output_url = output_url
            record.updated_at = self.clock()
            db.commit()

    def normalize_done(self, record_id: str) -> bool:
        """
        Set status to done for a resolved record whose artifact is verified.

        Queued and in-flight records belong to a pending or running attempt
        and are left untouched.

        Returns:
            True if the record was moved to done

        Raises:
            NotFoundError: If the record does not exist
        """
        now = self.clock()
        stmt = (
            update(StagingProduct)
            .where(
                StagingProduct.id == record_id,
                StagingProduct.status.notin_(UNRESOLVED_STATUSES),
            )
            .values(
                status=JobStatus.DONE.value,
                error=None,
                completed_at=func.coalesce(StagingProduct.completed_at, now),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        with self._session() as db:
            result = db.execute(stmt)
            db.commit()
            if result.rowcount == 1:
                return True

            status = db.query(StagingProduct.status).filter(StagingProduct.id == record_id).scalar()

        if status is None:
            raise NotFoundError(f"Product {record_id} not found")

        logger.info(f"Product {record_id} not normalized (status: {status})")
        return False
