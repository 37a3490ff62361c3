"""Staging product model: one image generation job per product record."""

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, Text

from photogen.database import Base


class JobStatus(str, enum.Enum):
    """Generation status of a product record."""

    QUEUED = "queued"
    PROCESSING = "processing"
    GENERATING = "generating"
    DONE = "done"
    ERROR = "error"


IN_FLIGHT_STATUSES = (JobStatus.PROCESSING.value, JobStatus.GENERATING.value)

# Owned by a pending or running attempt
UNRESOLVED_STATUSES = (JobStatus.QUEUED.value,) + IN_FLIGHT_STATUSES


def utcnow() -> datetime:
    return datetime.utcnow()


class StagingProduct(Base):
    """StagingProduct tracks the generated photo for a product."""

    __tablename__ = "staging_products"

    id = Column(Text, primary_key=True)
    title = Column(Text)
    status = Column(Text, nullable=False, default=JobStatus.QUEUED.value)

    prompt_override = Column(Text)  # caller-supplied prompt
    prompt = Column(Text)  # resolved prompt sent to the generation API
    size = Column(Text)  # '<width>x<height>'

    source_bucket = Column(Text)
    source_path = Column(Text)

    output_bucket = Column(Text)
    output_path = Column(Text)
    output_url = Column(Text)

    error = Column(Text)
    error_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    updated_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_staging_products_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<StagingProduct {self.id} status={self.status}>"
