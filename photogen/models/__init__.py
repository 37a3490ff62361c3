"""SQLAlchemy ORM models."""

from photogen.models.product import JobStatus, StagingProduct

__all__ = [
    "JobStatus",
    "StagingProduct",
]
