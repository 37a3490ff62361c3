"""Product-related Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProductCreate(BaseModel):
    """Schema for creating a queued product record."""

    id: Optional[str] = None
    title: Optional[str] = None
    prompt: Optional[str] = None
    size: Optional[str] = None
    source_bucket: Optional[str] = None
    source_path: Optional[str] = None


class ProductResponse(BaseModel):
    """Product record as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: Optional[str] = None
    status: str
    prompt: Optional[str] = None
    size: Optional[str] = None
    source_bucket: Optional[str] = None
    source_path: Optional[str] = None
    output_bucket: Optional[str] = None
    output_path: Optional[str] = None
    output_url: Optional[str] = None
    error: Optional[str] = None
    error_count: int = 0
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductEvent(BaseModel):
    """Reactive trigger delivery for a product record."""

    prompt: Optional[str] = None


class ProductEventResponse(BaseModel):
    """Outcome of a trigger delivery."""

    claimed: bool
    product: ProductResponse


class ReconcileResponse(BaseModel):
    """Reconciliation outcome."""

    ok: bool
    reason: Optional[str] = None
    status: Optional[str] = None
    url: Optional[str] = None
