"""Product record routes."""

import logging

from fastapi import APIRouter, Depends

from photogen.errors import NotFoundError, PhotogenError
from photogen.routes.common import to_http_exception
from photogen.schemas.product import (
    ProductCreate,
    ProductEvent,
    ProductEventResponse,
    ProductResponse,
    ReconcileResponse,
)
from photogen.services.factory import get_pipeline, get_reconciler, get_records
from photogen.services.job_records import JobRecordStore
from photogen.services.pipeline import GenerationPipeline
from photogen.services.reconciler import StatusReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


@router.post("", response_model=ProductResponse, status_code=201)
def create_product(
    data: ProductCreate,
    records: JobRecordStore = Depends(get_records),
):
    """Create a queued product; the worker picks it up on its next poll."""
    try:
        record = records.create(
            record_id=data.id,
            title=data.title,
            prompt=data.prompt,
            size=data.size,
            source_bucket=data.source_bucket,
            source_path=data.source_path,
        )
    except PhotogenError as e:
        raise to_http_exception(e)
    return ProductResponse.model_validate(record)


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: str,
    records: JobRecordStore = Depends(get_records),
):
    """Get a product and its generation status."""
    try:
        record = records.get(product_id)
    except NotFoundError as e:
        raise to_http_exception(e)
    return ProductResponse.model_validate(record)


@router.post("/{product_id}/events", response_model=ProductEventResponse)
def product_event(
    product_id: str,
    event: ProductEvent,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    """
    Deliver a trigger for a product.

    Generation runs only if this delivery wins the claim; the outcome is
    written into the record.
    """
    try:
        record = pipeline.process_record(product_id, override_prompt=event.prompt)
        claimed = record is not None
        if record is None:
            record = pipeline.records.get(product_id)
    except PhotogenError as e:
        raise to_http_exception(e)

    return ProductEventResponse(claimed=claimed, product=ProductResponse.model_validate(record))


@router.post("/{product_id}/reconcile", response_model=ReconcileResponse)
def reconcile_product(
    product_id: str,
    reconciler: StatusReconciler = Depends(get_reconciler),
):
    """Verify a product's artifact and URL, repairing what drifted."""
    try:
        result = reconciler.reconcile(product_id)
    except PhotogenError as e:
        raise to_http_exception(e)

    return ReconcileResponse(ok=result.ok, reason=result.reason, status=result.status, url=result.url)
