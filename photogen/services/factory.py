"""Construction of service handles from settings."""

from datetime import timedelta
from functools import lru_cache

from google.cloud import storage

from photogen.config import Settings, settings
from photogen.database import SessionLocal
from photogen.services.blob_store import BlobStore, GCSBlobStore
from photogen.services.image_client import ImageGenerationClient
from photogen.services.job_records import JobRecordStore
from photogen.services.pipeline import GenerationPipeline
from photogen.services.reconciler import StatusReconciler


def build_records(config: Settings = settings, session_factory=SessionLocal) -> JobRecordStore:
    stale_after = None
    if config.STALE_PROCESSING_SECONDS:
        stale_after = timedelta(seconds=config.STALE_PROCESSING_SECONDS)
    return JobRecordStore(session_factory, stale_after=stale_after)


def build_blob_store(config: Settings = settings) -> BlobStore:
    return GCSBlobStore(
        storage.Client(),
        config.STORAGE_BUCKET,
        url_strategy=config.URL_STRATEGY,
        url_ttl=timedelta(days=config.SIGNED_URL_TTL_DAYS),
    )


def build_image_client(config: Settings = settings) -> ImageGenerationClient:
    return ImageGenerationClient(
        api_key=config.IMAGE_API_KEY,
        base_url=config.IMAGE_API_BASE_URL,
        model=config.IMAGE_MODEL,
        timeout=config.IMAGE_API_TIMEOUT,
    )


def build_pipeline(
    records: JobRecordStore,
    client: ImageGenerationClient,
    blob_store: BlobStore,
    config: Settings = settings,
) -> GenerationPipeline:
    return GenerationPipeline(
        records,
        client,
        blob_store,
        output_folder=config.OUTPUT_FOLDER,
        default_size=config.DEFAULT_SIZE,
        incoming_prefix=config.INCOMING_PREFIX,
        reference_ttl=timedelta(minutes=config.REFERENCE_URL_TTL_MINUTES),
        swallow_errors=config.SWALLOW_BACKGROUND_ERRORS,
    )


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    """Process-wide blob store; the storage client is created on first use."""
    return build_blob_store()


def get_records() -> JobRecordStore:
    return build_records()


def get_pipeline() -> GenerationPipeline:
    """FastAPI dependency providing the configured pipeline."""
    return build_pipeline(get_records(), build_image_client(), get_blob_store())


def get_reconciler() -> StatusReconciler:
    """FastAPI dependency providing the configured reconciler."""
    return StatusReconciler(get_records(), get_blob_store())
