"""Generation pipeline shared by every trigger.

Each entry point only extracts its inputs; the steps are always the same:
resolve the prompt, generate the image, store it, record the outcome.
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from photogen.errors import NotFoundError, StorageError, ValidationError
from photogen.models.product import StagingProduct
from photogen.services import prompts
from photogen.services.blob_store import BlobStore
from photogen.services.image_client import ImageGenerationClient
from photogen.services.incoming import ensure_png, parse_incoming, strip_slashes
from photogen.services.job_records import JobRecordStore
from photogen.services.sizing import DEFAULT_SIZE, format_size, parse_size

logger = logging.getLogger(__name__)

PNG = "image/png"


@dataclass
class DirectResult:
    url: str
    path: str
    uri: str
    size: str


def error_message(error: Exception) -> str:
    return str(error) or type(error).__name__


def _now_ms() -> int:
    return int(time.time() * 1000)


class GenerationPipeline:
    """Prompt -> image -> blob -> record, for direct calls and record triggers."""

    def __init__(
        self,
        records: JobRecordStore,
        client: ImageGenerationClient,
        blob_store: BlobStore,
        output_folder: str = "generated",
        default_size: str = format_size(*DEFAULT_SIZE),
        incoming_prefix: str = "incoming/",
        reference_ttl: timedelta = timedelta(minutes=15),
        swallow_errors: bool = True,
        resolve_prompt: Callable[..., str] = prompts.resolve,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        """
        Args:
            swallow_errors: When True, failures of record-triggered jobs are
                only written into the record; when False they are re-raised
                after being recorded
        """
        self.records = records
        self.client = client
        self.blob_store = blob_store
        self.output_folder = strip_slashes(output_folder)
        self.default_size = parse_size(default_size)
        self.incoming_prefix = incoming_prefix
        self.reference_ttl = reference_ttl
        self.swallow_errors = swallow_errors
        self.resolve_prompt = resolve_prompt
        self.clock_ms = clock_ms

    def record_output_path(self, record_id: str) -> str:
        """Deterministic artifact path; retries overwrite the same object."""
        return f"{self.output_folder}/{record_id}.png"

    @staticmethod
    def build_output_path(folder: str, name: str) -> str:
        """
        Join an output folder and file name, rejecting unsafe segments.

        Raises:
            ValidationError: On empty names or '.'/'..'/empty path segments
        """
        folder = strip_slashes(folder or "")
        name = (name or "").strip()
        if not name.lstrip("/"):
            raise ValidationError("output name required")

        path = f"{folder}/{ensure_png(name)}" if folder else ensure_png(name)
        if any(segment in ("", ".", "..") for segment in path.split("/")):
            raise ValidationError(f"invalid output path: {path}")
        return path

    def generate_direct(
        self,
        prompt: Optional[str] = None,
        size: Optional[str] = None,
        output_key: Optional[str] = None,
        folder: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> DirectResult:
        """
        Generate and store an image without a backing record.

        Errors propagate to the caller; there is no record to annotate.

        Raises:
            ValidationError: On an invalid output key, folder or filename
            GenerationError, FetchError, StorageError: From the collaborators
        """
        name = output_key or filename or f"img_{self.clock_ms()}"
        path = self.build_output_path(self.output_folder if folder is None else folder, name)
        width, height = parse_size(size, default=self.default_size)
        text = self.resolve_prompt(None, prompt)

        data = self.client.generate(text, width, height)
        stored = self.blob_store.put(path, data, PNG)

        logger.info(f"Generated image at {stored.uri} ({format_size(width, height)})")
        return DirectResult(url=stored.url, path=path, uri=stored.uri, size=format_size(width, height))

    def handle_incoming(self, name: str, content_type: Optional[str] = None) -> Optional[DirectResult]:
        """
        Storage trigger: turn a prompt file under the incoming prefix into an image.

        Returns:
            None for objects outside the incoming prefix
        """
        if not name.startswith(self.incoming_prefix):
            return None

        try:
            data = self.blob_store.download(name)
            incoming = parse_incoming(
                name,
                content_type,
                data,
                now_ms=self.clock_ms(),
                prefix=self.incoming_prefix,
                default_folder=self.output_folder,
            )
            result = self.generate_direct(
                prompt=incoming.prompt,
                size=incoming.size,
                folder=incoming.folder,
                filename=incoming.filename,
            )
        except Exception as e:
            logger.error(f"Incoming prompt {name} failed: {error_message(e)}")
            raise

        logger.info(f"Generated image from {name} to {result.path}")
        return result

    def _reference_url(self, record: StagingProduct) -> Optional[str]:
        if not record.source_path:
            return None
        store = self.blob_store.for_bucket(record.source_bucket) if record.source_bucket else self.blob_store
        try:
            return store.reference_url(record.source_path, self.reference_ttl)
        except (StorageError, NotFoundError) as e:
            raise StorageError(f"build reference URL failed: {e}") from e

    def process_record(self, record_id: str, override_prompt: Optional[str] = None) -> Optional[StagingProduct]:
        """
        Run one generation attempt for a queued record.

        Returns:
            The record after the attempt, or None when the claim was lost

        Raises:
            NotFoundError: If the record does not exist
            Exception: A mid-job failure, only when swallow_errors is False
        """
        if not self.records.try_claim(record_id):
            return None

        try:
            record = self.records.get(record_id)
            reference_url = self._reference_url(record)
            prompt = self.resolve_prompt(record, override_prompt, reference_url)
            self.records.mark_generating(record_id, prompt)

            width, height = parse_size(record.size, default=self.default_size)
            data = self.client.generate(prompt, width, height)

            path = self.record_output_path(record_id)
            stored = self.blob_store.put(path, data, PNG)
            self.records.complete(record_id, self.blob_store.bucket_name, path, stored.url)
        except Exception as e:
            logger.error(f"Generation for product {record_id} failed: {error_message(e)}", exc_info=True)
            self.records.fail(record_id, error_message(e))
            if not self.swallow_errors:
                raise

        try:
            return self.records.get(record_id)
        except NotFoundError:
            logger.error(f"Product {record_id} vanished during generation")
            return None
