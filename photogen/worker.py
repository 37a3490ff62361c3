"""Polling worker: delivers queued product records to the generation pipeline.

Stands in for a record-created trigger. A record that is also delivered
through POST /products/{id}/events is generated once; the claim decides.
"""

import logging
import threading
import time
from typing import Optional

from sqlalchemy import inspect

from photogen.config import settings
from photogen.database import engine
from photogen.errors import NotFoundError
from photogen.services.factory import build_image_client, build_pipeline, build_records, get_blob_store
from photogen.services.pipeline import GenerationPipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


class Worker:
    """Delivers queued (and, under a staleness policy, stale in-flight) products in batches."""

    def __init__(self, pipeline: Optional[GenerationPipeline] = None):
        self.pipeline = pipeline or build_pipeline(build_records(), build_image_client(), get_blob_store())
        self.poll_interval = settings.WORKER_POLL_INTERVAL
        self.batch_size = settings.WORKER_BATCH_SIZE

    def wait_for_database(self, stop_event: threading.Event, max_wait: int = 60) -> bool:
        """Block until staging_products exists, max_wait elapses or a stop is requested."""
        deadline = time.monotonic() + max_wait
        while time.monotonic() < deadline and not stop_event.is_set():
            try:
                if inspect(engine).has_table("staging_products"):
                    return True
                logger.info("staging_products missing, waiting for migrations")
            except Exception as e:
                logger.error(f"Database not reachable: {e}")
            stop_event.wait(2)

        logger.error(f"Database not ready after {max_wait}s, polling anyway")
        return False

    def run_once(self) -> int:
        """
        Deliver one batch of queued products.

        Returns:
            Number of products this worker claimed
        """
        claimed = 0
        for record_id in self.pipeline.records.list_claimable(self.batch_size):
            try:
                if self.pipeline.process_record(record_id) is not None:
                    claimed += 1
            except NotFoundError:
                logger.warning(f"Product {record_id} deleted before delivery")
            except Exception as e:
                logger.error(f"Delivery of product {record_id} failed: {e}", exc_info=True)
        return claimed

    def run(self, stop_event: Optional[threading.Event] = None):
        """Poll until stop_event is set; an empty batch waits poll_interval seconds."""
        stop_event = stop_event or threading.Event()
        logger.info(f"Worker polling every {self.poll_interval}s, batch size {self.batch_size}")
        self.wait_for_database(stop_event)

        while not stop_event.is_set():
            try:
                claimed = self.run_once()
            except Exception as e:
                logger.error(f"Worker poll failed: {e}", exc_info=True)
                claimed = 0
            if not claimed:
                stop_event.wait(self.poll_interval)

        logger.info("Worker stopped")


def worker_loop(stop_event=None):
    """Thread target used by the app."""
    Worker().run(stop_event=stop_event)


def main():
    """Entry point for a standalone worker process."""
    try:
        Worker().run()
    except KeyboardInterrupt:
        logger.info("Worker interrupted")


if __name__ == "__main__":
    main()
