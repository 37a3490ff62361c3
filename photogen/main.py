"""FastAPI application: product photo generation service."""

import logging
import os
import threading

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import inspect

from photogen import __version__
from photogen.config import settings
from photogen.database import engine
from photogen.routes import generate, products

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

ALEMBIC_INI = os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini")

app = FastAPI(
    title="Photogen",
    description="Product photo generation with job status tracking",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(generate.router)
app.include_router(products.router)

_worker = {"thread": None, "stop": threading.Event()}


def run_migrations():
    """Upgrade to head unless staging_products already exists."""
    try:
        if inspect(engine).has_table("staging_products"):
            logger.info("staging_products exists, skipping migrations")
            return

        from alembic import command
        from alembic.config import Config

        logger.info(f"Running migrations from {ALEMBIC_INI}")
        command.upgrade(Config(ALEMBIC_INI), "head")
        logger.info("Migrations complete")
    except Exception as e:
        logger.error(f"Migration check failed, continuing startup: {e}")


def start_worker():
    """Start the polling worker in a daemon thread."""
    from photogen.worker import worker_loop

    stop_event = _worker["stop"]
    stop_event.clear()
    thread = threading.Thread(target=worker_loop, args=(stop_event,), name="photogen-worker", daemon=True)
    thread.start()
    _worker["thread"] = thread
    logger.info("Background worker started")


def stop_worker(timeout: float = 10):
    thread = _worker["thread"]
    _worker["stop"].set()
    if thread and thread.is_alive():
        thread.join(timeout=timeout)
        logger.info("Background worker stopped")
    _worker["thread"] = None


def worker_running() -> bool:
    thread = _worker["thread"]
    return bool(thread and thread.is_alive())


@app.on_event("startup")
async def startup_event():
    logger.info("Starting Photogen...")
    run_migrations()
    if settings.WORKER_ENABLED:
        start_worker()
    else:
        logger.info("Background worker disabled (WORKER_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Photogen...")
    stop_worker()


@app.get("/health")
def health():
    """Liveness plus worker state."""
    return {"status": "healthy", "worker": worker_running()}


@app.get("/")
def root():
    return {
        "name": "Photogen",
        "version": __version__,
        "output_folder": settings.OUTPUT_FOLDER,
        "incoming_prefix": settings.INCOMING_PREFIX,
    }
