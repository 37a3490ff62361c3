"""Pytest configuration and fixtures."""

import base64
import io
import itertools
import uuid
from datetime import datetime, timedelta

import httpx
import pytest
from PIL import Image
from sqlalchemy.orm import sessionmaker

from photogen import models  # noqa: F401
from photogen.database import Base, make_engine
from photogen.errors import NotFoundError
from photogen.services.blob_store import BlobStore, StoredBlob, token_url
from photogen.services.image_client import ImageGenerationClient
from photogen.services.job_records import JobRecordStore
from photogen.services.pipeline import GenerationPipeline


def png_bytes(width=64, height=64, color=(200, 30, 30)):
    """Encode a solid-colour PNG."""
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, format="PNG")
    return out.getvalue()


def b64_png(width=64, height=64, color=(200, 30, 30)):
    return base64.b64encode(png_bytes(width, height, color)).decode()


class FakeBlobStore(BlobStore):
    """In-memory blob store issuing download-token URLs."""

    def __init__(self, bucket_name="test-bucket.appspot.com"):
        self.bucket_name = bucket_name
        self.objects = {}
        self.tokens = {}
        self.calls = []
        self.fail_put = None

    def put(self, path, data, content_type):
        self.calls.append(("put", path))
        if self.fail_put:
            raise self.fail_put
        self.objects[path] = (data, content_type)
        self.tokens[path] = uuid.uuid4().hex
        return StoredBlob(uri=self.uri_for(path), url=token_url(self.bucket_name, path, self.tokens[path]))

    def exists(self, path):
        self.calls.append(("exists", path))
        return path in self.objects

    def refresh_url(self, path):
        self.calls.append(("refresh_url", path))
        if path not in self.objects:
            raise NotFoundError(path)
        token = self.tokens.setdefault(path, uuid.uuid4().hex)
        return token_url(self.bucket_name, path, token)

    def reference_url(self, path, ttl):
        self.calls.append(("reference_url", path))
        if path not in self.objects:
            raise NotFoundError(f"{self.uri_for(path)} does not exist")
        return f"https://storage.example.com/{self.bucket_name}/{path}?X-Goog-Signature=abc"

    def download(self, path):
        self.calls.append(("download", path))
        if path not in self.objects:
            raise NotFoundError(path)
        return self.objects[path][0]

    def for_bucket(self, bucket_name):
        return self


class TickingClock:
    """Naive UTC clock advancing one second per call."""

    def __init__(self, start=datetime(2026, 1, 1, 12, 0, 0)):
        self._ticks = itertools.count()
        self.start = start

    def __call__(self):
        return self.start + timedelta(seconds=next(self._ticks))


def image_api(handler):
    """ImageGenerationClient backed by an httpx mock transport."""
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return ImageGenerationClient(
        api_key="test-key",
        base_url="https://images.test/v1",
        model="gpt-image-1",
        http_client=http,
    )


def ok_handler(request):
    if request.url.path.endswith("/images/generations"):
        return httpx.Response(200, json={"data": [{"b64_json": b64_png(1024, 1024)}]})
    return httpx.Response(404)


def empty_handler(request):
    return httpx.Response(200, json={"data": [{}]})


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """File-backed SQLite database shared by every thread of a test."""
    engine = make_engine(f"sqlite:///{tmp_path / 'photogen.db'}")
    Base.metadata.create_all(engine)

    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield factory

    engine.dispose()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def records(session_factory, clock):
    return JobRecordStore(session_factory, clock=clock)


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def make_pipeline(records, blob_store):
    def _make(handler=ok_handler, **kwargs):
        kwargs.setdefault("clock_ms", lambda: 1700000000000)
        return GenerationPipeline(records, image_api(handler), blob_store, **kwargs)

    return _make
