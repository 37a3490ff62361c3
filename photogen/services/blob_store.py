"""Blob storage for generated images.

Objects are addressed by path inside one bucket. Readable URLs come in two
flavours: Firebase download-token URLs (the token lives in object metadata)
and signed URLs with an explicit expiry.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import parse_qs, quote, urlparse

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from photogen.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

TOKEN_METADATA_KEY = "firebaseStorageDownloadTokens"
TOKEN_URL_TEMPLATE = "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{path}?alt=media&token={token}"

# V4 signing caps expiry at seven days; longer lifetimes need V2 signing
V4_MAX_TTL = timedelta(days=7)

URL_STRATEGIES = ("token", "signed")


@dataclass
class StoredBlob:
    """Location of a written object."""

    uri: str  # gs://bucket/path
    url: str  # externally resolvable URL


class BlobStore(ABC):
    """Path-addressed byte storage with readable URL issuance."""

    bucket_name: str

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: str) -> StoredBlob:
        """Write bytes and return the stored location and a readable URL."""
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def refresh_url(self, path: str) -> str:
        """Issue a fresh long-lived readable URL for an existing object."""
        ...

    @abstractmethod
    def reference_url(self, path: str, ttl: timedelta) -> str:
        """Short-lived readable URL for an input asset, without modifying it."""
        ...

    @abstractmethod
    def download(self, path: str) -> bytes:
        ...

    @abstractmethod
    def for_bucket(self, bucket_name: str) -> "BlobStore":
        """Store handle on another bucket with the same credentials and URL policy."""
        ...

    def uri_for(self, path: str) -> str:
        return f"gs://{self.bucket_name}/{path}"


def normalize_bucket_name(name: Optional[str]) -> str:
    """Map Firebase '<project>.firebasestorage.app' names to the '.appspot.com' bucket."""
    return (name or "").replace(".firebasestorage.app", ".appspot.com")


def token_url(bucket_name: str, path: str, token: str) -> str:
    return TOKEN_URL_TEMPLATE.format(bucket=bucket_name, path=quote(path, safe=""), token=token)


def _signed_url_expiry(params: dict) -> Optional[datetime]:
    """Expiry encoded in a V4 or V2 signed URL, if any."""
    if "X-Goog-Date" in params and "X-Goog-Expires" in params:
        try:
            signed_at = datetime.strptime(params["X-Goog-Date"][0], "%Y%m%dT%H%M%SZ")
            return signed_at.replace(tzinfo=timezone.utc) + timedelta(seconds=int(params["X-Goog-Expires"][0]))
        except ValueError:
            return None
    if "Expires" in params:
        try:
            return datetime.fromtimestamp(int(params["Expires"][0]), tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    return None


def url_needs_refresh(url: Optional[str], now: Optional[datetime] = None) -> bool:
    """
    Decide whether a stored output URL must be reissued.

    A URL needs refreshing when it is missing, is not an absolute http(s)
    URL, carries no validity marker (download token or signature), or is a
    signed URL whose expiry has passed.
    """
    if not url:
        return True

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return True

    params = parse_qs(parsed.query)
    if params.get("token", [""])[0]:
        return False

    if not (params.get("X-Goog-Signature") or params.get("Signature")):
        return True

    expiry = _signed_url_expiry(params)
    if expiry is None:
        return True

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return expiry <= now


class GCSBlobStore(BlobStore):
    """Google Cloud Storage backed blob store."""

    def __init__(
        self,
        client: storage.Client,
        bucket_name: str,
        url_strategy: str = "token",
        url_ttl: timedelta = timedelta(days=1825),
    ):
        if url_strategy not in URL_STRATEGIES:
            raise ValueError(f"Unknown URL strategy '{url_strategy}'. Valid: {list(URL_STRATEGIES)}")

        self.client = client
        self.bucket_name = normalize_bucket_name(bucket_name)
        self.url_strategy = url_strategy
        self.url_ttl = url_ttl
        self._bucket = client.bucket(self.bucket_name)

    def _signed_url(self, blob, ttl: timedelta) -> str:
        version = "v4" if ttl <= V4_MAX_TTL else "v2"
        return blob.generate_signed_url(version=version, expiration=ttl, method="GET")

    def put(self, path: str, data: bytes, content_type: str = "image/png") -> StoredBlob:
        blob = self._bucket.blob(path)
        token = None
        if self.url_strategy == "token":
            token = str(uuid.uuid4())
            blob.metadata = {TOKEN_METADATA_KEY: token}

        try:
            blob.upload_from_string(data, content_type=content_type)
            if token:
                url = token_url(self.bucket_name, path, token)
            else:
                url = self._signed_url(blob, self.url_ttl)
        except (GoogleAPIError, GoogleAuthError) as e:
            raise StorageError(f"write {self.uri_for(path)} failed: {e}") from e

        logger.info(f"Stored {len(data)} bytes at {self.uri_for(path)}")
        return StoredBlob(uri=self.uri_for(path), url=url)

    def exists(self, path: str) -> bool:
        try:
            return self._bucket.blob(path).exists()
        except (GoogleAPIError, GoogleAuthError) as e:
            raise StorageError(f"existence check for {self.uri_for(path)} failed: {e}") from e

    def for_bucket(self, bucket_name: str) -> "GCSBlobStore":
        if normalize_bucket_name(bucket_name) == self.bucket_name:
            return self
        return GCSBlobStore(self.client, bucket_name, self.url_strategy, self.url_ttl)

    @staticmethod
    def _existing_token(blob) -> str:
        return ((blob.metadata or {}).get(TOKEN_METADATA_KEY) or "").split(",")[0]

    def refresh_url(self, path: str) -> str:
        """
        Reissue a readable URL for an object.

        With the token strategy the existing download token is reused, and a
        new one is minted and patched in when the object has none.
        """
        blob = self._bucket.blob(path)
        try:
            blob.reload()
            if self.url_strategy == "signed":
                return self._signed_url(blob, self.url_ttl)

            token = self._existing_token(blob)
            if not token:
                metadata = dict(blob.metadata or {})
                token = str(uuid.uuid4())
                metadata[TOKEN_METADATA_KEY] = token
                blob.metadata = metadata
                blob.patch()
                logger.info(f"Minted download token for {self.uri_for(path)}")
            return token_url(self.bucket_name, path, token)
        except NotFound as e:
            raise NotFoundError(f"{self.uri_for(path)} does not exist") from e
        except (GoogleAPIError, GoogleAuthError) as e:
            raise StorageError(f"URL issuance for {self.uri_for(path)} failed: {e}") from e

    def reference_url(self, path: str, ttl: timedelta) -> str:
        """Download-token URL when the object has one, otherwise a signed URL valid for ttl."""
        blob = self._bucket.blob(path)
        try:
            blob.reload()
            token = self._existing_token(blob)
            if token:
                logger.info(f"Using download token URL for {self.uri_for(path)}")
                return token_url(self.bucket_name, path, token)
            logger.warning(f"No download token for {self.uri_for(path)}, signing a URL")
            return self._signed_url(blob, ttl)
        except NotFound as e:
            raise NotFoundError(f"{self.uri_for(path)} does not exist") from e
        except (GoogleAPIError, GoogleAuthError) as e:
            raise StorageError(f"URL issuance for {self.uri_for(path)} failed: {e}") from e

    def download(self, path: str) -> bytes:
        try:
            return self._bucket.blob(path).download_as_bytes()
        except NotFound as e:
            raise NotFoundError(f"{self.uri_for(path)} does not exist") from e
        except (GoogleAPIError, GoogleAuthError) as e:
            raise StorageError(f"read {self.uri_for(path)} failed: {e}") from e
