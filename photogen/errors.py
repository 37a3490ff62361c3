"""Error taxonomy for the generation pipeline.

Validation errors are raised before any external call or state mutation.
Generation, fetch and storage errors are raised mid-job and are written into
the product record by the pipeline. Not-found errors cover both records and
stored artifacts.
"""


class PhotogenError(Exception):
    """Base class for expected runtime failures."""


class ValidationError(PhotogenError):
    """Invocation input is missing or malformed (prompt, path, output key)."""


class GenerationError(PhotogenError):
    """The generation API returned no usable image or failed at API level."""


class FetchError(GenerationError):
    """Fetching an image reference returned by the generation API failed."""


class StorageError(PhotogenError):
    """Write, read or URL signing failed against the blob store."""


class NotFoundError(PhotogenError):
    """A referenced record or stored artifact does not exist."""


class ConflictError(PhotogenError):
    """A record with the same id already exists."""
