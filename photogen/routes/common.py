"""Shared route helpers."""

from fastapi import HTTPException

from photogen.errors import (
    ConflictError,
    GenerationError,
    NotFoundError,
    PhotogenError,
    StorageError,
    ValidationError,
)


def to_http_exception(error: PhotogenError) -> HTTPException:
    """Map the pipeline error taxonomy onto HTTP status codes."""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConflictError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, (GenerationError, StorageError)):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
