"""Direct generation and storage trigger schemas."""

from typing import Optional

from pydantic import BaseModel


class GenerateRequest(BaseModel):
    """Schema for a direct generation call."""

    prompt: Optional[str] = None
    size: Optional[str] = None
    output_key: Optional[str] = None
    folder: Optional[str] = None
    filename: Optional[str] = None


class GenerateResponse(BaseModel):
    """Response after a direct generation call."""

    ok: bool = True
    url: str
    path: str
    uri: str
    size: str


class StorageEvent(BaseModel):
    """Object-finalized notification from the blob store."""

    name: str
    content_type: Optional[str] = None


class StorageEventResponse(BaseModel):
    """Outcome of a storage trigger delivery."""

    handled: bool
    result: Optional[GenerateResponse] = None
