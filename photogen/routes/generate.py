"""Direct generation and storage trigger routes."""

import logging

from fastapi import APIRouter, Depends

from photogen.errors import PhotogenError
from photogen.routes.common import to_http_exception
from photogen.schemas.generate import (
    GenerateRequest,
    GenerateResponse,
    StorageEvent,
    StorageEventResponse,
)
from photogen.services.factory import get_pipeline
from photogen.services.pipeline import GenerationPipeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generate"])


@router.post("/generate", response_model=GenerateResponse)
def generate_image(
    data: GenerateRequest,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    """Generate an image from a prompt and store it under the output folder."""
    try:
        result = pipeline.generate_direct(
            prompt=data.prompt,
            size=data.size,
            output_key=data.output_key,
            folder=data.folder,
            filename=data.filename,
        )
    except PhotogenError as e:
        logger.error(f"generate_image error: {e}")
        raise to_http_exception(e)

    return GenerateResponse(url=result.url, path=result.path, uri=result.uri, size=result.size)


@router.post("/triggers/storage", response_model=StorageEventResponse)
def storage_trigger(
    event: StorageEvent,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    """Object-finalized delivery; prompt files under the incoming prefix are turned into images."""
    try:
        result = pipeline.handle_incoming(event.name, event.content_type)
    except PhotogenError as e:
        raise to_http_exception(e)

    if result is None:
        return StorageEventResponse(handled=False)

    return StorageEventResponse(
        handled=True,
        result=GenerateResponse(url=result.url, path=result.path, uri=result.uri, size=result.size),
    )
