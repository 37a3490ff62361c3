"""Tests for the image generation client."""

import io
import json

import httpx
import pytest
from PIL import Image

from conftest import b64_png, image_api, png_bytes
from photogen.errors import FetchError, GenerationError


def _size_of(data):
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def test_generate_requests_square_render_size():
    """Test the request payload and the letterboxed output size."""
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"data": [{"b64_json": b64_png(1536, 1536)}]})

    data = image_api(handler).generate("a mug", 1024, 1536)

    assert seen["body"]["size"] == "1536x1536"
    assert seen["body"]["prompt"] == "a mug"
    assert seen["body"]["n"] == 1
    assert seen["auth"] == "Bearer test-key"
    assert _size_of(data) == (1024, 1536)


def test_generate_fetches_url_reference():
    """Test a URL result is fetched and decoded."""

    def handler(request):
        if request.url.path.endswith("/images/generations"):
            return httpx.Response(200, json={"data": [{"url": "https://cdn.test/out.png"}]})
        return httpx.Response(200, content=png_bytes(32, 32))

    data = image_api(handler).generate("a mug", 64, 64)

    assert _size_of(data) == (64, 64)


def test_generate_reference_fetch_failure():
    """Test a failing reference fetch raises FetchError."""

    def handler(request):
        if request.url.path.endswith("/images/generations"):
            return httpx.Response(200, json={"data": [{"url": "https://cdn.test/out.png"}]})
        return httpx.Response(403)

    with pytest.raises(FetchError, match="fetch 403"):
        image_api(handler).generate("a mug", 64, 64)


def test_generate_without_payload():
    """Test a response without image data raises GenerationError."""

    def handler(request):
        return httpx.Response(200, json={"data": []})

    with pytest.raises(GenerationError, match="No image returned"):
        image_api(handler).generate("a mug", 64, 64)


def test_generate_malformed_data_field():
    """Test a non-list data field is treated as no image."""

    def handler(request):
        return httpx.Response(200, json={"data": {"b64_json": b64_png()}})

    with pytest.raises(GenerationError, match="No image returned"):
        image_api(handler).generate("a mug", 64, 64)


def test_generate_propagates_api_error_message():
    """Test the API's structured error message is carried through."""

    def handler(request):
        return httpx.Response(400, json={"error": {"message": "Billing hard limit has been reached"}})

    with pytest.raises(GenerationError, match="Billing hard limit"):
        image_api(handler).generate("a mug", 64, 64)


def test_generate_transport_error():
    """Test transport failures raise GenerationError."""

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GenerationError, match="connection refused"):
        image_api(handler).generate("a mug", 64, 64)


def test_generate_undecodable_image():
    """Test garbage image bytes raise GenerationError."""

    def handler(request):
        return httpx.Response(200, json={"data": [{"b64_json": "bm90IGFuIGltYWdl"}]})

    with pytest.raises(GenerationError, match="could not be decoded"):
        image_api(handler).generate("a mug", 64, 64)
