"""Tests for incoming prompt file parsing."""

import json

import pytest

from photogen.errors import ValidationError
from photogen.services.incoming import parse_incoming


def test_text_prompt_file():
    """Test a text file body becomes the prompt with a timestamped filename."""
    incoming = parse_incoming("incoming/mug.txt", "text/plain", b"  a blue mug \n", now_ms=123)

    assert incoming.prompt == "a blue mug"
    assert incoming.size is None
    assert incoming.folder == "generated"
    assert incoming.filename == "mug_123.png"


def test_json_prompt_file():
    """Test JSON fields override the defaults."""
    body = json.dumps({"prompt": "red sneaker", "size": "800x800", "folder": "/catalog/", "filename": "sneaker"})

    incoming = parse_incoming("incoming/s.json", "application/json", body.encode(), now_ms=1)

    assert incoming.prompt == "red sneaker"
    assert incoming.size == "800x800"
    assert incoming.folder == "catalog"
    assert incoming.filename == "sneaker.png"


def test_empty_prompt_rejected():
    """Test files without a prompt are rejected."""
    with pytest.raises(ValidationError, match="No prompt"):
        parse_incoming("incoming/a.txt", "text/plain", b"   ", now_ms=1)

    with pytest.raises(ValidationError, match="No prompt"):
        parse_incoming("incoming/a.json", "application/json", b'{"size": "10x10"}', now_ms=1)


def test_invalid_json_rejected():
    """Test malformed JSON is rejected."""
    with pytest.raises(ValidationError, match="not valid JSON"):
        parse_incoming("incoming/a.json", "application/json", b"{prompt:", now_ms=1)
