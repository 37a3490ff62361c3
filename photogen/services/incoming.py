"""Prompt files dropped into the bucket's incoming prefix.

incoming/<name>.txt   -> the file text is the prompt
incoming/<name>.json  -> {"prompt": "...", "size": "1024x1536", "folder": "generated", "filename": "abc.png"}
"""

import json
import posixpath
from dataclasses import dataclass
from typing import Optional

from photogen.errors import ValidationError


@dataclass
class IncomingPrompt:
    prompt: str
    size: Optional[str]
    folder: str
    filename: str


def strip_slashes(value: str) -> str:
    return value.strip().strip("/")


def ensure_png(filename: str) -> str:
    filename = filename.lstrip("/")
    return filename if filename.endswith(".png") else filename + ".png"


def parse_incoming(
    name: str,
    content_type: Optional[str],
    data: bytes,
    now_ms: int,
    prefix: str = "incoming/",
    default_folder: str = "generated",
) -> IncomingPrompt:
    """
    Parse an incoming prompt file.

    Args:
        name: Object name, e.g. 'incoming/shirt.json'
        content_type: Object content type
        data: Object bytes
        now_ms: Millisecond timestamp used in the default filename
        prefix: Incoming prefix stripped from the name
        default_folder: Output folder when the file names none

    Raises:
        ValidationError: If the file is not valid UTF-8/JSON or has no prompt
    """
    stem = posixpath.splitext(name[len(prefix):] if name.startswith(prefix) else name)[0]
    size = None
    folder = default_folder
    filename = f"{stem}_{now_ms}.png"

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError(f"Incoming file {name} is not UTF-8 text")

    if "json" in (content_type or ""):
        try:
            body = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Incoming file {name} is not valid JSON: {e}")
        if not isinstance(body, dict):
            raise ValidationError(f"Incoming file {name} must contain a JSON object")

        prompt = str(body.get("prompt") or "").strip()
        if body.get("size"):
            size = str(body["size"])
        if body.get("folder"):
            folder = strip_slashes(str(body["folder"]))
        if body.get("filename"):
            filename = str(body["filename"])
    else:
        prompt = text.strip()

    if not prompt:
        raise ValidationError("No prompt found in incoming file")

    return IncomingPrompt(prompt=prompt, size=size, folder=folder, filename=ensure_png(filename))
