"""Output size parsing, render size selection and letterbox fitting."""

import io
import re
from typing import Optional, Tuple

from PIL import Image, ImageOps

DEFAULT_SIZE = (1024, 1536)

# Square sides the generation model renders reliably
RENDER_SIDES = (1024, 1536, 2048)

FILL_COLOR = (255, 255, 255)

# Largest output side accepted; bigger requests fall back to the default
MAX_SIDE = 4096

_SIZE_RE = re.compile(r"^(\d+)\s*x\s*(\d+)$")


def parse_size(
    value: Optional[str],
    default: Tuple[int, int] = DEFAULT_SIZE,
    max_side: int = MAX_SIDE,
) -> Tuple[int, int]:
    """Parse '<width>x<height>'; unparsable or oversized input yields the default."""
    match = _SIZE_RE.match(str(value or "").strip().lower())
    if not match:
        return default
    width, height = max(1, int(match.group(1))), max(1, int(match.group(2)))
    if width > max_side or height > max_side:
        return default
    return width, height


def format_size(width: int, height: int) -> str:
    return f"{width}x{height}"


def pick_render_size(width: int, height: int) -> str:
    """Closest supported square render size for the larger requested side."""
    side = max(width, height, RENDER_SIDES[0])
    best = RENDER_SIDES[0]
    for candidate in RENDER_SIDES[1:]:
        if abs(candidate - side) < abs(best - side):
            best = candidate
    return format_size(best, best)


def fit_to_size(data: bytes, width: int, height: int) -> bytes:
    """
    Fit an image inside width x height without distortion.

    The image is scaled to fit, centered and padded with a white fill, then
    encoded as PNG.

    Raises:
        OSError: If the bytes are not a decodable image
    """
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        if img.mode in ("RGBA", "LA", "P"):
            rgba = img.convert("RGBA")
            canvas = Image.new("RGB", rgba.size, FILL_COLOR)
            canvas.paste(rgba, mask=rgba.split()[-1])
            source = canvas
        else:
            source = img.convert("RGB")

    fitted = ImageOps.pad(source, (width, height), method=Image.LANCZOS, color=FILL_COLOR)

    out = io.BytesIO()
    fitted.save(out, format="PNG")
    return out.getvalue()
