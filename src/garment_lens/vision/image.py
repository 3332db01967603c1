"""Image I/O and transforms feeding the pixel pipeline."""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
from PIL import Image

from .types import Bounds, PixelBuffer

# Color analysis runs on a downscaled copy; the pipeline thresholds were tuned at this size.
ANALYSIS_MAX_SIDE = 256


def ensure_dir(p: Path) -> None:
    """Create `p` if it doesn't exist."""
    p.mkdir(parents=True, exist_ok=True)


def read_image(path: Path) -> Image.Image:
    """Read an image from disk, keeping transparency (RGBA)."""
    with Image.open(path) as img:
        return img.convert("RGBA")


def decode_image(data: bytes) -> Image.Image:
    """Decode encoded image bytes (JPEG, PNG, ...) to an RGBA image."""
    with Image.open(io.BytesIO(data)) as img:
        return img.convert("RGBA")


def to_pixel_buffer(img: Image.Image) -> PixelBuffer:
    """Convert a Pillow image into an RGBA :class:`PixelBuffer`."""
    arr = np.asarray(img.convert("RGBA"), dtype=np.uint8)
    return PixelBuffer.from_array(arr)


def to_image(buffer: PixelBuffer) -> Image.Image:
    """Convert a :class:`PixelBuffer` back to a Pillow RGBA image."""
    return Image.frombytes("RGBA", (buffer.width, buffer.height), buffer.data)


def resize_for_analysis(img: Image.Image, max_side: int = ANALYSIS_MAX_SIDE) -> Image.Image:
    """Fit `img` inside `max_side` x `max_side`, never enlarging."""
    w, h = img.size
    if max_side <= 0 or (w <= max_side and h <= max_side):
        return img
    scale = min(max_side / w, max_side / h)
    new_w = max(1, round(w * scale))
    new_h = max(1, round(h * scale))
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


def crop_with_bounds(img: Image.Image, b: Bounds) -> Image.Image:
    """Crop an image using pixel bounds that must lie inside the image."""
    w, h = img.size
    if not b.fits(w, h):
        raise ValueError(f"{b} is outside a {w}x{h} image.")
    return img.crop((b.x, b.y, b.right, b.bottom))


def img_to_png_bytes(img: Image.Image) -> bytes:
    """Encode an image as PNG bytes."""
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
