"""Geometry helpers: detector boxes to safe pixel crops."""

from __future__ import annotations

import math
import sys

from .types import Bounds, DetectionBox

DEFAULT_PADDING_RATIO = 0.08
MIN_PADDING_PX = 4
MIN_CROP_PX = 8

# Synthesized when the detector finds nothing, so every photo has a region to analyze.
FALLBACK_DETECTION = DetectionBox(x=0.02, y=0.05, width=0.96, height=0.9, label="Garment", confidence=0.5)


def _round_half_up(v: float) -> int:
    """Round halves towards +inf; NaN maps to 0 and infinities saturate."""
    if math.isnan(v):
        return 0
    if math.isinf(v):
        return sys.maxsize if v > 0 else -sys.maxsize
    return math.floor(v + 0.5)


def _clamp(v: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, v))


def _fit_axis(start: int, size: int, dim: int) -> tuple[int, int]:
    """Shift/shrink a span so that it lies inside `[0, dim)`."""
    size = min(size, dim)
    start = _clamp(start, 0, dim - size)
    return start, size


def normalize_box(
    box: DetectionBox,
    image_w: int,
    image_h: int,
    padding_ratio: float = DEFAULT_PADDING_RATIO,
) -> Bounds:
    """Convert a fractional detector box into a padded, in-bounds pixel rectangle.

    Steps:
      1) Round to pixels and clamp the unpadded box inside the image.
      2) Pad each axis by max(4, round(size * padding_ratio)).
      3) Re-clamp the padded edges, then floor the size at 8px.

    The result always lies inside the image. On images narrower (or shorter)
    than 8px the size is capped at the image dimension instead.
    """
    image_w = max(1, int(image_w))
    image_h = max(1, int(image_h))
    ratio = padding_ratio if math.isfinite(padding_ratio) else DEFAULT_PADDING_RATIO

    raw_left = _clamp(_round_half_up(box.x * image_w), 0, image_w - 1)
    raw_top = _clamp(_round_half_up(box.y * image_h), 0, image_h - 1)
    raw_w = _clamp(_round_half_up(box.width * image_w), 1, image_w - raw_left)
    raw_h = _clamp(_round_half_up(box.height * image_h), 1, image_h - raw_top)

    pad_x = max(MIN_PADDING_PX, _round_half_up(raw_w * ratio))
    pad_y = max(MIN_PADDING_PX, _round_half_up(raw_h * ratio))

    left = _clamp(raw_left - pad_x, 0, image_w - 1)
    top = _clamp(raw_top - pad_y, 0, image_h - 1)
    right = _clamp(raw_left + raw_w + pad_x, left + 1, image_w)
    bottom = _clamp(raw_top + raw_h + pad_y, top + 1, image_h)

    x, w = _fit_axis(left, max(MIN_CROP_PX, right - left), image_w)
    y, h = _fit_axis(top, max(MIN_CROP_PX, bottom - top), image_h)
    return Bounds(x=x, y=y, width=w, height=h)
