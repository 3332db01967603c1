"""Heuristic garment focusing: find a tight crop around the garment silhouette.

A pixel is "active" when it is neither close to the estimated backdrop color
nor skin-toned. Rows and columns are scored by their fraction of active
pixels, and the crop spans the first/last rows and columns above a threshold.
"""

from __future__ import annotations

import logging

import numpy as np

from garment_lens.vision.colors import distance_to, estimate_background_color, skin_tone_mask
from garment_lens.vision.types import Bounds, PixelBuffer

LOG = logging.getLogger(__name__)

MIN_SIDE = 60
# Pixels below this alpha do not count towards row/column totals.
ACTIVITY_MIN_ALPHA = 64
BACKGROUND_DISTANCE_THRESHOLD = 48.0

ROW_ACTIVITY_THRESHOLD = 0.28
ROW_SCAN_START = 0.12
ROW_SCAN_END_MARGIN = 0.05
MIN_ROW_SPAN = 0.25

COLUMN_ACTIVITY_THRESHOLD = 0.18
COLUMN_SCAN_MARGIN = 0.05
MIN_COLUMN_SPAN = 0.22

CROP_MARGIN = 0.06
MIN_CROP_WIDTH = 0.40
MIN_CROP_HEIGHT = 0.30
MAX_CROP_AREA = 0.92


def activity_profiles(buffer: PixelBuffer) -> tuple[np.ndarray, np.ndarray]:
    """Per-row and per-column activity ratios (0 where a line has no opaque pixel)."""
    px = buffer.pixels()
    r, g, b, a = px[..., 0], px[..., 1], px[..., 2], px[..., 3]
    opaque = a >= ACTIVITY_MIN_ALPHA

    active = opaque & ~skin_tone_mask(r, g, b)
    background = estimate_background_color(buffer)
    if background is not None:
        active &= distance_to(r, g, b, background) >= BACKGROUND_DISTANCE_THRESHOLD

    row_totals = opaque.sum(axis=1)
    col_totals = opaque.sum(axis=0)
    row_scores = active.sum(axis=1).astype(np.float64)
    col_scores = active.sum(axis=0).astype(np.float64)
    rows = np.divide(row_scores, row_totals, out=np.zeros_like(row_scores), where=row_totals > 0)
    cols = np.divide(col_scores, col_totals, out=np.zeros_like(col_scores), where=col_totals > 0)
    return rows, cols


def _first_last(scores: np.ndarray, lo: int, hi: int, threshold: float) -> tuple[int, int] | None:
    """First and last index in `[lo, hi)` whose score reaches `threshold`."""
    if hi <= lo:
        return None
    hits = np.flatnonzero(scores[lo:hi] >= threshold)
    if hits.size == 0:
        return None
    return lo + int(hits[0]), lo + int(hits[-1])


def focus_garment(buffer: PixelBuffer) -> Bounds | None:
    """Estimate a crop around the garment, or None to keep the full buffer.

    None is a no-op signal, not an error: it is returned for buffers smaller
    than 60x60, when no row/column is active enough, and when the crop would
    be implausibly tight or barely smaller than the buffer.
    """
    w, h = buffer.width, buffer.height
    if w < MIN_SIDE or h < MIN_SIDE:
        return None

    rows, cols = activity_profiles(buffer)

    vertical = _first_last(
        rows,
        int(h * ROW_SCAN_START),
        h - int(h * ROW_SCAN_END_MARGIN),
        ROW_ACTIVITY_THRESHOLD,
    )
    if vertical is None or (vertical[1] - vertical[0]) < h * MIN_ROW_SPAN:
        LOG.debug("Focus rejected: vertical span %s in %sx%s", vertical, w, h)
        return None
    top, bottom = vertical

    horizontal = _first_last(
        cols,
        int(w * COLUMN_SCAN_MARGIN),
        w - int(w * COLUMN_SCAN_MARGIN),
        COLUMN_ACTIVITY_THRESHOLD,
    )
    if horizontal is None or (horizontal[1] - horizontal[0]) < w * MIN_COLUMN_SPAN:
        LOG.debug("Focus rejected: horizontal span %s in %sx%s", horizontal, w, h)
        return None
    left, right = horizontal

    margin_x = int(w * CROP_MARGIN)
    margin_y = int(h * CROP_MARGIN)
    crop_x = min(max(left - margin_x, 0), w - 1)
    crop_y = min(max(top - margin_y, 0), h - 1)
    crop_w = min(w - crop_x, right - left + 1 + margin_x * 2)
    crop_h = min(h - crop_y, bottom - top + 1 + margin_y * 2)

    if crop_w < w * MIN_CROP_WIDTH or crop_h < h * MIN_CROP_HEIGHT:
        LOG.debug("Focus rejected: crop %sx%s too tight in %sx%s", crop_w, crop_h, w, h)
        return None
    if crop_w * crop_h >= w * h * MAX_CROP_AREA:
        LOG.debug("Focus skipped: crop %sx%s covers most of %sx%s", crop_w, crop_h, w, h)
        return None
    return Bounds(x=crop_x, y=crop_y, width=crop_w, height=crop_h)
