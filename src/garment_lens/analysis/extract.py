"""Dominant-color extraction (legacy histogram and enhanced weighted clustering)."""

from __future__ import annotations

import logging
import math
from enum import StrEnum

import numpy as np

from garment_lens.analysis.focus import focus_garment
from garment_lens.vision.colors import (
    distance_to,
    estimate_background_color,
    hsl_arrays,
    hsl_from_rgb,
    hue_distance,
    rgb_to_hex,
    skin_tone_mask,
)
from garment_lens.vision.types import ColorSwatch, PixelBuffer

LOG = logging.getLogger(__name__)

MAX_SWATCHES = 5
MIN_ALPHA = 128

LEGACY_PIXEL_STRIDE = 10

ENHANCED_PIXEL_STRIDE = 2
TIGHT_RADII = (0.22, 0.22)
SOFT_RADII = (0.34, 0.30)
CENTER_WEIGHT_TIGHT = 16.0
CENTER_WEIGHT_SOFT = 4.0
CENTER_WEIGHT_EDGE = 0.4
MERGE_DISTANCE = 18.0
# Enhanced buckets drop the 3 low bits of each channel (5 bits kept).
QUANT_SHIFT = 3


class ColorAlgorithm(StrEnum):
    """Dominant-color algorithm selector."""

    LEGACY = "legacy"
    ENHANCED = "enhanced"


def _rank(keys: np.ndarray, weights: np.ndarray) -> list[tuple[int, float]]:
    """Sum `weights` per key; return (key, total) pairs in first-seen order."""
    uniq, first, inverse = np.unique(keys, return_index=True, return_inverse=True)
    totals = np.bincount(inverse.ravel(), weights=weights, minlength=uniq.size)
    order = np.argsort(first, kind="stable")
    return [(int(uniq[i]), float(totals[i])) for i in order]


def _top(entries: list[tuple[str, float]]) -> list[tuple[str, float]]:
    # Stable: equal weights keep first-seen order.
    return sorted(entries, key=lambda e: e[1], reverse=True)[:MAX_SWATCHES]


def extract_legacy(buffer: PixelBuffer) -> list[ColorSwatch]:
    """Flat histogram over every 10th pixel, keyed by exact color."""
    flat = buffer.pixels().reshape(-1, 4)
    opaque_total = int(np.count_nonzero(flat[:, 3] >= MIN_ALPHA))
    if opaque_total == 0:
        return []

    sampled = flat[::LEGACY_PIXEL_STRIDE]
    sampled = sampled[sampled[:, 3] >= MIN_ALPHA].astype(np.int64)
    if sampled.shape[0] == 0:
        return []
    keys = (sampled[:, 0] << 16) | (sampled[:, 1] << 8) | sampled[:, 2]
    ranked = _rank(keys, np.ones(keys.shape[0], dtype=np.float64))

    top = _top([(rgb_to_hex(k >> 16, (k >> 8) & 0xFF, k & 0xFF), n) for k, n in ranked])
    per_sample = opaque_total / LEGACY_PIXEL_STRIDE
    return [ColorSwatch(hex=hx, weight=n / per_sample * 100.0) for hx, n in top]


def _ellipse_norm(
    xs: np.ndarray, ys: np.ndarray, cx: float, cy: float, rx: float, ry: float
) -> np.ndarray:
    dx = xs - cx
    dy = ys - cy
    return (dx * dx) / (rx * rx) + (dy * dy) / (ry * ry)


def _lightness_bonus(light: np.ndarray) -> np.ndarray:
    """Boost pastels (0.72..0.9) and shadows (<= 0.55) over mid-tones."""
    return np.where(
        (light >= 0.72) & (light <= 0.9),
        1.0 + (light - 0.7) * 3.0,
        np.where(light <= 0.55, 1.0 + (0.55 - light), 1.0),
    )


def _score_pixels(buffer: PixelBuffer) -> tuple[np.ndarray, np.ndarray]:
    """Apply the exclusion rules to the sampled grid.

    Returns the bucket key (5 bits per channel) and the weight of every
    surviving pixel, in row-major order.
    """
    w, h = buffer.width, buffer.height
    grid = buffer.pixels()[::ENHANCED_PIXEL_STRIDE, ::ENHANCED_PIXEL_STRIDE]
    ys, xs = np.meshgrid(
        np.arange(0, h, ENHANCED_PIXEL_STRIDE, dtype=np.float64),
        np.arange(0, w, ENHANCED_PIXEL_STRIDE, dtype=np.float64),
        indexing="ij",
    )
    r = grid[..., 0].astype(np.int64)
    g = grid[..., 1].astype(np.int64)
    b = grid[..., 2].astype(np.int64)
    keep = grid[..., 3] >= MIN_ALPHA

    cx, cy = w / 2, h / 2
    in_tight = _ellipse_norm(xs, ys, cx, cy, w * TIGHT_RADII[0], h * TIGHT_RADII[1]) <= 1
    in_soft = _ellipse_norm(xs, ys, cx, cy, w * SOFT_RADII[0], h * SOFT_RADII[1]) <= 1

    brightness = (r + g + b) / 3.0
    spread = np.maximum(np.maximum(r, g), b) - np.minimum(np.minimum(r, g), b)
    very_bright = brightness > 244
    very_dark = brightness < 10
    flat_bright = (spread < 12) & (brightness > 215)
    keep &= ~(~in_soft & (very_bright | very_dark | flat_bright))

    background = estimate_background_color(buffer)
    if background is not None:
        dist = distance_to(r, g, b, background)
        keep &= ~(~in_tight & very_bright & (dist < 28))
        keep &= ~(~in_soft & (dist < 72))

    keep &= ~skin_tone_mask(r, g, b)

    hue, sat, light = hsl_arrays(r, g, b)
    tan = (hue >= 25) & (hue <= 50) & (sat < 0.35) & (light > 0.65)
    pale_grey = (sat < 0.12) & (light > 0.6)
    keep &= ~(tan | pale_grey)

    if background is not None:
        bg_hue = hsl_from_rgb(*background)[0]
        keep &= ~(~in_soft & (sat < 0.2) & (hue_distance(hue, bg_hue) < 24))

    center = np.where(in_tight, CENTER_WEIGHT_TIGHT, np.where(in_soft, CENTER_WEIGHT_SOFT, CENTER_WEIGHT_EDGE))
    sat_weight = 1.0 + np.minimum(3.0, sat * 3.5)
    weights = center * sat_weight * _lightness_bonus(light)

    keys = ((r >> QUANT_SHIFT) << 10) | ((g >> QUANT_SHIFT) << 5) | (b >> QUANT_SHIFT)
    return keys[keep], weights[keep]


def _dequantize(k: int) -> int:
    return (k & 0x1F) << QUANT_SHIFT


def _merge_buckets(ranked: list[tuple[int, float]]) -> list[tuple[str, float]]:
    """Greedy single pass merging buckets within MERGE_DISTANCE of a running cluster.

    Buckets live in flat arrays indexed by first-seen order; merged buckets are
    tombstoned. Cluster colors are weight-averaged, then re-quantized, and
    clusters landing on the same hex are summed.
    """
    n = len(ranked)
    reds = np.array([_dequantize(k >> 10) for k, _ in ranked], dtype=np.float64)
    greens = np.array([_dequantize(k >> 5) for k, _ in ranked], dtype=np.float64)
    blues = np.array([_dequantize(k) for k, _ in ranked], dtype=np.float64)
    weights = np.array([wt for _, wt in ranked], dtype=np.float64)
    merged = np.zeros(n, dtype=bool)

    consolidated: dict[str, float] = {}
    for i in range(n):
        if merged[i]:
            continue
        merged[i] = True
        total = float(weights[i])
        r0, g0, b0 = float(reds[i]), float(greens[i]), float(blues[i])
        for j in range(i + 1, n):
            if merged[j]:
                continue
            dr, dg, db = r0 - reds[j], g0 - greens[j], b0 - blues[j]
            if math.sqrt(dr * dr + dg * dg + db * db) > MERGE_DISTANCE:
                continue
            wj = float(weights[j])
            combined = total + wj
            if combined > 0:
                r0 = (r0 * total + reds[j] * wj) / combined
                g0 = (g0 * total + greens[j] * wj) / combined
                b0 = (b0 * total + blues[j] * wj) / combined
            total = combined
            merged[j] = True

        qr, qg, qb = (math.floor(c + 0.5) >> QUANT_SHIFT << QUANT_SHIFT for c in (r0, g0, b0))
        hx = rgb_to_hex(qr, qg, qb)
        consolidated[hx] = consolidated.get(hx, 0.0) + total
    return list(consolidated.items())


def extract_enhanced(buffer: PixelBuffer) -> list[ColorSwatch]:
    """Center-biased, saturation-weighted histogram with backdrop/skin rejection.

    Weights are percentages of the total weight of the returned swatches.
    """
    keys, weights = _score_pixels(buffer)
    if keys.size == 0:
        LOG.debug("No pixel survived color filtering (%sx%s)", buffer.width, buffer.height)
        return []
    top = _top(_merge_buckets(_rank(keys, weights)))
    total = sum(wt for _, wt in top)
    if total <= 0:
        return []
    return [ColorSwatch(hex=hx, weight=wt / total * 100.0) for hx, wt in top]


def extract_colors(
    buffer: PixelBuffer, algorithm: ColorAlgorithm | str = ColorAlgorithm.ENHANCED
) -> list[ColorSwatch]:
    """Return up to five dominant colors, heaviest first."""
    if ColorAlgorithm(algorithm) is ColorAlgorithm.LEGACY:
        return extract_legacy(buffer)
    return extract_enhanced(buffer)


def analyze_colors(
    buffer: PixelBuffer, algorithm: ColorAlgorithm | str = ColorAlgorithm.ENHANCED
) -> list[ColorSwatch]:
    """Focus on the garment when possible, then extract dominant colors."""
    bounds = focus_garment(buffer)
    working = buffer if bounds is None else buffer.crop(bounds)
    if bounds is not None:
        LOG.debug("Focused %sx%s buffer to %s", buffer.width, buffer.height, bounds)
    return extract_colors(working, algorithm)
