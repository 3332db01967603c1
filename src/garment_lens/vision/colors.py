"""Color math shared by the focuser and the color extractor.

Array helpers take broadcastable channel arrays (any integer or float dtype in
0..255) and return arrays of the same shape, so they work on a single pixel as
well as on a whole image.
"""

from __future__ import annotations

import re

import numpy as np

from .types import PixelBuffer

RGB = tuple[int, int, int]

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")

# Border samples with alpha below this are ignored when estimating the backdrop.
BORDER_MIN_ALPHA = 128
# At most ~50 samples per edge.
BORDER_SAMPLES_PER_EDGE = 50


def rgb_to_hex(r: int, g: int, b: int) -> str:
    """Format an RGB triple as uppercase `#RRGGBB`."""
    return f"#{int(r):02X}{int(g):02X}{int(b):02X}"


def hex_to_rgb(value: str) -> RGB | None:
    """Parse `#RRGGBB` (case-insensitive, `#` optional). Returns None if malformed."""
    m = _HEX_RE.match(value.strip())
    if m is None:
        return None
    return int(m.group(1), 16), int(m.group(2), 16), int(m.group(3), 16)


def color_distance(a: RGB, b: RGB) -> float:
    """Euclidean distance between two RGB triples."""
    dr = a[0] - b[0]
    dg = a[1] - b[1]
    db = a[2] - b[2]
    return float(np.sqrt(dr * dr + dg * dg + db * db))


def distance_to(r: np.ndarray, g: np.ndarray, b: np.ndarray, ref: RGB) -> np.ndarray:
    """Euclidean RGB distance from each pixel to `ref`."""
    dr = r.astype(np.float64) - ref[0]
    dg = g.astype(np.float64) - ref[1]
    db = b.astype(np.float64) - ref[2]
    return np.sqrt(dr * dr + dg * dg + db * db)


def hsl_arrays(
    r: np.ndarray, g: np.ndarray, b: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Convert RGB channels to HSL: hue in degrees [0, 360), saturation and lightness in [0, 1].

    When several channels share the maximum, red wins over green and green over blue.
    """
    rn = np.asarray(r, dtype=np.float64) / 255.0
    gn = np.asarray(g, dtype=np.float64) / 255.0
    bn = np.asarray(b, dtype=np.float64) / 255.0
    mx = np.maximum(np.maximum(rn, gn), bn)
    mn = np.minimum(np.minimum(rn, gn), bn)
    light = (mx + mn) / 2.0
    d = mx - mn
    grey = d == 0
    with np.errstate(divide="ignore", invalid="ignore"):
        sat = np.where(light > 0.5, d / (2.0 - mx - mn), d / (mx + mn))
        hue = np.select(
            [grey, mx == rn, mx == gn],
            [
                0.0,
                (gn - bn) / d + np.where(gn < bn, 6.0, 0.0),
                (bn - rn) / d + 2.0,
            ],
            default=(rn - gn) / d + 4.0,
        )
    sat = np.where(grey, 0.0, sat)
    return hue / 6.0 * 360.0, sat, light


def hsl_from_rgb(r: int, g: int, b: int) -> tuple[float, float, float]:
    """Scalar form of :func:`hsl_arrays`."""
    h, s, light = hsl_arrays(np.array([r]), np.array([g]), np.array([b]))
    return float(h[0]), float(s[0]), float(light[0])


def hue_distance(a: np.ndarray | float, b: float) -> np.ndarray:
    """Shortest angular distance between hues, in degrees."""
    d = np.abs(np.asarray(a, dtype=np.float64) - b)
    return np.minimum(d, 360.0 - d)


def skin_tone_mask(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Red-dominant skin heuristic: r>95, g>40, b>20, spread>15, r-g>15, r>b."""
    ri = r.astype(np.int32)
    gi = g.astype(np.int32)
    bi = b.astype(np.int32)
    mx = np.maximum(np.maximum(ri, gi), bi)
    mn = np.minimum(np.minimum(ri, gi), bi)
    return (
        (ri > 95)
        & (gi > 40)
        & (bi > 20)
        & ((mx - mn) > 15)
        & ((ri - gi) > 15)
        & (ri > bi)
    )


def _border_samples(buffer: PixelBuffer) -> np.ndarray:
    """Border pixels in sampling order: top/bottom rows, then left/right columns."""
    px = buffer.pixels()
    w, h = buffer.width, buffer.height
    step_x = max(1, w // BORDER_SAMPLES_PER_EDGE)
    step_y = max(1, h // BORDER_SAMPLES_PER_EDGE)
    xs = np.arange(0, w, step_x)
    ys = np.arange(0, h, step_y)
    horizontal = np.stack([px[0, xs], px[h - 1, xs]], axis=1).reshape(-1, 4)
    vertical = np.stack([px[ys, 0], px[ys, w - 1]], axis=1).reshape(-1, 4)
    return np.concatenate([horizontal, vertical], axis=0)


def estimate_background_color(buffer: PixelBuffer) -> RGB | None:
    """Estimate the backdrop color as the 4-bit-quantized mode of the border pixels.

    Returns None when no border pixel is opaque enough to sample.
    """
    samples = _border_samples(buffer)
    samples = samples[samples[:, 3] >= BORDER_MIN_ALPHA]
    if samples.shape[0] == 0:
        return None
    q = samples[:, :3].astype(np.int64) >> 4
    keys = (q[:, 0] << 8) | (q[:, 1] << 4) | q[:, 2]
    counts = np.bincount(keys, minlength=4096)
    best = counts.max()
    # Ties go to the bucket that was sampled first.
    first = int(np.flatnonzero(counts[keys] == best)[0])
    key = int(keys[first])
    return ((key >> 8) & 0xF) << 4, ((key >> 4) & 0xF) << 4, (key & 0xF) << 4
