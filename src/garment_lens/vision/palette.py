"""Color naming and simple color-theory matches for extracted swatches."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .colors import RGB, color_distance, hex_to_rgb, hsl_from_rgb, rgb_to_hex

NAMED_COLORS: dict[str, str] = {
    "Black": "#000000",
    "Charcoal": "#36454F",
    "Gray": "#808080",
    "Silver": "#C0C0C0",
    "White": "#FFFFFF",
    "Ivory": "#FFFFF0",
    "Beige": "#F5F5DC",
    "Khaki": "#C3B091",
    "Tan": "#D2B48C",
    "Camel": "#C19A6B",
    "Brown": "#8B4513",
    "Chocolate": "#5C3317",
    "Burgundy": "#800020",
    "Maroon": "#800000",
    "Red": "#FF0000",
    "Coral": "#FF7F50",
    "Orange": "#FFA500",
    "Rust": "#B7410E",
    "Mustard": "#FFDB58",
    "Yellow": "#FFFF00",
    "Olive": "#808000",
    "Green": "#008000",
    "Emerald": "#50C878",
    "Mint": "#98FF98",
    "Teal": "#008080",
    "Turquoise": "#40E0D0",
    "Sky Blue": "#87CEEB",
    "Blue": "#0000FF",
    "Denim": "#1560BD",
    "Navy": "#000080",
    "Lavender": "#E6E6FA",
    "Purple": "#800080",
    "Plum": "#8E4585",
    "Magenta": "#FF00FF",
    "Pink": "#FFC0CB",
    "Blush": "#DE5D83",
}


@dataclass(frozen=True)
class ColorMatches:
    """Hue rotations of a base color (same saturation and lightness)."""

    complementary: str
    analogous: list[str]
    triadic: list[str]


def color_name(hex_value: str) -> str:
    """Return the nearest named color by RGB distance, or "Unknown" for malformed hex."""
    target = hex_to_rgb(hex_value)
    if target is None:
        return "Unknown"
    best_name = "Unknown"
    best = float("inf")
    for name, ref in NAMED_COLORS.items():
        rgb = hex_to_rgb(ref)
        if rgb is None:
            continue
        d = color_distance(target, rgb)
        if d < best:
            best = d
            best_name = name
    return best_name


def _hue_to_channel(p: float, q: float, t: float) -> float:
    if t < 0:
        t += 1
    if t > 1:
        t -= 1
    if t < 1 / 6:
        return p + (q - p) * 6 * t
    if t < 1 / 2:
        return q
    if t < 2 / 3:
        return p + (q - p) * (2 / 3 - t) * 6
    return p


def _to_byte(c: float) -> int:
    return math.floor(c * 255 + 0.5)


def rgb_from_hsl(h: float, s: float, light: float) -> RGB:
    """Convert HSL (hue in degrees) back to an RGB triple."""
    h /= 360.0
    if s == 0:
        r = g = b = light
    else:
        q = light * (1 + s) if light < 0.5 else light + s - light * s
        p = 2 * light - q
        r = _hue_to_channel(p, q, h + 1 / 3)
        g = _hue_to_channel(p, q, h)
        b = _hue_to_channel(p, q, h - 1 / 3)
    return _to_byte(r), _to_byte(g), _to_byte(b)


def matching_colors(hex_value: str) -> ColorMatches:
    """Complementary (+180), analogous (-30/+30) and triadic (+120/-120) matches."""
    base = hex_to_rgb(hex_value) or (0, 0, 0)
    h, s, light = hsl_from_rgb(*base)

    def rotate(deg: float) -> str:
        return rgb_to_hex(*rgb_from_hsl((h + deg + 360) % 360, s, light))

    return ColorMatches(
        complementary=rotate(180),
        analogous=[rotate(-30), rotate(30)],
        triadic=[rotate(120), rotate(-120)],
    )
