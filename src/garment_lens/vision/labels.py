"""Label utilities (normalization, garment-type mapping)."""

from __future__ import annotations

from typing import Final, Literal

GarmentType = Literal["top", "bottom", "outerwear", "footwear", "accessory"]

DEFAULT_GARMENT_TYPE: Final[GarmentType] = "top"

# Checked in order; the first group with a matching keyword wins.
_TYPE_KEYWORDS: Final[tuple[tuple[GarmentType, tuple[str, ...]], ...]] = (
    ("footwear", ("foot", "shoe", "sandal", "boot", "sneaker", "heel", "loafer")),
    ("bottom", ("pant", "jean", "trouser", "skirt", "short", "legging")),
    ("outerwear", ("coat", "jacket", "hoodie", "outer", "blazer", "parka")),
    ("accessory", ("accessory", "hat", "scarf", "bag", "belt", "cap", "glove")),
)


def _norm(s: str) -> str:
    cleaned = (
        s.strip().lower().replace("-", " ").replace("_", " ").replace("/", " ").replace(",", " ")
    )
    return " ".join(cleaned.split())


def match_garment_type(raw_label: str | None) -> GarmentType | None:
    """Map a free-text label to a garment type, or None if nothing matches.

    Policy (deterministic):
      1) Exact match on a garment type name.
      2) First keyword group (footwear, bottom, outerwear, accessory) whose
         keyword appears as a substring of the normalized label.
      3) Otherwise None.
    """
    raw = _norm(raw_label or "")
    if not raw:
        return None
    if raw in {"top", "bottom", "outerwear", "footwear", "accessory"}:
        return raw  # type: ignore[return-value]
    for garment_type, keywords in _TYPE_KEYWORDS:
        if any(k in raw for k in keywords):
            return garment_type
    return None


def garment_type(label: str | None, fallback: str | None = None) -> GarmentType:
    """Resolve a garment type from a detector label, then a fallback hint, else "top"."""
    return match_garment_type(label) or match_garment_type(fallback) or DEFAULT_GARMENT_TYPE
