"""Core vision data types shared across the garment pipeline."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned rectangle in integer pixel coordinates.

    Attributes:
        x, y: Top-left corner in the parent buffer frame.
        width, height: Extent in pixels (always >= 1).
    """

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.x < 0 or self.y < 0:
            raise ValueError(f"Bounds origin must be non-negative, got ({self.x}, {self.y}).")
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Bounds must be at least 1x1, got {self.width}x{self.height}.")

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def fits(self, width: int, height: int) -> bool:
        """Return True if the rectangle lies inside a `width` x `height` frame."""
        return self.right <= width and self.bottom <= height


@dataclass(frozen=True)
class PixelBuffer:
    """Immutable, contiguous RGBA pixel buffer (4 bytes per pixel, row-major)."""

    data: bytes
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(f"PixelBuffer must be at least 1x1, got {self.width}x{self.height}.")
        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise ValueError(
                f"PixelBuffer data has {len(self.data)} bytes, expected {expected} "
                f"for {self.width}x{self.height} RGBA."
            )

    @classmethod
    def from_array(cls, arr: np.ndarray) -> PixelBuffer:
        """Build a buffer from an `(H, W, 4)` uint8 array (copied)."""
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) array, got shape {arr.shape}.")
        h, w = int(arr.shape[0]), int(arr.shape[1])
        return cls(data=np.ascontiguousarray(arr, dtype=np.uint8).tobytes(), width=w, height=h)

    def pixels(self) -> np.ndarray:
        """Return a read-only `(H, W, 4)` uint8 view over the buffer."""
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 4)

    def crop(self, bounds: Bounds) -> PixelBuffer:
        """Return a new buffer holding the pixels inside `bounds`."""
        if not bounds.fits(self.width, self.height):
            raise ValueError(f"{bounds} is outside a {self.width}x{self.height} buffer.")
        sub = self.pixels()[bounds.y : bounds.bottom, bounds.x : bounds.right]
        return PixelBuffer.from_array(sub)


@dataclass(frozen=True)
class DetectionBox:
    """Detector output: a fractional box relative to the image size.

    Attributes:
        x, y, width, height: Fractions of the image dimensions, nominally in [0, 1].
        label: Free-text garment label from the detector.
        confidence: Detector confidence in [0, 1].
        garment_type: Optional type hint from the detector (e.g. "bottom").
    """

    x: float
    y: float
    width: float
    height: float
    label: str = "Garment"
    confidence: float = 0.5
    garment_type: str | None = None


@dataclass(frozen=True)
class ColorSwatch:
    """A dominant color as uppercase `#RRGGBB` plus its relative weight."""

    hex: str
    weight: float
