import math

import pytest

from garment_lens.vision.geometry import FALLBACK_DETECTION, normalize_box
from garment_lens.vision.types import Bounds, DetectionBox


def test_full_image_box_is_clamped_to_image() -> None:
    b = normalize_box(DetectionBox(x=0, y=0, width=1, height=1), 100, 100)
    assert b == Bounds(x=0, y=0, width=100, height=100)


def test_interior_box_is_padded_by_ratio() -> None:
    b = normalize_box(DetectionBox(x=0.25, y=0.25, width=0.5, height=0.5), 200, 200)
    # raw 50..150, padding round(100 * 0.08) = 8 on each side.
    assert b == Bounds(x=42, y=42, width=116, height=116)


def test_tiny_detection_gets_minimum_padding() -> None:
    b = normalize_box(DetectionBox(x=0.5, y=0.5, width=0.0, height=0.0), 100, 100)
    # 1px raw box, 4px minimum padding on each side.
    assert b == Bounds(x=46, y=46, width=9, height=9)


def test_box_at_far_edge_is_floored_and_kept_inside() -> None:
    b = normalize_box(DetectionBox(x=1.0, y=1.0, width=0.5, height=0.5), 100, 100)
    assert b == Bounds(x=92, y=92, width=8, height=8)


def test_custom_padding_ratio() -> None:
    b = normalize_box(DetectionBox(x=0.25, y=0.25, width=0.5, height=0.5), 200, 200, padding_ratio=0.2)
    assert b == Bounds(x=30, y=30, width=140, height=140)


def test_fallback_box_on_square_image() -> None:
    b = normalize_box(FALLBACK_DETECTION, 200, 200)
    assert b == Bounds(x=0, y=0, width=200, height=200)


@pytest.mark.parametrize(
    "box",
    [
        DetectionBox(x=-0.5, y=-0.5, width=0.2, height=0.2),
        DetectionBox(x=1.5, y=2.0, width=3.0, height=-1.0),
        DetectionBox(x=0.99, y=0.99, width=0.99, height=0.99),
        DetectionBox(x=math.nan, y=math.inf, width=-math.inf, height=math.nan),
        DetectionBox(x=0.1, y=0.7, width=0.0, height=0.3),
        DetectionBox(x=0.0, y=0.0, width=1e9, height=1e9),
    ],
)
@pytest.mark.parametrize(("w", "h"), [(1, 1), (5, 3), (8, 8), (9, 50), (100, 100), (640, 480)])
def test_normalize_is_total_and_in_bounds(box: DetectionBox, w: int, h: int) -> None:
    b = normalize_box(box, w, h)
    assert 0 <= b.x and b.right <= w
    assert 0 <= b.y and b.bottom <= h
    assert b.width >= min(8, w)
    assert b.height >= min(8, h)


def test_bounds_rejects_degenerate_rectangles() -> None:
    with pytest.raises(ValueError):
        Bounds(x=0, y=0, width=0, height=5)
    with pytest.raises(ValueError):
        Bounds(x=-1, y=0, width=5, height=5)


def test_infinite_origin_clamps_to_far_edge() -> None:
    b = normalize_box(DetectionBox(x=math.inf, y=math.nan, width=0.2, height=1.0), 100, 100)
    assert b == Bounds(x=92, y=0, width=8, height=100)
