import re

import numpy as np
import pytest

from garment_lens.analysis.extract import (
    ColorAlgorithm,
    analyze_colors,
    extract_colors,
    extract_enhanced,
    extract_legacy,
)
from garment_lens.vision.types import ColorSwatch, PixelBuffer

HEX_RE = re.compile(r"^#[0-9A-F]{6}$")


def _canvas(w: int, h: int, rgba: tuple[int, int, int, int]) -> np.ndarray:
    arr = np.zeros((h, w, 4), dtype=np.uint8)
    arr[:, :] = rgba
    return arr


def _noise(seed: int = 0, w: int = 97, h: int = 83) -> PixelBuffer:
    rng = np.random.default_rng(seed)
    arr = rng.integers(0, 256, size=(h, w, 4), dtype=np.uint8)
    arr[..., 3] = np.where(rng.random((h, w)) < 0.1, 0, 255)
    return PixelBuffer.from_array(arr)


def test_enhanced_pure_red_is_single_quantized_swatch() -> None:
    buf = PixelBuffer.from_array(_canvas(256, 256, (255, 0, 0, 255)))
    assert extract_enhanced(buf) == [ColorSwatch(hex="#F80000", weight=100.0)]


def test_legacy_pure_red_counts_every_tenth_pixel() -> None:
    buf = PixelBuffer.from_array(_canvas(256, 256, (255, 0, 0, 255)))
    out = extract_legacy(buf)
    assert [s.hex for s in out] == ["#FF0000"]
    assert out[0].weight == pytest.approx(100.0, abs=0.1)


def test_legacy_ranks_by_frequency_and_skips_transparent() -> None:
    arr = _canvas(100, 10, (0, 0, 255, 255))
    arr[:, :30] = (0, 255, 0, 255)
    arr[:, 90:] = (255, 0, 0, 0)
    out = extract_legacy(PixelBuffer.from_array(arr))
    assert [s.hex for s in out] == ["#0000FF", "#00FF00"]
    assert out[0].weight > out[1].weight


def test_enhanced_ignores_plain_backdrop() -> None:
    arr = _canvas(120, 120, (255, 255, 255, 255))
    arr[40:80, 40:80] = (20, 30, 90, 255)
    out = extract_enhanced(PixelBuffer.from_array(arr))
    assert out == [ColorSwatch(hex="#101858", weight=100.0)]


def test_enhanced_rejects_skin() -> None:
    arr = _canvas(120, 120, (255, 255, 255, 255))
    arr[30:90, 30:90] = (224, 172, 140, 255)
    assert extract_enhanced(PixelBuffer.from_array(arr)) == []


def test_enhanced_keeps_distant_channels_apart() -> None:
    arr = _canvas(100, 100, (8, 0, 0, 255))
    arr[:, 50:] = (0, 64, 0, 255)
    out = extract_enhanced(PixelBuffer.from_array(arr))
    assert {s.hex for s in out} == {"#080000", "#004000"}


@pytest.mark.parametrize(
    ("rgb", "expected"),
    [((255, 255, 0), "#F8F800"), ((0, 130, 255), "#0080F8"), ((100, 7, 200), "#6000C8")],
)
def test_enhanced_quantizes_each_channel_independently(rgb: tuple[int, int, int], expected: str) -> None:
    buf = PixelBuffer.from_array(_canvas(64, 64, (*rgb, 255)))
    assert extract_enhanced(buf) == [ColorSwatch(hex=expected, weight=100.0)]


def test_enhanced_merges_near_identical_buckets() -> None:
    arr = _canvas(100, 100, (30, 60, 200, 255))
    arr[:, 50:] = (34, 64, 204, 255)
    out = extract_enhanced(PixelBuffer.from_array(arr))
    assert [s.hex for s in out] == ["#1838C8"]
    assert out[0].weight == pytest.approx(100.0)


def test_enhanced_center_outweighs_edges() -> None:
    arr = _canvas(160, 160, (255, 255, 255, 255))
    # Green side bands cover more pixels than the red center patch, outside both ellipses.
    arr[4:156, 4:24] = (0, 140, 60, 255)
    arr[4:156, 136:156] = (0, 140, 60, 255)
    arr[60:100, 60:100] = (200, 20, 40, 255)
    out = extract_enhanced(PixelBuffer.from_array(arr))
    assert out[0].hex == "#C81028"


@pytest.mark.parametrize("algorithm", list(ColorAlgorithm))
def test_transparent_buffer_has_no_colors(algorithm: ColorAlgorithm) -> None:
    buf = PixelBuffer.from_array(_canvas(64, 64, (10, 200, 10, 0)))
    assert extract_colors(buf, algorithm) == []


@pytest.mark.parametrize("algorithm", ["legacy", "enhanced"])
def test_extract_is_deterministic_and_bounded(algorithm: str) -> None:
    buf = _noise()
    first = extract_colors(buf, algorithm)
    second = extract_colors(_noise(), algorithm)
    assert first == second
    assert len(first) <= 5
    assert all(HEX_RE.match(s.hex) for s in first)
    weights = [s.weight for s in first]
    assert weights == sorted(weights, reverse=True)


def test_unknown_algorithm_is_rejected() -> None:
    with pytest.raises(ValueError):
        extract_colors(_noise(), "kmeans")


def test_analyze_colors_focuses_before_extracting() -> None:
    arr = _canvas(200, 200, (255, 255, 255, 255))
    arr[50:170, 60:140] = (20, 40, 160, 255)
    out = analyze_colors(PixelBuffer.from_array(arr))
    assert [s.hex for s in out] == ["#1028A0"]
