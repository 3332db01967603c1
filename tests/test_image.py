from pathlib import Path

import pytest
from PIL import Image

from garment_lens.vision.image import (
    crop_with_bounds,
    decode_image,
    ensure_dir,
    img_to_png_bytes,
    read_image,
    resize_for_analysis,
    to_image,
    to_pixel_buffer,
)
from garment_lens.vision.types import Bounds


def test_png_bytes_decode_to_rgba() -> None:
    img = Image.new("RGB", (12, 7), color=(10, 20, 30))
    out = decode_image(img_to_png_bytes(img))
    assert out.mode == "RGBA"
    assert out.size == (12, 7)
    assert out.getpixel((3, 3)) == (10, 20, 30, 255)


def test_pixel_buffer_round_trip_keeps_alpha() -> None:
    img = Image.new("RGBA", (5, 4), color=(1, 2, 3, 4))
    buf = to_pixel_buffer(img)
    assert (buf.width, buf.height) == (5, 4)
    assert to_image(buf).tobytes() == img.tobytes()


def test_read_image_from_disk(tmp_path: Path) -> None:
    d = tmp_path / "a" / "b"
    ensure_dir(d)
    Image.new("L", (3, 3), color=128).save(d / "x.png")
    img = read_image(d / "x.png")
    assert img.mode == "RGBA"
    assert img.getpixel((0, 0)) == (128, 128, 128, 255)


@pytest.mark.parametrize(
    ("size", "expected"),
    [((100, 50), (100, 50)), ((1024, 512), (256, 128)), ((300, 900), (85, 256))],
)
def test_resize_for_analysis_never_enlarges(size: tuple[int, int], expected: tuple[int, int]) -> None:
    assert resize_for_analysis(Image.new("RGBA", size)).size == expected


def test_crop_with_bounds() -> None:
    img = Image.new("RGBA", (20, 10))
    assert crop_with_bounds(img, Bounds(x=5, y=2, width=10, height=8)).size == (10, 8)
    with pytest.raises(ValueError):
        crop_with_bounds(img, Bounds(x=15, y=0, width=10, height=5))
