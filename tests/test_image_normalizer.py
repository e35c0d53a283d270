from __future__ import annotations

import io

from PIL import Image

from shelfscan.preprocessing import image_dimensions, normalize_image, try_normalize_image
from shelfscan.preprocessing.image_normalizer import MAX_DIMENSION


def _format(data: bytes) -> str:
    with Image.open(io.BytesIO(data)) as img:
        return img.format


def test_small_image_keeps_dimensions_but_is_reencoded(make_image) -> None:
    original = make_image(320, 200, fmt="PNG")

    result = normalize_image(original)

    assert image_dimensions(result) == (320, 200)
    assert _format(result) == "JPEG"
    assert result != original


def test_large_image_is_downscaled_preserving_aspect_ratio(make_image) -> None:
    original = make_image(3000, 1500, fmt="PNG")

    width, height = image_dimensions(normalize_image(original))

    assert max(width, height) == MAX_DIMENSION
    assert (width, height) == (1000, 500)


def test_tall_image_is_bounded_by_height(make_image) -> None:
    width, height = image_dimensions(normalize_image(make_image(800, 2400, fmt="PNG")))

    assert height == MAX_DIMENSION
    assert width <= MAX_DIMENSION
    assert abs(width - 333) <= 1


def test_transparent_image_is_flattened_to_rgb(make_image) -> None:
    result = normalize_image(make_image(50, 50, fmt="PNG", mode="RGBA"))

    with Image.open(io.BytesIO(result)) as img:
        assert img.mode == "RGB"
        assert img.format == "JPEG"


def test_undecodable_bytes_fall_back_to_original() -> None:
    garbage = b"definitely not an image"

    result = try_normalize_image(garbage)

    assert result.data == garbage
    assert result.error is not None
    assert not result.compressed
    assert normalize_image(garbage) == garbage
