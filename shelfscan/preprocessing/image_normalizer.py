#!/usr/bin/env python
"""
Bound image payloads before they are sent to the vision model.

Images are shrunk to fit inside MAX_DIMENSION x MAX_DIMENSION (aspect ratio
kept, never enlarged) and re-encoded as JPEG. Compression is best effort: if
Pillow cannot read or write the image, the caller gets the original bytes.
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

MAX_DIMENSION = 1000
JPEG_QUALITY = 80


@dataclass(frozen=True)
class NormalizeResult:
    data: bytes
    error: Optional[Exception] = None

    @property
    def compressed(self) -> bool:
        return self.error is None


def try_normalize_image(data: bytes, max_dimension: int = MAX_DIMENSION, quality: int = JPEG_QUALITY) -> NormalizeResult:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            # thumbnail() keeps aspect ratio and only ever shrinks
            img.thumbnail((max_dimension, max_dimension), Image.LANCZOS)
            if img.mode != "RGB":
                img = img.convert("RGB")
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=quality)
    except Exception as e:
        return NormalizeResult(data=data, error=e)
    return NormalizeResult(data=out.getvalue())


def normalize_image(data: bytes) -> bytes:
    """Return the normalized JPEG bytes, or the untouched input if compression failed."""
    result = try_normalize_image(data)
    if result.error is not None:
        logger.warning("Image compression failed, sending original bytes: %s", result.error)
    return result.data


def image_dimensions(data: bytes) -> Tuple[int, int]:
    with Image.open(io.BytesIO(data)) as img:
        return img.size
