#!/usr/bin/env python3
"""Compression stage: bound the width and re-encode as JPEG."""

from __future__ import annotations

from io import BytesIO
from typing import Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from core.acquisition import RawImageSource
from core.errors import DecodeFailure
from core.packaging import OutputFile
from core.render import draw_onto, encode_jpeg, render_surface

DEFAULT_MAX_WIDTH = 1200
DEFAULT_QUALITY = 0.7

ImageFile = Union[bytes, bytearray, OutputFile, RawImageSource]


def compressed_size(width: int, height: int, max_width: int) -> Tuple[int, int]:
    if width <= max_width:
        return width, height
    return max_width, max(1, int(round(height * max_width / width)))


def _payload_of(file: ImageFile) -> bytes:
    if isinstance(file, (bytes, bytearray)):
        return bytes(file)
    return file.payload


def compress_image(
    file: ImageFile,
    max_width: int = DEFAULT_MAX_WIDTH,
    quality: float = DEFAULT_QUALITY,
) -> bytes:
    """Return JPEG bytes no wider than `max_width`, aspect ratio preserved."""
    if max_width <= 0:
        raise ValueError(f"max_width must be positive, got {max_width}")
    try:
        with Image.open(BytesIO(_payload_of(file))) as opened:
            opened.load()
            image = ImageOps.exif_transpose(opened)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as exc:
        raise DecodeFailure(str(exc)) from exc

    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA" if "A" in image.getbands() or "transparency" in image.info else "RGB")
    out_w, out_h = compressed_size(image.width, image.height, max_width)
    if (out_w, out_h) != image.size:
        image = image.resize((out_w, out_h), Image.Resampling.LANCZOS)

    with render_surface((out_w, out_h)) as surface:
        draw_onto(surface, image)
        return encode_jpeg(surface, quality)
