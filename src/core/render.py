#!/usr/bin/env python3
"""Off-screen render surfaces and JPEG encoding."""

from __future__ import annotations

from contextlib import contextmanager
from io import BytesIO
from typing import Iterator, Tuple

from PIL import Image

from core.errors import EncodingFailed, RenderSurfaceUnavailable
from core.packaging import JPEG_MEDIA_TYPE

BACKGROUND = (255, 255, 255)


def pillow_quality(quality: float) -> int:
    """Map a 0..1 lossy quality factor onto Pillow's 1..100 JPEG scale."""
    if not 0.0 <= quality <= 1.0:
        raise ValueError(f"quality must be within [0, 1], got {quality}")
    return max(1, min(100, int(round(quality * 100))))


@contextmanager
def render_surface(size: Tuple[int, int]) -> Iterator[Image.Image]:
    """Allocate a private RGB buffer for one operation and release it afterwards."""
    width, height = size
    if width <= 0 or height <= 0:
        raise RenderSurfaceUnavailable(f"invalid surface size {width}x{height}")
    max_pixels = Image.MAX_IMAGE_PIXELS
    if max_pixels and width * height > 2 * max_pixels:
        raise RenderSurfaceUnavailable(f"surface {width}x{height} exceeds {2 * max_pixels} pixels")
    try:
        surface = Image.new("RGB", (width, height), BACKGROUND)
    except (MemoryError, ValueError) as exc:
        raise RenderSurfaceUnavailable(f"cannot allocate {width}x{height}: {exc}") from exc
    try:
        yield surface
    finally:
        surface.close()


def draw_onto(surface: Image.Image, image: Image.Image) -> None:
    """Paste `image` at the origin, flattening transparency onto the background."""
    if image.mode == "RGBA":
        surface.paste(image, (0, 0), image)
    else:
        surface.paste(image.convert("RGB") if image.mode != "RGB" else image, (0, 0))


def encode_jpeg(surface: Image.Image, quality: float) -> bytes:
    out = BytesIO()
    try:
        surface.save(out, format="JPEG", quality=pillow_quality(quality), optimize=True)
    except (OSError, ValueError) as exc:
        raise EncodingFailed(str(exc)) from exc
    payload = out.getvalue()
    if not payload:
        raise EncodingFailed("encoder produced no bytes")
    return payload
