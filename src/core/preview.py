#!/usr/bin/env python3
"""Preview renderer: decode an accepted source and describe it for display."""

from __future__ import annotations

import re
import warnings
from dataclasses import dataclass
from io import BytesIO
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from core.acquisition import RawImageSource
from core.errors import DecodeFailure

DISPLAY_NAME_MAX_CHARS = 30


@dataclass(frozen=True)
class DecodedImage:
    source: RawImageSource
    image: Image.Image

    @property
    def natural_size(self) -> Tuple[int, int]:
        return self.image.size


@dataclass(frozen=True)
class DisplayedImage:
    natural_width: int
    natural_height: int
    display_width: float
    display_height: float

    @property
    def natural_size(self) -> Tuple[int, int]:
        return self.natural_width, self.natural_height

    @property
    def display_size(self) -> Tuple[float, float]:
        return self.display_width, self.display_height

    def resized(self, display_width: float, display_height: float) -> "DisplayedImage":
        return DisplayedImage(self.natural_width, self.natural_height, display_width, display_height)


def decode_source(source: RawImageSource) -> DecodedImage:
    """Decode to an RGB(A) image with EXIF orientation applied."""
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            with Image.open(BytesIO(source.payload)) as opened:
                opened.load()
                image = ImageOps.exif_transpose(opened)
                if image.mode not in ("RGB", "RGBA"):
                    image = image.convert("RGBA" if "A" in image.getbands() or "transparency" in image.info else "RGB")
                else:
                    image = image.copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, Image.DecompressionBombWarning, OSError, SyntaxError) as exc:
        raise DecodeFailure(f"{source.file_name}: {exc}") from exc
    if image.width == 0 or image.height == 0:
        raise DecodeFailure(f"{source.file_name}: empty raster")
    return DecodedImage(source=source, image=image)


def displayed_image(decoded: DecodedImage, display_size: Tuple[float, float] | None = None) -> DisplayedImage:
    natural_w, natural_h = decoded.natural_size
    if display_size is None:
        display_size = (float(natural_w), float(natural_h))
    return DisplayedImage(natural_w, natural_h, float(display_size[0]), float(display_size[1]))


def format_display_name(file_name: str) -> str:
    stem = re.sub(r"\.[^/.]+$", "", file_name)
    if len(stem) > DISPLAY_NAME_MAX_CHARS:
        return stem[:DISPLAY_NAME_MAX_CHARS] + "..."
    return stem


def format_size_mb(byte_length: int) -> str:
    return f"{byte_length / (1024 * 1024):.2f} MB"


def preview_summary(decoded: DecodedImage) -> dict[str, object]:
    return {
        "display_name": format_display_name(decoded.source.file_name),
        "size": format_size_mb(decoded.source.byte_length),
        "natural_width": decoded.image.width,
        "natural_height": decoded.image.height,
        "media_type": decoded.source.media_type,
    }
