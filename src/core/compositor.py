#!/usr/bin/env python3
"""Raster compositor: resample the confirmed crop at natural resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from PIL import Image

from core.errors import CropTooSmall, RenderSurfaceUnavailable
from core.geometry import CropRegion, _clamp_bbox, scale_factors, to_natural, to_natural_box
from core.preview import DisplayedImage
from core.render import JPEG_MEDIA_TYPE, draw_onto, encode_jpeg, render_surface

DEFAULT_CROP_QUALITY = 0.95


@dataclass(frozen=True)
class CroppedRaster:
    payload: bytes
    width: int
    height: int
    media_type: str
    quality: float
    source_box: Tuple[int, int, int, int]


def natural_crop_size(displayed: DisplayedImage, crop: CropRegion) -> Tuple[int, int]:
    scale = scale_factors(displayed.natural_size, displayed.display_size)
    _, _, width, height = to_natural(crop, scale)
    return width, height


def composite_crop(
    image: Image.Image,
    displayed: DisplayedImage,
    crop: CropRegion,
    *,
    quality: float = DEFAULT_CROP_QUALITY,
    min_size: int = 1,
) -> CroppedRaster:
    """Return the JPEG-encoded natural-resolution pixels under `crop`."""
    if image.size != displayed.natural_size:
        raise RenderSurfaceUnavailable(
            f"decoded size {image.size} does not match natural size {displayed.natural_size}"
        )
    scale = scale_factors(displayed.natural_size, displayed.display_size)
    src_x, src_y, out_w, out_h = to_natural(crop, scale)
    if out_w < min_size or out_h < min_size:
        raise CropTooSmall(f"crop {out_w}x{out_h} below {min_size}px")

    left, top, right, bottom = to_natural_box(crop, scale)
    box = (
        max(0.0, left),
        max(0.0, top),
        min(float(image.width), right),
        min(float(image.height), bottom),
    )
    int_box = _clamp_bbox((src_x, src_y, src_x + out_w, src_y + out_h), image.width, image.height)
    if int_box is None or box[2] <= box[0] or box[3] <= box[1]:
        raise CropTooSmall(f"crop {crop} falls outside the image")

    with render_surface((out_w, out_h)) as surface:
        if int_box == (src_x, src_y, src_x + out_w, src_y + out_h) and box == tuple(float(v) for v in int_box):
            region = image.crop(int_box)
        else:
            region = image.resize((out_w, out_h), Image.Resampling.LANCZOS, box=box)
        draw_onto(surface, region)
        payload = encode_jpeg(surface, quality)

    return CroppedRaster(
        payload=payload,
        width=out_w,
        height=out_h,
        media_type=JPEG_MEDIA_TYPE,
        quality=quality,
        source_box=int_box,
    )
