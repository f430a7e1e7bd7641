#!/usr/bin/env python3
"""Shared single-image crop pipeline used by CLI and web."""

from __future__ import annotations

import time
import uuid
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from config import settings
from core.acquisition import RawImageSource, acquire_source
from core.compositor import composite_crop
from core.compression import compress_image
from core.crop_engine import (
    Confirm,
    CropEngineState,
    FileAccepted,
    ImageDecoded,
    Phase,
    reduce,
)
from core.geometry import CropRegion, QualityInfo, classify_quality, fit_region
from core.packaging import OutputFile, derive_output_name, package_output
from core.preview import DecodedImage, decode_source
from core.run_logging import log


def new_engine_state() -> CropEngineState:
    return CropEngineState(
        aspect=settings.crop.aspect,
        initial_fraction=settings.crop.initial_fraction,
        min_drag_px=settings.crop.min_drag_px,
        min_output_px=settings.crop.min_output_px,
    )


def acquire(files: Iterable[Tuple[str, Optional[str], bytes]]) -> RawImageSource:
    return acquire_source(
        files,
        allowed_media_types=settings.acquisition.allowed_media_types,
        allowed_extensions=settings.acquisition.allowed_extensions,
        max_bytes=settings.acquisition.max_bytes,
    )


def load_preview(
    source: RawImageSource,
    *,
    progress_cb: Optional[Callable[[str], None]] = None,
) -> DecodedImage:
    log(progress_cb, f"Decoding {source.file_name} ({source.byte_length} bytes, {source.media_type})")
    decoded = decode_source(source)
    log(progress_cb, f"Decoded {decoded.image.width}x{decoded.image.height}")
    return decoded


def start_session(
    decoded: DecodedImage,
    *,
    display_size: Optional[Tuple[float, float]] = None,
    acquisition_id: Optional[str] = None,
    state: Optional[CropEngineState] = None,
) -> CropEngineState:
    """Drive a fresh engine state from Idle to CropReady for `decoded`."""
    acquisition_id = acquisition_id or uuid.uuid4().hex
    natural_w, natural_h = decoded.natural_size
    display_w, display_h = display_size or (float(natural_w), float(natural_h))
    state = reduce(state or new_engine_state(), FileAccepted(acquisition_id))
    return reduce(state, ImageDecoded(acquisition_id, natural_w, natural_h, display_w, display_h))


def quality_feedback(state: CropEngineState) -> Optional[QualityInfo]:
    size = state.natural_crop_size()
    if size is None:
        return None
    return classify_quality(
        size[0],
        size[1],
        very_low=settings.quality_tiers.very_low,
        low=settings.quality_tiers.low,
    )


def render_confirmed(
    decoded: DecodedImage,
    state: CropEngineState,
    *,
    progress_cb: Optional[Callable[[str], None]] = None,
) -> Dict[str, Any]:
    """Composite and package the crop of a CropConfirmed state."""
    if state.phase != Phase.CROP_CONFIRMED or state.completed is None or state.displayed is None:
        raise ValueError(f"Crop is not confirmed (phase {state.phase.value})")
    timing: Dict[str, float] = {}
    t0 = time.perf_counter()
    log(progress_cb, "Compositing crop")
    raster = composite_crop(
        decoded.image,
        state.displayed,
        state.completed,
        quality=settings.crop.quality,
        min_size=settings.crop.min_output_px,
    )
    t1 = time.perf_counter()
    log(progress_cb, f"Encoded {raster.width}x{raster.height} JPEG ({len(raster.payload)} bytes)")

    output = package_output(
        raster.payload,
        derive_output_name(decoded.source.file_name, settings.crop.name_suffix),
        media_type=raster.media_type,
    )
    t2 = time.perf_counter()
    log(progress_cb, f"Packaged {output.file_name}")
    timing["composite"] = t1 - t0
    timing["package"] = t2 - t1
    return {
        "raster": raster,
        "output": output,
        "quality_info": quality_feedback(state),
        "timing": timing,
    }


def prepare_upload(
    file: Union[OutputFile, RawImageSource],
    *,
    max_width: Optional[int] = None,
    quality: Optional[float] = None,
    progress_cb: Optional[Callable[[str], None]] = None,
) -> OutputFile:
    """Compress a file right before it goes to the object store."""
    max_width = settings.compression.max_width if max_width is None else max_width
    quality = settings.compression.quality if quality is None else quality
    log(progress_cb, f"Compressing {file.file_name} (max_width={max_width}, quality={quality})")
    payload = compress_image(file, max_width=max_width, quality=quality)
    log(progress_cb, f"Compressed {len(file.payload)} -> {len(payload)} bytes")
    return package_output(payload, derive_output_name(file.file_name, ""))


def crop_image(
    decoded: DecodedImage,
    *,
    region: Optional[CropRegion] = None,
    display_size: Optional[Tuple[float, float]] = None,
    compress: bool = False,
    progress_cb: Optional[Callable[[str], None]] = None,
) -> Dict[str, Any]:
    """Non-interactive run: centred crop (or `region`) straight to output."""
    t0 = time.perf_counter()
    state = start_session(decoded, display_size=display_size)
    if region is not None and state.displayed is not None:
        fitted = fit_region(region, state.displayed.display_size, state.aspect, state.min_drag_px)
        state = replace(state, region=fitted, completed=fitted)
    log(progress_cb, f"Crop region {state.region}")
    state = reduce(state, Confirm())
    t1 = time.perf_counter()

    result = render_confirmed(decoded, state, progress_cb=progress_cb)
    result["timing"] = {"setup": t1 - t0, **result["timing"]}
    result["compressed"] = None
    if compress:
        t2 = time.perf_counter()
        result["compressed"] = prepare_upload(result["output"], progress_cb=progress_cb)
        result["timing"]["compress"] = time.perf_counter() - t2
    result["state"] = state
    return result
