#!/usr/bin/env python3
"""Geometry helpers for the aspect-locked crop region."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

# handle -> (horizontal side, vertical side) it drags; 0 means the axis keeps its centre
HANDLES: Dict[str, Tuple[int, int]] = {
    "move": (0, 0),
    "n": (0, -1),
    "s": (0, 1),
    "e": (1, 0),
    "w": (-1, 0),
    "nw": (-1, -1),
    "ne": (1, -1),
    "sw": (-1, 1),
    "se": (1, 1),
}


@dataclass(frozen=True)
class CropRegion:
    """Crop rectangle in displayed coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class ScaleFactors:
    x: float
    y: float


@dataclass(frozen=True)
class QualityInfo:
    level: str
    text: str
    hint: str


def _clamp(value: float, low: float, high: float) -> float:
    if high < low:
        return low
    return max(low, min(high, value))


def _clamp_bbox(
    bbox: Tuple[int, int, int, int], width: int, height: int
) -> Tuple[int, int, int, int] | None:
    left, top, right, bottom = bbox
    left = max(0, left)
    top = max(0, top)
    right = min(width, right)
    bottom = min(height, bottom)
    if right <= left or bottom <= top:
        return None
    return (left, top, right, bottom)


def scale_factors(natural_size: Tuple[int, int], display_size: Tuple[float, float]) -> ScaleFactors:
    """Return natural/display ratios for both axes."""
    natural_w, natural_h = natural_size
    display_w, display_h = display_size
    if display_w <= 0 or display_h <= 0:
        raise ValueError(f"Display size must be positive, got {display_w}x{display_h}")
    return ScaleFactors(x=natural_w / display_w, y=natural_h / display_h)


def center_aspect_crop(width: float, height: float, aspect: float, fraction: float = 0.8) -> CropRegion:
    """Largest centred aspect-locked region, shrunk to `fraction` of the fitting size."""
    crop_w = fraction * min(width, height * aspect)
    crop_h = min(crop_w / aspect, height)
    return CropRegion(
        x=(width - crop_w) / 2.0,
        y=(height - crop_h) / 2.0,
        width=crop_w,
        height=crop_h,
    )


def fit_region(
    region: CropRegion,
    bounds: Tuple[float, float],
    aspect: float,
    min_width: float = 1.0,
) -> CropRegion:
    bound_w, bound_h = bounds
    width = min(max(region.width, min_width), bound_w, bound_h * aspect)
    height = min(width / aspect, bound_h)
    x = _clamp(region.x, 0.0, bound_w - width)
    y = _clamp(region.y, 0.0, bound_h - height)
    return CropRegion(x=x, y=y, width=width, height=height)


def move_region(origin: CropRegion, dx: float, dy: float, bounds: Tuple[float, float]) -> CropRegion:
    bound_w, bound_h = bounds
    return CropRegion(
        x=_clamp(origin.x + dx, 0.0, bound_w - origin.width),
        y=_clamp(origin.y + dy, 0.0, bound_h - origin.height),
        width=origin.width,
        height=origin.height,
    )


def resize_region(
    origin: CropRegion,
    handle: str,
    dx: float,
    dy: float,
    bounds: Tuple[float, float],
    aspect: float,
    min_width: float = 1.0,
) -> CropRegion:
    """Apply a pointer delta to `origin` through `handle`, keeping the aspect locked."""
    if handle not in HANDLES:
        raise ValueError(f"Unknown crop handle: {handle}")
    side_x, side_y = HANDLES[handle]
    if side_x == 0 and side_y == 0:
        return move_region(origin, dx, dy, bounds)

    bound_w, bound_h = bounds
    cx, cy = origin.center

    candidates = []
    if side_x:
        candidates.append(origin.width + side_x * dx)
    if side_y:
        candidates.append((origin.height + side_y * dy) * aspect)
    width = max(candidates, key=lambda w: abs(w - origin.width))

    if side_x > 0:
        max_w = bound_w - origin.x
    elif side_x < 0:
        max_w = origin.right
    else:
        max_w = 2.0 * min(cx, bound_w - cx)
    if side_y > 0:
        max_h = bound_h - origin.y
    elif side_y < 0:
        max_h = origin.bottom
    else:
        max_h = 2.0 * min(cy, bound_h - cy)
    max_w = min(max_w, max_h * aspect)

    width = _clamp(width, min(min_width, max_w), max_w)
    height = width / aspect

    if side_x > 0:
        x = origin.x
    elif side_x < 0:
        x = origin.right - width
    else:
        x = cx - width / 2.0
    if side_y > 0:
        y = origin.y
    elif side_y < 0:
        y = origin.bottom - height
    else:
        y = cy - height / 2.0

    return fit_region(CropRegion(x=x, y=y, width=width, height=height), bounds, aspect, min_width)


def rescale_region(
    region: CropRegion,
    old_size: Tuple[float, float],
    new_size: Tuple[float, float],
    aspect: float,
    min_width: float = 1.0,
) -> CropRegion:
    """Carry a region across a display resize."""
    fx = new_size[0] / old_size[0]
    fy = new_size[1] / old_size[1]
    width = region.width * fx
    scaled = CropRegion(x=region.x * fx, y=region.y * fy, width=width, height=width / aspect)
    return fit_region(scaled, new_size, aspect, min_width)


def to_natural_box(region: CropRegion, scale: ScaleFactors) -> Tuple[float, float, float, float]:
    """Sub-pixel source box (left, top, right, bottom) in natural coordinates."""
    return (
        region.x * scale.x,
        region.y * scale.y,
        (region.x + region.width) * scale.x,
        (region.y + region.height) * scale.y,
    )


def to_natural(region: CropRegion, scale: ScaleFactors) -> Tuple[int, int, int, int]:
    """Integer (x, y, width, height) of the region at natural resolution."""
    return (
        int(round(region.x * scale.x)),
        int(round(region.y * scale.y)),
        int(round(region.width * scale.x)),
        int(round(region.height * scale.y)),
    )


def to_display(rect: Tuple[float, float, float, float], scale: ScaleFactors) -> CropRegion:
    x, y, w, h = rect
    return CropRegion(x=x / scale.x, y=y / scale.y, width=w / scale.x, height=h / scale.y)


def classify_quality(
    width: int,
    height: int,
    *,
    very_low: Tuple[int, int] = (300, 450),
    low: Tuple[int, int] = (500, 750),
) -> Optional[QualityInfo]:
    if width < very_low[0] or height < very_low[1]:
        return QualityInfo(level="very_low", text="Qualità molto bassa", hint="Seleziona un'area più grande")
    if width < low[0] or height < low[1]:
        return QualityInfo(level="low", text="Qualità bassa", hint="Aumenta l'area di selezione se possibile")
    return None
