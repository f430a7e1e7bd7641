#!/usr/bin/env python3
"""Crop engine state machine.

All transitions go through `reduce(state, event)`, a pure function, so the
dialog logic can be driven by the web layer, the CLI or tests alike.
Events that do not apply to the current phase, or that carry an acquisition
id other than the current one, return the state unchanged.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from core.errors import CropTooSmall
from core.geometry import (
    HANDLES,
    CropRegion,
    ScaleFactors,
    center_aspect_crop,
    rescale_region,
    resize_region,
    scale_factors,
    to_natural,
)
from core.preview import DisplayedImage


class Phase(str, Enum):
    IDLE = "Idle"
    IMAGE_LOADING = "ImageLoading"
    CROP_READY = "CropReady"
    CROPPING = "Cropping"
    CROP_CONFIRMED = "CropConfirmed"
    CROP_CANCELLED = "CropCancelled"


LIVE_PHASES = (Phase.IMAGE_LOADING, Phase.CROP_READY, Phase.CROPPING, Phase.CROP_CONFIRMED)


@dataclass(frozen=True)
class DragState:
    handle: str
    start_x: float
    start_y: float
    origin: CropRegion


@dataclass(frozen=True)
class CropEngineState:
    phase: Phase = Phase.IDLE
    acquisition_id: Optional[str] = None
    aspect: float = 2.0 / 3.0
    initial_fraction: float = 0.8
    min_drag_px: float = 1.0
    min_output_px: int = 1
    displayed: Optional[DisplayedImage] = None
    region: Optional[CropRegion] = None
    completed: Optional[CropRegion] = None
    drag: Optional[DragState] = None
    delivered: bool = False

    @property
    def scale(self) -> Optional[ScaleFactors]:
        if self.displayed is None:
            return None
        return scale_factors(self.displayed.natural_size, self.displayed.display_size)

    def natural_crop_size(self) -> Optional[Tuple[int, int]]:
        scale = self.scale
        if scale is None or self.region is None:
            return None
        _, _, width, height = to_natural(self.region, scale)
        return width, height

    def to_dict(self) -> Dict[str, Any]:
        natural = self.natural_crop_size()
        return {
            "phase": self.phase.value,
            "acquisition_id": self.acquisition_id,
            "aspect": self.aspect,
            "region": self.region.to_dict() if self.region else None,
            "completed": self.completed.to_dict() if self.completed else None,
            "display_size": list(self.displayed.display_size) if self.displayed else None,
            "natural_size": list(self.displayed.natural_size) if self.displayed else None,
            "natural_crop_size": list(natural) if natural else None,
            "dragging": self.drag.handle if self.drag else None,
        }


@dataclass(frozen=True)
class FileAccepted:
    acquisition_id: str


@dataclass(frozen=True)
class ImageDecoded:
    acquisition_id: str
    natural_width: int
    natural_height: int
    display_width: float
    display_height: float


@dataclass(frozen=True)
class DisplayResized:
    display_width: float
    display_height: float


@dataclass(frozen=True)
class DragStarted:
    handle: str
    x: float
    y: float


@dataclass(frozen=True)
class DragMoved:
    x: float
    y: float


@dataclass(frozen=True)
class DragReleased:
    pass


@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class ConfirmFailed:
    acquisition_id: str


@dataclass(frozen=True)
class OutputDelivered:
    acquisition_id: str


@dataclass(frozen=True)
class Cancel:
    pass


Event = Union[
    FileAccepted,
    ImageDecoded,
    DisplayResized,
    DragStarted,
    DragMoved,
    DragReleased,
    Confirm,
    ConfirmFailed,
    OutputDelivered,
    Cancel,
]


def _positive_size(width: float, height: float) -> bool:
    return all(math.isfinite(v) and v > 0 for v in (width, height))


def _cleared(state: CropEngineState, phase: Phase) -> CropEngineState:
    return replace(state, phase=phase, displayed=None, region=None, completed=None, drag=None, delivered=False)


def _on_decoded(state: CropEngineState, event: ImageDecoded) -> CropEngineState:
    if state.phase != Phase.IMAGE_LOADING or event.acquisition_id != state.acquisition_id:
        return state
    if not _positive_size(event.display_width, event.display_height):
        raise ValueError(f"Display size must be positive, got {event.display_width}x{event.display_height}")
    displayed = DisplayedImage(
        natural_width=event.natural_width,
        natural_height=event.natural_height,
        display_width=float(event.display_width),
        display_height=float(event.display_height),
    )
    region = center_aspect_crop(displayed.display_width, displayed.display_height, state.aspect, state.initial_fraction)
    return replace(state, phase=Phase.CROP_READY, displayed=displayed, region=region, completed=region, drag=None)


def _on_resized(state: CropEngineState, event: DisplayResized) -> CropEngineState:
    if state.phase not in (Phase.CROP_READY, Phase.CROPPING) or state.displayed is None or state.region is None:
        return state
    if not _positive_size(event.display_width, event.display_height):
        return state
    new_size = (float(event.display_width), float(event.display_height))
    region = rescale_region(state.region, state.displayed.display_size, new_size, state.aspect, state.min_drag_px)
    displayed = state.displayed.resized(*new_size)
    # a resize mid-drag invalidates the drag origin, so the drag settles here
    return replace(state, phase=Phase.CROP_READY, displayed=displayed, region=region, completed=region, drag=None)


def _on_drag_started(state: CropEngineState, event: DragStarted) -> CropEngineState:
    if state.phase != Phase.CROP_READY or state.region is None:
        return state
    if event.handle not in HANDLES:
        raise ValueError(f"Unknown crop handle: {event.handle}")
    drag = DragState(handle=event.handle, start_x=event.x, start_y=event.y, origin=state.region)
    return replace(state, phase=Phase.CROPPING, drag=drag)


def _on_drag_moved(state: CropEngineState, event: DragMoved) -> CropEngineState:
    if state.phase != Phase.CROPPING or state.drag is None or state.displayed is None:
        return state
    drag = state.drag
    region = resize_region(
        drag.origin,
        drag.handle,
        event.x - drag.start_x,
        event.y - drag.start_y,
        state.displayed.display_size,
        state.aspect,
        state.min_drag_px,
    )
    return replace(state, region=region)


def _on_confirm(state: CropEngineState) -> CropEngineState:
    if state.phase != Phase.CROP_READY or state.region is None:
        return state
    size = state.natural_crop_size()
    if size is None or min(size) < state.min_output_px:
        raise CropTooSmall(f"natural crop {size} below {state.min_output_px}px")
    return replace(state, phase=Phase.CROP_CONFIRMED, completed=state.region, delivered=False)


def reduce(state: CropEngineState, event: Event) -> CropEngineState:
    """Return the state that follows `event`."""
    if isinstance(event, FileAccepted):
        return replace(_cleared(state, Phase.IMAGE_LOADING), acquisition_id=event.acquisition_id)
    if isinstance(event, ImageDecoded):
        return _on_decoded(state, event)
    if isinstance(event, DisplayResized):
        return _on_resized(state, event)
    if isinstance(event, DragStarted):
        return _on_drag_started(state, event)
    if isinstance(event, DragMoved):
        return _on_drag_moved(state, event)
    if isinstance(event, DragReleased):
        if state.phase != Phase.CROPPING:
            return state
        return replace(state, phase=Phase.CROP_READY, completed=state.region, drag=None)
    if isinstance(event, Confirm):
        return _on_confirm(state)
    if isinstance(event, ConfirmFailed):
        if state.phase != Phase.CROP_CONFIRMED or event.acquisition_id != state.acquisition_id:
            return state
        return replace(state, phase=Phase.CROP_READY)
    if isinstance(event, OutputDelivered):
        if state.phase != Phase.CROP_CONFIRMED or event.acquisition_id != state.acquisition_id:
            return state
        return replace(state, delivered=True)
    if isinstance(event, Cancel):
        if state.phase not in LIVE_PHASES or state.delivered:
            return state
        return _cleared(state, Phase.CROP_CANCELLED)
    raise TypeError(f"Unknown crop engine event: {event!r}")
