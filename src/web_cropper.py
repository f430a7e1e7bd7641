#!/usr/bin/env python3
"""Request/response helpers between Flask and the crop pipeline."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Optional

from werkzeug.datastructures import FileStorage

from core.crop_engine import CropEngineState, DragMoved, DragReleased, DragStarted, Event
from core.preview import DecodedImage, preview_summary
from crop_pipeline import quality_feedback


def uploaded_files(files: Iterable[FileStorage]) -> list[tuple[str, Optional[str], bytes]]:
    """(file name, declared media type, bytes) for each non-empty upload field."""
    out = []
    for storage in files:
        if storage is None or not storage.filename:
            continue
        out.append((storage.filename, storage.mimetype, storage.read()))
    return out


def _positive_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    number = float(value)
    if not math.isfinite(number) or number <= 0:
        raise ValueError(f"expected a positive number, got {value!r}")
    return number


def display_size_from(data: Mapping[str, Any]) -> Optional[tuple[float, float]]:
    width = _positive_float(data.get("display_width", data.get("width")))
    height = _positive_float(data.get("display_height", data.get("height")))
    if width is None or height is None:
        return None
    return width, height


def drag_event_from(data: Mapping[str, Any]) -> Event:
    phase = str(data.get("phase", "")).lower()
    if phase == "end":
        return DragReleased()
    x = float(data["x"])
    y = float(data["y"])
    if phase == "start":
        return DragStarted(handle=str(data.get("handle", "move")), x=x, y=y)
    if phase == "move":
        return DragMoved(x=x, y=y)
    raise ValueError(f"Unknown drag phase: {phase!r}")


def session_payload(
    session_id: str,
    state: CropEngineState,
    decoded: Optional[DecodedImage] = None,
) -> dict[str, Any]:
    quality = quality_feedback(state)
    payload: dict[str, Any] = {
        "session_id": session_id,
        "state": state.to_dict(),
        "quality": None,
    }
    if quality is not None:
        payload["quality"] = {"level": quality.level, "text": quality.text, "hint": quality.hint}
    if decoded is not None:
        payload["preview"] = preview_summary(decoded)
    return payload
