from __future__ import annotations

import pytest

from core.crop_engine import (
    Cancel,
    Confirm,
    ConfirmFailed,
    CropEngineState,
    DisplayResized,
    DragMoved,
    DragReleased,
    DragStarted,
    FileAccepted,
    ImageDecoded,
    OutputDelivered,
    Phase,
    reduce,
)
from core.errors import CropTooSmall


def _ready(acquisition_id="a1", natural=(3000, 4500), display=(1000.0, 1500.0), **kwargs) -> CropEngineState:
    state = reduce(CropEngineState(**kwargs), FileAccepted(acquisition_id))
    return reduce(state, ImageDecoded(acquisition_id, natural[0], natural[1], display[0], display[1]))


def test_file_accepted_enters_image_loading():
    state = reduce(CropEngineState(), FileAccepted("a1"))
    assert state.phase == Phase.IMAGE_LOADING
    assert state.acquisition_id == "a1"
    assert state.region is None


def test_decode_seeds_centred_region():
    state = _ready()
    assert state.phase == Phase.CROP_READY
    assert state.region.width == pytest.approx(800)
    assert state.region.height == pytest.approx(1200)
    assert state.completed == state.region
    assert state.natural_crop_size() == (2400, 3600)


def test_stale_decode_is_ignored():
    state = reduce(CropEngineState(), FileAccepted("new"))
    stale = reduce(state, ImageDecoded("old", 100, 150, 100, 150))
    assert stale is state


def test_new_file_replaces_previous_session():
    state = _ready("a1")
    state = reduce(state, FileAccepted("a2"))
    assert state.phase == Phase.IMAGE_LOADING
    assert state.displayed is None
    assert reduce(state, ImageDecoded("a1", 100, 150, 100, 150)).phase == Phase.IMAGE_LOADING


def test_drag_cycle_updates_completed_on_release():
    state = _ready()
    state = reduce(state, DragStarted("se", 900, 1350))
    assert state.phase == Phase.CROPPING
    state = reduce(state, DragMoved(850, 1350))
    assert state.region.width == pytest.approx(750)
    assert state.completed.width == pytest.approx(800)
    state = reduce(state, DragReleased())
    assert state.phase == Phase.CROP_READY
    assert state.completed == state.region
    assert state.region.width / state.region.height == pytest.approx(2 / 3)


def test_drag_with_unknown_handle_raises():
    with pytest.raises(ValueError):
        reduce(_ready(), DragStarted("centre", 0, 0))


def test_events_out_of_phase_are_noops():
    idle = CropEngineState()
    for event in (DragMoved(1, 1), DragReleased(), Confirm(), Cancel(), DisplayResized(10, 10)):
        assert reduce(idle, event) is idle


def test_display_resize_rescales_and_settles_drag():
    state = reduce(_ready(), DragStarted("move", 10, 10))
    state = reduce(state, DisplayResized(500, 750))
    assert state.phase == Phase.CROP_READY
    assert state.drag is None
    assert state.region.width == pytest.approx(400)
    assert state.natural_crop_size() == (2400, 3600)


def test_confirm_without_drag_uses_initial_region():
    state = reduce(_ready(), Confirm())
    assert state.phase == Phase.CROP_CONFIRMED
    assert state.completed == state.region


def test_confirm_rejects_tiny_crop():
    state = _ready(natural=(30, 45), display=(300.0, 450.0), min_output_px=16)
    state = reduce(state, DragStarted("se", 0, 0))
    state = reduce(state, DragMoved(-1000, -1000))
    state = reduce(state, DragReleased())
    with pytest.raises(CropTooSmall):
        reduce(state, Confirm())


def test_confirm_failed_returns_to_ready():
    state = reduce(_ready("a1"), Confirm())
    assert reduce(state, ConfirmFailed("other")) is state
    assert reduce(state, ConfirmFailed("a1")).phase == Phase.CROP_READY


def test_cancel_clears_state_from_every_live_phase():
    ready = _ready()
    for state in (
        reduce(CropEngineState(), FileAccepted("a1")),
        ready,
        reduce(ready, DragStarted("move", 0, 0)),
        reduce(ready, Confirm()),
    ):
        cancelled = reduce(state, Cancel())
        assert cancelled.phase == Phase.CROP_CANCELLED
        assert cancelled.region is None and cancelled.displayed is None


def test_cancel_after_delivery_is_noop():
    state = reduce(reduce(_ready("a1"), Confirm()), OutputDelivered("a1"))
    assert state.delivered
    assert reduce(state, Cancel()) is state


def test_unknown_event_type():
    with pytest.raises(TypeError):
        reduce(CropEngineState(), object())


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), 0.0, -5.0])
def test_non_finite_display_resize_is_ignored(bad):
    state = _ready()
    assert reduce(state, DisplayResized(bad, 450.0)) is state


def test_non_finite_decode_size_is_rejected():
    state = reduce(CropEngineState(), FileAccepted("a1"))
    with pytest.raises(ValueError):
        reduce(state, ImageDecoded("a1", 100, 150, float("nan"), 150.0))
