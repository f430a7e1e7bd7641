from __future__ import annotations

import threading

import pytest

from core.crop_engine import DragMoved, DragReleased, DragStarted, Phase
from core.errors import EncodingFailed
from core.packaging import package_output
from crop_sessions import CropSessionStore, SessionNotFound


class BlockingRender:
    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def __call__(self, decoded, state, *, progress_cb=None):
        self.calls += 1
        self.started.set()
        assert self.release.wait(5)
        return {"output": package_output(b"\xff\xd8jpeg", "shirt_cropped.jpg")}


class Recorder:
    def __init__(self) -> None:
        self.completed = []
        self.cancelled = 0
        self.errors = []

    def callbacks(self):
        return {
            "on_crop_complete": self.completed.append,
            "on_cancel": self._on_cancel,
            "on_error": self.errors.append,
        }

    def _on_cancel(self):
        self.cancelled += 1


def _ready_session(store, decoded_image, owner="client-1", recorder=None):
    session = store.begin(owner, **(recorder.callbacks() if recorder else {}))
    state = store.attach_image(session.session_id, decoded_image(), (300.0, 450.0))
    assert state is not None and state.phase == Phase.CROP_READY
    return session


def test_confirm_delivers_output_once(decoded_image):
    render = BlockingRender()
    recorder = Recorder()
    store = CropSessionStore(render=render)
    session = _ready_session(store, decoded_image, recorder=recorder)

    worker = store.confirm(session.session_id)
    render.release.set()
    worker.join(5)

    assert [f.file_name for f in recorder.completed] == ["shirt_cropped.jpg"]
    assert store.get(session.session_id).state.delivered
    assert store.cancel(session.session_id).phase == Phase.CROP_CONFIRMED
    assert recorder.cancelled == 0


def test_cancel_during_render_discards_output(decoded_image):
    render = BlockingRender()
    recorder = Recorder()
    store = CropSessionStore(render=render)
    session = _ready_session(store, decoded_image, recorder=recorder)

    worker = store.confirm(session.session_id)
    assert render.started.wait(5)
    assert store.cancel(session.session_id).phase == Phase.CROP_CANCELLED
    render.release.set()
    worker.join(5)

    assert recorder.completed == []
    assert recorder.cancelled == 1
    with pytest.raises(SessionNotFound):
        store.get(session.session_id)


def test_new_acquisition_supersedes_render(decoded_image):
    render = BlockingRender()
    first = Recorder()
    store = CropSessionStore(render=render)
    old = _ready_session(store, decoded_image, recorder=first)

    worker = store.confirm(old.session_id)
    assert render.started.wait(5)
    new = _ready_session(store, decoded_image)
    render.release.set()
    worker.join(5)

    assert first.completed == []
    assert first.cancelled == 1
    assert not store.is_current(old.session_id)
    assert store.is_current(new.session_id)


def test_stale_decode_is_not_attached(decoded_image):
    store = CropSessionStore()
    old = store.begin("client-1")
    store.begin("client-1")
    assert store.attach_image(old.session_id, decoded_image()) is None


def test_owners_are_independent(decoded_image):
    store = CropSessionStore()
    a = _ready_session(store, decoded_image, owner="a")
    b = _ready_session(store, decoded_image, owner="b")
    assert store.is_current(a.session_id) and store.is_current(b.session_id)


def test_render_error_returns_to_ready(decoded_image):
    recorder = Recorder()

    def failing_render(decoded, state, *, progress_cb=None):
        raise EncodingFailed("encoder returned no data")

    store = CropSessionStore(render=failing_render)
    session = _ready_session(store, decoded_image, recorder=recorder)
    store.confirm(session.session_id).join(5)

    assert [e.code for e in recorder.errors] == ["encoding_failed"]
    assert store.get(session.session_id).state.phase == Phase.CROP_READY


def test_dispatch_drives_drag(decoded_image):
    store = CropSessionStore()
    session = _ready_session(store, decoded_image)
    store.dispatch(session.session_id, DragStarted("e", 270, 225))
    store.dispatch(session.session_id, DragMoved(250, 225))
    state = store.dispatch(session.session_id, DragReleased())
    assert state.phase == Phase.CROP_READY
    assert state.completed.width == pytest.approx(220)


def test_confirm_before_decode_is_rejected():
    store = CropSessionStore()
    session = store.begin("client-1")
    with pytest.raises(ValueError):
        store.confirm(session.session_id)


def test_unknown_session():
    with pytest.raises(SessionNotFound):
        CropSessionStore().dispatch("missing", DragReleased())


def test_second_confirm_is_rejected_and_keeps_callbacks(decoded_image):
    render = BlockingRender()
    first = Recorder()
    second = Recorder()
    store = CropSessionStore(render=render)
    session = _ready_session(store, decoded_image)

    worker = store.confirm(session.session_id, **first.callbacks())
    assert render.started.wait(5)
    with pytest.raises(ValueError):
        store.confirm(session.session_id, **second.callbacks())
    render.release.set()
    worker.join(5)

    assert render.calls == 1
    assert len(first.completed) == 1
    assert second.completed == []


def test_unexpected_render_error_returns_to_ready(decoded_image):
    recorder = Recorder()

    def crashing_render(decoded, state, *, progress_cb=None):
        raise RuntimeError("resampler out of memory")

    store = CropSessionStore(render=crashing_render)
    session = _ready_session(store, decoded_image, recorder=recorder)
    store.confirm(session.session_id).join(5)

    assert [e.code for e in recorder.errors] == ["encoding_failed"]
    assert "resampler out of memory" in recorder.errors[0].detail
    assert store.get(session.session_id).state.phase == Phase.CROP_READY
