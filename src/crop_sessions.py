#!/usr/bin/env python3
"""Crop dialog sessions: one current acquisition per owner, stale work discarded."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from core.crop_engine import (
    Cancel,
    Confirm,
    ConfirmFailed,
    CropEngineState,
    Event,
    FileAccepted,
    ImageDecoded,
    OutputDelivered,
    Phase,
    reduce,
)
from core.errors import EncodingFailed, ImagePipelineError
from core.packaging import OutputFile
from core.preview import DecodedImage
from crop_pipeline import new_engine_state, render_confirmed


class SessionNotFound(LookupError):
    pass


@dataclass
class CropSession:
    session_id: str
    owner: str
    state: CropEngineState
    decoded: Optional[DecodedImage] = None
    on_crop_complete: Optional[Callable[[OutputFile], None]] = None
    on_cancel: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[ImagePipelineError], None]] = None


class CropSessionStore:
    """Thread-safe registry of crop sessions.

    The acquisition id doubles as the session id. A new acquisition for an
    owner cancels the previous one, and background render jobs re-check that
    their acquisition is still current before delivering anything.
    """

    def __init__(
        self,
        *,
        state_factory: Callable[[], CropEngineState] = new_engine_state,
        render: Callable[..., Dict[str, Any]] = render_confirmed,
    ) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, CropSession] = {}
        self._current: Dict[str, str] = {}
        self._state_factory = state_factory
        self._render = render

    def begin(
        self,
        owner: str,
        *,
        on_crop_complete: Optional[Callable[[OutputFile], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[ImagePipelineError], None]] = None,
    ) -> CropSession:
        acquisition_id = uuid.uuid4().hex
        session = CropSession(
            session_id=acquisition_id,
            owner=owner,
            state=reduce(self._state_factory(), FileAccepted(acquisition_id)),
            on_crop_complete=on_crop_complete,
            on_cancel=on_cancel,
            on_error=on_error,
        )
        with self._lock:
            previous = self._pop_locked(self._current.get(owner))
            self._sessions[acquisition_id] = session
            self._current[owner] = acquisition_id
        if previous is not None:
            self._notify_cancelled(previous)
        return session

    def get(self, session_id: str) -> CropSession:
        with self._lock:
            return self._get_locked(session_id)

    def is_current(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            return session is not None and self._current.get(session.owner) == session_id

    def attach_image(
        self,
        session_id: str,
        decoded: DecodedImage,
        display_size: Optional[Tuple[float, float]] = None,
    ) -> Optional[CropEngineState]:
        """Hand a finished decode to its session; returns None when superseded."""
        natural_w, natural_h = decoded.natural_size
        display_w, display_h = display_size or (float(natural_w), float(natural_h))
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or self._current.get(session.owner) != session_id:
                return None
            state = reduce(session.state, ImageDecoded(session_id, natural_w, natural_h, display_w, display_h))
            if state.phase != Phase.CROP_READY:
                return None
            session.state = state
            session.decoded = decoded
            return state

    def dispatch(self, session_id: str, event: Event) -> CropEngineState:
        with self._lock:
            session = self._get_locked(session_id)
            session.state = reduce(session.state, event)
            return session.state

    def cancel(self, session_id: str) -> CropEngineState:
        with self._lock:
            session = self._get_locked(session_id)
            state = reduce(session.state, Cancel())
            if state.phase != Phase.CROP_CANCELLED:
                return state
            self._pop_locked(session_id)
        self._notify_cancelled(session, state)
        return state

    def confirm(
        self,
        session_id: str,
        *,
        progress_cb: Optional[Callable[[str], None]] = None,
        on_crop_complete: Optional[Callable[[OutputFile], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[ImagePipelineError], None]] = None,
    ) -> threading.Thread:
        """Move to CropConfirmed and render in a background thread.

        Only a CropReady session can confirm, so each confirmed crop is rendered
        and delivered once. Callbacks given here replace the session's ones.
        """
        with self._lock:
            session = self._get_locked(session_id)
            if session.state.phase != Phase.CROP_READY or session.decoded is None:
                raise ValueError(f"Session {session_id} cannot confirm from {session.state.phase.value}")
            session.state = reduce(session.state, Confirm())
            if on_crop_complete is not None:
                session.on_crop_complete = on_crop_complete
            if on_cancel is not None:
                session.on_cancel = on_cancel
            if on_error is not None:
                session.on_error = on_error
            state = session.state
            decoded = session.decoded
        worker = threading.Thread(
            target=self._render_job,
            args=(session_id, decoded, state, progress_cb),
            daemon=True,
        )
        worker.start()
        return worker

    def _render_job(
        self,
        session_id: str,
        decoded: DecodedImage,
        state: CropEngineState,
        progress_cb: Optional[Callable[[str], None]],
    ) -> None:
        try:
            result = self._render(decoded, state, progress_cb=progress_cb)
        except ImagePipelineError as exc:
            self._fail_render(session_id, exc)
            return
        except Exception as exc:
            self._fail_render(session_id, EncodingFailed(f"{type(exc).__name__}: {exc}"))
            return

        with self._lock:
            session = self._live_confirmed_locked(session_id)
            if session is not None:
                session.state = reduce(session.state, OutputDelivered(session_id))
                session.decoded = None
        if session is not None and session.on_crop_complete:
            session.on_crop_complete(result["output"])

    def _fail_render(self, session_id: str, exc: ImagePipelineError) -> None:
        with self._lock:
            session = self._live_confirmed_locked(session_id)
            if session is not None:
                session.state = reduce(session.state, ConfirmFailed(session_id))
        if session is not None and session.on_error:
            session.on_error(exc)

    def _live_confirmed_locked(self, session_id: str) -> Optional[CropSession]:
        session = self._sessions.get(session_id)
        if session is None or self._current.get(session.owner) != session_id:
            return None
        if session.state.phase != Phase.CROP_CONFIRMED or session.state.delivered:
            return None
        return session

    def _get_locked(self, session_id: str) -> CropSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _pop_locked(self, session_id: Optional[str]) -> Optional[CropSession]:
        if session_id is None:
            return None
        session = self._sessions.pop(session_id, None)
        if session is not None and self._current.get(session.owner) == session_id:
            del self._current[session.owner]
        return session

    def _notify_cancelled(self, session: CropSession, state: Optional[CropEngineState] = None) -> None:
        if state is None:
            state = reduce(session.state, Cancel())
        changed = state.phase == Phase.CROP_CANCELLED and session.state.phase != Phase.CROP_CANCELLED
        session.state = state
        session.decoded = None
        if changed and session.on_cancel:
            session.on_cancel()
