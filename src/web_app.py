#!/usr/bin/env python3
"""Web app: pick or drop a garment photo, crop it 2:3, compress and upload."""

from __future__ import annotations

import json
import os
import platform
import threading
import time
import uuid
from io import BytesIO

import PIL
from flask import (
    Flask,
    Response,
    jsonify,
    render_template_string,
    request,
    send_file,
    send_from_directory,
    stream_with_context,
)

from config import settings
from core.crop_engine import DisplayResized
from core.errors import ImagePipelineError
from core.packaging import OutputFile
from core.run_logging import elapsed_logger
from crop_pipeline import acquire, load_preview, prepare_upload
from crop_sessions import CropSessionStore, SessionNotFound
from storage import LocalObjectStore, StorageError
from web_cropper import display_size_from, drag_event_from, session_payload, uploaded_files

app = Flask(__name__)
JOBS: dict[str, dict] = {}
JOBS_LOCK = threading.Lock()
SESSIONS = CropSessionStore()
OBJECT_STORE = LocalObjectStore(settings.paths.upload_dir, settings.web.public_base_url)

INDEX_HTML = """<!doctype html>
<html lang="it">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>DressUpMate - Ritaglia l'immagine</title>
  <style>
    :root { --bg: #f6f5f2; --card: #ffffff; --ink: #1f1f22; --accent: #6d28d9; --line: #dddad2; --warn: #b45309; --bad: #b91c1c; }
    body { margin: 0; font-family: system-ui, sans-serif; color: var(--ink); background: var(--bg); }
    main { max-width: 720px; margin: 2rem auto; padding: 0 1rem; }
    .card { background: var(--card); border: 1px solid var(--line); border-radius: 24px; padding: 1rem; }
    #dropzone { border: 2px dashed var(--line); border-radius: 16px; padding: 1rem; text-align: center; cursor: pointer; }
    #dropzone.active { border-color: var(--accent); background: #f3effd; }
    #stage { position: relative; display: none; margin: 1rem auto; width: fit-content; touch-action: none; }
    #stage img { display: block; max-height: 60vh; max-width: 100%; user-select: none; }
    #region { position: absolute; border: 2px solid #fff; box-shadow: 0 0 0 9999px rgba(0,0,0,.45); cursor: move; }
    .handle { position: absolute; width: 14px; height: 14px; background: #fff; border-radius: 50%; margin: -7px; }
    #quality { position: absolute; bottom: 8px; left: 50%; transform: translateX(-50%); background: rgba(0,0,0,.5);
               color: #fff; padding: 2px 8px; border-radius: 8px; font-size: .8rem; white-space: nowrap; }
    .row { display: flex; gap: .5rem; justify-content: flex-end; }
    button { border: 0; border-radius: 10px; padding: .6rem 1rem; color: #fff; background: var(--accent); cursor: pointer; }
    button.outline { background: transparent; color: var(--ink); border: 1px solid var(--line); }
    button:disabled { opacity: .55; cursor: not-allowed; }
    #status { min-height: 1.25rem; }
    #log { background: #f3f2ee; border: 1px solid var(--line); border-radius: 10px; padding: .6rem; white-space: pre-wrap; font-size: .8rem; }
    #result { max-width: 200px; display: none; border-radius: 12px; border: 1px solid var(--line); }
  </style>
</head>
<body>
  <main>
    <div class="card">
      <h1>Ritaglia l'immagine</h1>
      <div id="dropzone">
        <input id="fileInput" type="file" accept=".jpeg,.jpg,.png,.webp" hidden>
        <p><span>Trascina qui un'immagine o </span><strong>seleziona un file</strong></p>
        <small>PNG, JPG o WEBP (max 10MB)</small>
      </div>
      <div id="stage">
        <img id="source" alt="immagine da ritagliare">
        <div id="region">
          <div class="handle" data-handle="nw" style="left:0;top:0;cursor:nwse-resize"></div>
          <div class="handle" data-handle="n" style="left:50%;top:0;cursor:ns-resize"></div>
          <div class="handle" data-handle="ne" style="left:100%;top:0;cursor:nesw-resize"></div>
          <div class="handle" data-handle="e" style="left:100%;top:50%;cursor:ew-resize"></div>
          <div class="handle" data-handle="se" style="left:100%;top:100%;cursor:nwse-resize"></div>
          <div class="handle" data-handle="s" style="left:50%;top:100%;cursor:ns-resize"></div>
          <div class="handle" data-handle="sw" style="left:0;top:100%;cursor:nesw-resize"></div>
          <div class="handle" data-handle="w" style="left:0;top:50%;cursor:ew-resize"></div>
          <div id="quality"></div>
        </div>
      </div>
      <div class="row">
        <button id="cancelBtn" class="outline" disabled>Annulla</button>
        <button id="confirmBtn" disabled>Conferma</button>
        <button id="uploadBtn" disabled>Carica</button>
      </div>
      <p id="status"></p>
      <img id="result" alt="immagine ritagliata">
      <pre id="log"></pre>
    </div>
  </main>
  <script>
    const $ = (id) => document.getElementById(id);
    const clientId = localStorage.getItem("dressupClient") || crypto.randomUUID();
    localStorage.setItem("dressupClient", clientId);
    let sessionId = null;
    let croppedBlob = null;
    let croppedName = null;
    let dragInFlight = false;
    let pendingMove = null;

    function setStatus(text) { $("status").textContent = text; }
    function logLine(text) { $("log").textContent += text + "\\n"; }

    async function api(path, body) {
      const res = await fetch(path, {
        method: "POST",
        headers: body instanceof FormData ? {} : { "Content-Type": "application/json" },
        body: body instanceof FormData ? body : JSON.stringify(body || {}),
      });
      const data = await res.json().catch(() => ({}));
      if (!res.ok) throw new Error(data.error || `Errore del server (${res.status})`);
      return data;
    }

    function render(payload) {
      if (!payload || payload.session_id !== sessionId) return;
      const r = payload.state.region;
      if (!r) return;
      const el = $("region");
      el.style.left = r.x + "px"; el.style.top = r.y + "px";
      el.style.width = r.width + "px"; el.style.height = r.height + "px";
      const size = payload.state.natural_crop_size;
      let text = size ? `${size[0]} × ${size[1]}px` : "";
      if (payload.quality) text += ` · ${payload.quality.text}`;
      $("quality").textContent = text;
    }

    function reset() {
      sessionId = null;
      $("stage").style.display = "none";
      $("confirmBtn").disabled = true;
      $("cancelBtn").disabled = true;
    }

    async function selectFile(file) {
      if (!file) return;
      const img = $("source");
      img.src = URL.createObjectURL(file);
      $("stage").style.display = "block";
      await img.decode().catch(() => {});
      const form = new FormData();
      form.append("image", file);
      form.append("client_id", clientId);
      form.append("display_width", img.clientWidth);
      form.append("display_height", img.clientHeight);
      const requested = Symbol();
      selectFile.latest = requested;
      try {
        const data = await api("/api/sessions", form);
        if (selectFile.latest !== requested) return;
        sessionId = data.session_id;
        render(data);
        $("confirmBtn").disabled = false;
        $("cancelBtn").disabled = false;
        setStatus(data.preview ? `${data.preview.display_name} (${data.preview.size})` : "");
      } catch (err) {
        if (selectFile.latest !== requested) return;
        reset();
        setStatus("Errore: " + err.message);
      }
    }

    async function sendDrag(body) {
      if (!sessionId) return;
      const current = sessionId;
      if (body.phase === "move" && dragInFlight) { pendingMove = body; return; }
      dragInFlight = true;
      try {
        const data = await api(`/api/sessions/${current}/drag`, body);
        render(data);
      } catch (err) {
        setStatus("Errore: " + err.message);
      } finally {
        dragInFlight = false;
        if (pendingMove) { const next = pendingMove; pendingMove = null; sendDrag(next); }
      }
    }

    function stagePoint(ev) {
      const box = $("source").getBoundingClientRect();
      return { x: ev.clientX - box.left, y: ev.clientY - box.top };
    }

    $("region").addEventListener("pointerdown", (ev) => {
      ev.preventDefault();
      $("region").setPointerCapture(ev.pointerId);
      const handle = ev.target.dataset.handle || "move";
      sendDrag({ phase: "start", handle, ...stagePoint(ev) });
    });
    $("region").addEventListener("pointermove", (ev) => {
      if (!$("region").hasPointerCapture(ev.pointerId)) return;
      sendDrag({ phase: "move", ...stagePoint(ev) });
    });
    $("region").addEventListener("pointerup", (ev) => {
      $("region").releasePointerCapture(ev.pointerId);
      pendingMove = null;
      sendDrag({ phase: "end" });
    });

    window.addEventListener("resize", async () => {
      if (!sessionId) return;
      const img = $("source");
      try {
        render(await api(`/api/sessions/${sessionId}/display`, { width: img.clientWidth, height: img.clientHeight }));
      } catch (err) { setStatus("Errore: " + err.message); }
    });

    const dz = $("dropzone");
    dz.addEventListener("click", () => $("fileInput").click());
    dz.addEventListener("dragover", (ev) => { ev.preventDefault(); dz.classList.add("active"); });
    dz.addEventListener("dragleave", () => dz.classList.remove("active"));
    dz.addEventListener("drop", (ev) => {
      ev.preventDefault();
      dz.classList.remove("active");
      selectFile(ev.dataTransfer.files[0]);
    });
    $("fileInput").addEventListener("change", (ev) => selectFile(ev.target.files[0]));

    $("cancelBtn").addEventListener("click", async () => {
      if (!sessionId) return;
      const current = sessionId;
      reset();
      try { await api(`/api/sessions/${current}/cancel`); setStatus("Annullato"); }
      catch (err) { setStatus("Errore: " + err.message); }
    });

    $("confirmBtn").addEventListener("click", async () => {
      if (!sessionId) return;
      const current = sessionId;
      $("confirmBtn").disabled = true;
      $("log").textContent = "";
      setStatus("Elaborazione...");
      try {
        const { job_id } = await api(`/api/sessions/${current}/confirm`);
        await new Promise((resolve, reject) => {
          const es = new EventSource(`/api/jobs/${job_id}/events`);
          es.onmessage = (ev) => {
            const payload = JSON.parse(ev.data);
            if (payload.type === "log") logLine(payload.message);
            if (payload.type === "done") { es.close(); resolve(); }
            if (payload.type === "cancelled") { es.close(); reject(new Error("annullato")); }
            if (payload.type === "error") { es.close(); reject(new Error(payload.message)); }
          };
          es.onerror = () => { es.close(); reject(new Error("Connessione persa")); };
        });
        if (sessionId !== current) return;
        const res = await fetch(`/api/jobs/${job_id}/result`);
        if (!res.ok) throw new Error(`Errore del server (${res.status})`);
        croppedBlob = await res.blob();
        croppedName = res.headers.get("X-File-Name") || "cropped.jpg";
        $("result").src = URL.createObjectURL(croppedBlob);
        $("result").style.display = "block";
        $("uploadBtn").disabled = false;
        reset();
        setStatus("Fatto.");
      } catch (err) {
        $("confirmBtn").disabled = sessionId !== current;
        setStatus("Errore: " + err.message);
      }
    });

    $("uploadBtn").addEventListener("click", async () => {
      if (!croppedBlob) return;
      const form = new FormData();
      form.append("image", new File([croppedBlob], croppedName, { type: "image/jpeg" }));
      $("uploadBtn").disabled = true;
      try {
        const data = await api("/api/uploads", form);
        setStatus("Caricato: " + data.url);
      } catch (err) {
        $("uploadBtn").disabled = false;
        setStatus("Errore: " + err.message);
      }
    });
  </script>
</body>
</html>
"""


def _error_response(exc: ImagePipelineError):
    return jsonify(exc.to_dict()), exc.status


def _owner() -> str:
    return request.form.get("client_id") or request.remote_addr or "anonymous"


def _job_log(job_id: str, message: str) -> None:
    with JOBS_LOCK:
        job = JOBS.get(job_id)
        if job is not None:
            job["logs"].append(message)


def _finish_job(job_id: str, **fields) -> None:
    with JOBS_LOCK:
        job = JOBS.get(job_id)
        if job is not None and job["status"] in ("queued", "running"):
            job.update(fields)


@app.get("/")
def index():
    return render_template_string(INDEX_HTML)


@app.post("/api/sessions")
def create_session():
    try:
        source = acquire(uploaded_files(request.files.getlist("image")))
        display_size = display_size_from(request.form)
    except ImagePipelineError as exc:
        return _error_response(exc)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    session = SESSIONS.begin(_owner())
    try:
        decoded = load_preview(source)
    except ImagePipelineError as exc:
        try:
            SESSIONS.cancel(session.session_id)
        except SessionNotFound:
            # superseded by a newer file, which already cancelled it
            pass
        return _error_response(exc)

    state = SESSIONS.attach_image(session.session_id, decoded, display_size)
    if state is None:
        return jsonify({"error": "Selection superseded by a newer file", "code": "superseded"}), 409
    return jsonify(session_payload(session.session_id, state, decoded))


@app.post("/api/sessions/<session_id>/display")
def resize_display(session_id: str):
    data = request.get_json(silent=True) or {}
    try:
        size = display_size_from(data)
        if size is None:
            return jsonify({"error": "Missing width/height"}), 400
        state = SESSIONS.dispatch(session_id, DisplayResized(*size))
    except SessionNotFound:
        return jsonify({"error": "Session not found"}), 404
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(session_payload(session_id, state))


@app.post("/api/sessions/<session_id>/drag")
def drag_region(session_id: str):
    data = request.get_json(silent=True) or {}
    try:
        state = SESSIONS.dispatch(session_id, drag_event_from(data))
    except SessionNotFound:
        return jsonify({"error": "Session not found"}), 404
    except (KeyError, TypeError, ValueError) as exc:
        return jsonify({"error": f"Invalid drag event: {exc}"}), 400
    return jsonify(session_payload(session_id, state))


@app.post("/api/sessions/<session_id>/cancel")
def cancel_session(session_id: str):
    try:
        state = SESSIONS.cancel(session_id)
    except SessionNotFound:
        return jsonify({"error": "Session not found"}), 404
    return jsonify(session_payload(session_id, state))


@app.post("/api/sessions/<session_id>/confirm")
def confirm_session(session_id: str):
    try:
        SESSIONS.get(session_id)
    except SessionNotFound:
        return jsonify({"error": "Session not found"}), 404

    job_id = uuid.uuid4().hex
    with JOBS_LOCK:
        JOBS[job_id] = {
            "status": "queued",
            "session_id": session_id,
            "logs": ["[+0.000s] job_queued"],
            "result": None,
            "error": None,
        }
    progress = elapsed_logger(lambda message: _job_log(job_id, message))

    def on_crop_complete(output: OutputFile) -> None:
        progress("job_finished")
        _finish_job(job_id, status="done", result=output)

    def on_cancel() -> None:
        progress("job_cancelled")
        _finish_job(job_id, status="cancelled")

    def on_error(exc: ImagePipelineError) -> None:
        progress(f"error {exc.detail or exc.user_message}")
        _finish_job(job_id, status="error", error=exc.user_message)

    try:
        with JOBS_LOCK:
            JOBS[job_id]["status"] = "running"
        progress("job_started")
        SESSIONS.confirm(
            session_id,
            progress_cb=progress,
            on_crop_complete=on_crop_complete,
            on_cancel=on_cancel,
            on_error=on_error,
        )
    except SessionNotFound:
        _finish_job(job_id, status="error", error="Session not found")
        return jsonify({"error": "Session not found"}), 404
    except ImagePipelineError as exc:
        _finish_job(job_id, status="error", error=exc.user_message)
        return _error_response(exc)
    except ValueError as exc:
        _finish_job(job_id, status="error", error=str(exc))
        return jsonify({"error": str(exc)}), 409
    return jsonify({"job_id": job_id, "session_id": session_id})


@app.get("/api/jobs/<job_id>/events")
def job_events(job_id: str):
    def event_stream():
        sent = 0
        while True:
            with JOBS_LOCK:
                job = JOBS.get(job_id)
                if job is None:
                    payload = {"type": "error", "message": "Job not found"}
                    yield f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
                    return
                logs = list(job["logs"])
                status = job["status"]
                error = job["error"]
            while sent < len(logs):
                payload = {"type": "log", "message": logs[sent]}
                yield f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
                sent += 1
            if status in ("done", "cancelled"):
                yield f"data: {json.dumps({'type': status}, ensure_ascii=False)}\n\n"
                return
            if status == "error":
                payload = {"type": "error", "message": error or "Processing failed"}
                yield f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
                return
            yield ": keepalive\n\n"
            time.sleep(settings.web.events_poll_sec)

    return Response(stream_with_context(event_stream()), mimetype="text/event-stream")


@app.get("/api/jobs/<job_id>/result")
def job_result(job_id: str):
    with JOBS_LOCK:
        job = JOBS.get(job_id)
    if job is None:
        return jsonify({"error": "Job not found"}), 404
    if job["status"] == "error":
        return jsonify({"error": job["error"] or "Processing failed"}), 500
    if job["status"] == "cancelled":
        return jsonify({"error": "Crop was cancelled"}), 410
    if job["status"] != "done" or job["result"] is None:
        return jsonify({"error": "Result is not ready"}), 425

    output: OutputFile = job["result"]
    response = send_file(
        BytesIO(output.payload),
        mimetype=output.media_type,
        as_attachment=True,
        download_name=output.file_name,
    )
    response.headers["X-File-Name"] = output.file_name
    response.headers["X-Last-Modified"] = str(output.last_modified)
    return response


@app.post("/api/compress")
def compress_api():
    try:
        source = acquire(uploaded_files(request.files.getlist("image")))
        max_width = int(request.form.get("max_width", settings.compression.max_width))
        quality = float(request.form.get("quality", settings.compression.quality))
        compressed = prepare_upload(source, max_width=max_width, quality=quality)
    except ImagePipelineError as exc:
        return _error_response(exc)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    response = send_file(
        BytesIO(compressed.payload),
        mimetype=compressed.media_type,
        download_name=compressed.file_name,
    )
    response.headers["X-File-Name"] = compressed.file_name
    return response


@app.post("/api/uploads")
def upload_api():
    try:
        source = acquire(uploaded_files(request.files.getlist("image")))
        compressed = prepare_upload(source)
        url = OBJECT_STORE.upload(compressed)
    except ImagePipelineError as exc:
        return _error_response(exc)
    except StorageError as exc:
        return jsonify({"error": "Upload failed", "detail": str(exc)}), 502
    return jsonify({"url": url, "file_name": compressed.file_name, "size": compressed.size})


@app.get("/uploads/<path:key>")
def uploaded_object(key: str):
    return send_from_directory(OBJECT_STORE.root.resolve(), key)


@app.get("/api/runtime")
def runtime_info():
    return jsonify(
        {
            "python": platform.python_version(),
            "pillow": PIL.__version__,
            "max_upload_bytes": settings.acquisition.max_bytes,
            "crop_aspect": settings.crop.aspect,
            "compress_max_width": settings.compression.max_width,
        }
    )


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", str(settings.web.port))), debug=False)
