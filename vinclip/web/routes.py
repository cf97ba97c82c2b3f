"""Web UI routes for vinclip."""

import io
import json
import queue
import shutil
import uuid
from pathlib import Path

from flask import (
    Blueprint,
    Response,
    current_app,
    jsonify,
    render_template,
    request,
    send_file,
)

from vinclip.errors import LoadError
from vinclip.loader import looks_like_url
from vinclip.models import TERMINAL_STATES, CaptureJob, CaptureState
from vinclip.session import Session

bp = Blueprint("web", __name__, template_folder="templates")

# In-memory session store: session_id -> entry dict
_sessions: dict[str, dict] = {}


def _open_session(locator) -> tuple[str, dict]:
    """Create a session directory and load *locator* into a fresh Session.

    *locator* may be a callable taking the session directory and returning
    the path to load, so uploads can be saved into it first.
    """
    session_id = uuid.uuid4().hex[:12]
    session_dir = Path(current_app.config["WORK_DIR"]) / session_id
    session_dir.mkdir(parents=True, exist_ok=True)

    session = Session(
        current_app.config["VINCLIP"],
        work_dir=session_dir,
        run_async=current_app.config["RUN_ASYNC"],
    )
    try:
        session.load(locator(session_dir) if callable(locator) else locator)
    except LoadError:
        shutil.rmtree(session_dir, ignore_errors=True)
        raise

    entry = {"dir": session_dir, "session": session, "progress_queue": None}
    _sessions[session_id] = entry
    return session_id, entry


def _describe(session_id: str, entry: dict) -> dict:
    session: Session = entry["session"]
    return {
        "session_id": session_id,
        "filename": entry.get("filename") or session.source.path.name,
        "source": session.source.to_dict(),
        "selection": session.selection(),
    }


def _lookup(session_id: str, loaded: bool = True):
    """Return (entry, None) or (None, error response)."""
    entry = _sessions.get(session_id)
    if entry is None:
        return None, (jsonify({"error": "Session not found"}), 404)
    if loaded and entry["session"].source is None:
        return None, (jsonify({"error": "No video loaded"}), 409)
    return entry, None


@bp.route("/")
def index():
    return render_template("index.html")


@bp.route("/api/upload", methods=["POST"])
def upload():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    f = request.files["file"]
    if not f.filename:
        return jsonify({"error": "Empty filename"}), 400

    def save(session_dir: Path) -> Path:
        ext = Path(f.filename).suffix or ".mp4"
        input_path = session_dir / f"input{ext}"
        f.save(input_path)
        return input_path

    try:
        session_id, entry = _open_session(save)
    except LoadError as e:
        return jsonify({"error": str(e)}), 400

    entry["filename"] = f.filename
    return jsonify(_describe(session_id, entry))


@bp.route("/api/load", methods=["POST"])
def load_url():
    url = (request.get_json(silent=True) or {}).get("url", "")
    if not looks_like_url(url):
        return jsonify({"error": "Provide an http(s) video URL"}), 400

    try:
        session_id, entry = _open_session(url)
    except LoadError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(_describe(session_id, entry))


@bp.route("/api/sessions/<session_id>/selection", methods=["GET", "POST"])
def selection(session_id: str):
    entry, err = _lookup(session_id)
    if err:
        return err

    session: Session = entry["session"]
    if request.method == "POST":
        body = request.get_json(silent=True) or {}
        try:
            start = float(body["start"]) if body.get("start") is not None else None
            end = float(body["end"]) if body.get("end") is not None else None
        except (TypeError, ValueError):
            return jsonify({"error": "start and end must be numbers"}), 400
        session.select(start, end)
    return jsonify(session.selection())


@bp.route("/api/sessions/<session_id>/events", methods=["POST"])
def post_events(session_id: str):
    entry, err = _lookup(session_id)
    if err:
        return err

    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and "events" in payload:
        payload = payload["events"]
    events = payload if isinstance(payload, list) else [payload]

    session: Session = entry["session"]
    for event in events:
        session.handle_event(event)
    return jsonify(session.selection())


@bp.route("/api/sessions/<session_id>/source")
def source_video(session_id: str):
    entry, err = _lookup(session_id)
    if err:
        return err
    return send_file(Path(entry["session"].source.path).resolve(), conditional=True)


@bp.route("/api/sessions/<session_id>/play", methods=["POST"])
def play_selection(session_id: str):
    entry, err = _lookup(session_id)
    if err:
        return err

    try:
        return jsonify(entry["session"].play_selection())
    except ValueError as e:
        return jsonify({"error": str(e)}), 409


@bp.route("/api/sessions/<session_id>/position", methods=["POST"])
def update_position(session_id: str):
    entry, err = _lookup(session_id)
    if err:
        return err

    body = request.get_json(silent=True) or {}
    try:
        position = float(body["position"])
    except (KeyError, TypeError, ValueError):
        return jsonify({"error": "position must be a number"}), 400
    return jsonify(entry["session"].update_position(position))


@bp.route("/api/sessions/<session_id>/thumbnails")
def list_thumbnails(session_id: str):
    entry, err = _lookup(session_id)
    if err:
        return err

    session: Session = entry["session"]
    thumbs = session.thumbnails
    if thumbs is None:
        return jsonify({"kind": None, "selected": None, "items": []})
    items = [
        {
            "index": i,
            "offset": t.offset,
            "ok": t.ok,
            "error": t.error,
            "url": f"/api/sessions/{session_id}/thumbnails/{i}" if t.ok else None,
        }
        for i, t in enumerate(thumbs.items)
    ]
    return jsonify({"kind": thumbs.kind, "selected": session.selected_thumbnail, "items": items})


@bp.route("/api/sessions/<session_id>/thumbnails/<int:index>")
def thumbnail_image(session_id: str, index: int):
    entry, err = _lookup(session_id)
    if err:
        return err

    thumbs = entry["session"].thumbnails
    if thumbs is None or index >= len(thumbs.items) or not thumbs.items[index].ok:
        return jsonify({"error": "Thumbnail not found"}), 404
    return send_file(io.BytesIO(thumbs.items[index].image), mimetype="image/jpeg")


@bp.route("/api/sessions/<session_id>/thumbnails/<int:index>/select", methods=["POST"])
def select_thumbnail(session_id: str, index: int):
    entry, err = _lookup(session_id)
    if err:
        return err

    if not entry["session"].select_thumbnail(index):
        return jsonify({"error": "Thumbnail not available"}), 400
    return jsonify({"selected": index})


@bp.route("/api/sessions/<session_id>/thumbnail")
def download_thumbnail(session_id: str):
    entry, err = _lookup(session_id)
    if err:
        return err

    artifact = entry["session"].thumbnail_artifact()
    if artifact is None:
        return jsonify({"error": "No thumbnail selected"}), 409
    return send_file(
        io.BytesIO(artifact.data),
        mimetype=artifact.mimetype,
        as_attachment=True,
        download_name=artifact.filename,
    )


@bp.route("/api/sessions/<session_id>/export", methods=["POST"])
def start_export(session_id: str):
    entry, err = _lookup(session_id)
    if err:
        return err

    progress_queue: queue.Queue = queue.Queue()
    entry["progress_queue"] = progress_queue

    def on_progress(job: CaptureJob) -> None:
        progress_queue.put(job.snapshot())
        if job.state in TERMINAL_STATES:
            progress_queue.put(None)  # sentinel

    job = entry["session"].request_export(on_progress=on_progress)
    return jsonify({"status": "started", "job_id": job.id})


@bp.route("/api/sessions/<session_id>/export/progress")
def export_progress(session_id: str):
    entry, err = _lookup(session_id, loaded=False)
    if err:
        return err

    q = entry.get("progress_queue")
    if q is None:
        return jsonify({"error": "No export in progress"}), 409

    def generate():
        while True:
            try:
                msg = q.get(timeout=120)
            except queue.Empty:
                yield "data: {\"error\": \"timeout\"}\n\n"
                break
            if msg is None:
                break
            yield f"data: {json.dumps(msg)}\n\n"

    return Response(generate(), mimetype="text/event-stream")


@bp.route("/api/sessions/<session_id>/export/status")
def export_status(session_id: str):
    entry, err = _lookup(session_id, loaded=False)
    if err:
        return err

    job = entry["session"].job
    if job is None:
        return jsonify({"error": "No export started"}), 404
    return jsonify(job.snapshot())


@bp.route("/api/sessions/<session_id>/export/result")
def download_clip(session_id: str):
    entry, err = _lookup(session_id, loaded=False)
    if err:
        return err

    job = entry["session"].job
    if job is None or job.state is not CaptureState.DONE:
        return jsonify({"error": "Export not complete"}), 409
    return send_file(
        io.BytesIO(job.result.data),
        mimetype=job.result.mimetype,
        as_attachment=True,
        download_name=job.result.filename,
    )


@bp.route("/api/sessions/<session_id>/reset", methods=["POST"])
def reset_session(session_id: str):
    """Abandon the session and delete its working directory."""
    entry = _sessions.pop(session_id, None)
    if entry is None:
        return jsonify({"error": "Session not found"}), 404

    entry["session"].reset()
    shutil.rmtree(entry["dir"], ignore_errors=True)
    return jsonify({"status": "reset"})
