# app.py
from __future__ import annotations

# Standard library
import logging
import os
from typing import Optional

# Third-party
from flask import Flask, Response, jsonify, request

# Local Files/Helpers
from api_client import ManifestUnavailableError
from Camera_Source import CameraAcquisitionError, CameraNotReadyError
from config import ScannerConfig, configure_logging, load_config
from Scan_Session import NoActiveSessionError, ScannerConsole

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Flask setup
# -------------------------------------------------------------------
def create_app(console: Optional[ScannerConsole] = None, cfg: Optional[ScannerConfig] = None) -> Flask:
    """Build the JSON API around one ScannerConsole.

    The console (and its single active session) lives for the process; the
    browser front-end polls /api/session and /api/notifications.
    """
    if console is None:
        cfg = cfg or load_config()
        console = ScannerConsole(cfg)

    app = Flask(__name__)
    app.config["CONSOLE"] = console

    def _console() -> ScannerConsole:
        return app.config["CONSOLE"]

    @app.errorhandler(NoActiveSessionError)
    def _no_session(e):
        return jsonify({"ok": False, "error": str(e)}), 404

    # -------------------------------------------------------------------
    # Routes: flights & session
    # -------------------------------------------------------------------
    @app.get("/api/health")
    def api_health():
        return jsonify({"ok": True, "session": _console().session is not None})

    @app.get("/api/flights")
    def api_flights():
        try:
            flights = _console().list_flights()
        except ManifestUnavailableError as e:
            return jsonify({"ok": False, "error": str(e)}), 502
        return jsonify({"ok": True, "flights": flights})

    @app.post("/api/session")
    def api_select_flight():
        """
        Accepts { station: "ADD", flightNumber: "500", date: "2025-01-31" }.
        Replaces any running session; its scanned set and recent scans are dropped.
        """
        data = request.get_json(force=True, silent=True) or {}
        try:
            session = _console().select_flight(
                data.get("station"), data.get("flightNumber") or data.get("flight"), data.get("date")
            )
        except ValueError as e:
            return jsonify({"ok": False, "error": str(e)}), 400
        except ManifestUnavailableError as e:
            logger.warning("Flight selection failed: %s", e)
            return jsonify({"ok": False, "error": str(e)}), 502
        except CameraAcquisitionError as e:
            session = _console().session
            body: dict = {"ok": False, "error": str(e)}
            if session is not None:
                body["session"] = session.snapshot()
            return jsonify(body), 503
        return jsonify({"ok": True, "session": session.snapshot()})

    @app.get("/api/session")
    def api_session():
        return jsonify({"ok": True, "session": _console().require_session().snapshot()})

    @app.delete("/api/session")
    def api_leave():
        left = _console().leave_camera_view()
        return jsonify({"ok": True, "left": left})

    @app.post("/api/session/camera/retry")
    def api_camera_retry():
        session = _console().require_session()
        try:
            session.retry_camera()
        except CameraAcquisitionError as e:
            return jsonify({"ok": False, "error": str(e), "session": session.snapshot()}), 503
        return jsonify({"ok": True, "session": session.snapshot()})

    @app.get("/api/session/frame")
    def api_frame():
        session = _console().require_session()
        if session.camera is None:
            return jsonify({"ok": False, "error": "no camera"}), 503
        try:
            jpeg = session.camera.get_video_frame()
        except CameraNotReadyError as e:
            return jsonify({"ok": False, "error": str(e)}), 503
        return Response(jpeg, mimetype="image/jpeg", headers={"Cache-Control": "no-store"})

    # -------------------------------------------------------------------
    # Routes: scanning
    # -------------------------------------------------------------------
    @app.post("/api/session/capture")
    def api_capture():
        session = _console().require_session()
        started = session.capture_now()
        return jsonify({"ok": True, "started": started})

    @app.post("/api/session/photo")
    def api_photo():
        """Multipart 'file' (as the scan endpoint takes it) or a raw JPEG body."""
        session = _console().require_session()
        upload = request.files.get("file")
        image = upload.read() if upload is not None else request.get_data()
        if not image:
            return jsonify({"ok": False, "error": "No image provided"}), 400

        outcome = session.scan_photo(image)
        if outcome is None:
            return jsonify({"ok": False, "error": "A scan is already in progress"}), 409
        return jsonify({"ok": True, "outcome": outcome.to_dict(), "session": session.snapshot()})

    @app.post("/api/session/manual_match")
    def api_manual_match():
        """Accepts { id: <manifest id> } or { matchKey: "PNR_SEAT" }."""
        session = _console().require_session()
        data = request.get_json(force=True, silent=True) or {}
        if data.get("id") in (None, "") and not data.get("matchKey"):
            return jsonify({"ok": False, "error": "id or matchKey is required"}), 400
        try:
            entry = session.resolve_entry(entry_id=data.get("id"), match_key=data.get("matchKey"))
        except LookupError as e:
            return jsonify({"ok": False, "error": str(e)}), 404
        session.manual_match(entry)
        return jsonify({"ok": True, "entry": entry.to_dict(), "session": session.snapshot()})

    @app.get("/api/session/remaining")
    def api_remaining():
        session = _console().require_session()
        remaining = [e.to_dict() for e in session.remaining()]
        return jsonify({"ok": True, "remaining": remaining, "progress": session.snapshot()["progress"]})

    @app.delete("/api/session/scans/<record_id>")
    def api_remove_scan(record_id: str):
        session = _console().require_session()
        if not session.remove_scan(record_id):
            return jsonify({"ok": False, "error": "scan not found"}), 404
        return jsonify({"ok": True})

    # -------------------------------------------------------------------
    # Routes: notifications
    # -------------------------------------------------------------------
    @app.get("/api/notifications")
    def api_notifications():
        notes = [n.to_dict() for n in _console().notifier.active()]
        return jsonify({"ok": True, "notifications": notes})

    @app.delete("/api/notifications/<notification_id>")
    def api_dismiss(notification_id: str):
        if not _console().notifier.dismiss(notification_id):
            return jsonify({"ok": False, "error": "notification not found"}), 404
        return jsonify({"ok": True})

    return app


# -------------------------------------------------------------------
# Main
# -------------------------------------------------------------------
if __name__ == "__main__":
    _cfg = load_config()
    configure_logging(_cfg.log_level)
    # Kiosk: Chromium at http://localhost:5000 polls the JSON API
    create_app(cfg=_cfg).run(host="0.0.0.0", port=5000, debug=(os.getenv("FLASK_DEBUG") == "1"))
