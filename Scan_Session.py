#!/usr/bin/env python3
"""
Overview
Drives one disembarkation scanning session for a selected flight: the camera
is sampled on a fixed cadence, one still at a time goes to the decoder, the
decoded text is parsed and matched against the flight's manifest, and every
passenger found is added to the session's "accounted for" set.

The module has three layers:

- ScanStateMachine: pure transitions. Each event returns a list of effect
  objects (notify, schedule a timer, cancel timers, release the camera); it
  never sleeps, starts threads or touches devices, so it is tested directly.
- ScanSession: the threaded harness. A timer thread ticks and a worker
  thread runs one attempt at a time off a queue of one. threading.Timer
  objects implement the overlay and the cool-down; one lock serializes
  every call into the machine.
- ScannerConsole: flight selection. Fetches the manifest, replaces the
  running session and owns the notification center.

Results of an attempt that finishes after stop() or after a new flight was
selected are discarded; the machine checks the attempt id and epoch before
applying anything.

Usage examples
  python Scan_Session.py --station ADD --flight 500 --date 2025-01-31
  python Scan_Session.py --station ADD --flight 500 --date 2025-01-31 \
      --duration 120 --camera 1 --decoder local
"""

from __future__ import annotations

import argparse
import datetime as dt
import enum
import json
import logging
import queue
import re
import sys
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Union

from api_client import (
    ApiClient,
    DecoderConnectionError,
    DecoderError,
    DecoderServiceError,
    ManifestUnavailableError,
    SessionExpiredError,
)
from bcbp_parser import parse_decoded
from Camera_Source import CameraAcquisitionError, CameraNotReadyError, CameraSource
from config import ConfigError, ScannerConfig, configure_logging, load_config
from manifest_matcher import match, progress, remaining_passengers
from models import FlightManifestSnapshot, ManifestEntry, ParsedBoardingPass, ScanRecord
from notifier import NotificationCenter
from pass_decoder import DecodeResult, build_decoder

logger = logging.getLogger(__name__)


# ------------------------------ States & effects ------------------------------
class ScanState(str, enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    DECODING = "decoding"
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    FAILED = "failed"


SHOWING_RESULT = (ScanState.MATCHED, ScanState.UNMATCHED, ScanState.FAILED)


@dataclass(frozen=True)
class BeginAttempt:
    attempt_id: int
    epoch: int


@dataclass(frozen=True)
class Notify:
    severity: str
    message: str
    details: Optional[str] = None


@dataclass(frozen=True)
class ScheduleOverlayReset:
    delay: float
    epoch: int
    seq: int


@dataclass(frozen=True)
class ScheduleResume:
    delay: float
    epoch: int
    seq: int


@dataclass(frozen=True)
class CancelTimers:
    pass


@dataclass(frozen=True)
class ReleaseCamera:
    pass


Effect = Union[BeginAttempt, Notify, ScheduleOverlayReset, ScheduleResume, CancelTimers, ReleaseCamera]


@dataclass(frozen=True)
class AttemptOutcome:
    attempt_id: int
    state: ScanState
    record: Optional[ScanRecord] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attemptId": self.attempt_id,
            "state": self.state.value,
            "record": self.record.to_dict() if self.record else None,
            "error": self.error,
        }


def is_connectivity_error(exc: BaseException) -> bool:
    """Failures the operator must act on; everything else is log-only."""
    if isinstance(exc, (DecoderConnectionError, SessionExpiredError)):
        return True
    if isinstance(exc, DecoderServiceError):
        return (exc.status_code or 0) >= 500
    return False


def is_decoder_setup_error(exc: BaseException) -> bool:
    """Local decoder cannot run at all (e.g. Tesseract missing)."""
    return isinstance(exc, DecoderError) and not isinstance(
        exc, (DecoderConnectionError, DecoderServiceError, SessionExpiredError)
    )


def parsed_from_result(result: DecodeResult) -> ParsedBoardingPass:
    if result.fields:
        return ParsedBoardingPass.from_api(result.fields, source=result.kind)
    return parse_decoded(result.decoded_text, result.kind)


def _passenger_line(name: str, seat: str, already: bool = False) -> str:
    line = f"{name or 'Unknown passenger'} - Seat: {seat or 'N/A'}"
    return f"{line} (already scanned)" if already else line


# ------------------------------ State machine ------------------------------
class ScanStateMachine:
    def __init__(
        self,
        manifest: Optional[FlightManifestSnapshot],
        *,
        display_seconds: float = 2.0,
        cooldown_seconds: float = 2.0,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        self.manifest = manifest
        self.display_seconds = display_seconds
        self.cooldown_seconds = cooldown_seconds
        self._new_id = id_factory

        self.state = ScanState.IDLE
        self.running = True
        self.attempt_in_flight = False
        self.cooling_down = False
        self.epoch = 0
        self.scanned: Set[str] = set()
        self.records: List[ScanRecord] = []  # newest first
        self.last_outcome: Optional[AttemptOutcome] = None
        self.last_error: Optional[str] = None  # latest consecutive decode failure
        self._attempt_seq = 0
        self._current_attempt: Optional[int] = None
        # Only the newest overlay/cool-down timer may end its phase
        self._overlay_seq = 0
        self._cooldown_seq = 0

    # --- helpers -------------------------------------------------------
    def _is_current(self, attempt_id: int) -> bool:
        return self.running and attempt_id == self._current_attempt

    def _finish(self, attempt_id: int, state: ScanState,
                record: Optional[ScanRecord] = None, error: Optional[str] = None) -> None:
        self.attempt_in_flight = False
        self._current_attempt = None
        self.state = state
        self.last_outcome = AttemptOutcome(attempt_id, state, record, error)

    def _timed_return(self, cooldown: bool) -> List[Effect]:
        self._overlay_seq += 1
        effects: List[Effect] = [ScheduleOverlayReset(self.display_seconds, self.epoch, self._overlay_seq)]
        if cooldown:
            self.cooling_down = True
            self._cooldown_seq += 1
            effects.append(ScheduleResume(self.cooldown_seconds, self.epoch, self._cooldown_seq))
        return effects

    def _add_record(self, **kwargs: Any) -> ScanRecord:
        record = ScanRecord(id=self._new_id(), **kwargs)
        self.records.insert(0, record)
        return record

    # --- events --------------------------------------------------------
    def tick(self, camera_ready: bool, manual: bool = False) -> List[Effect]:
        """Timer tick or manual capture. Returns [BeginAttempt] or nothing."""
        if not self.running or self.attempt_in_flight or not camera_ready:
            return []
        if self.cooling_down and not manual:
            return []

        self._attempt_seq += 1
        self._current_attempt = self._attempt_seq
        self.attempt_in_flight = True
        self.state = ScanState.CAPTURING
        return [BeginAttempt(self._attempt_seq, self.epoch)]

    def frame_captured(self, attempt_id: int) -> List[Effect]:
        if self._is_current(attempt_id):
            self.state = ScanState.DECODING
        return []

    def capture_skipped(self, attempt_id: int) -> List[Effect]:
        """Camera was not ready after all: a skipped tick, not a failure."""
        if self._is_current(attempt_id):
            self.attempt_in_flight = False
            self._current_attempt = None
            self.state = ScanState.IDLE
        return []

    def decode_completed(self, attempt_id: int, result: DecodeResult) -> List[Effect]:
        if not self._is_current(attempt_id):
            logger.debug("Discarding result of stale attempt %s", attempt_id)
            return []

        if not result.success:
            logger.debug("Attempt %s: %s", attempt_id, result.error or "no barcode")
            self._finish(attempt_id, ScanState.FAILED, error=result.error)
            return self._timed_return(cooldown=False)

        self.last_error = None
        parsed = parsed_from_result(result)
        found = match(parsed, self.manifest)

        if not found.matched:
            record = self._add_record(success=True, source=parsed.source, boarding_pass=parsed, matched=False)
            self._finish(attempt_id, ScanState.UNMATCHED, record)
            if parsed.is_empty:
                logger.info("Attempt %s decoded but no fields parsed: %s", attempt_id, parsed.parse_errors)
                note = Notify("warning", "Scan failed", "Could not decode boarding pass")
            else:
                logger.info("Attempt %s: %s not on manifest", attempt_id, parsed.passenger_name or parsed.pnr)
                note = Notify("warning", "Passenger not on manifest",
                              _passenger_line(parsed.passenger_name, parsed.seat))
            return [note] + self._timed_return(cooldown=True)

        entry = found.entry
        already = found.key in self.scanned
        self.scanned.add(found.key)
        record = self._add_record(
            success=True, source=parsed.source, boarding_pass=parsed, matched=True, matched_entry=entry
        )
        self._finish(attempt_id, ScanState.MATCHED, record)
        logger.info("Attempt %s matched %s by %s%s", attempt_id, found.key, found.rule,
                    " (already scanned)" if already else "")
        note = Notify("success", "Passenger scanned", _passenger_line(entry.passenger_name, entry.seat, already))
        return [note] + self._timed_return(cooldown=True)

    def decode_failed(self, attempt_id: int, error: BaseException) -> List[Effect]:
        if not self._is_current(attempt_id):
            logger.debug("Discarding failure of stale attempt %s: %s", attempt_id, error)
            return []

        repeated = self.last_error == str(error)
        self.last_error = str(error)
        self._finish(attempt_id, ScanState.FAILED, error=str(error))
        effects: List[Effect] = []
        if isinstance(error, SessionExpiredError):
            effects.append(Notify("error", "Session expired", "Please login again."))
        elif is_connectivity_error(error):
            effects.append(Notify("error", "API Error", f"Failed to scan: {error}"))
        elif is_decoder_setup_error(error) and not repeated:
            effects.append(Notify("error", "Decoder unavailable", str(error)))
        return effects + self._timed_return(cooldown=False)

    def overlay_elapsed(self, epoch: int, seq: int) -> List[Effect]:
        if epoch == self.epoch and seq == self._overlay_seq and self.state in SHOWING_RESULT:
            self.state = ScanState.IDLE
        return []

    def cooldown_elapsed(self, epoch: int, seq: int) -> List[Effect]:
        if epoch == self.epoch and seq == self._cooldown_seq:
            self.cooling_down = False
        return []

    def manual_match(self, entry: ManifestEntry) -> List[Effect]:
        """Operator marks a passenger by hand; parser and matcher are bypassed.

        Every call is recorded; only the scanned-set insert is idempotent.
        """
        key = entry.match_key
        already = key in self.scanned
        self.scanned.add(key)
        self._add_record(success=True, source="manual", boarding_pass=None, matched=True, matched_entry=entry)
        logger.info("Manual match %s%s", key, " (already scanned)" if already else "")
        return [Notify("success", "Passenger marked manually",
                       _passenger_line(entry.passenger_name, entry.seat, already))]

    def remove_scan(self, record_id: str) -> bool:
        """Hide a record from the recent list. The scanned set is untouched."""
        for i, record in enumerate(self.records):
            if record.id == record_id:
                del self.records[i]
                return True
        return False

    def stop(self) -> List[Effect]:
        self.running = False
        self.epoch += 1
        self.attempt_in_flight = False
        self.cooling_down = False
        self._current_attempt = None
        self.state = ScanState.IDLE
        return [CancelTimers(), ReleaseCamera()]

    # --- views ---------------------------------------------------------
    def remaining(self) -> List[ManifestEntry]:
        return remaining_passengers(self.manifest, self.scanned)

    def progress(self) -> Dict[str, Any]:
        return progress(self.manifest, self.scanned)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "running": self.running,
            "attemptInFlight": self.attempt_in_flight,
            "coolingDown": self.cooling_down,
            "scannedKeys": sorted(self.scanned),
            "recentScans": [r.to_dict() for r in self.records],
            "progress": self.progress(),
            "lastOutcome": self.last_outcome.to_dict() if self.last_outcome else None,
        }


# ------------------------------ Threaded harness ------------------------------
class CameraStatus(str, enum.Enum):
    CHECKING = "checking"
    READY = "ready"
    FAILED = "failed"
    RELEASED = "released"


class ScanSession:
    def __init__(
        self,
        manifest: FlightManifestSnapshot,
        decoder,
        camera: Optional[CameraSource],
        notifier: NotificationCenter,
        *,
        station: str = "",
        flight_date: str = "",
        capture_interval: float = 1.0,
        display_seconds: float = 2.0,
        cooldown_seconds: float = 2.0,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.manifest = manifest
        self.decoder = decoder
        self.camera = camera
        self.notifier = notifier
        self.station = station
        self.flight_date = flight_date
        self.capture_interval = capture_interval
        self._timer_factory = timer_factory

        self.machine = ScanStateMachine(
            manifest, display_seconds=display_seconds, cooldown_seconds=cooldown_seconds
        )
        self.camera_status = CameraStatus.RELEASED
        self.camera_error: Optional[str] = None

        self._lock = threading.Lock()
        self._timers: List[Any] = []
        self._stop_event = threading.Event()
        self._work: "queue.Queue[Optional[BeginAttempt]]" = queue.Queue(maxsize=1)
        self._ticker: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

    # --- lifecycle -----------------------------------------------------
    def start(self) -> None:
        """Start the ticker and the worker, then acquire the camera.

        Raises CameraAcquisitionError if the camera does not come up; the
        session stays alive (photo path, manual matches) until retry_camera().
        """
        self._worker = threading.Thread(target=self._work_loop, name="scan-worker", daemon=True)
        self._ticker = threading.Thread(target=self._tick_loop, name="scan-ticker", daemon=True)
        self._worker.start()
        self._ticker.start()
        if self.camera is not None:
            self.acquire_camera()

    def acquire_camera(self) -> None:
        if self.camera is None:
            raise CameraAcquisitionError("no camera configured")
        self.camera_status = CameraStatus.CHECKING
        self.camera_error = None
        try:
            self.camera.acquire()
        except CameraAcquisitionError as exc:
            self.camera_status = CameraStatus.FAILED
            self.camera_error = str(exc)
            logger.error("Camera acquisition failed: %s", exc)
            self.notifier.notify("error", "Camera unavailable", str(exc))
            raise
        self.camera_status = CameraStatus.READY

    def retry_camera(self) -> None:
        if self.camera is not None:
            self.camera.release()
        self.acquire_camera()

    def stop(self) -> None:
        with self._lock:
            self._apply(self.machine.stop())
        self._stop_event.set()
        try:
            self._work.put_nowait(None)
        except queue.Full:
            pass
        for thread in (self._ticker, self._worker):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=1.0)

    @property
    def running(self) -> bool:
        return self.machine.running

    # --- effects -------------------------------------------------------
    def _schedule(self, delay: float, event: Callable[[int, int], List[Effect]], epoch: int, seq: int) -> None:
        def _fire():
            with self._lock:
                self._apply(event(epoch, seq))

        timer = self._timer_factory(delay, _fire)
        timer.daemon = True
        self._timers = [t for t in self._timers if getattr(t, "is_alive", lambda: True)()]
        self._timers.append(timer)
        timer.start()

    def _apply(self, effects: List[Effect]) -> None:
        """Execute effects; caller holds self._lock."""
        for effect in effects:
            if isinstance(effect, Notify):
                self.notifier.notify(effect.severity, effect.message, effect.details)
            elif isinstance(effect, ScheduleOverlayReset):
                self._schedule(effect.delay, self.machine.overlay_elapsed, effect.epoch, effect.seq)
            elif isinstance(effect, ScheduleResume):
                self._schedule(effect.delay, self.machine.cooldown_elapsed, effect.epoch, effect.seq)
            elif isinstance(effect, CancelTimers):
                for timer in self._timers:
                    timer.cancel()
                self._timers = []
            elif isinstance(effect, ReleaseCamera):
                if self.camera is not None:
                    self.camera.release()
                self.camera_status = CameraStatus.RELEASED
            elif isinstance(effect, BeginAttempt):
                try:
                    self._work.put_nowait(effect)
                except queue.Full:
                    self._apply(self.machine.capture_skipped(effect.attempt_id))

    # --- loops ---------------------------------------------------------
    def _camera_ready(self) -> bool:
        if self.camera is None or self.camera_status != CameraStatus.READY:
            return False
        if self.camera.failed:
            self.camera_status = CameraStatus.FAILED
            self.camera_error = "camera stopped delivering frames"
            self.notifier.notify("error", "Camera unavailable", self.camera_error)
            return False
        return self.camera.is_ready()

    def tick(self, manual: bool = False) -> bool:
        """One timer tick (or a manual capture). True if an attempt was queued."""
        with self._lock:
            effects = self.machine.tick(self._camera_ready(), manual=manual)
            self._apply(effects)
        return any(isinstance(e, BeginAttempt) for e in effects)

    def capture_now(self) -> bool:
        return self.tick(manual=True)

    def _tick_loop(self) -> None:
        while not self._stop_event.wait(self.capture_interval):
            self.tick()

    def _work_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                item = self._work.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                if item is not None:
                    self.run_attempt(item)
            finally:
                self._work.task_done()

    def run_attempt(self, begin: BeginAttempt, image: Optional[bytes] = None) -> None:
        """Capture (unless an image is given), decode, then feed the machine."""
        attempt_id = begin.attempt_id
        try:
            if image is None:
                try:
                    image = self.camera.get_still_capture()
                except CameraNotReadyError:
                    with self._lock:
                        self._apply(self.machine.capture_skipped(attempt_id))
                    return

            with self._lock:
                self.machine.frame_captured(attempt_id)

            result = self.decoder.decode(image)
        except DecoderError as exc:
            with self._lock:
                repeated = self.machine.last_error == str(exc)
                self._apply(self.machine.decode_failed(attempt_id, exc))
            # A dead decoder fails every tick; warn once per distinct error
            if repeated:
                logger.debug("Attempt %s: decode failed again: %s", attempt_id, exc)
            else:
                logger.warning("Attempt %s: decode failed: %s", attempt_id, exc)
            return
        except Exception as exc:
            logger.exception("Attempt %s: unexpected error", attempt_id)
            with self._lock:
                self._apply(self.machine.decode_failed(attempt_id, exc))
            return

        with self._lock:
            self._apply(self.machine.decode_completed(attempt_id, result))

    def scan_photo(self, image: bytes) -> Optional[AttemptOutcome]:
        """Run one attempt on an uploaded photo, synchronously.

        Returns None when another attempt is already in flight.
        """
        with self._lock:
            effects = self.machine.tick(camera_ready=True, manual=True)
            begin = next((e for e in effects if isinstance(e, BeginAttempt)), None)
        if begin is None:
            return None

        self.run_attempt(begin, image=image)
        with self._lock:
            outcome = self.machine.last_outcome
        if outcome is not None and outcome.attempt_id == begin.attempt_id:
            return outcome
        return None

    # --- operator actions ----------------------------------------------
    def resolve_entry(self, entry_id: Any = None, match_key: Optional[str] = None) -> ManifestEntry:
        entry = None
        if entry_id not in (None, ""):
            entry = self.manifest.find_entry(entry_id)
        elif match_key:
            entry = self.manifest.find_by_key(match_key)
        if entry is None:
            raise LookupError("passenger not found in manifest")
        return entry

    def manual_match(self, entry: ManifestEntry) -> None:
        with self._lock:
            self._apply(self.machine.manual_match(entry))

    def remove_scan(self, record_id: str) -> bool:
        with self._lock:
            return self.machine.remove_scan(record_id)

    def remaining(self) -> List[ManifestEntry]:
        with self._lock:
            return self.machine.remaining()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            data = self.machine.snapshot()
        data.update({
            "station": self.station,
            "date": self.flight_date,
            "flight": {
                "flightNumber": self.manifest.flight_number,
                "route": self.manifest.route,
                "totalPassengers": self.manifest.total_passengers,
                "disembarkingPassengerCount": self.manifest.disembarking_passenger_count,
                "listLoaded": self.manifest.disembarking_passengers is not None,
            },
            "cameraStatus": self.camera_status.value,
            "cameraError": self.camera_error,
        })
        return data


# ------------------------------ Flight selection ------------------------------
class NoActiveSessionError(RuntimeError):
    pass


STATION_RE = re.compile(r"^[A-Z]{3}$")
FLIGHT_RE = re.compile(r"^[A-Z0-9]{1,8}$")


def validate_selection(station: str, flight_number: Any, date: str) -> tuple:
    station = (station or "").strip().upper()
    flight = str(flight_number or "").strip().upper()
    date = (date or "").strip()
    if not STATION_RE.match(station):
        raise ValueError("station must be a 3-letter airport code")
    if not FLIGHT_RE.match(flight):
        raise ValueError("flight number is required")
    try:
        dt.datetime.strptime(date, "%Y-%m-%d")
    except ValueError as exc:
        raise ValueError("date must be YYYY-MM-DD") from exc
    return station, flight, date


class ScannerConsole:
    """The operator's console: one flight, one session at a time."""

    def __init__(
        self,
        cfg: ScannerConfig,
        *,
        client: Optional[ApiClient] = None,
        decoder=None,
        camera_factory: Optional[Callable[[], Optional[CameraSource]]] = None,
        notifier: Optional[NotificationCenter] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.cfg = cfg
        self.client = client or ApiClient.from_config(cfg)
        self.decoder = decoder or build_decoder(cfg, self.client)
        self.camera_factory = camera_factory or (lambda: CameraSource.from_config(cfg))
        self.notifier = notifier or NotificationCenter()
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self.session: Optional[ScanSession] = None

    def list_flights(self) -> List[int]:
        return self.client.fetch_flight_numbers()

    def select_flight(self, station: Optional[str], flight_number: Any, date: str) -> ScanSession:
        """Load the manifest and start a fresh session for it.

        Raises ValueError on bad input, ManifestUnavailableError if the manifest
        cannot be fetched (the current session keeps running) and
        CameraAcquisitionError if the camera does not come up (the new session
        is kept so the operator can retry the camera).
        """
        station, flight, date = validate_selection(station or self.cfg.station or "", flight_number, date)
        manifest = self.client.fetch_manifest(station, flight, date)

        with self._lock:
            previous, self.session = self.session, None
            if previous is not None:
                previous.stop()
            session = ScanSession(
                manifest,
                self.decoder,
                self.camera_factory(),
                self.notifier,
                station=station,
                flight_date=date,
                capture_interval=self.cfg.capture_interval,
                display_seconds=self.cfg.display_seconds,
                cooldown_seconds=self.cfg.cooldown_seconds,
                timer_factory=self._timer_factory,
            )
            self.session = session
        logger.info("Session started for flight %s on %s at %s", flight, date, station)
        session.start()
        return session

    def require_session(self) -> ScanSession:
        session = self.session
        if session is None:
            raise NoActiveSessionError("no flight selected")
        return session

    def leave_camera_view(self) -> bool:
        with self._lock:
            session, self.session = self.session, None
        if session is None:
            return False
        session.stop()
        return True


# ------------------------------ CLI ------------------------------
def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run a headless disembarkation scanning session and print a JSON summary.")
    parser.add_argument("--station", type=str, default=None)
    parser.add_argument("--flight", type=str, required=True)
    parser.add_argument("--date", type=str, default=dt.date.today().isoformat())
    parser.add_argument("--duration", type=float, default=60.0, help="seconds; 0 runs until Ctrl+C or complete")
    parser.add_argument("--camera", type=int, default=None)
    parser.add_argument("--decoder", choices=["remote", "local"], default=None)
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--output", type=str, default=None)
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config).with_overrides(camera_index=args.camera, decoder=args.decoder)
    except ConfigError as e:
        print(json.dumps({"success": False, "error": str(e)}, indent=2))
        sys.exit(2)
    configure_logging(cfg.log_level)

    console = ScannerConsole(cfg)
    try:
        session = console.select_flight(args.station, args.flight, args.date)
    except (ValueError, ManifestUnavailableError, CameraAcquisitionError) as e:
        console.leave_camera_view()
        print(json.dumps({"success": False, "error": str(e)}, indent=2))
        sys.exit(1)

    deadline = time.monotonic() + args.duration if args.duration > 0 else None
    try:
        while deadline is None or time.monotonic() < deadline:
            if session.snapshot()["progress"]["complete"]:
                break
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass

    summary = session.snapshot()
    remaining = [e.to_dict() for e in session.remaining()]
    console.leave_camera_view()

    payload = {
        "success": True,
        "source": "exitcheck_scan_session",
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "session": summary,
        "remaining": remaining,
    }
    txt = json.dumps(payload, indent=2, ensure_ascii=False)
    print(txt)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(txt)


if __name__ == "__main__":
    main()
