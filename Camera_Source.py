#!/usr/bin/env python3
"""
Overview
Owns the physical camera for one scanning session. A reader thread keeps only
the newest frame (the driver buffer is shrunk to one frame as well), so a
still capture is never several seconds stale on a slow Raspberry Pi.

- acquire()           open the device and wait until frames actually flow
- is_ready()          enough frames buffered to trust a capture
- get_video_frame()   newest frame as JPEG (preview)
- get_still_capture() next fresh frame as JPEG (sent to the decoder)
- release()           stop the reader and free the device; safe to call twice

Notes
- On Windows we use DirectShow; on Linux (incl. Pi OS) we use V4L2.
- Tests inject capture_factory to replace cv2.VideoCapture.
"""

from __future__ import annotations

import logging
import platform
import threading
import time
from typing import Any, Callable, Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)

MAX_READ_FAILURES = 30


class CameraNotReadyError(RuntimeError):
    """No usable frame yet; the caller should simply skip this tick."""


class CameraAcquisitionError(RuntimeError):
    """The device could not be opened or produced no frames in time."""


def _backend_api() -> int:
    system = platform.system()
    if system == "Windows":
        return cv2.CAP_DSHOW
    if system == "Linux":
        return cv2.CAP_V4L2
    return cv2.CAP_ANY


def default_capture_factory(index: int) -> Any:
    return cv2.VideoCapture(index, _backend_api())


def _configure_camera(cap: Any, width: Optional[int], height: Optional[int]) -> None:
    def _set(prop, val):
        try:
            cap.set(prop, float(val))
        except cv2.error:
            logger.debug("Camera rejected property %s=%s", prop, val)

    if width:
        _set(cv2.CAP_PROP_FRAME_WIDTH, width)
    if height:
        _set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    # Boarding passes are held close to the lens; let the camera refocus
    if hasattr(cv2, "CAP_PROP_AUTOFOCUS"):
        _set(cv2.CAP_PROP_AUTOFOCUS, 1)
    if hasattr(cv2, "CAP_PROP_AUTO_WB"):
        _set(cv2.CAP_PROP_AUTO_WB, 1)
    # Reduce latency if supported
    if hasattr(cv2, "CAP_PROP_BUFFERSIZE"):
        _set(cv2.CAP_PROP_BUFFERSIZE, 1)


def encode_jpeg(frame: np.ndarray, quality: int = 90) -> bytes:
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise CameraNotReadyError("frame could not be encoded as JPEG")
    return buf.tobytes()


class CameraSource:
    def __init__(
        self,
        camera_index: int = 0,
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        jpeg_quality: int = 90,
        acquire_timeout: float = 5.0,
        min_buffered_frames: int = 2,
        capture_factory: Optional[Callable[[int], Any]] = None,
    ):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self.jpeg_quality = jpeg_quality
        self.acquire_timeout = acquire_timeout
        self.min_buffered_frames = max(1, int(min_buffered_frames))
        self._factory = capture_factory or default_capture_factory

        self._cap: Any = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._ready = threading.Event()
        self._cond = threading.Condition()
        self._frame: Optional[np.ndarray] = None
        self._frames_read = 0
        self._failed_reason: Optional[str] = None

    @classmethod
    def from_config(cls, cfg, capture_factory: Optional[Callable[[int], Any]] = None) -> "CameraSource":
        return cls(
            cfg.camera_index,
            width=cfg.frame_width,
            height=cfg.frame_height,
            jpeg_quality=cfg.jpeg_quality,
            acquire_timeout=cfg.camera_acquire_timeout,
            min_buffered_frames=cfg.min_buffered_frames,
            capture_factory=capture_factory,
        )

    # --- lifecycle -----------------------------------------------------
    def acquire(self) -> None:
        """Open the device and block until frames flow or acquire_timeout passes."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop.clear()
        self._ready.clear()
        self._failed_reason = None
        with self._cond:
            self._frame = None
            self._frames_read = 0

        cap = self._factory(self.camera_index)
        if cap is None or not cap.isOpened():
            if cap is not None:
                cap.release()
            raise CameraAcquisitionError(f"Unable to open camera index {self.camera_index}")

        _configure_camera(cap, self.width, self.height)
        self._cap = cap
        self._thread = threading.Thread(target=self._reader, name="camera-reader", daemon=True)
        self._thread.start()

        if not self._ready.wait(self.acquire_timeout):
            reason = self._failed_reason or f"no frames within {self.acquire_timeout:.1f}s"
            self.release()
            raise CameraAcquisitionError(f"Camera {self.camera_index}: {reason}")
        logger.info("Camera %s ready", self.camera_index)

    def _reader(self) -> None:
        cap = self._cap
        failures = 0
        while not self._stop.is_set():
            ok, frame = cap.read()
            if not ok or frame is None:
                failures += 1
                if failures >= MAX_READ_FAILURES:
                    self._failed_reason = "Failed to read from camera."
                    logger.error("Camera %s stopped delivering frames", self.camera_index)
                    self._ready.clear()
                    return
                time.sleep(0.01)
                continue

            failures = 0
            with self._cond:
                self._frame = frame
                self._frames_read += 1
                frames = self._frames_read
                self._cond.notify_all()
            if frames >= self.min_buffered_frames:
                self._ready.set()

    def release(self) -> None:
        self._stop.set()
        self._ready.clear()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()
            logger.info("Camera %s released", self.camera_index)
        with self._cond:
            self._frame = None
            self._cond.notify_all()

    def __enter__(self) -> "CameraSource":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    # --- state ---------------------------------------------------------
    def is_ready(self) -> bool:
        with self._cond:
            buffered = self._frames_read >= self.min_buffered_frames and self._frame is not None
        return buffered and self._ready.is_set() and not self._stop.is_set()

    @property
    def failed(self) -> bool:
        """True when the reader gave up on its own (device unplugged, driver hang)."""
        return self._failed_reason is not None

    @property
    def frames_read(self) -> int:
        with self._cond:
            return self._frames_read

    # --- frames --------------------------------------------------------
    def get_video_frame(self) -> bytes:
        if not self.is_ready():
            raise CameraNotReadyError("camera not ready")
        with self._cond:
            frame = self._frame
        if frame is None:
            raise CameraNotReadyError("no frame buffered")
        return encode_jpeg(frame, self.jpeg_quality)

    def get_still_capture(self, timeout: float = 1.0) -> bytes:
        """JPEG of the first frame read after this call (not a buffered one)."""
        if not self.is_ready():
            raise CameraNotReadyError("camera not ready")
        with self._cond:
            seen = self._frames_read
            fresh = self._cond.wait_for(
                lambda: self._frames_read > seen or self._stop.is_set(), timeout=timeout
            )
            frame = self._frame
        if not fresh or frame is None or self._stop.is_set():
            raise CameraNotReadyError("no fresh frame")
        return encode_jpeg(frame, self.jpeg_quality)


__all__ = [
    "CameraAcquisitionError",
    "CameraNotReadyError",
    "CameraSource",
    "encode_jpeg",
]
