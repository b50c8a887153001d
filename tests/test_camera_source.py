import threading
import time
import unittest

import numpy as np

from Camera_Source import CameraAcquisitionError, CameraNotReadyError, CameraSource


class FakeCapture:
    """Stands in for cv2.VideoCapture."""

    def __init__(self, opened=True, frames=True):
        self.opened = opened
        self.frames = frames
        self.released = False
        self.props = {}
        self.reads = 0
        self._lock = threading.Lock()

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def read(self):
        time.sleep(0.005)
        with self._lock:
            self.reads += 1
        if not self.frames or self.released:
            return False, None
        return True, np.full((16, 16, 3), 127, dtype=np.uint8)

    def release(self):
        self.released = True


class TestCameraSource(unittest.TestCase):

    def make_camera(self, capture, **kwargs):
        kwargs.setdefault("acquire_timeout", 2.0)
        camera = CameraSource(0, capture_factory=lambda index: capture, **kwargs)
        self.addCleanup(camera.release)
        return camera

    def test_acquire_and_capture_jpeg(self):
        capture = FakeCapture()
        camera = self.make_camera(capture, width=640, height=480, min_buffered_frames=3)

        camera.acquire()

        self.assertTrue(camera.is_ready())
        self.assertGreaterEqual(camera.frames_read, 3)
        self.assertTrue(camera.get_video_frame().startswith(b"\xff\xd8"))
        self.assertTrue(camera.get_still_capture().startswith(b"\xff\xd8"))
        self.assertIn(640.0, capture.props.values())

    def test_device_not_opened(self):
        capture = FakeCapture(opened=False)
        camera = self.make_camera(capture)
        with self.assertRaises(CameraAcquisitionError):
            camera.acquire()
        self.assertTrue(capture.released)

    def test_no_frames_times_out(self):
        capture = FakeCapture(frames=False)
        camera = self.make_camera(capture, acquire_timeout=0.2)
        with self.assertRaises(CameraAcquisitionError):
            camera.acquire()
        self.assertFalse(camera.is_ready())
        self.assertTrue(capture.released)

    def test_not_ready_before_acquire(self):
        camera = self.make_camera(FakeCapture())
        self.assertFalse(camera.is_ready())
        with self.assertRaises(CameraNotReadyError):
            camera.get_video_frame()
        with self.assertRaises(CameraNotReadyError):
            camera.get_still_capture()

    def test_release_is_idempotent(self):
        capture = FakeCapture()
        camera = self.make_camera(capture)
        camera.acquire()

        camera.release()
        camera.release()

        self.assertTrue(capture.released)
        self.assertFalse(camera.is_ready())
        with self.assertRaises(CameraNotReadyError):
            camera.get_still_capture()

    def test_context_manager(self):
        capture = FakeCapture()
        with CameraSource(0, capture_factory=lambda index: capture) as camera:
            self.assertTrue(camera.is_ready())
        self.assertTrue(capture.released)


if __name__ == '__main__':
    unittest.main()
