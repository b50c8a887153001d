import io
import unittest

from app import create_app
from Scan_Session import ScannerConsole
from fakes import (
    SAMPLE_BCBP,
    FakeCamera,
    FakeClient,
    FakeDecoder,
    TimerLog,
    barcode,
    make_config,
    make_manifest,
)


class TestScannerApi(unittest.TestCase):

    def setUp(self):
        self.timers = TimerLog()
        self.client_api = FakeClient({"500": make_manifest("ET500")})
        self.decoder = FakeDecoder(barcode(SAMPLE_BCBP))
        self.camera = None
        self.console = ScannerConsole(
            make_config(),
            client=self.client_api,
            decoder=self.decoder,
            camera_factory=lambda: self.camera,
            timer_factory=self.timers,
        )
        self.addCleanup(self.console.leave_camera_view)
        self.app = create_app(console=self.console)
        self.app.testing = True
        self.client = self.app.test_client()

    def select(self):
        return self.client.post(
            "/api/session", json={"station": "ADD", "flightNumber": "500", "date": "2025-01-31"}
        )

    def test_health(self):
        resp = self.client.get("/api/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"ok": True, "session": False})

    def test_flights(self):
        resp = self.client.get("/api/flights")
        self.assertEqual(resp.get_json()["flights"], [500, 502])

    def test_flights_backend_down(self):
        self.client_api.fail = True
        resp = self.client.get("/api/flights")
        self.assertEqual(resp.status_code, 502)
        self.assertFalse(resp.get_json()["ok"])

    def test_select_flight(self):
        resp = self.select()
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["session"]["flight"]["flightNumber"], "ET500")
        self.assertEqual(body["session"]["progress"]["disembarking"], 3)

    def test_select_flight_bad_input(self):
        resp = self.client.post("/api/session", json={"station": "ADD", "flightNumber": "500", "date": "tomorrow"})
        self.assertEqual(resp.status_code, 400)

    def test_select_flight_manifest_unavailable(self):
        resp = self.client.post("/api/session", json={"station": "ADD", "flightNumber": "999", "date": "2025-01-31"})
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(self.client.get("/api/session").status_code, 404)

    def test_select_flight_camera_failure(self):
        self.camera = FakeCamera(fail_acquire=True)
        resp = self.select()
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.get_json()["session"]["cameraStatus"], "failed")

        self.camera.fail_acquire = False
        resp = self.client.post("/api/session/camera/retry")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["session"]["cameraStatus"], "ready")

    def test_photo_scan_flow(self):
        self.select()
        resp = self.client.post(
            "/api/session/photo",
            data={"file": (io.BytesIO(b"\xff\xd8jpeg"), "boarding-pass.jpg")},
            content_type="multipart/form-data",
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body["outcome"]["state"], "matched")
        self.assertEqual(body["session"]["scannedKeys"], ["ABC123_12A"])

        remaining = self.client.get("/api/session/remaining").get_json()
        self.assertEqual([p["id"] for p in remaining["remaining"]], [1, 3])

        notes = self.client.get("/api/notifications").get_json()["notifications"]
        self.assertEqual(notes[0]["message"], "Passenger scanned")
        resp = self.client.delete(f"/api/notifications/{notes[0]['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get("/api/notifications").get_json()["notifications"], [])

    def test_photo_requires_image(self):
        self.select()
        resp = self.client.post("/api/session/photo", data=b"")
        self.assertEqual(resp.status_code, 400)

    def test_manual_match(self):
        self.select()
        resp = self.client.post("/api/session/manual_match", json={"id": 3})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["session"]["scannedKeys"], ["XYZ789_14D"])

        resp = self.client.post("/api/session/manual_match", json={"matchKey": "NOPE_1A"})
        self.assertEqual(resp.status_code, 404)
        resp = self.client.post("/api/session/manual_match", json={})
        self.assertEqual(resp.status_code, 400)

    def test_repeat_manual_match_is_recorded(self):
        self.select()
        self.client.post("/api/session/manual_match", json={"id": 3})
        resp = self.client.post("/api/session/manual_match", json={"id": 3})
        session = resp.get_json()["session"]
        self.assertEqual(session["scannedKeys"], ["XYZ789_14D"])
        self.assertEqual([r["source"] for r in session["recentScans"]], ["manual", "manual"])

        notes = self.client.get("/api/notifications").get_json()["notifications"]
        self.assertEqual({n["severity"] for n in notes}, {"success"})

    def test_remove_scan(self):
        self.select()
        self.client.post("/api/session/manual_match", json={"id": 1})
        record_id = self.client.get("/api/session").get_json()["session"]["recentScans"][0]["id"]

        self.assertEqual(self.client.delete(f"/api/session/scans/{record_id}").status_code, 200)
        self.assertEqual(self.client.delete(f"/api/session/scans/{record_id}").status_code, 404)
        session = self.client.get("/api/session").get_json()["session"]
        self.assertEqual(session["recentScans"], [])
        self.assertEqual(session["scannedKeys"], ["PNR111_3C"])

    def test_capture_without_camera(self):
        self.select()
        resp = self.client.post("/api/session/capture")
        self.assertEqual(resp.get_json(), {"ok": True, "started": False})
        self.assertEqual(self.client.get("/api/session/frame").status_code, 503)

    def test_leave_session(self):
        self.select()
        self.assertEqual(self.client.delete("/api/session").get_json(), {"ok": True, "left": True})
        self.assertEqual(self.client.get("/api/session").status_code, 404)
        self.assertEqual(self.client.post("/api/session/capture").status_code, 404)


if __name__ == '__main__':
    unittest.main()
