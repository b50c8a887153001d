import unittest
from types import SimpleNamespace
from unittest.mock import Mock, patch

import cv2
import numpy as np
import pytesseract

from api_client import DecoderConnectionError, DecoderError
from config import ScannerConfig
from pass_decoder import (
    LocalDecoder,
    RemoteDecoder,
    build_decoder,
    generate_candidates,
    result_from_payload,
)


def jpeg_bytes():
    img = np.full((40, 60), 200, dtype=np.uint8)
    ok, buf = cv2.imencode(".jpg", img)
    assert ok
    return buf.tobytes()


class TestResultFromPayload(unittest.TestCase):

    def test_raw_text(self):
        result = result_from_payload({"barcodeData": "M1SMITH/JOHN"})
        self.assertTrue(result.success)
        self.assertEqual(result.decoded_text, "M1SMITH/JOHN")
        self.assertEqual(result.kind, "barcode")
        self.assertIsNone(result.fields)

    def test_pre_parsed_fields(self):
        body = {"passengerName": "JOHN SMITH", "seat": "12A", "pnrLocator": "ABC123"}
        result = result_from_payload(body)
        self.assertTrue(result.success)
        self.assertEqual(result.fields, body)

    def test_ocr_kind(self):
        result = result_from_payload({"text": "SEAT 14C", "source": "OCR"})
        self.assertEqual(result.kind, "ocr")

    def test_explicit_failure(self):
        result = result_from_payload({"success": False, "error": "blurry"})
        self.assertFalse(result.success)
        self.assertEqual(result.error, "blurry")

    def test_empty_body_is_no_barcode(self):
        result = result_from_payload({"decodedText": "   "})
        self.assertFalse(result.success)
        self.assertEqual(result.error, "no barcode found")


class TestRemoteDecoder(unittest.TestCase):

    def test_decode_posts_image(self):
        client = Mock()
        client.scan_boarding_pass.return_value = {"rawText": "M1DOE/JANE"}
        result = RemoteDecoder(client).decode(b"jpeg")
        client.scan_boarding_pass.assert_called_once_with(b"jpeg")
        self.assertEqual(result.decoded_text, "M1DOE/JANE")

    def test_transport_errors_propagate(self):
        client = Mock()
        client.scan_boarding_pass.side_effect = DecoderConnectionError("down")
        with self.assertRaises(DecoderConnectionError):
            RemoteDecoder(client).decode(b"jpeg")


class TestLocalDecoder(unittest.TestCase):

    def test_invalid_image(self):
        result = LocalDecoder().decode(b"definitely not a jpeg")
        self.assertFalse(result.success)

    @patch("pass_decoder.pytesseract.image_to_string")
    @patch("pass_decoder.zxingcpp.read_barcodes")
    def test_barcode_found(self, mock_read, mock_ocr):
        mock_read.side_effect = [
            [],
            [SimpleNamespace(valid=True, text="M1SMITH/JOHN MR", format="PDF417")],
        ]
        result = LocalDecoder().decode(jpeg_bytes())
        self.assertTrue(result.success)
        self.assertEqual(result.kind, "barcode")
        self.assertEqual(result.decoded_text, "M1SMITH/JOHN MR")
        self.assertEqual(mock_read.call_count, 2)
        mock_ocr.assert_not_called()

    @patch("pass_decoder.pytesseract.image_to_string")
    @patch("pass_decoder.zxingcpp.read_barcodes", return_value=[])
    def test_ocr_fallback(self, mock_read, mock_ocr):
        mock_ocr.return_value = "Name: Smith/John\nSeat: 14C\n"
        result = LocalDecoder(max_candidates=2).decode(jpeg_bytes())
        self.assertTrue(result.success)
        self.assertEqual(result.kind, "ocr")
        self.assertEqual(mock_read.call_count, 2)

    @patch("pass_decoder.pytesseract.image_to_string", return_value="thank you for flying with us")
    @patch("pass_decoder.zxingcpp.read_barcodes", return_value=[])
    def test_ocr_noise_is_no_barcode(self, mock_read, mock_ocr):
        result = LocalDecoder().decode(jpeg_bytes())
        self.assertFalse(result.success)
        self.assertEqual(result.error, "no barcode found")

    @patch("pass_decoder.pytesseract.image_to_string")
    @patch("pass_decoder.zxingcpp.read_barcodes", return_value=[])
    def test_missing_tesseract_is_decoder_error(self, mock_read, mock_ocr):
        mock_ocr.side_effect = pytesseract.TesseractNotFoundError()
        with self.assertRaises(DecoderError):
            LocalDecoder().decode(jpeg_bytes())

    @patch("pass_decoder.zxingcpp.read_barcodes", return_value=[])
    def test_ocr_disabled(self, mock_read):
        result = LocalDecoder(ocr=False).decode(jpeg_bytes())
        self.assertFalse(result.success)

    def test_candidate_limit(self):
        gray = np.zeros((10, 10), dtype=np.uint8)
        tags = [tag for _, tag in generate_candidates(gray, max_candidates=3)]
        self.assertEqual(tags, ["gray", "fastc", "clahe"])


class TestBuildDecoder(unittest.TestCase):

    def test_choice(self):
        self.assertIsInstance(build_decoder(ScannerConfig(decoder="local")), LocalDecoder)
        remote = build_decoder(ScannerConfig(api_base_url="http://x"), client=Mock())
        self.assertIsInstance(remote, RemoteDecoder)


if __name__ == '__main__':
    unittest.main()
