"""
Overview
One JPEG in, one DecodeResult out. Two interchangeable capabilities:

- RemoteDecoder: posts the image to the backend's /BoardingPass/scan endpoint.
  The service answers either with the raw symbol text or with fields it already
  extracted; both shapes are folded into DecodeResult.
- LocalDecoder: decodes on this machine. ZXing-C++ reads PDF417 / Aztec / QR
  symbols from a few cheap image variants (contrast, CLAHE, sharpen, invert,
  upscale); when no symbol is found Tesseract OCR reads the printed text instead
  and the result is marked kind="ocr".

Transport problems raise DecoderError subclasses (see api_client); "no barcode
in this frame" is a normal DecodeResult(success=False).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

import cv2
import numpy as np
import pytesseract
import zxingcpp

from api_client import ApiClient, DecoderError
from bcbp_parser import parse_ocr_text

logger = logging.getLogger(__name__)

NO_BARCODE = "no barcode found"

TEXT_KEYS = ("decodedText", "rawText", "barcodeData", "rawData", "text", "data")
FIELD_KEYS = ("passengerName", "pnrLocator", "seat", "flightNumber")


@dataclass(frozen=True)
class DecodeResult:
    success: bool
    decoded_text: str = ""
    kind: str = "barcode"  # barcode | ocr
    error: Optional[str] = None
    fields: Optional[Dict[str, Any]] = None  # pre-parsed by the remote service

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "decodedText": self.decoded_text,
            "kind": self.kind,
            "error": self.error,
        }


# ------------------------------ Remote ------------------------------
def result_from_payload(data: Dict[str, Any]) -> DecodeResult:
    """Fold the decode service's JSON body into a DecodeResult."""
    raw_kind = str(data.get("kind") or data.get("type") or data.get("source") or "").lower()
    kind = "ocr" if raw_kind in ("ocr", "text") else "barcode"

    text = ""
    for key in TEXT_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            text = value
            break

    fields = data if any(data.get(k) for k in FIELD_KEYS) else None

    if data.get("success") is False or not (text or fields):
        return DecodeResult(False, kind=kind, error=str(data.get("error") or NO_BARCODE))
    return DecodeResult(True, decoded_text=text, kind=kind, fields=fields)


class RemoteDecoder:
    name = "remote"

    def __init__(self, client: ApiClient):
        self.client = client

    def decode(self, image: bytes) -> DecodeResult:
        # DecoderError subclasses propagate to the session
        return result_from_payload(self.client.scan_boarding_pass(image))


# ------------------------------ Image utilities ------------------------------
def fast_contrast(gray: np.ndarray, alpha: float = 1.6, beta: float = 5.0) -> np.ndarray:
    return cv2.convertScaleAbs(gray, alpha=alpha, beta=beta)


def unsharp_mask(gray: np.ndarray, sigma: float = 1.2, amount: float = 1.0) -> np.ndarray:
    blur = cv2.GaussianBlur(gray, (0, 0), sigma)
    return cv2.addWeighted(gray, 1 + amount, blur, -amount, 0)


def clahe(gray: np.ndarray, clip: float = 2.0, grid: Tuple[int, int] = (8, 8)) -> np.ndarray:
    return cv2.createCLAHE(clipLimit=clip, tileGridSize=grid).apply(gray)


def adaptive_bw(gray: np.ndarray) -> np.ndarray:
    return cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 31, 7
    )


def generate_candidates(gray: np.ndarray, max_candidates: int = 6) -> Iterable[Tuple[np.ndarray, str]]:
    """Cheap variants first; PDF417 on glossy paper usually needs contrast work."""

    def _all():
        yield gray, "gray"
        yield fast_contrast(gray), "fastc"
        yield clahe(gray), "clahe"
        yield unsharp_mask(gray), "sharp"
        yield 255 - gray, "inv"
        h, w = gray.shape[:2]
        yield cv2.resize(gray, (int(w * 1.5), int(h * 1.5)), interpolation=cv2.INTER_CUBIC), "up1.5"

    for count, item in enumerate(_all()):
        if count >= max_candidates:
            break
        yield item


def decode_jpeg(image: bytes) -> Optional[np.ndarray]:
    """JPEG/PNG bytes -> grayscale ndarray, or None if the bytes are not an image."""
    if not image:
        return None
    buf = np.frombuffer(image, dtype=np.uint8)
    return cv2.imdecode(buf, cv2.IMREAD_GRAYSCALE)


# ------------------------------ Local ------------------------------
class LocalDecoder:
    name = "local"

    def __init__(self, max_candidates: int = 6, ocr: bool = True, ocr_lang: str = "eng"):
        self.max_candidates = max(1, int(max_candidates))
        self.ocr = ocr
        self.ocr_lang = ocr_lang

    def _read_symbol(self, gray: np.ndarray) -> Optional[str]:
        for img, tag in generate_candidates(gray, self.max_candidates):
            for barcode in zxingcpp.read_barcodes(img):
                if not getattr(barcode, "valid", True):
                    continue
                text = getattr(barcode, "text", "")
                if text:
                    logger.debug("Decoded %s symbol from %s variant", getattr(barcode, "format", "?"), tag)
                    return text
        return None

    def _read_text(self, gray: np.ndarray) -> str:
        try:
            return pytesseract.image_to_string(adaptive_bw(gray), lang=self.ocr_lang) or ""
        except pytesseract.TesseractNotFoundError as exc:
            raise DecoderError("Tesseract OCR is not installed") from exc
        except pytesseract.TesseractError as exc:
            raise DecoderError(f"OCR failed: {exc}") from exc

    def decode(self, image: bytes) -> DecodeResult:
        gray = decode_jpeg(image)
        if gray is None:
            return DecodeResult(False, error="image could not be decoded")

        text = self._read_symbol(gray)
        if text:
            return DecodeResult(True, decoded_text=text, kind="barcode")

        if self.ocr:
            printed = self._read_text(gray).strip()
            # Accept only text that carries boarding-pass fields; a frame of
            # background noise is "no barcode", not an unmatched scan
            if printed and not parse_ocr_text(printed).is_empty:
                return DecodeResult(True, decoded_text=printed, kind="ocr")
        return DecodeResult(False, error=NO_BARCODE)


def build_decoder(cfg, client: Optional[ApiClient] = None):
    """Decoder named by cfg.decoder ('remote' | 'local')."""
    if cfg.decoder == "local":
        return LocalDecoder()
    return RemoteDecoder(client or ApiClient.from_config(cfg))


__all__ = [
    "DecodeResult",
    "LocalDecoder",
    "NO_BARCODE",
    "RemoteDecoder",
    "build_decoder",
    "generate_candidates",
    "result_from_payload",
]
