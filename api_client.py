"""
Overview
Thin HTTP client for the transit-passenger backend. Three calls matter to the
scanner:

- GET  /Flight/numbers                 -> flight numbers for the picker
- GET  /Flight/details?flightNumber=&date=&station=
                                       -> disembarking manifest snapshot
- POST /BoardingPass/scan  (multipart 'file')
                                       -> decode result for one image

Authentication is out of scope here: the bearer token comes from configuration
and a 401 is surfaced as SessionExpiredError so the operator can log in again.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from models import FlightManifestSnapshot

logger = logging.getLogger(__name__)

SCAN_FILENAME = "boarding-pass.jpg"


# ------------------------------ Errors ------------------------------
class ApiError(RuntimeError):
    pass


class DecoderError(ApiError):
    """A single decode attempt failed; the session absorbs it."""


class DecoderConnectionError(DecoderError):
    """Network unreachable or timed out."""


class DecoderServiceError(DecoderError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(DecoderError):
    def __init__(self, message: str = "Session expired. Please login again."):
        super().__init__(message)
        self.status_code = 401


class ManifestUnavailableError(ApiError):
    """Manifest (or flight list) could not be fetched or was malformed."""


# ------------------------------ Client ------------------------------
class ApiClient:
    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 30.0):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg) -> "ApiClient":
        return cls(cfg.api_base_url, token=cfg.api_token, timeout=cfg.http_timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    # --- flights -------------------------------------------------------
    def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        """GET + JSON decode; every failure becomes ManifestUnavailableError."""
        try:
            resp = requests.get(self._url(path), params=params, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise ManifestUnavailableError(f"GET {path} failed: {exc}") from exc

        if resp.status_code == 401:
            raise ManifestUnavailableError("Session expired. Please login again.")
        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            raise ManifestUnavailableError(f"GET {path} returned HTTP {resp.status_code}") from exc

        try:
            return resp.json()
        except ValueError as exc:
            raise ManifestUnavailableError(f"GET {path} returned invalid JSON") from exc

    def fetch_flight_numbers(self) -> List[int]:
        """Flight numbers, ascending. Accepts a bare list, {flights} or {flightNumbers}."""
        data = self._get_json("/Flight/numbers")
        if isinstance(data, dict):
            items = data.get("flights")
            if not isinstance(items, list):
                items = data.get("flightNumbers")
        else:
            items = data
        if not isinstance(items, list):
            return []

        numbers: List[int] = []
        for item in items:
            try:
                numbers.append(int(str(item).strip()))
            except ValueError:
                logger.debug("Skipping non-numeric flight number %r", item)
        numbers.sort()
        return numbers

    def fetch_manifest(self, station: str, flight_number: str, date: str) -> FlightManifestSnapshot:
        params = {"flightNumber": str(flight_number), "date": str(date), "station": str(station)}
        data = self._get_json("/Flight/details", params=params)
        try:
            snapshot = FlightManifestSnapshot.from_api(data)
        except ValueError as exc:
            raise ManifestUnavailableError(f"malformed flight details: {exc}") from exc
        logger.info(
            "Loaded manifest for flight %s (%s): %d disembarking",
            snapshot.flight_number or flight_number,
            station,
            snapshot.disembarking_passenger_count,
        )
        return snapshot

    # --- decode --------------------------------------------------------
    def scan_boarding_pass(self, image: bytes) -> Dict[str, Any]:
        """POST one JPEG to the decode service and return its JSON body."""
        files = {"file": (SCAN_FILENAME, image, "image/jpeg")}
        try:
            resp = requests.post(
                self._url("/BoardingPass/scan"),
                files=files,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise DecoderConnectionError(f"decode service unreachable: {exc}") from exc
        except requests.RequestException as exc:
            raise DecoderServiceError(f"decode request failed: {exc}") from exc

        if resp.status_code == 401:
            raise SessionExpiredError()
        if not resp.ok:
            raise DecoderServiceError(
                f"API error: {resp.status_code} {resp.reason} - {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise DecoderServiceError("decode service returned invalid JSON", resp.status_code) from exc
        if not isinstance(data, dict):
            raise DecoderServiceError("decode service returned a non-object body", resp.status_code)
        return data


__all__ = [
    "ApiClient",
    "ApiError",
    "DecoderConnectionError",
    "DecoderError",
    "DecoderServiceError",
    "ManifestUnavailableError",
    "SessionExpiredError",
]
