"""Data models shared by the parser, matcher and scan session."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


def normalize_token(value: Optional[str]) -> str:
    return (value or "").strip().upper()


@dataclass(frozen=True)
class ManifestEntry:
    """One passenger expected to disembark at the station."""

    passenger_name: str
    seat: str
    pnr_locator: str
    id: Optional[Any] = None

    @property
    def match_key(self) -> str:
        return f"{normalize_token(self.pnr_locator)}_{normalize_token(self.seat)}"

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "ManifestEntry":
        return cls(
            passenger_name=str(item.get("passengerName") or "").strip(),
            seat=str(item.get("seat") or "").strip(),
            pnr_locator=str(item.get("pnrLocator") or "").strip(),
            id=item.get("id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "passengerName": self.passenger_name,
            "seat": self.seat,
            "pnrLocator": self.pnr_locator,
            "matchKey": self.match_key,
        }


@dataclass(frozen=True)
class FlightManifestSnapshot:
    """Read-only manifest for one flight/date/station selection.

    ``disembarking_passengers`` is ``None`` when the backend has not produced a
    list yet; an empty tuple means nobody disembarks here.
    """

    flight_number: str
    route: str = ""
    total_passengers: int = 0
    disembarking_passenger_count: int = 0
    disembarking_passengers: Optional[Tuple[ManifestEntry, ...]] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "FlightManifestSnapshot":
        """Build a snapshot from the ``/Flight/details`` JSON body.

        Raises ValueError on shapes we cannot trust, so callers never see a
        half-built snapshot.
        """
        if not isinstance(payload, dict):
            raise ValueError("flight details payload is not an object")

        raw_entries = payload.get("disembarkingPassengers")
        entries: Optional[Tuple[ManifestEntry, ...]]
        if raw_entries is None:
            entries = None
        elif isinstance(raw_entries, list):
            if not all(isinstance(item, dict) for item in raw_entries):
                raise ValueError("disembarkingPassengers contains non-object items")
            entries = tuple(ManifestEntry.from_api(item) for item in raw_entries)
        else:
            raise ValueError("disembarkingPassengers is not a list")

        try:
            total = int(payload.get("totalPassengers") or 0)
            count = payload.get("disembarkingPassengerCount")
            count = int(count) if count is not None else len(entries or ())
        except (TypeError, ValueError) as exc:
            raise ValueError(f"passenger counts are not integers: {exc}") from exc

        return cls(
            flight_number=str(payload.get("flightNumber") or "").strip(),
            route=str(payload.get("route") or "").strip(),
            total_passengers=total,
            disembarking_passenger_count=count,
            disembarking_passengers=entries,
        )

    def find_entry(self, entry_id: Any) -> Optional[ManifestEntry]:
        for entry in self.disembarking_passengers or ():
            if entry.id == entry_id or str(entry.id) == str(entry_id):
                return entry
        return None

    def find_by_key(self, match_key: str) -> Optional[ManifestEntry]:
        wanted = normalize_token(match_key)
        for entry in self.disembarking_passengers or ():
            if entry.match_key == wanted:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flightNumber": self.flight_number,
            "route": self.route,
            "totalPassengers": self.total_passengers,
            "disembarkingPassengerCount": self.disembarking_passenger_count,
            "disembarkingPassengers": (
                None
                if self.disembarking_passengers is None
                else [e.to_dict() for e in self.disembarking_passengers]
            ),
        }


@dataclass(frozen=True)
class FlightSegment:
    origin: str
    destination: str
    airline: str
    flight_number: str
    julian_date: str
    travel_class: str
    seat: str
    sequence: str


@dataclass
class ParsedBoardingPass:
    passenger_name: str = ""
    flight_number: str = ""
    seat: str = ""
    pnr: str = ""
    date: str = ""
    travel_class: str = ""
    airline: str = ""
    sequence: str = ""
    origin: str = ""
    destination: str = ""
    source: str = "barcode"
    parse_errors: List[str] = field(default_factory=list)
    segments: List[FlightSegment] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.passenger_name or self.flight_number or self.seat or self.pnr)

    @classmethod
    def from_api(cls, item: Dict[str, Any], source: str = "barcode") -> "ParsedBoardingPass":
        """Fields already extracted by the decode service (camelCase keys)."""

        def _get(*keys: str) -> str:
            for key in keys:
                value = item.get(key)
                if value not in (None, ""):
                    return str(value).strip().upper()
            return ""

        parsed = cls(
            passenger_name=_get("passengerName", "name"),
            flight_number=_get("flightNumber", "flight"),
            seat=_get("seat", "seatNumber"),
            pnr=_get("pnrLocator", "pnr", "bookingReference"),
            date=_get("date", "flightDate"),
            travel_class=_get("class", "travelClass", "cabinClass"),
            airline=_get("airline", "carrier"),
            sequence=_get("sequence", "sequenceNumber"),
            origin=_get("origin", "from"),
            destination=_get("destination", "to"),
            source=source,
        )
        if parsed.is_empty:
            parsed.parse_errors.append("no boarding pass fields found")
        return parsed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passengerName": self.passenger_name,
            "flightNumber": self.flight_number,
            "seat": self.seat,
            "pnr": self.pnr,
            "date": self.date,
            "class": self.travel_class,
            "airline": self.airline,
            "sequence": self.sequence,
            "origin": self.origin,
            "destination": self.destination,
            "source": self.source,
            "parseErrors": list(self.parse_errors),
            "segments": [asdict(s) for s in self.segments],
        }


@dataclass(frozen=True)
class ScanRecord:
    """One completed attempt as shown in the recent-scans list."""

    id: str
    success: bool
    source: str
    boarding_pass: Optional[ParsedBoardingPass]
    matched: bool
    matched_entry: Optional[ManifestEntry] = None
    scanned_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "success": self.success,
            "source": self.source,
            "boardingPass": self.boarding_pass.to_dict() if self.boarding_pass else None,
            "matched": self.matched,
            "matchedEntry": self.matched_entry.to_dict() if self.matched_entry else None,
            "scannedAt": self.scanned_at.isoformat().replace("+00:00", "Z"),
        }


__all__ = [
    "FlightManifestSnapshot",
    "FlightSegment",
    "ManifestEntry",
    "ParsedBoardingPass",
    "ScanRecord",
    "normalize_token",
]
