"""Match a parsed boarding pass against the disembarking manifest."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import AbstractSet, Any, Dict, List, Optional

from models import FlightManifestSnapshot, ManifestEntry, ParsedBoardingPass, normalize_token

SEAT_RE = re.compile(r"^0*(\d+)([A-Z])$")


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    entry: Optional[ManifestEntry] = None
    key: Optional[str] = None
    rule: Optional[str] = None  # "pnr" | "seat" | "name"


NO_MATCH = MatchResult(matched=False)


def normalize_seat(seat: Optional[str]) -> str:
    """'012A' -> '12A'. Anything that is not row+letter is only upper-cased."""
    token = normalize_token(seat)
    m = SEAT_RE.match(token)
    if not m:
        return token
    row = m.group(1).lstrip("0") or "0"
    return row + m.group(2)


def _rule_for(entry: ManifestEntry, pnr: str, seat: str, name: str) -> Optional[str]:
    if pnr and normalize_token(entry.pnr_locator) == pnr:
        return "pnr"
    if seat and normalize_seat(entry.seat) == seat:
        return "seat"
    if name and name in normalize_token(entry.passenger_name):
        return "name"
    return None


def match(parsed: Optional[ParsedBoardingPass], manifest: Optional[FlightManifestSnapshot]) -> MatchResult:
    """Linear scan in manifest order; the first entry satisfying any rule wins.

    Per entry the rules are tried in order: PNR equal, seat equal, entry name
    contains the parsed name. Empty parsed fields never match.
    """
    if parsed is None or manifest is None or manifest.disembarking_passengers is None:
        return NO_MATCH

    pnr = normalize_token(parsed.pnr)
    seat = normalize_seat(parsed.seat)
    name = normalize_token(parsed.passenger_name)
    if not (pnr or seat or name):
        return NO_MATCH

    for entry in manifest.disembarking_passengers:
        rule = _rule_for(entry, pnr, seat, name)
        if rule:
            return MatchResult(matched=True, entry=entry, key=entry.match_key, rule=rule)
    return NO_MATCH


def remaining_passengers(
    manifest: Optional[FlightManifestSnapshot], scanned: AbstractSet[str]
) -> List[ManifestEntry]:
    """Entries whose key is not in the scanned set, in manifest order."""
    if manifest is None or manifest.disembarking_passengers is None:
        return []
    return [e for e in manifest.disembarking_passengers if e.match_key not in scanned]


def progress(manifest: Optional[FlightManifestSnapshot], scanned: AbstractSet[str]) -> Dict[str, Any]:
    expected = manifest.disembarking_passenger_count if manifest else 0
    remaining = len(remaining_passengers(manifest, scanned))
    done = len(scanned)
    return {
        "scanned": done,
        "disembarking": expected,
        "remaining": remaining,
        "complete": expected > 0 and done >= expected,
    }


__all__ = ["MatchResult", "match", "normalize_seat", "progress", "remaining_passengers"]
