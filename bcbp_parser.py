"""
Overview
Turns the raw text that comes back from the decode capability into a structured
boarding-pass record. Two entry points:

- parse_barcode(): text from a 1D/2D barcode that is *presumed* to follow the
  IATA Bar-Coded Boarding Pass (BCBP) layout. Ticketing systems emit it
  inconsistently (padding, missing E-ticket marker, truncated payloads), so the
  parser works on patterns rather than fixed offsets.
- parse_ocr_text(): text mined by OCR from a printed pass. Label-anchored
  patterns first ("SEAT 12A"), positional patterns second.

Both never raise. Anything that could not be recovered is listed in
ParsedBoardingPass.parse_errors and the record is returned as-is; an all-empty
record is simply a non-match downstream.

Every field is extracted by an ordered tuple of named strategies; the first
strategy returning a non-empty value wins. Each strategy is a plain function of
the text so it can be tested on its own.

BCBP carries no year, only a day-of-year, so the date is kept as a "Day N"
display placeholder and never turned into a calendar date.
"""

from __future__ import annotations

import re
from typing import Callable, List, Optional, Sequence, Tuple

from models import FlightSegment, ParsedBoardingPass

Strategy = Tuple[str, Callable[[str], str]]

# ------------------------------ Shared patterns ------------------------------
FORMAT_MARKER_RE = re.compile(r"^M\d")

TITLES = ("MR", "MRS", "MS", "MISS")

# LAST/FIRST [extra word] [title]; single spaces only so the name never runs
# into the padding that follows it.
NAME_RE = re.compile(
    r"\b(?P<last>[A-Z]{2,})/(?P<first>[A-Z]{2,})"
    r"(?: (?P<extra>[A-Z]{2,})\b)?"
    r"(?: (?P<title>MRS|MR|MS|MISS)\b)?"
)

PNR_E_MARKER_RE = re.compile(r"(?<![A-Z0-9])E([A-Z0-9]{6})\s")
PNR_LETTERS_RE = re.compile(r"\b([A-Z]{6})\b")
PNR_ALNUM_RE = re.compile(r"\b([A-Z0-9]{6})\b")

FLIGHT_LIKE_RE = re.compile(r"^[A-Z]{2}\d{4}$")
DIGITS_ONLY_RE = re.compile(r"^\d{6}$")

# origin(3) dest(3) airline(2) SP flight(3-4) SP julian(3) class seat sequence(4)
SEGMENT_RE = re.compile(
    r"(?P<origin>[A-Z]{3})(?P<destination>[A-Z]{3})(?P<airline>[A-Z0-9]{2})\s+"
    r"(?P<flight>\d{3,4})\s+(?P<julian>\d{3})(?P<cls>[YJFC])"
    r"(?P<seat>\d{1,3}[A-Z])(?P<sequence>\d{4})"
)

FLIGHT_TOKEN_RE = re.compile(r"\b([A-Z]{2})(\d{3,4})\b")
# 1-2 digits + letter; a digit or letter on either side means it is part of
# something longer (flight number, sequence, locator).
SEAT_TOKEN_RE = re.compile(r"(?<![0-9A-Z])(\d{1,2}[A-Z])(?![0-9A-Z])")
SEAT_VALID_RE = re.compile(r"^\d{1,2}[A-Z]$")

ERR_EMPTY_INPUT = "empty input"
ERR_NO_FIELDS = "no boarding pass fields found"
ERR_JULIAN_RANGE = "julian date out of range: {}"


# ------------------------------ Validators ------------------------------
def is_valid_pnr(token: str) -> bool:
    """Six alphanumerics that do not look like a flight number or a date."""
    if len(token) != 6 or not token.isalnum() or token != token.upper():
        return False
    if FLIGHT_LIKE_RE.match(token) or DIGITS_ONLY_RE.match(token):
        return False
    return True


def is_valid_seat(token: str) -> bool:
    return bool(SEAT_VALID_RE.match(token or ""))


def julian_placeholder(julian: str) -> Optional[str]:
    """'123' -> 'Day 123'. None when the value is not a day of year."""
    try:
        day = int(julian)
    except (TypeError, ValueError):
        return None
    if not 1 <= day <= 366:
        return None
    return f"Day {day}"


def first_result(strategies: Sequence[Strategy], text: str) -> Tuple[str, Optional[str]]:
    """Run strategies in order; return (value, strategy_name) of the first hit."""
    for name, fn in strategies:
        value = fn(text)
        if value:
            return value, name
    return "", None


# ------------------------------ Name ------------------------------
def _looks_like_e_marker(word: str) -> bool:
    return len(word) == 7 and word.startswith("E") and is_valid_pnr(word[1:])


def _extra_is_e_marker(m: re.Match, text: str) -> bool:
    """An all-letter "E"+locator right after the first name (single space).

    A title or another E-marker after the word means it is a name (EDWARDS MR).
    """
    if not _looks_like_e_marker(m.group("extra")) or m.group("title"):
        return False
    return not PNR_E_MARKER_RE.match(text[m.end("extra"):].lstrip())


def split_name(text: str) -> Tuple[str, int]:
    """Find LAST/FIRST in text. Returns ("First Last", end_offset) or ("", 0)."""
    m = NAME_RE.search(text)
    if not m:
        return "", 0

    first = [m.group("first")]
    end = m.end("first")
    extra = m.group("extra")
    if extra and not _extra_is_e_marker(m, text):
        end = m.end("extra")
        if extra not in TITLES:
            first.append(extra)
        if m.group("title"):
            end = m.end("title")

    return " ".join(first + [m.group("last")]), end


# ------------------------------ PNR ------------------------------
def _pnr_from(pattern: re.Pattern, text: str) -> str:
    for m in pattern.finditer(text):
        if is_valid_pnr(m.group(1)):
            return m.group(1)
    return ""


def pnr_after_e_marker(text: str) -> str:
    return _pnr_from(PNR_E_MARKER_RE, text)


def pnr_letters_only(text: str) -> str:
    return _pnr_from(PNR_LETTERS_RE, text)


def pnr_alphanumeric(text: str) -> str:
    return _pnr_from(PNR_ALNUM_RE, text)


BARCODE_PNR_STRATEGIES: Tuple[Strategy, ...] = (
    ("e_marker", pnr_after_e_marker),
    ("letters", pnr_letters_only),
    ("alphanumeric", pnr_alphanumeric),
)


# ------------------------------ Segments ------------------------------
def find_segments(text: str) -> List[FlightSegment]:
    segments: List[FlightSegment] = []
    for m in SEGMENT_RE.finditer(text):
        segments.append(
            FlightSegment(
                origin=m.group("origin"),
                destination=m.group("destination"),
                airline=m.group("airline"),
                flight_number=m.group("airline") + m.group("flight"),
                julian_date=m.group("julian"),
                travel_class=m.group("cls"),
                seat=m.group("seat"),
                sequence=m.group("sequence"),
            )
        )
    return segments


def flight_token(text: str) -> str:
    m = FLIGHT_TOKEN_RE.search(text)
    return m.group(0) if m else ""


def seat_token(text: str) -> str:
    for m in SEAT_TOKEN_RE.finditer(text):
        if is_valid_seat(m.group(1)):
            return m.group(1)
    return ""


# ------------------------------ Barcode entry point ------------------------------
def parse_barcode(text: str) -> ParsedBoardingPass:
    """Parse BCBP-like barcode text. Never raises."""
    result = ParsedBoardingPass(source="barcode")
    body = (text or "").strip()
    if not body:
        result.parse_errors.append(ERR_EMPTY_INPUT)
        return result

    body = FORMAT_MARKER_RE.sub("", body, count=1)

    result.passenger_name, name_end = split_name(body)
    rest = body[name_end:]

    result.pnr, _ = first_result(BARCODE_PNR_STRATEGIES, rest)

    segments = find_segments(rest)
    if segments:
        lead = segments[0]
        result.segments = segments
        result.flight_number = lead.flight_number
        result.airline = lead.airline
        result.seat = lead.seat
        result.travel_class = lead.travel_class
        result.sequence = lead.sequence
        result.origin = lead.origin
        result.destination = lead.destination
        day = julian_placeholder(lead.julian_date)
        if day:
            result.date = day
        else:
            result.parse_errors.append(ERR_JULIAN_RANGE.format(lead.julian_date))
    else:
        result.flight_number = flight_token(rest)
        result.airline = result.flight_number[:2]
        result.seat = seat_token(rest)

    if result.is_empty:
        result.parse_errors.append(ERR_NO_FIELDS)
    return result


# ------------------------------ OCR ------------------------------
LABEL_WORDS = frozenset({
    "NAME", "PASSENGER", "FLIGHT", "SEAT", "PNR", "BOOKING", "REF", "REFERENCE",
    "CONFIRMATION", "DATE", "CLASS", "FROM", "TO", "GATE", "BOARDING", "PASS",
    "DEPARTURE", "ARRIVAL", "SEQ", "SEQUENCE", "TIME", "TERMINAL", "ZONE",
    "CODE", "TICKET", "ETKT", "RECORD", "LOCATOR", "NO", "NUMBER", "CARRIER",
})

MONTHS = "JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEP|OCT|NOV|DEC"
DATE_VALUE = (
    rf"\d{{1,2}} ?(?:{MONTHS})(?: ?\d{{2,4}})?"
    r"|\d{4}-\d{2}-\d{2}"
    r"|\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}"
)

OCR_NAME_LABEL_RE = re.compile(r"\b(?:PASSENGER NAME|NAME OF PASSENGER|PASSENGER|NAME)\b\s*:?\s*")
OCR_NAME_WORD_RE = re.compile(r"[A-Z][A-Z'\-]*(?:/[A-Z][A-Z'\-]*)?")
OCR_FLIGHT_LABEL_RE = re.compile(
    r"\bFLIGHT\b\s*(?:NO\.?|NUMBER|#)?\s*:?\s*([A-Z0-9]{2}) ?(\d{3,4})\b"
)
OCR_FLIGHT_RE = re.compile(r"\b([A-Z]{2}) ?(\d{3,4})\b")
OCR_SEAT_LABEL_RE = re.compile(r"\bSEAT\b\s*(?:NO\.?|NUMBER)?\s*:?\s*(\d{1,3}[A-Z])\b")
OCR_PNR_LABEL_RE = re.compile(
    r"\b(?:PNR|BOOKING ?REF(?:ERENCE)?|BOOKING ?CODE|RECORD LOCATOR|"
    r"CONFIRMATION(?: ?(?:NO\.?|NUMBER|CODE))?)\b\s*[:#]?\s*([A-Z0-9]{6})\b"
)
OCR_DATE_LABEL_RE = re.compile(rf"\bDATE\b\s*:?\s*({DATE_VALUE})\b")
OCR_DATE_RE = re.compile(rf"\b({DATE_VALUE})\b")
OCR_CLASS_LABEL_RE = re.compile(
    r"\bCLASS\b\s*:?\s*(PREMIUM ECONOMY|ECONOMY|BUSINESS|FIRST|[YJFCW])\b"
)
OCR_CLASS_WORD_RE = re.compile(r"\b(PREMIUM ECONOMY|ECONOMY|BUSINESS|FIRST)\b")
OCR_FROM_RE = re.compile(r"\bFROM\b\s*:?\s*([A-Z]{3})\b")
OCR_TO_RE = re.compile(r"\bTO\b\s*:?\s*([A-Z]{3})\b")
OCR_ROUTE_RE = re.compile(r"\b([A-Z]{3}) ?(?:-|>|->) ?([A-Z]{3})\b")
OCR_SEQ_LABEL_RE = re.compile(r"\bSEQ(?:UENCE)?\b\.?\s*(?:NO\.?|NUMBER)?\s*:?\s*(\d{1,4})\b")

CLASS_WORDS = {"PREMIUM ECONOMY": "W", "ECONOMY": "Y", "BUSINESS": "J", "FIRST": "F"}

ERR_OCR_NO_FIELDS = "no boarding pass fields found in OCR text"


def normalize_ocr_text(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip().upper()


def _compose_name(raw: str) -> str:
    if "/" in raw:
        name, _ = split_name(raw)
        if name:
            return name
    words = [w for w in raw.replace("/", " ").split() if w not in TITLES]
    return " ".join(words)


def ocr_name_labelled(text: str) -> str:
    m = OCR_NAME_LABEL_RE.search(text)
    if not m:
        return ""
    words: List[str] = []
    for tok in text[m.end():].split(" "):
        tok = tok.strip(":,.")
        if not tok or tok in LABEL_WORDS or not OCR_NAME_WORD_RE.fullmatch(tok):
            break
        words.append(tok)
        if len(words) == 4:
            break
    return _compose_name(" ".join(words)) if words else ""


def ocr_name_slashed(text: str) -> str:
    name, _ = split_name(text)
    return name


def ocr_flight_labelled(text: str) -> str:
    m = OCR_FLIGHT_LABEL_RE.search(text)
    return m.group(1) + m.group(2) if m else ""


def ocr_flight_positional(text: str) -> str:
    for m in OCR_FLIGHT_RE.finditer(text):
        if m.group(1) in LABEL_WORDS:
            continue
        return m.group(1) + m.group(2)
    return ""


def ocr_seat_labelled(text: str) -> str:
    m = OCR_SEAT_LABEL_RE.search(text)
    if m and is_valid_seat(m.group(1)):
        return m.group(1)
    return ""


def ocr_pnr_labelled(text: str) -> str:
    m = OCR_PNR_LABEL_RE.search(text)
    if m and is_valid_pnr(m.group(1)):
        return m.group(1)
    return ""


def ocr_date_labelled(text: str) -> str:
    m = OCR_DATE_LABEL_RE.search(text)
    return m.group(1) if m else ""


def ocr_date_positional(text: str) -> str:
    m = OCR_DATE_RE.search(text)
    return m.group(1) if m else ""


def ocr_class_labelled(text: str) -> str:
    m = OCR_CLASS_LABEL_RE.search(text)
    if not m:
        return ""
    return CLASS_WORDS.get(m.group(1), m.group(1))


def ocr_class_word(text: str) -> str:
    m = OCR_CLASS_WORD_RE.search(text)
    return CLASS_WORDS[m.group(1)] if m else ""


def ocr_sequence_labelled(text: str) -> str:
    m = OCR_SEQ_LABEL_RE.search(text)
    return m.group(1).zfill(4) if m else ""


def ocr_route(text: str) -> Tuple[str, str]:
    origin = OCR_FROM_RE.search(text)
    dest = OCR_TO_RE.search(text)
    if origin or dest:
        return (origin.group(1) if origin else "", dest.group(1) if dest else "")
    m = OCR_ROUTE_RE.search(text)
    if m:
        return m.group(1), m.group(2)
    return "", ""


OCR_NAME_STRATEGIES: Tuple[Strategy, ...] = (
    ("labelled", ocr_name_labelled),
    ("slashed", ocr_name_slashed),
)
OCR_FLIGHT_STRATEGIES: Tuple[Strategy, ...] = (
    ("labelled", ocr_flight_labelled),
    ("positional", ocr_flight_positional),
)
OCR_SEAT_STRATEGIES: Tuple[Strategy, ...] = (
    ("labelled", ocr_seat_labelled),
    ("positional", seat_token),
)
OCR_DATE_STRATEGIES: Tuple[Strategy, ...] = (
    ("labelled", ocr_date_labelled),
    ("positional", ocr_date_positional),
)
OCR_CLASS_STRATEGIES: Tuple[Strategy, ...] = (
    ("labelled", ocr_class_labelled),
    ("word", ocr_class_word),
)


def _ocr_pnr(text: str, name: str) -> str:
    value = ocr_pnr_labelled(text)
    if value:
        return value
    # Positional: printed text is full of 6-letter words, so only mixed
    # letter+digit tokens count without a label
    for m in PNR_ALNUM_RE.finditer(text):
        token = m.group(1)
        if token in name.split() or token.isalpha() or token.isdigit():
            continue
        if is_valid_pnr(token):
            return token
    return ""


def parse_ocr_text(text: str) -> ParsedBoardingPass:
    """Mine OCR text for boarding-pass fields. Never raises."""
    result = ParsedBoardingPass(source="ocr")
    norm = normalize_ocr_text(text)
    if not norm:
        result.parse_errors.append(ERR_EMPTY_INPUT)
        return result

    result.passenger_name, _ = first_result(OCR_NAME_STRATEGIES, norm)
    result.flight_number, _ = first_result(OCR_FLIGHT_STRATEGIES, norm)
    result.airline = result.flight_number[:2]
    result.seat, _ = first_result(OCR_SEAT_STRATEGIES, norm)
    result.pnr = _ocr_pnr(norm, result.passenger_name)
    result.date, _ = first_result(OCR_DATE_STRATEGIES, norm)
    result.travel_class, _ = first_result(OCR_CLASS_STRATEGIES, norm)
    result.sequence = ocr_sequence_labelled(norm)
    result.origin, result.destination = ocr_route(norm)

    if result.is_empty:
        result.parse_errors.append(ERR_OCR_NO_FIELDS)
    return result


# ------------------------------ Dispatch ------------------------------
def parse_decoded(text: str, kind: str = "barcode") -> ParsedBoardingPass:
    """Parse decoder output by its kind.

    Barcode text that yields nothing is mined once more as OCR text, since
    some decoders report printed text under a barcode kind.
    """
    if kind == "ocr":
        return parse_ocr_text(text)

    parsed = parse_barcode(text)
    if not parsed.is_empty or not (text or "").strip():
        return parsed

    mined = parse_ocr_text(text)
    if mined.is_empty:
        return parsed
    mined.parse_errors = list(parsed.parse_errors) + mined.parse_errors
    return mined


__all__ = [
    "BARCODE_PNR_STRATEGIES",
    "first_result",
    "is_valid_pnr",
    "is_valid_seat",
    "julian_placeholder",
    "normalize_ocr_text",
    "parse_barcode",
    "parse_decoded",
    "parse_ocr_text",
]
