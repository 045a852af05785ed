"""
Appointment date/time normalization.

Policy: a timestamp is only accepted when it carries explicit timezone
evidence (a trailing Z, a numeric UTC offset, or a known zone abbreviation).
Parsable values without a zone are reported as ``missing_timezone`` and are
never silently pinned to a zone, unless the caller opts into
``assume_timezone``.
"""

from __future__ import annotations

import math
import numbers
import re
import warnings
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import pandas as pd

# Offsets in minutes east of UTC.
TZ_ABBREVIATIONS = {
    "UTC": 0,
    "GMT": 0,
    "EST": -300,
    "EDT": -240,
    "CST": -360,
    "CDT": -300,
    "MST": -420,
    "MDT": -360,
    "PST": -480,
    "PDT": -420,
    "AKST": -540,
    "AKDT": -480,
    "HST": -600,
    "BST": 60,
    "CET": 60,
    "CEST": 120,
}

ISO_STRICT_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
ZULU_RE = re.compile(r"(?<=\d)\s*Z\b", re.IGNORECASE)
# Date.toString() in Sheets and JavaScript appends the zone name, e.g. "(Eastern Daylight Time)".
ZONE_NAME_SUFFIX_RE = re.compile(r"\s*\([A-Za-z][A-Za-z .'-]*\)\s*$")
OFFSET_RE = re.compile(
    r"\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?\s*(?:[AP]\.?M\.?)?\s*(?:UTC|GMT)?\s*[+-]\d{2}(?::?\d{2})?(?!\d)",
    re.IGNORECASE,
)
ABBREVIATION_RE = re.compile(
    r"(?<![A-Za-z])(" + "|".join(sorted(TZ_ABBREVIATIONS, key=len, reverse=True)) + r")(?![A-Za-z])",
    re.IGNORECASE,
)
EXPLICIT_OFFSET_START_RE = re.compile(r"^[+-]\d")

SERIAL_MIN = 25_000
SERIAL_MAX = 60_000

REASON_EMPTY = "empty"
REASON_UNPARSABLE = "unparsable"
REASON_MISSING_TIMEZONE = "missing_timezone"


@dataclass(frozen=True)
class DateResult:
    ok: bool
    iso: str | None = None
    non_iso_input: bool = False
    reason: str | None = None

    @classmethod
    def success(cls, iso: str, non_iso_input: bool) -> "DateResult":
        return cls(ok=True, iso=iso, non_iso_input=non_iso_input)

    @classmethod
    def failure(cls, reason: str) -> "DateResult":
        return cls(ok=False, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "iso": self.iso, "nonIsoInput": self.non_iso_input}
        return {"ok": False, "reason": self.reason}


def has_timezone_evidence(text: str) -> bool:
    return bool(ZULU_RE.search(text) or OFFSET_RE.search(text) or ABBREVIATION_RE.search(text))


def _format_offset(minutes: int) -> str:
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{mins:02d}"


def _prepare_text(text: str) -> str:
    text = ZONE_NAME_SUFFIX_RE.sub("", text)
    return ZULU_RE.sub("Z", text)


def _replace_abbreviation(text: str) -> str:
    """Swap a zone abbreviation for its numeric offset so the parser keeps the zone."""
    match = ABBREVIATION_RE.search(text)
    if not match:
        return text
    before = text[: match.start()].rstrip()
    after = text[match.end():].lstrip()
    abbreviation = match.group(1).upper()
    if abbreviation in {"UTC", "GMT"} and EXPLICIT_OFFSET_START_RE.match(after):
        return f"{before} {after}".strip()
    return f"{before} {_format_offset(TZ_ABBREVIATIONS[abbreviation])} {after}".strip()


def _parse_text(text: str) -> pd.Timestamp | None:
    with warnings.catch_warnings():
        # pandas warns when it falls back to per-element dateutil parsing
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
    if not isinstance(parsed, pd.Timestamp) or pd.isna(parsed):
        return None
    return parsed


def _to_iso_utc(value: pd.Timestamp) -> str:
    value = value.tz_convert("UTC")
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


def _resolve_naive(value: pd.Timestamp, assume_timezone: str | None, non_iso_input: bool) -> DateResult:
    if not assume_timezone:
        return DateResult.failure(REASON_MISSING_TIMEZONE)
    localized = value.tz_localize(assume_timezone, ambiguous="NaT", nonexistent="NaT")
    if pd.isna(localized):
        return DateResult.failure(REASON_MISSING_TIMEZONE)
    return DateResult.success(_to_iso_utc(localized), non_iso_input)


def _normalize_native(value: Any, assume_timezone: str | None) -> DateResult:
    if isinstance(value, datetime):
        stamp = pd.Timestamp(value)
    else:
        stamp = pd.Timestamp(datetime(value.year, value.month, value.day))
    if pd.isna(stamp):
        return DateResult.failure(REASON_EMPTY)
    if stamp.tzinfo is not None:
        return DateResult.success(_to_iso_utc(stamp), False)
    return _resolve_naive(stamp, assume_timezone, False)


def _normalize_number(value: float, assume_timezone: str | None) -> DateResult:
    if math.isnan(value):
        return DateResult.failure(REASON_EMPTY)
    if not SERIAL_MIN <= value <= SERIAL_MAX:
        return DateResult.failure(REASON_UNPARSABLE)
    # spreadsheet serial days carry no zone
    stamp = pd.to_datetime(value, unit="D", origin="1899-12-30")
    return _resolve_naive(stamp, assume_timezone, True)


def normalize_datetime(raw: Any, assume_timezone: str | None = None) -> DateResult:
    if raw is None:
        return DateResult.failure(REASON_EMPTY)
    if isinstance(raw, bool):
        return DateResult.failure(REASON_UNPARSABLE)
    if raw is pd.NaT:
        return DateResult.failure(REASON_EMPTY)
    if isinstance(raw, (datetime, date)):
        return _normalize_native(raw, assume_timezone)
    if isinstance(raw, numbers.Real):
        return _normalize_number(float(raw), assume_timezone)

    text = str(raw).strip()
    if not text:
        return DateResult.failure(REASON_EMPTY)
    text = _prepare_text(text)

    zoned = has_timezone_evidence(text)
    prepared = _replace_abbreviation(text)
    parsed = _parse_text(prepared)
    if parsed is None and "/" in prepared:
        parsed = _parse_text(prepared.replace("/", "-"))
    if parsed is None:
        return DateResult.failure(REASON_UNPARSABLE)

    non_iso_input = not ISO_STRICT_RE.match(text)
    if not zoned or parsed.tzinfo is None:
        return _resolve_naive(parsed, assume_timezone if not zoned else None, non_iso_input)
    return DateResult.success(_to_iso_utc(parsed), non_iso_input)
