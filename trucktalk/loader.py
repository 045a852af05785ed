"""
loader.py: read a load sheet from disk or a public URL

Supports: .csv .tsv .txt .xlsx .xlsm .json, plus http(s):// sources that
resolve to one of those.

Public API:
    table   = load_table("path/to/loads.csv")
    headers = table.headers
    rows    = table.rows

The first row of the sheet is always the header row. Cells are returned
unconverted: text files give strings, workbooks keep native numbers and
datetimes so the date normalizer sees what the spreadsheet holds.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import chardet
import pandas as pd
import requests

from trucktalk.errors import TableLoadError

logger = logging.getLogger(__name__)

TEXT_FORMATS = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm"}
JSON_FORMATS = {".json"}
ALL_FORMATS = TEXT_FORMATS | EXCEL_FORMATS | JSON_FORMATS

MAX_REMOTE_FILE_MB = 25
MAX_REMOTE_FILE_BYTES = MAX_REMOTE_FILE_MB * 1024 * 1024
REMOTE_TIMEOUT_SECONDS = 60

CONTENT_TYPE_FORMATS = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.ms-excel.sheet.macroenabled.12": ".xlsm",
    "text/csv": ".csv",
    "text/tab-separated-values": ".tsv",
    "text/plain": ".txt",
    "application/json": ".json",
}


@dataclass
class LoadedTable:
    headers: list[Any]
    rows: list[list[Any]]
    source: str
    detected_format: str
    sheet_name: str | None = None
    encoding: str | None = None
    delimiter: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def values(self) -> list[list[Any]]:
        return [list(self.headers), *[list(row) for row in self.rows]]


def is_remote(source: str) -> bool:
    return urlparse(str(source)).scheme in {"http", "https"}


# ── Text decoding ──────────────────────────────────────────────────────────────

def detect_encoding(raw: bytes) -> str:
    detected = chardet.detect(raw).get("encoding") or "utf-8"
    return detected.lower()


def read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode line by line: UTF-8, then the detected encoding, then latin-1.

    A file exported from two tools can mix encodings between rows; decoding
    per line keeps the readable ones intact. Null bytes are dropped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for encoding in ("utf-8", preferred_encoding, "latin-1"):
            try:
                decoded = raw_line.decode(encoding)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    text = "\n".join(decoded_lines)
    return text[1:] if text.startswith("\ufeff") else text


def detect_delimiter(text: str) -> str:
    """csv.Sniffer first; otherwise score candidates on column-count consistency."""
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])
    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delimiter, best_score = ",", float("-inf")
    for delimiter in (",", ";", "\t", "|"):
        rows = [row for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delimiter) if any(row)]
        if len(rows) < 2:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if len(rows[0]) == mode_width:
            score += 1.0
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_delimiter, best_score = delimiter, score
    return best_delimiter


# ── Format readers ─────────────────────────────────────────────────────────────

def _frame_rows(frame: pd.DataFrame) -> list[list[Any]]:
    cleaned = frame.astype(object).where(pd.notna(frame), None)
    return [list(row) for row in cleaned.itertuples(index=False, name=None)]


def _split_header(rows: list[list[Any]], source: str) -> tuple[list[Any], list[list[Any]]]:
    if not rows:
        raise TableLoadError(f"{source} is empty")
    return rows[0], rows[1:]


def _fit_rows(records: list[list[str]], source: str) -> tuple[list[list[Any]], list[str]]:
    """Pad short records and trim long ones to the header width; report trimmed cells."""
    width = len(records[0])
    warnings: list[str] = []
    fitted: list[list[Any]] = []
    for index, record in enumerate(records):
        if len(record) > width:
            extra = [value for value in record[width:] if value.strip()]
            if extra:
                warnings.append(
                    f"Row {index + 1} of {source} has {len(record)} fields, header has {width}; "
                    f"dropped extra values {extra}"
                )
            record = record[:width]
        fitted.append(record + [""] * (width - len(record)))
    return fitted, warnings


def _load_text(raw: bytes, suffix: str, source: str) -> LoadedTable:
    encoding = detect_encoding(raw)
    text = read_text_safely(raw, encoding)
    delimiter = "\t" if suffix == ".tsv" else detect_delimiter(text)
    if not text.strip():
        raise TableLoadError(f"{source} is empty")
    # csv.reader keeps every record, so row numbers stay aligned with the sheet.
    try:
        records = list(csv.reader(io.StringIO(text), delimiter=delimiter))
    except csv.Error as exc:
        raise TableLoadError(f"Could not parse {suffix} file: {exc}") from exc
    while records and not any(value.strip() for value in records[-1]):
        records.pop()
    if not records:
        raise TableLoadError(f"{source} is empty")

    rows, warnings = _fit_rows(records, source)
    headers, data = _split_header(rows, source)
    return LoadedTable(
        headers=headers,
        rows=data,
        source=source,
        detected_format=suffix.lstrip("."),
        encoding=encoding,
        delimiter=delimiter,
        warnings=warnings,
    )


def _load_excel(raw: bytes, suffix: str, source: str, sheet_name: str | None) -> LoadedTable:
    warnings: list[str] = []
    try:
        with pd.ExcelFile(io.BytesIO(raw), engine="openpyxl") as workbook:
            sheet_names = list(workbook.sheet_names)
            if sheet_name is None:
                chosen = sheet_names[0]
                if len(sheet_names) > 1:
                    warnings.append(
                        f"Multiple sheets found ({len(sheet_names)} total); used '{chosen}'. "
                        f"Pass a sheet name to pick another: {sheet_names}"
                    )
            elif sheet_name in sheet_names:
                chosen = sheet_name
            else:
                raise TableLoadError(f"Sheet '{sheet_name}' not found. Available: {sheet_names}")
            frame = workbook.parse(chosen, header=None, dtype=object)
    except TableLoadError:
        raise
    except Exception as exc:
        raise TableLoadError(f"Could not open workbook {source}: {exc}") from exc

    headers, data = _split_header(_frame_rows(frame), source)
    return LoadedTable(
        headers=headers,
        rows=data,
        source=source,
        detected_format=suffix.lstrip("."),
        sheet_name=chosen,
        warnings=warnings,
    )


def _load_json(raw: bytes, source: str) -> LoadedTable:
    """
    Accept an array of objects, or an object whose first list value holds them.

    Nested objects are flattened with dotted column names.
    """
    text = read_text_safely(raw, detect_encoding(raw))
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TableLoadError(f"Invalid JSON in {source}: {exc}") from exc

    warnings: list[str] = []
    if isinstance(data, dict):
        list_keys = [key for key, value in data.items() if isinstance(value, list)]
        if not list_keys:
            raise TableLoadError(f"{source} holds a JSON object with no list of records")
        warnings.append(f"Nested JSON: used array at top-level key '{list_keys[0]}'")
        data = data[list_keys[0]]
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise TableLoadError(f"{source} must hold a JSON array of objects")

    frame = pd.json_normalize(data)
    return LoadedTable(
        headers=list(frame.columns),
        rows=_frame_rows(frame),
        source=source,
        detected_format="json",
        warnings=warnings,
    )


# ── Remote sources ─────────────────────────────────────────────────────────────

def _remote_suffix(url: str, response: requests.Response) -> str:
    suffix = Path(urlparse(response.url or url).path).suffix.lower()
    if suffix in ALL_FORMATS:
        return suffix
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    return CONTENT_TYPE_FORMATS.get(content_type, suffix)


def fetch_remote(url: str) -> tuple[bytes, str]:
    """Download a public sheet export, refusing anything above the size cap."""
    try:
        response = requests.get(url, timeout=REMOTE_TIMEOUT_SECONDS, allow_redirects=True, stream=True)
    except requests.RequestException as exc:
        raise TableLoadError(f"Could not fetch {url}: {exc}") from exc
    try:
        response.raise_for_status()
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > MAX_REMOTE_FILE_BYTES:
            raise TableLoadError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")
        chunks: list[bytes] = []
        downloaded = 0
        for chunk in response.iter_content(chunk_size=1024 * 1024):
            if not chunk:
                continue
            downloaded += len(chunk)
            if downloaded > MAX_REMOTE_FILE_BYTES:
                raise TableLoadError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")
            chunks.append(chunk)
        suffix = _remote_suffix(url, response)
    except requests.RequestException as exc:
        raise TableLoadError(f"Could not fetch {url}: {exc}") from exc
    finally:
        response.close()
    logger.debug("Fetched %d bytes from %s", downloaded, url)
    return b"".join(chunks), suffix


def load_table(source: str | Path, sheet_name: str | None = None) -> LoadedTable:
    source_text = str(source)
    if is_remote(source_text):
        raw, suffix = fetch_remote(source_text)
    else:
        path = Path(source_text)
        if not path.exists():
            raise TableLoadError(f"File not found: {path}")
        suffix = path.suffix.lower()
        if suffix in ALL_FORMATS:
            raw = path.read_bytes()

    if suffix not in ALL_FORMATS:
        raise TableLoadError(
            f"Unsupported file type: {suffix or '[missing extension]'}. "
            f"Supported: {', '.join(sorted(ALL_FORMATS))}"
        )

    if suffix in TEXT_FORMATS:
        table = _load_text(raw, suffix, source_text)
    elif suffix in EXCEL_FORMATS:
        table = _load_excel(raw, suffix, source_text, sheet_name)
    else:
        table = _load_json(raw, source_text)

    logger.info(
        "Loaded %s: format=%s, %d columns, %d data rows",
        source_text,
        table.detected_format,
        len(table.headers),
        len(table.rows),
    )
    return table
