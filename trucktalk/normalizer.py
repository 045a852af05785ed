from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Sequence

import pandas as pd

from trucktalk.config import DATE_FIELDS, DEFAULT_CONFIG, AnalyzerConfig
from trucktalk.dates import REASON_EMPTY, REASON_MISSING_TIMEZONE, normalize_datetime
from trucktalk.header_mapper import HeaderMapping
from trucktalk.issues import Issue, IssueCode, build_issue

NON_DIGIT_RE = re.compile(r"\D")

DATE_SUGGESTION = "Use ISO-8601 with a timezone, for example 2025-09-10T14:00:00Z."


@dataclass
class Load:
    row_number: int
    values: dict[str, str | None] = field(default_factory=dict)

    def get(self, field_name: str) -> str | None:
        return self.values.get(field_name)

    def to_dict(self) -> dict[str, str | None]:
        return dict(self.values)


def is_absent(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def cell_text(value: Any) -> str | None:
    if is_absent(value):
        return None
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    text = str(value).replace("\x00", "").strip()
    return text or None


def is_blank_row(row_values: Sequence[Any]) -> bool:
    return all(is_absent(value) for value in row_values)


def normalize_phone(text: str) -> str:
    digits = NON_DIGIT_RE.sub("", text)
    if not digits:
        return text
    return f"+{digits}" if text.startswith("+") else digits


def _date_issue(field_name: str, column: str, row_number: int, reason: str) -> Issue:
    if reason == REASON_MISSING_TIMEZONE:
        return build_issue(
            IssueCode.BAD_DATE_MISSING_TZ,
            f"'{column}' has a date/time without a timezone; it was not assumed.",
            rows=[row_number],
            column=column,
            suggestion=f"Add a timezone to {field_name} values (Z, +HH:MM, or e.g. EDT).",
        )
    return build_issue(
        IssueCode.BAD_DATE_FORMAT,
        f"'{column}' has a value that is not a valid date/time.",
        rows=[row_number],
        column=column,
        suggestion=DATE_SUGGESTION,
    )


def normalize_row(
    row_values: Sequence[Any],
    mapping: HeaderMapping,
    row_number: int,
    config: AnalyzerConfig = DEFAULT_CONFIG,
) -> tuple[Load, list[Issue]]:
    """Build one Load from a raw row; absent cells stay None, bad dates are reported."""
    load = Load(row_number=row_number)
    issues: list[Issue] = []

    for field_name in config.fields:
        index = mapping.index_for(field_name)
        raw = row_values[index] if index is not None and index < len(row_values) else None
        if is_absent(raw):
            load.values[field_name] = None
            continue

        column = mapping.header_for(field_name) or field_name
        if field_name in DATE_FIELDS:
            result = normalize_datetime(raw, config.assume_timezone)
            if result.ok:
                load.values[field_name] = result.iso
                if result.non_iso_input:
                    issues.append(
                        build_issue(
                            IssueCode.NON_ISO_DATE,
                            f"'{column}' is a valid date/time but not in ISO-8601 form.",
                            rows=[row_number],
                            column=column,
                            suggestion=DATE_SUGGESTION,
                        )
                    )
            else:
                load.values[field_name] = None
                if result.reason != REASON_EMPTY:
                    issues.append(_date_issue(field_name, column, row_number, result.reason))
        elif field_name == "driverPhone":
            text = cell_text(raw)
            load.values[field_name] = normalize_phone(text) if text else None
        else:
            load.values[field_name] = cell_text(raw)

    return load, issues
