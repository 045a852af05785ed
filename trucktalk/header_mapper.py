"""
Resolve a raw header row onto the canonical load fields.

Priority per field: previously confirmed user mapping, then a header equal to
the field name, then the field's aliases in declared order. Each pass only
considers fields still unbound and headers not yet claimed, so the result
depends on nothing but the header row, the saved mapping and the config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from trucktalk.config import DEFAULT_CONFIG, AnalyzerConfig, normalize_header
from trucktalk.issues import Issue, IssueCode, build_issue

logger = logging.getLogger(__name__)


@dataclass
class HeaderMapping:
    field_to_header: dict[str, str] = field(default_factory=dict)
    header_to_field: dict[str, str] = field(default_factory=dict)
    field_to_index: dict[str, int] = field(default_factory=dict)

    def bind(self, field_name: str, header: str, index: int) -> None:
        self.field_to_header[field_name] = header
        self.header_to_field[header] = field_name
        self.field_to_index[field_name] = index

    def is_bound(self, field_name: str) -> bool:
        return field_name in self.field_to_header

    def header_for(self, field_name: str) -> str | None:
        return self.field_to_header.get(field_name)

    def index_for(self, field_name: str) -> int | None:
        return self.field_to_index.get(field_name)

    def to_dict(self) -> dict[str, str]:
        return dict(self.header_to_field)


def _clean_saved_mapping(saved_mapping: Mapping[str, Any] | None, config: AnalyzerConfig) -> list[tuple[str, str]]:
    if not saved_mapping:
        return []
    entries: list[tuple[str, str]] = []
    for header, field_name in saved_mapping.items():
        if field_name not in config.fields:
            logger.warning("Ignoring saved mapping %r -> %r: not a canonical field", header, field_name)
            continue
        entries.append((normalize_header(header), field_name))
    return entries


def map_headers(
    headers: Sequence[Any],
    saved_mapping: Mapping[str, Any] | None = None,
    config: AnalyzerConfig = DEFAULT_CONFIG,
) -> tuple[HeaderMapping, list[Issue]]:
    labels = ["" if header is None else str(header) for header in headers]
    normalized = [normalize_header(label) for label in labels]
    claimed: set[int] = set()
    mapping = HeaderMapping()

    def claim(field_name: str, wanted: str, source: str) -> bool:
        if not wanted:
            return False
        for index, candidate in enumerate(normalized):
            if index in claimed or candidate != wanted:
                continue
            claimed.add(index)
            mapping.bind(field_name, labels[index], index)
            logger.debug("Mapped %s -> %r via %s", field_name, labels[index], source)
            return True
        return False

    saved_entries = _clean_saved_mapping(saved_mapping, config)
    for field_name in config.fields:
        for saved_header, saved_field in saved_entries:
            if saved_field == field_name and claim(field_name, saved_header, "saved mapping"):
                break

    for field_name in config.fields:
        if not mapping.is_bound(field_name):
            claim(field_name, normalize_header(field_name), "field name")

    for field_name in config.fields:
        if mapping.is_bound(field_name):
            continue
        for alias in config.aliases_for(field_name):
            if claim(field_name, normalize_header(alias), f"alias {alias!r}"):
                break

    issues: list[Issue] = []
    for field_name in config.fields:
        if mapping.is_bound(field_name) or not config.is_required(field_name):
            continue
        aliases = [alias for alias in config.aliases_for(field_name) if alias != field_name]
        issues.append(
            build_issue(
                IssueCode.MISSING_COLUMN,
                f"No column found for required field '{field_name}'.",
                column=field_name,
                suggestion=(
                    f"Add or rename a column to '{field_name}'"
                    + (f" or one of: {', '.join(aliases)}." if aliases else ".")
                ),
            )
        )
    return mapping, issues
