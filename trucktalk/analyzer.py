"""
Analysis orchestrator.

Runs header mapping, per-row normalization, cross-row validation and issue
grouping over one table and assembles the AnalysisResult envelope.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from trucktalk import __version__ as TOOL_VERSION
from trucktalk.config import DEFAULT_CONFIG, AnalyzerConfig
from trucktalk.contracts import build_contract, build_run_summary, utc_now_iso
from trucktalk.header_mapper import map_headers
from trucktalk.issues import Issue, IssueCode, build_issue, group_issues, has_errors
from trucktalk.mapping_store import MappingStore
from trucktalk.normalizer import Load, is_blank_row, normalize_row
from trucktalk.validator import validate

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2


@dataclass
class AnalysisResult:
    ok: bool
    issues: list[Issue]
    mapping: dict[str, str]
    analyzed_rows: int
    analyzed_at: str
    loads: list[Load] | None = None
    header_index: dict[str, int] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.is_error)

    @property
    def warning_count(self) -> int:
        return len(self.issues) - self.error_count

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ok": self.ok,
            "issues": [issue.to_dict() for issue in self.issues],
            "mapping": dict(self.mapping),
            "meta": {"analyzedRows": self.analyzed_rows, "analyzedAt": self.analyzed_at},
        }
        if self.loads is not None:
            payload["loads"] = [load.to_dict() for load in self.loads]
        return payload


def _failure(code: IssueCode, message: str, suggestion: str, analyzed_rows: int = 0) -> AnalysisResult:
    return AnalysisResult(
        ok=False,
        issues=[build_issue(code, message, suggestion=suggestion)],
        mapping={},
        analyzed_rows=analyzed_rows,
        analyzed_at=utc_now_iso(),
    )


def merge_mappings(
    saved_mapping: Mapping[str, str] | None,
    mapping_override: Mapping[str, str] | None,
) -> dict[str, str]:
    """Override entries win for exactly the fields they name; other saved entries survive."""
    combined = dict(mapping_override or {})
    overridden_fields = set(combined.values())
    for header, field_name in (saved_mapping or {}).items():
        if field_name in overridden_fields or header in combined:
            continue
        combined[header] = field_name
    return combined


def _run(
    headers: Sequence[Any],
    rows: Sequence[Sequence[Any]],
    saved_mapping: Mapping[str, str] | None,
    config: AnalyzerConfig,
) -> AnalysisResult:
    data_rows = list(rows[: config.max_rows] if config.max_rows else rows)
    if len(rows) > len(data_rows):
        logger.info("Row cap %d applied; %d rows not analyzed", config.max_rows, len(rows) - len(data_rows))

    if not headers or all(header is None or not str(header).strip() for header in headers):
        return _failure(
            IssueCode.NO_DATA,
            "No header row found in the sheet.",
            "Put the column headers in row 1.",
        )

    mapping, structural = map_headers(headers, saved_mapping, config)
    if structural:
        return AnalysisResult(
            ok=False,
            issues=group_issues(structural, config.fixable_codes),
            mapping=mapping.to_dict(),
            analyzed_rows=len(data_rows),
            analyzed_at=utc_now_iso(),
            header_index=dict(mapping.field_to_index),
        )

    loads: list[Load] = []
    row_issues: list[Issue] = []
    for offset, row_values in enumerate(data_rows):
        if is_blank_row(row_values):
            continue
        load, issues = normalize_row(row_values, mapping, offset + FIRST_DATA_ROW, config)
        loads.append(load)
        row_issues.extend(issues)

    if not loads:
        return _failure(
            IssueCode.NO_DATA,
            "No data rows found in the sheet.",
            "Add at least one load below the header row.",
            analyzed_rows=len(data_rows),
        )

    row_issues.extend(validate(loads, row_issues, mapping, config))
    issues = group_issues(row_issues, config.fixable_codes)
    ok = not has_errors(issues)
    logger.info(
        "Analyzed %d rows: %d grouped issues, ok=%s", len(data_rows), len(issues), ok
    )
    return AnalysisResult(
        ok=ok,
        issues=issues,
        mapping=mapping.to_dict(),
        analyzed_rows=len(data_rows),
        analyzed_at=utc_now_iso(),
        loads=loads if ok else None,
        header_index=dict(mapping.field_to_index),
    )


def analyze_table(
    headers: Sequence[Any],
    rows: Sequence[Sequence[Any]],
    saved_mapping: Mapping[str, str] | None = None,
    mapping_override: Mapping[str, str] | None = None,
    config: AnalyzerConfig = DEFAULT_CONFIG,
) -> AnalysisResult:
    try:
        return _run(headers, rows, merge_mappings(saved_mapping, mapping_override), config)
    except Exception as exc:
        logger.exception("Analysis failed")
        return _failure(
            IssueCode.INTERNAL_ERROR,
            f"Internal error during analysis: {exc}",
            "Retry the analysis; if it keeps failing, report the sheet that triggers it.",
        )


def analyze_values(
    values: Sequence[Sequence[Any]],
    saved_mapping: Mapping[str, str] | None = None,
    mapping_override: Mapping[str, str] | None = None,
    config: AnalyzerConfig = DEFAULT_CONFIG,
) -> AnalysisResult:
    """Analyze a 2-D table whose first row holds the headers."""
    if len(values) < 2:
        return _failure(
            IssueCode.NO_DATA,
            "No data found in the sheet.",
            "Make sure the sheet has a header row and at least one data row.",
        )
    return analyze_table(values[0], values[1:], saved_mapping, mapping_override, config)


class Analyzer:
    """Binds a config and an optional mapping store for repeated runs."""

    def __init__(self, config: AnalyzerConfig = DEFAULT_CONFIG, store: MappingStore | None = None) -> None:
        self.config = config
        self.store = store

    def saved_mapping(self, user: str | None) -> dict[str, str] | None:
        if self.store is None or not user:
            return None
        return self.store.get(user)

    def analyze(
        self,
        values: Sequence[Sequence[Any]],
        user: str | None = None,
        mapping_override: Mapping[str, str] | None = None,
    ) -> AnalysisResult:
        return analyze_values(values, self.saved_mapping(user), mapping_override, self.config)


def build_report(result: AnalysisResult, *, source: str, warnings: list[str] | None = None) -> dict[str, Any]:
    contract = build_contract("trucktalk.analysis")
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "result": result.to_dict(),
        "run_summary": build_run_summary(
            command="analyze",
            source=source,
            status="ok" if result.ok else "issues",
            warnings=warnings,
            metrics={
                "analyzed_rows": result.analyzed_rows,
                "issues": len(result.issues),
                "errors": result.error_count,
                "warnings": result.warning_count,
                "loads": len(result.loads or []),
            },
        ),
    }
